"""Server event names, an in-process event bus and websocket messages."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

DAEMON_MESSAGE_EVENT = "daemon message"
INSTALL_OUTPUT_EVENT = "install output"
INSTALL_STARTED_EVENT = "install started"
INSTALL_COMPLETED_EVENT = "install completed"
CONSOLE_OUTPUT_EVENT = "console output"
STATUS_EVENT = "status"
STATS_EVENT = "stats"
BACKUP_RESTORE_COMPLETED_EVENT = "backup restore completed"
BACKUP_COMPLETED_EVENT = "backup completed"
TRANSFER_LOGS_EVENT = "transfer logs"
TRANSFER_STATUS_EVENT = "transfer status"
DELETED_EVENT = "deleted"

AUTHENTICATION_SUCCESS_EVENT = "auth success"
TOKEN_EXPIRING_EVENT = "token expiring"
TOKEN_EXPIRED_EVENT = "token expired"
AUTHENTICATION_EVENT = "auth"
SET_STATE_EVENT = "set state"
SEND_SERVER_LOGS_EVENT = "send logs"
SEND_COMMAND_EVENT = "send command"
SEND_STATS_EVENT = "send stats"
ERROR_EVENT = "daemon error"
JWT_ERROR_EVENT = "jwt error"

Listener = Callable[[str, Any], None]


class EventBus:
    """Delivers published events to every registered listener in order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def on(self, callback: Listener) -> None:
        """Register a listener; registering it twice has no further effect."""
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def off(self, callback: Listener) -> None:
        """Remove a listener if it is registered."""
        with self._lock:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

    def publish(self, topic: str, data: Any) -> None:
        """Call every listener with the topic and data."""
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            callback(topic, data)


@dataclass
class Message:
    """A websocket message: an event name and optional string arguments."""

    event: str = ""
    args: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        payload: dict[str, Any] = {"event": self.event}
        if self.args:
            payload["args"] = list(self.args)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | bytes) -> Message:
        """Decode a message, raising ValueError on malformed input."""
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise ValueError(f"invalid websocket message: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("invalid websocket message: expected an object")

        event = data.get("event")
        if event is None:
            event = ""
        if not isinstance(event, str):
            raise ValueError("invalid websocket message: event must be a string")

        args = data.get("args")
        if args is None:
            args = []
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ValueError("invalid websocket message: args must be a list of strings")
        return cls(event=event, args=list(args))