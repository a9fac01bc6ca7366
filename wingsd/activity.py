"""Activity records describing actions taken against a server."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

ACTIVITY_POWER_PREFIX = "server:power."

ACTIVITY_CONSOLE_COMMAND = "server:console.command"
ACTIVITY_SFTP_WRITE = "server:sftp.write"
ACTIVITY_SFTP_CREATE = "server:sftp.create"
ACTIVITY_SFTP_CREATE_DIRECTORY = "server:sftp.create-directory"
ACTIVITY_SFTP_RENAME = "server:sftp.rename"
ACTIVITY_SFTP_DELETE = "server:sftp.delete"
ACTIVITY_FILE_UPLOADED = "server:file.uploaded"


def power_event(action: str) -> str:
    """Return the activity event name for a power action."""
    return ACTIVITY_POWER_PREFIX + action


@dataclass
class Activity:
    """A single logged activity event."""

    server: str
    event: str
    user: str = ""
    ip: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RequestActivity:
    """Request details shared by every activity logged during one request."""

    server: str
    user: str = ""
    ip: str = ""

    def event(self, event: str, metadata: dict[str, Any] | None = None) -> Activity:
        return Activity(
            server=self.server,
            event=event,
            user=self.user,
            ip=self.ip,
            metadata=dict(metadata or {}),
        )

    def with_user(self, user: str) -> RequestActivity:
        """Return a copy attributed to another user."""
        return dataclasses.replace(self, user=user)