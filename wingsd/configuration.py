"""Per-server configuration as delivered by the Panel."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


@dataclass
class EggConfiguration:
    """Egg-level settings, including files no user may access."""

    id: str = ""
    file_denylist: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EggConfiguration:
        data = data or {}
        return cls(
            id=str(data.get("id") or ""),
            file_denylist=[str(p) for p in _as_list(data.get("file_denylist"))],
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "file_denylist": list(self.file_denylist)}


@dataclass
class ConfigurationMeta:
    """Human-facing name and description of a server."""

    name: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConfigurationMeta:
        data = data or {}
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description}


@dataclass
class Configuration:
    """Everything the daemon needs to know to run one server."""

    uuid: str = ""
    meta: ConfigurationMeta = field(default_factory=ConfigurationMeta)
    suspended: bool = False
    invocation: str = ""
    skip_egg_scripts: bool = False
    env_vars: dict[str, Any] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    allocations: dict[str, Any] = field(default_factory=dict)
    build: dict[str, Any] = field(default_factory=dict)
    crash_detection_enabled: bool = False
    mounts: list[dict[str, Any]] = field(default_factory=list)
    egg: EggConfiguration = field(default_factory=EggConfiguration)
    container_image: str = ""
    _lock: threading.RLock = field(
        default_factory=threading.RLock, init=False, repr=False, compare=False
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Configuration:
        """Build a configuration from its JSON representation."""
        if not isinstance(data, dict):
            raise TypeError("configuration must be a mapping")
        container = _as_dict(data.get("container"))
        return cls(
            uuid=str(data.get("uuid") or ""),
            meta=ConfigurationMeta.from_dict(_as_dict(data.get("meta"))),
            suspended=bool(data.get("suspended", False)),
            invocation=str(data.get("invocation") or ""),
            skip_egg_scripts=bool(data.get("skip_egg_scripts", False)),
            env_vars=_as_dict(data.get("environment")),
            labels={str(k): str(v) for k, v in _as_dict(data.get("labels")).items()},
            allocations=_as_dict(data.get("allocations")),
            build=_as_dict(data.get("build")),
            crash_detection_enabled=bool(data.get("crash_detection_enabled", False)),
            mounts=[m for m in _as_list(data.get("mounts")) if isinstance(m, dict)],
            egg=EggConfiguration.from_dict(_as_dict(data.get("egg"))),
            container_image=str(container.get("image") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation of this configuration."""
        with self._lock:
            data: dict[str, Any] = {
                "uuid": self.uuid,
                "meta": self.meta.to_dict(),
                "suspended": self.suspended,
                "invocation": self.invocation,
                "skip_egg_scripts": self.skip_egg_scripts,
                "environment": dict(self.env_vars),
                "labels": dict(self.labels),
                "allocations": dict(self.allocations),
                "build": dict(self.build),
                "crash_detection_enabled": self.crash_detection_enabled,
                "mounts": [dict(m) for m in self.mounts],
                "egg": self.egg.to_dict(),
            }
            if self.container_image:
                data["container"] = {"image": self.container_image}
            return data

    def set_suspended(self, suspended: bool) -> None:
        with self._lock:
            self.suspended = suspended

    def disk_space_bytes(self) -> int:
        """Disk space available to the server, in bytes (the build value is MiB)."""
        with self._lock:
            return int(self.build.get("disk_space") or 0) * 1024 * 1024

    def memory_limit(self) -> int:
        with self._lock:
            return int(self.build.get("memory_limit") or 0)