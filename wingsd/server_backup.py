"""Running backups and restorations against a server's data directory."""

from __future__ import annotations

import logging
import os
import tarfile
from dataclasses import dataclass, field
from typing import IO, Any, Callable

from .backup import ArchiveDetails
from .configuration import Configuration
from .crash import PROCESS_OFFLINE_STATE
from .errors import ServerError
from .events import (
    BACKUP_COMPLETED_EVENT,
    DAEMON_MESSAGE_EVENT,
    EventBus,
)
from .request_error import ErrorCode, FilesystemError

logger = logging.getLogger(__name__)

IGNORE_FILE = ".pteroignore"
_MAX_IGNORE_SIZE = 32 * 1024
_RESTORE_STOP_TIMEOUT = 2 * 60.0


def _noop_wait(timeout: float) -> None:
    return None


def _offline() -> str:
    return PROCESS_OFFLINE_STATE


@dataclass
class ServerContext:
    """The parts of a server that backups and restorations act on.

    `wait_for_stop` should raise LookupError when the process environment no
    longer exists; that is treated as already stopped.
    """

    id: str
    root: str
    events: EventBus = field(default_factory=EventBus)
    config: Configuration = field(default_factory=Configuration)
    state: Callable[[], str] = _offline
    wait_for_stop: Callable[[float], None] = _noop_wait


def server_wide_ignored(root: str) -> str:
    """Return the contents of the server's ignore file, or "" if unusable."""
    path = os.path.join(root, IGNORE_FILE)
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return ""
    if os.path.islink(path) or st.st_size > _MAX_IGNORE_SIZE:
        return ""
    with open(path, encoding="utf-8", errors="replace") as fh:
        return fh.read()


def _notify_panel(client: Any, uuid: str, details: ArchiveDetails, successful: bool) -> None:
    client.set_backup_status(uuid, details.to_request(successful))


def _completed_event(uuid: str) -> str:
    return f"{BACKUP_COMPLETED_EVENT}:{uuid}"


def run_backup(server: ServerContext, backup: Any, client: Any) -> ArchiveDetails | None:
    """Generate a backup, report it to the Panel and announce it on the event bus.

    Returns the archive details, or None if the Panel could not be told of a
    successful backup, in which case the archive is removed again.
    """
    ignored = backup.ignore
    if not ignored:
        try:
            ignored = server_wide_ignored(server.root)
        except OSError as exc:
            logger.warning("failed to get server-wide ignored files for %s: %s", server.id, exc)

    uuid = backup.identifier
    try:
        details = backup.generate(server.root, ignored)
    except Exception as exc:
        try:
            _notify_panel(client, uuid, ArchiveDetails(), False)
        except Exception as notify_exc:
            logger.warning("failed to notify panel of failed backup state %s: %s", uuid, notify_exc)
        else:
            logger.info("notified panel of failed backup state %s", uuid)
        server.events.publish(
            _completed_event(uuid),
            {
                "uuid": uuid,
                "is_successful": False,
                "checksum": "",
                "checksum_type": "sha1",
                "file_size": 0,
            },
        )
        raise ServerError(f"backup: error while generating server backup: {exc}") from exc

    try:
        _notify_panel(client, uuid, details, True)
    except Exception as notify_exc:
        try:
            backup.remove()
        except OSError:
            pass
        logger.info("failed to notify panel of successful backup state: %s", notify_exc)
        return None
    logger.info("notified panel of successful backup state %s", uuid)

    server.events.publish(
        _completed_event(uuid),
        {
            "uuid": uuid,
            "is_successful": True,
            "checksum": details.checksum,
            "checksum_type": "sha1",
            "file_size": details.size,
        },
    )
    return details


def _resolve(root: str, name: str) -> str:
    base = os.path.realpath(root)
    target = os.path.realpath(os.path.join(base, name.lstrip("/")))
    if target != base and not target.startswith(base + os.sep):
        raise FilesystemError(
            ErrorCode.PATH_RESOLUTION,
            "filesystem: file path resolves to a location outside the server root",
        )
    return target


def _write_file(root: str, name: str, info: tarfile.TarInfo, stream: IO[bytes]) -> None:
    target = _resolve(root, name)
    if os.path.isdir(target):
        raise FilesystemError(ErrorCode.IS_DIRECTORY, "filesystem: is a directory")
    os.makedirs(os.path.dirname(target), exist_ok=True)
    with open(target, "wb") as out:
        for chunk in iter(lambda: stream.read(64 * 1024), b""):
            out.write(chunk)
    os.chmod(target, info.mode & 0o7777)
    os.utime(target, (info.mtime, info.mtime))


def restore_backup(
    server: ServerContext,
    backup: Any,
    reader: IO[bytes] | None,
    client: Any,
) -> None:
    """Restore a backup into the server's data directory.

    The server is suspended while files are written, and the Panel is told
    whether the restoration succeeded once it finishes.
    """
    server.config.set_suspended(True)
    successful = False
    try:
        if server.state() != PROCESS_OFFLINE_STATE:
            try:
                server.wait_for_stop(_RESTORE_STOP_TIMEOUT)
            except LookupError:
                pass
            except Exception as exc:
                raise ServerError(
                    f"server/backup: restore: failed to wait for container stop: {exc}"
                ) from exc

        logger.debug("starting file writing process for backup restoration")

        def write(name: str, info: tarfile.TarInfo, stream: IO[bytes]) -> None:
            server.events.publish(DAEMON_MESSAGE_EVENT, "(restoring): " + name)
            _write_file(server.root, name, info, stream)

        backup.restore(reader, write)
        successful = True
    finally:
        try:
            client.send_restoration_status(backup.identifier, successful)
        except Exception as exc:
            logger.error(
                "failed to notify Panel of backup restoration status %s: %s",
                backup.identifier,
                exc,
            )
        server.config.set_suspended(False)
        if reader is not None:
            reader.close()