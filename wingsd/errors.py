"""Errors raised for server state conflicts."""

from __future__ import annotations


class ServerError(Exception):
    """Base class for server state errors."""

    default_message = "server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class ServerIsRunningError(ServerError):
    default_message = "server is running"


class ServerSuspendedError(ServerError):
    default_message = "server is currently in a suspended state"


class ServerInstallingError(ServerError):
    default_message = "server is currently installing"


class ServerTransferringError(ServerError):
    default_message = "server is currently being transferred"


class ServerRestoringError(ServerError):
    default_message = "server is currently being restored"


class CrashTooFrequentError(ServerError):
    default_message = "server has crashed too soon after the last detected crash"


class ServerDoesNotExistError(ServerError):
    default_message = "server does not exist on remote system"


def is_too_frequent_crash_error(err: BaseException | None) -> bool:
    return isinstance(err, CrashTooFrequentError)


def is_server_does_not_exist_error(err: BaseException | None) -> bool:
    return isinstance(err, ServerDoesNotExistError)