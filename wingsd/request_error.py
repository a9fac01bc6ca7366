"""Turning errors raised while handling HTTP requests into JSON responses."""

from __future__ import annotations

import enum
import errno
import logging
from typing import Any, Iterator

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "An unexpected error was encountered while processing this request"


class ErrorCode(enum.Enum):
    """Kinds of filesystem errors that map to specific HTTP responses."""

    NOT_EXIST = "not_exist"
    PATH_RESOLUTION = "path_resolution"
    DENYLIST_FILE = "denylist_file"
    IS_DIRECTORY = "is_directory"
    DISK_SPACE = "disk_space"
    UNKNOWN_ARCHIVE = "unknown_archive"


class FilesystemError(Exception):
    """A server filesystem error carrying an ErrorCode."""

    def __init__(self, code: ErrorCode, message: str = "") -> None:
        super().__init__(message or f"filesystem: {code.value}")
        self.code = code


def _chain(err: BaseException | None) -> Iterator[BaseException]:
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__ or err.__context__


def _has_code(err: BaseException, code: ErrorCode) -> bool:
    return any(isinstance(e, FilesystemError) and e.code is code for e in _chain(err))


class RequestError(Exception):
    """An error raised while handling an HTTP request."""

    def __init__(
        self,
        err: BaseException | None,
        request_id: str = "",
        url: str = "",
        server_id: str | None = None,
        headers_sent: bool = False,
    ) -> None:
        super().__init__(str(err) if err is not None else "")
        self.err = err
        self.request_id = request_id
        self.url = url
        self.server_id = server_id
        self.headers_sent = headers_sent
        self.status = 500
        self.message = ""

    def as_filesystem_error(self) -> tuple[int, str]:
        """Map known filesystem errors to a status and message, else (0, "")."""
        err = self.err
        if err is None:
            return 0, ""
        text = str(err)
        if (
            _has_code(err, ErrorCode.NOT_EXIST)
            or _has_code(err, ErrorCode.PATH_RESOLUTION)
            or "resolves to a location outside the server root" in text
        ):
            return 404, "The requested resources was not found on the system."
        if _has_code(err, ErrorCode.DENYLIST_FILE) or "filesystem: file access prohibited" in text:
            return 403, "This file cannot be modified: present in egg denylist."
        if _has_code(err, ErrorCode.IS_DIRECTORY) or "filesystem: is a directory" in text:
            return 400, "Cannot perform that action: file is a directory."
        if _has_code(err, ErrorCode.DISK_SPACE) or "filesystem: not enough disk space" in text:
            return 400, "There is not enough disk space available to perform that action."
        if text.endswith("file name too long") or (
            isinstance(err, OSError) and err.errno == errno.ENAMETOOLONG
        ):
            return 400, "Cannot perform that action: file name is too long."
        return 0, ""

    def response(self, status: int) -> tuple[int, dict[str, Any]]:
        """Log the error and return the status and JSON body to send."""
        if not self.headers_sent:
            if any(isinstance(e, TimeoutError) for e in _chain(self.err)):
                self.status = 504
                self.message = "The server could not process this request in time, please try again."
            elif "context canceled" in str(self.err):
                self.status = 400
                self.message = "Request aborted by client."

        extra = {"request_id": self.request_id, "url": self.url, "status": status}
        if self.server_id is not None:
            extra["server_id"] = self.server_id
        if status >= 500 or self.headers_sent:
            logger.error("error while handling HTTP request: %s %s", self.err, extra)
        else:
            logger.debug("error handling HTTP request (not a server error): %s %s", self.err, extra)

        if not self.message:
            self.message = DEFAULT_MESSAGE
        return status, {"error": self.message, "request_id": self.request_id}