"""Request checks shared by the HTTP routes: auth, CORS and error capture."""

from __future__ import annotations

import hmac
import logging
import uuid
from typing import Any

from .request_error import RequestError

logger = logging.getLogger(__name__)

_UNAUTHORIZED = "The required authorization heads were not present in the request."
_FORBIDDEN = "You are not authorized to access this endpoint."
_REMOTE_DOWNLOAD_DISABLED = "This functionality is not currently enabled on this instance."
_UNPARSABLE = "The data passed in the request was not in a parsable format. Please try again."

_ALLOW_METHODS = "GET, POST, PATCH, PUT, DELETE, OPTIONS"
_ALLOW_HEADERS = (
    "Accept, Accept-Encoding, Authorization, Cache-Control, Content-Type, "
    "Content-Length, Origin, X-Real-IP, X-CSRF-Token"
)


class HttpError(Exception):
    """Aborts a request with a status code, a JSON body and extra headers."""

    def __init__(
        self,
        status: int,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.headers = dict(headers or {})

    @property
    def body(self) -> dict[str, Any]:
        return {"error": self.message}


def new_request_id() -> str:
    """Return a fresh identifier to attach to a request and its errors."""
    return str(uuid.uuid4())


def require_authorization(header: str | None, token: str) -> str:
    """Check a Bearer Authorization header against the node token.

    Returns the presented credential; raises HttpError with 401 when the
    header is missing or malformed and 403 when the credential is wrong.
    """
    parts = (header or "").split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HttpError(401, _UNAUTHORIZED, {"WWW-Authenticate": "Bearer"})
    credential = parts[1]
    if not hmac.compare_digest(credential.encode(), token.encode()):
        raise HttpError(403, _FORBIDDEN)
    return credential


def access_control_headers(
    method: str,
    origin: str | None,
    location: str,
    allowed_origins: list[str],
    allow_private_network: bool,
) -> tuple[dict[str, str], bool]:
    """Build the CORS headers for a request.

    Returns the headers and whether the request is a preflight that should be
    answered at once with 204 No Content.
    """
    headers = {
        "Access-Control-Allow-Origin": location,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": _ALLOW_METHODS,
        "Access-Control-Allow-Headers": _ALLOW_HEADERS,
    }
    if allow_private_network:
        headers["Access-Control-Request-Private-Network"] = "true"
    headers["Access-Control-Max-Age"] = "7200"

    origin = origin or ""
    if origin != location:
        for allowed in allowed_origins:
            if allowed == "*" or allowed == origin:
                headers["Access-Control-Allow-Origin"] = allowed
                break
    return headers, method.upper() == "OPTIONS"


def remote_download_enabled(disabled: bool) -> None:
    """Raise HttpError 400 when remote downloads are disabled on this node."""
    if disabled:
        raise HttpError(400, _REMOTE_DOWNLOAD_DISABLED)


def capture_error(
    err: BaseException | None,
    status: int = 200,
    request_id: str = "",
) -> tuple[int, dict[str, Any]] | None:
    """Turn an error raised by a route into the status and JSON body to send.

    `status` is the status already written for the response; anything other
    than 200 is kept, otherwise 500 is used. Returns None when there is no error.
    """
    if err is None:
        return None
    if isinstance(err, EOFError) or str(err) == "EOF":
        return 400, {"error": _UNPARSABLE}

    headers_sent = status != 200
    final_status = status if headers_sent else 500
    captured = RequestError(err, request_id=request_id, headers_sent=headers_sent)
    fs_status, message = captured.as_filesystem_error()
    if message:
        return fs_status, {"error": message, "request_id": request_id}
    return captured.response(final_status)