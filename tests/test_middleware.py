import uuid

import pytest

from wingsd.middleware import (
    HttpError,
    access_control_headers,
    capture_error,
    new_request_id,
    remote_download_enabled,
    require_authorization,
)
from wingsd.request_error import DEFAULT_MESSAGE, ErrorCode, FilesystemError

LOCATION = "https://panel.example.com"


def test_request_ids_are_unique_uuid4():
    first = new_request_id()
    second = new_request_id()
    assert first != second
    assert uuid.UUID(first).version == 4


@pytest.mark.parametrize("header", [None, "", "token", "Basic token", "Bearer"])
def test_require_authorization_rejects_malformed_header(header):
    with pytest.raises(HttpError) as info:
        require_authorization(header, "token")
    assert info.value.status == 401
    assert info.value.headers == {"WWW-Authenticate": "Bearer"}
    assert info.value.body == {
        "error": "The required authorization heads were not present in the request."
    }


def test_require_authorization_rejects_wrong_token():
    with pytest.raises(HttpError) as info:
        require_authorization("Bearer placeholder", "token")
    assert info.value.status == 403
    assert info.value.message == "You are not authorized to access this endpoint."


def test_require_authorization_accepts_matching_token():
    assert require_authorization("Bearer token", "token") == "token"


def test_cors_uses_panel_location_for_panel_origin():
    headers, preflight = access_control_headers("GET", LOCATION, LOCATION, ["*"], False)
    assert headers["Access-Control-Allow-Origin"] == LOCATION
    assert headers["Access-Control-Max-Age"] == "7200"
    assert headers["Access-Control-Allow-Credentials"] == "true"
    assert "Access-Control-Request-Private-Network" not in headers
    assert preflight is False


def test_cors_echoes_allowed_origin():
    other = "https://other.example.com"
    headers, _ = access_control_headers("GET", other, LOCATION, [other], False)
    assert headers["Access-Control-Allow-Origin"] == other


def test_cors_wildcard_origin():
    headers, _ = access_control_headers(
        "GET", "https://any.example.com", LOCATION, ["*"], False
    )
    assert headers["Access-Control-Allow-Origin"] == "*"


def test_cors_unknown_origin_falls_back_to_location():
    headers, _ = access_control_headers(
        "GET", "https://evil.example.com", LOCATION, ["https://other.example.com"], False
    )
    assert headers["Access-Control-Allow-Origin"] == LOCATION


def test_cors_preflight_and_private_network():
    headers, preflight = access_control_headers("OPTIONS", None, LOCATION, [], True)
    assert preflight is True
    assert headers["Access-Control-Request-Private-Network"] == "true"
    assert headers["Access-Control-Allow-Methods"] == "GET, POST, PATCH, PUT, DELETE, OPTIONS"


def test_remote_download_disabled():
    with pytest.raises(HttpError) as info:
        remote_download_enabled(True)
    assert info.value.status == 400
    assert info.value.message == (
        "This functionality is not currently enabled on this instance."
    )


def test_capture_error_without_error():
    assert capture_error(None) is None


def test_capture_error_eof():
    status, body = capture_error(EOFError("EOF"), 200, "rid")
    assert status == 400
    assert body == {
        "error": "The data passed in the request was not in a parsable format. Please try again."
    }


def test_capture_error_filesystem_not_found():
    err = FilesystemError(ErrorCode.NOT_EXIST)
    status, body = capture_error(err, 200, "rid")
    assert status == 404
    assert body == {
        "error": "The requested resources was not found on the system.",
        "request_id": "rid",
    }


def test_capture_error_denylisted_file():
    status, body = capture_error(FilesystemError(ErrorCode.DENYLIST_FILE), 200, "rid")
    assert status == 403
    assert body["error"] == "This file cannot be modified: present in egg denylist."


def test_capture_error_generic_is_internal_error():
    status, body = capture_error(RuntimeError("boom"), 200, "rid")
    assert status == 500
    assert body == {"error": DEFAULT_MESSAGE, "request_id": "rid"}


def test_capture_error_keeps_written_status():
    status, body = capture_error(RuntimeError("boom"), 422, "rid")
    assert status == 422
    assert body["request_id"] == "rid"


def test_capture_error_timeout_message():
    status, body = capture_error(TimeoutError("deadline"), 200, "rid")
    assert status == 500
    assert body["error"] == (
        "The server could not process this request in time, please try again."
    )