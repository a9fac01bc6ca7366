"""Signed tokens that authorise downloads, uploads, transfers and websocket sessions."""

from __future__ import annotations

import logging
import sys
import threading
import time
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

import jwt
from cachetools import TTLCache

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 60 * 60

# Tokens issued before the daemon started may already have been revoked, so
# they are never accepted for websocket connections.
BOOT_TIME = datetime.now(timezone.utc)

_EXP_MESSAGE = "jwt: exp claim is invalid"


class TokenError(Exception):
    """Raised when a token cannot be verified or decoded."""

    def __init__(self, message: str, *, expired: bool = False) -> None:
        super().__init__(message)
        self.expired = expired


class TokenStore:
    """Remembers one-time token identifiers until they expire."""

    def __init__(
        self,
        ttl: float = TOKEN_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._seen: TTLCache = TTLCache(maxsize=sys.maxsize, ttl=ttl, timer=timer)

    def is_valid_token(self, token: str) -> bool:
        """Return True the first time a token is seen, False on every reuse."""
        with self._lock:
            if token in self._seen:
                return False
            self._seen[token] = True
            return True


_store: TokenStore | None = None
_store_lock = threading.Lock()


def get_token_store() -> TokenStore:
    """Return the process-wide one-time token store."""
    global _store
    with _store_lock:
        if _store is None:
            _store = TokenStore()
        return _store


_denylist: dict[str, datetime] = {}
_denylist_lock = threading.Lock()


def deny_jti(jti: str) -> None:
    """Reject every token with this JTI issued before the current moment."""
    logger.debug('adding "%s" to JTI denylist', jti)
    with _denylist_lock:
        _denylist[jti] = datetime.now(timezone.utc)


def _denied_since(jti: str) -> datetime | None:
    with _denylist_lock:
        return _denylist.get(jti)


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TokenError(f"jwt: claim {name!r} must be a string")
    return value


def _string_list(name: str, value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TokenError(f"jwt: claim {name!r} must be a list of strings")
    return list(value)


def _audience(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    return _string_list("aud", value)


def _numeric_date(name: str, value: Any) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TokenError(f"jwt: claim {name!r} must be a numeric date")
    return datetime.fromtimestamp(value, timezone.utc)


_REGISTERED_STRINGS = {"iss": "issuer", "sub": "subject", "jti": "jwt_id"}
_REGISTERED_DATES = {"exp": "expiration_time", "nbf": "not_before", "iat": "issued_at"}


@dataclass
class _Payload:
    issuer: str = ""
    subject: str = ""
    audience: list[str] = field(default_factory=list)
    expiration_time: datetime | None = None
    not_before: datetime | None = None
    issued_at: datetime | None = None
    jwt_id: str = ""

    @classmethod
    def _from_claims(cls, claims: dict[str, Any]):
        values: dict[str, Any] = {}
        for claim, name in _REGISTERED_STRINGS.items():
            if claims.get(claim) is not None:
                values[name] = _require_str(claim, claims[claim])
        if claims.get("aud") is not None:
            values["audience"] = _audience(claims["aud"])
        for claim, name in _REGISTERED_DATES.items():
            if claims.get(claim) is not None:
                values[name] = _numeric_date(claim, claims[claim])

        base = {f.name for f in fields(_Payload)}
        for f in fields(cls):
            if f.name in base or claims.get(f.name) is None:
                continue
            if f.default_factory is list:
                values[f.name] = _string_list(f.name, claims[f.name])
            else:
                values[f.name] = _require_str(f.name, claims[f.name])
        return cls(**values)


@dataclass
class BackupPayload(_Payload):
    server_uuid: str = ""
    backup_uuid: str = ""
    unique_id: str = ""

    def is_unique_request(self) -> bool:
        """True only the first time this token's unique ID is presented."""
        return get_token_store().is_valid_token(self.unique_id)


@dataclass
class FilePayload(_Payload):
    file_path: str = ""
    server_uuid: str = ""
    unique_id: str = ""

    def is_unique_request(self) -> bool:
        """True only the first time this token's unique ID is presented."""
        return get_token_store().is_valid_token(self.unique_id)


@dataclass
class UploadPayload(_Payload):
    server_uuid: str = ""
    user_uuid: str = ""
    unique_id: str = ""

    def is_unique_request(self) -> bool:
        """True only the first time this token's unique ID is presented."""
        return get_token_store().is_valid_token(self.unique_id)


@dataclass
class TransferPayload(_Payload):
    pass


@dataclass
class WebsocketPayload(_Payload):
    user_uuid: str = ""
    server_uuid: str = ""
    permissions: list[str] = field(default_factory=list)

    def denylisted(self) -> bool:
        """Whether this token predates the daemon's boot or a denial of its JTI."""
        if self.issued_at is None:
            return True
        if self.issued_at < BOOT_TIME:
            return True
        denied = _denied_since(self.jwt_id)
        return denied is not None and self.issued_at < denied

    def has_permission(self, permission: str) -> bool:
        """Whether the token grants a permission; '*' covers all but admin ones."""
        for granted in self.permissions:
            if granted == permission or (not permission.startswith("admin") and granted == "*"):
                return not self.denylisted()
        return False


P = TypeVar("P", bound=_Payload)


def parse_token(token: str | bytes, secret: str | bytes, payload_cls: type[P]) -> P:
    """Verify an HS256 token signed with the node secret and decode its payload."""
    key = secret.encode() if isinstance(secret, str) else secret
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=["HS256"],
            options={
                "require": ["exp"],
                "verify_aud": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except (jwt.ExpiredSignatureError, jwt.MissingRequiredClaimError) as exc:
        raise TokenError(_EXP_MESSAGE, expired=True) from exc
    except jwt.PyJWTError as exc:
        raise TokenError(f"jwt: {exc}") from exc
    return payload_cls._from_claims(claims)