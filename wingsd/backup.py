"""Server backups stored on the local disk or uploaded to S3 in parts."""

from __future__ import annotations

import enum
import fnmatch
import hashlib
import logging
import os
import random
import tarfile
import time
from dataclasses import dataclass, field
from typing import IO, Any, Callable, ClassVar

import requests

logger = logging.getLogger(__name__)

RestoreCallback = Callable[[str, tarfile.TarInfo, IO[bytes]], None]

_CHUNK = 4 * 1024
_UPLOAD_TIMEOUT = 2 * 60 * 60


class AdapterType(str, enum.Enum):
    """Where a backup is kept."""

    LOCAL = "wings"
    S3 = "s3"


@dataclass
class ArchiveDetails:
    """Checksum, size and uploaded parts of a finished archive."""

    checksum: str = ""
    checksum_type: str = ""
    size: int = 0
    parts: list[dict[str, Any]] = field(default_factory=list)

    def to_request(self, successful: bool) -> dict[str, Any]:
        """Return the body reported to the Panel for this archive."""
        return {
            "checksum": self.checksum,
            "checksum_type": self.checksum_type,
            "size": self.size,
            "successful": successful,
            "parts": [dict(p) for p in self.parts],
        }


def part_sizes(total: int, part_size: int, count: int) -> list[int]:
    """Sizes of the parts of a multipart upload; the last part takes the rest."""
    return [part_size if i + 1 < count else total - i * part_size for i in range(count)]


class _IgnoreRules:
    """Matches paths against .gitignore-style patterns; the last match wins."""

    def __init__(self, text: str) -> None:
        self._rules: list[tuple[str, bool, bool, bool]] = []
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            negate = line.startswith("!")
            if negate:
                line = line[1:]
            dir_only = line.endswith("/")
            line = line.rstrip("/")
            anchored = "/" in line
            line = line.lstrip("/")
            if line:
                self._rules.append((line, negate, dir_only, anchored))

    def ignored(self, rel: str, is_dir: bool) -> bool:
        result = False
        name = rel.rsplit("/", 1)[-1]
        for pattern, negate, dir_only, anchored in self._rules:
            if dir_only and not is_dir:
                continue
            target = rel if anchored else name
            if fnmatch.fnmatchcase(target, pattern):
                result = not negate
        return result


def _create_archive(source_dir: str, destination: str, ignore: str) -> None:
    rules = _IgnoreRules(ignore)
    parent = os.path.dirname(destination)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with tarfile.open(destination, "w:gz") as tar:
        for root, dirs, files in os.walk(source_dir):
            rel_root = os.path.relpath(root, source_dir).replace(os.sep, "/")
            prefix = "" if rel_root == "." else rel_root + "/"
            kept = []
            for d in sorted(dirs):
                rel = prefix + d
                full = os.path.join(root, d)
                if rules.ignored(rel, True):
                    continue
                tar.add(full, arcname=rel, recursive=False)
                if not os.path.islink(full):
                    kept.append(d)
            dirs[:] = kept
            for f in sorted(files):
                rel = prefix + f
                if not rules.ignored(rel, False):
                    tar.add(os.path.join(root, f), arcname=rel, recursive=False)


class _RateLimitedReader:
    """Wraps a binary stream so that it is read no faster than a byte rate."""

    def __init__(self, raw: IO[bytes], rate: int) -> None:
        self._raw = raw
        self._rate = rate
        self._start = time.monotonic()
        self._total = 0

    def read(self, size: int = -1) -> bytes:
        data = self._raw.read(size)
        self._total += len(data)
        wait = self._total / self._rate - (time.monotonic() - self._start)
        if wait > 0:
            time.sleep(wait)
        return data


def _extract(reader: IO[bytes], write_limit: int, callback: RestoreCallback) -> None:
    if write_limit > 0:
        reader = _RateLimitedReader(reader, write_limit * 1024 * 1024)  # type: ignore[assignment]
    with tarfile.open(fileobj=reader, mode="r|gz") as tar:
        for member in tar:
            if not member.isfile():
                continue
            stream = tar.extractfile(member)
            if stream is None:
                continue
            with stream:
                callback(member.name, member, stream)


@dataclass
class Backup:
    """A backup identified by the UUID the Panel tracks it under."""

    adapter: ClassVar[AdapterType] = AdapterType.LOCAL

    uuid: str
    backup_dir: str
    ignore: str = ""
    client: Any = None
    write_limit: int = 0
    log_context: dict[str, Any] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        return self.uuid

    def path(self) -> str:
        """Location of the archive on this machine."""
        return os.path.join(self.backup_dir, self.uuid + ".tar.gz")

    def size(self) -> int:
        return os.stat(self.path()).st_size

    def checksum(self) -> bytes:
        """SHA-1 digest of the archive."""
        digest = hashlib.sha1()
        with open(self.path(), "rb") as fh:
            for chunk in iter(lambda: fh.read(_CHUNK), b""):
                digest.update(chunk)
        return digest.digest()

    def details(self, parts: list[dict[str, Any]] | None) -> ArchiveDetails:
        return ArchiveDetails(
            checksum=self.checksum().hex(),
            checksum_type="sha1",
            size=self.size(),
            parts=list(parts or []),
        )

    def remove(self) -> None:
        os.remove(self.path())

    def with_log_context(self, context: dict[str, Any]) -> None:
        """Attach extra fields to every log line for this backup."""
        self.log_context = dict(context)

    def _log(self) -> logging.LoggerAdapter:
        extra = {"backup": self.uuid, "adapter": self.adapter.value, **self.log_context}
        return logging.LoggerAdapter(logger, extra)


class LocalBackup(Backup):
    """A backup kept in the daemon's backup directory."""

    adapter: ClassVar[AdapterType] = AdapterType.LOCAL

    def generate(self, source_dir: str, ignore: str) -> ArchiveDetails:
        """Archive the server files and return the archive's details."""
        log = self._log()
        log.info("creating backup for server at %s", self.path())
        _create_archive(source_dir, self.path(), ignore)
        log.info("created backup successfully")
        return self.details(None)

    def restore(self, reader: IO[bytes] | None, callback: RestoreCallback) -> None:
        """Call the callback for each file in the stored archive."""
        with open(self.path(), "rb") as fh:
            _extract(fh, self.write_limit, callback)


def locate_local(backup_dir: str, uuid: str) -> tuple[LocalBackup, os.stat_result]:
    """Find a local backup; raises FileNotFoundError if it does not exist."""
    backup = LocalBackup(uuid=uuid, backup_dir=backup_dir)
    st = os.stat(backup.path())
    if os.path.isdir(backup.path()):
        raise IsADirectoryError("invalid archive, is directory")
    return backup, st


def _upload_urls(result: Any) -> tuple[list[str], int]:
    if isinstance(result, dict):
        return list(result.get("parts") or []), int(result.get("part_size") or 0)
    return list(result.parts), int(result.part_size)


class S3Backup(Backup):
    """A backup built locally, uploaded through presigned URLs, then deleted."""

    adapter: ClassVar[AdapterType] = AdapterType.S3

    def generate(self, source_dir: str, ignore: str) -> ArchiveDetails:
        """Archive the server files, upload them and return the details."""
        log = self._log()
        try:
            log.info("creating backup for server at %s", self.path())
            _create_archive(source_dir, self.path(), ignore)
            log.info("created backup successfully")
            with open(self.path(), "rb") as fh:
                parts = self._upload(fh)
            return self.details(parts)
        finally:
            try:
                self.remove()
            except OSError:
                pass

    def _upload(self, fh: IO[bytes]) -> list[dict[str, Any]]:
        if self.client is None:
            raise ValueError("backup: no API client configured for S3 uploads")
        log = self._log()
        size = self.size()
        urls, part_size = _upload_urls(
            self.client.get_backup_remote_upload_urls(self.uuid, size)
        )
        log.info("attempting to upload backup to s3 endpoint (%d parts)", len(urls))
        uploader = S3FileUploader(fh)
        for number, (url, length) in enumerate(
            zip(urls, part_sizes(size, part_size, len(urls))), start=1
        ):
            try:
                etag = uploader.upload_part(url, length)
            except Exception:
                log.warning("failed to upload part %d", number)
                raise
            uploader.uploaded_parts.append({"etag": etag, "part_number": number})
            log.info("successfully uploaded backup part %d", number)
        log.info("backup has been successfully uploaded")
        return uploader.uploaded_parts

    def restore(self, reader: IO[bytes] | None, callback: RestoreCallback) -> None:
        """Call the callback for each file in the gzipped tar read from reader."""
        if reader is None:
            raise ValueError("backup: a reader is required to restore an S3 backup")
        _extract(reader, self.write_limit, callback)


class S3FileUploader:
    """Uploads consecutive parts of a file to presigned S3 URLs."""

    def __init__(
        self,
        file: IO[bytes],
        session: requests.Session | None = None,
        max_elapsed: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.file = file
        self.session = session or requests.Session()
        self.max_elapsed = max_elapsed
        self.uploaded_parts: list[dict[str, Any]] = []
        self._sleep = sleep
        self._clock = clock

    def upload_part(self, url: str, size: int) -> str:
        """Upload the next `size` bytes and return the part's ETag.

        Network failures and 5xx responses are retried with exponential
        backoff; any other failure is raised at once.
        """
        data = self.file.read(size)
        headers = {"Content-Length": str(size), "Content-Type": "application/x-gzip"}
        start = self._clock()
        interval = 0.5
        while True:
            try:
                res = self.session.put(url, data=data, headers=headers, timeout=_UPLOAD_TIMEOUT)
            except requests.Timeout:
                raise
            except requests.RequestException as exc:
                error: Exception = OSError(f"backup: S3 HTTP request failed: {exc}")
                error.__cause__ = exc
            else:
                res.close()
                if res.status_code == 200:
                    return res.headers.get("ETag", "")
                error = OSError(
                    f"backup: failed to put S3 object: [HTTP/{res.status_code}] "
                    f"{res.status_code} {res.reason}"
                )
                if res.status_code < 500:
                    raise error
            if self._clock() - start + interval > self.max_elapsed:
                raise error
            self._sleep(interval * random.uniform(0.5, 1.5))
            interval = min(interval * 2, 60.0)