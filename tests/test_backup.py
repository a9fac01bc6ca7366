import hashlib
import io
import os
import tarfile

import pytest
import responses

from wingsd.backup import (
    AdapterType,
    ArchiveDetails,
    LocalBackup,
    S3Backup,
    S3FileUploader,
    locate_local,
    part_sizes,
)


@pytest.fixture
def server_dir(tmp_path):
    root = tmp_path / "server"
    (root / "logs").mkdir(parents=True)
    (root / "world").mkdir()
    (root / "server.properties").write_text("motd=hello\n")
    (root / "logs" / "latest.log").write_text("log line\n")
    (root / "world" / "level.dat").write_bytes(b"\x00\x01\x02")
    return root


@pytest.fixture
def mocked():
    with responses.RequestsMock() as rsps:
        yield rsps


def _collect(backup, reader=None):
    seen = {}

    def callback(name, info, stream):
        seen[name] = stream.read()

    backup.restore(reader, callback)
    return seen


def test_adapter_values():
    assert AdapterType.LOCAL.value == "wings"
    assert AdapterType("s3") is AdapterType.S3


def test_path_uses_uuid(tmp_path):
    b = LocalBackup(uuid="abc", backup_dir=str(tmp_path))
    assert b.path() == os.path.join(str(tmp_path), "abc.tar.gz")
    assert b.identifier == "abc"


def test_archive_details_to_request():
    ad = ArchiveDetails(checksum="ff", checksum_type="sha1", size=12, parts=[{"etag": "x", "part_number": 1}])
    req = ad.to_request(True)
    assert req == {
        "checksum": "ff",
        "checksum_type": "sha1",
        "size": 12,
        "successful": True,
        "parts": [{"etag": "x", "part_number": 1}],
    }
    assert ArchiveDetails().to_request(False)["successful"] is False


@pytest.mark.parametrize("total,size,count", [(10, 4, 3), (100, 100, 1), (7, 3, 3), (5, 5, 1)])
def test_part_sizes_invariants(total, size, count):
    sizes = part_sizes(total, size, count)
    assert len(sizes) == count
    assert sum(sizes) == total
    assert all(s == size for s in sizes[:-1])


def test_part_sizes_example():
    assert part_sizes(10, 4, 3) == [4, 4, 2]


def test_local_generate_and_details(tmp_path, server_dir):
    b = LocalBackup(uuid="u1", backup_dir=str(tmp_path / "backups"))
    ad = b.generate(str(server_dir), "")
    data = open(b.path(), "rb").read()
    assert ad.checksum == hashlib.sha1(data).hexdigest()
    assert ad.checksum_type == "sha1"
    assert ad.size == len(data)
    assert ad.parts == []
    with tarfile.open(b.path(), "r:gz") as tar:
        names = set(tar.getnames())
    assert {"server.properties", "logs/latest.log", "world/level.dat"} <= names


def test_local_generate_respects_ignore(tmp_path, server_dir):
    b = LocalBackup(uuid="u2", backup_dir=str(tmp_path / "backups"))
    b.generate(str(server_dir), "logs/\n*.properties\n")
    with tarfile.open(b.path(), "r:gz") as tar:
        names = set(tar.getnames())
    assert "logs/latest.log" not in names
    assert "logs" not in names
    assert "server.properties" not in names
    assert "world/level.dat" in names


def test_ignore_negation(tmp_path, server_dir):
    b = LocalBackup(uuid="u3", backup_dir=str(tmp_path / "backups"))
    b.generate(str(server_dir), "*\n!world\n!level.dat\n")
    with tarfile.open(b.path(), "r:gz") as tar:
        names = set(tar.getnames())
    assert names == {"world", "world/level.dat"}


def test_local_restore_round_trip(tmp_path, server_dir):
    b = LocalBackup(uuid="u4", backup_dir=str(tmp_path / "backups"))
    b.generate(str(server_dir), "")
    seen = _collect(b)
    assert seen == {
        "server.properties": b"motd=hello\n",
        "logs/latest.log": b"log line\n",
        "world/level.dat": b"\x00\x01\x02",
    }


def test_local_restore_with_write_limit(tmp_path, server_dir):
    b = LocalBackup(uuid="u5", backup_dir=str(tmp_path / "backups"), write_limit=50)
    b.generate(str(server_dir), "")
    assert _collect(b)["world/level.dat"] == b"\x00\x01\x02"


def test_locate_local(tmp_path, server_dir):
    LocalBackup(uuid="u6", backup_dir=str(tmp_path)).generate(str(server_dir), "")
    found, st = locate_local(str(tmp_path), "u6")
    assert found.uuid == "u6"
    assert st.st_size == os.path.getsize(found.path())


def test_locate_local_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        locate_local(str(tmp_path), "missing")


def test_locate_local_directory(tmp_path):
    (tmp_path / "dir.tar.gz").mkdir()
    with pytest.raises(IsADirectoryError):
        locate_local(str(tmp_path), "dir")


def test_remove(tmp_path, server_dir):
    b = LocalBackup(uuid="u7", backup_dir=str(tmp_path))
    b.generate(str(server_dir), "")
    b.remove()
    assert not os.path.exists(b.path())
    with pytest.raises(FileNotFoundError):
        b.remove()


def test_with_log_context(tmp_path):
    b = LocalBackup(uuid="u8", backup_dir=str(tmp_path))
    b.with_log_context({"server": "s1", "request_id": "r1"})
    assert b.log_context == {"server": "s1", "request_id": "r1"}


def test_upload_part_returns_etag(mocked):
    mocked.add(responses.PUT, "https://s3.example.com/p1", status=200, headers={"ETag": '"e1"'})
    up = S3FileUploader(io.BytesIO(b"abcdef"))
    assert up.upload_part("https://s3.example.com/p1", 4) == '"e1"'
    call = mocked.calls[0].request
    assert call.body == b"abcd"
    assert call.headers["Content-Type"] == "application/x-gzip"
    assert up.file.read() == b"ef"


def test_upload_part_client_error_not_retried(mocked):
    mocked.add(responses.PUT, "https://s3.example.com/p1", status=403)
    sleeps = []
    up = S3FileUploader(io.BytesIO(b"abc"), sleep=sleeps.append)
    with pytest.raises(OSError, match="HTTP/403"):
        up.upload_part("https://s3.example.com/p1", 3)
    assert len(mocked.calls) == 1
    assert sleeps == []


def test_upload_part_retries_server_error(mocked):
    mocked.add(responses.PUT, "https://s3.example.com/p1", status=500)
    mocked.add(responses.PUT, "https://s3.example.com/p1", status=200, headers={"ETag": "ok"})
    sleeps = []
    up = S3FileUploader(io.BytesIO(b"abc"), sleep=sleeps.append)
    assert up.upload_part("https://s3.example.com/p1", 3) == "ok"
    assert len(mocked.calls) == 2
    assert len(sleeps) == 1
    assert mocked.calls[1].request.body == b"abc"


def test_upload_part_gives_up_after_max_elapsed(mocked):
    mocked.add(responses.PUT, "https://s3.example.com/p1", status=503)
    up = S3FileUploader(io.BytesIO(b"abc"), max_elapsed=0.0, sleep=lambda s: None)
    with pytest.raises(OSError, match="HTTP/503"):
        up.upload_part("https://s3.example.com/p1", 3)
    assert len(mocked.calls) == 1


class _Client:
    def __init__(self, urls, part_size):
        self.urls = urls
        self.part_size = part_size
        self.requested = None

    def get_backup_remote_upload_urls(self, uuid, size):
        self.requested = (uuid, size)
        return {"parts": self.urls, "part_size": self.part_size}


def test_s3_generate_uploads_parts_and_removes(mocked, tmp_path, server_dir):
    urls = ["https://s3.example.com/a", "https://s3.example.com/b"]
    mocked.add(responses.PUT, urls[0], status=200, headers={"ETag": "etag-1"})
    mocked.add(responses.PUT, urls[1], status=200, headers={"ETag": "etag-2"})
    client = _Client(urls, 1)
    b = S3Backup(uuid="s1", backup_dir=str(tmp_path / "backups"), client=client)
    ad = b.generate(str(server_dir), "")
    assert ad.parts == [
        {"etag": "etag-1", "part_number": 1},
        {"etag": "etag-2", "part_number": 2},
    ]
    assert client.requested[0] == "s1"
    assert ad.size == client.requested[1]
    uploaded = b"".join(c.request.body for c in mocked.calls)
    assert len(uploaded) == ad.size
    assert ad.checksum == hashlib.sha1(uploaded).hexdigest()
    assert not os.path.exists(b.path())


def test_s3_generate_failure_removes_archive(mocked, tmp_path, server_dir):
    mocked.add(responses.PUT, "https://s3.example.com/a", status=400)
    b = S3Backup(uuid="s2", backup_dir=str(tmp_path / "backups"), client=_Client(["https://s3.example.com/a"], 10))
    with pytest.raises(OSError):
        b.generate(str(server_dir), "")
    assert not os.path.exists(b.path())


def test_s3_restore_from_stream(tmp_path, server_dir):
    local = LocalBackup(uuid="l1", backup_dir=str(tmp_path))
    local.generate(str(server_dir), "")
    data = open(local.path(), "rb").read()
    s3 = S3Backup(uuid="l1", backup_dir=str(tmp_path / "other"))
    seen = _collect(s3, io.BytesIO(data))
    assert seen["server.properties"] == b"motd=hello\n"
    assert set(seen) == {"server.properties", "logs/latest.log", "world/level.dat"}


def test_s3_restore_requires_reader(tmp_path):
    with pytest.raises(ValueError):
        S3Backup(uuid="x", backup_dir=str(tmp_path)).restore(None, lambda n, i, s: None)