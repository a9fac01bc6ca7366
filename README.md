# wingsd

Building blocks for a daemon that runs game servers on a node under the
control of a central panel: token checks, server events, backups, crash
handling and the checks shared by HTTP routes.

## Modules

- `wingsd.tokens`: `parse_token(token, secret, payload_cls)` verifies an
  HS256 token that must carry an `exp` claim and decodes it into one of
  `BackupPayload`, `FilePayload`, `UploadPayload`, `TransferPayload` or
  `WebsocketPayload`; failures raise `TokenError` (with `expired=True` for
  expired or missing `exp`). `TokenStore` and `get_token_store()` track
  one-time unique ids for an hour, used by `is_unique_request()`.
  `deny_jti(jti)` revokes websocket tokens with that id issued earlier;
  `WebsocketPayload.denylisted()` and `has_permission()` apply the
  revocations, the daemon boot time and the `*` wildcard (which does not
  cover `admin` permissions).
- `wingsd.events`: `EventBus` with `on`, `off` and `publish(topic, data)`,
  the server and websocket event names (such as `CONSOLE_OUTPUT_EVENT`,
  `BACKUP_COMPLETED_EVENT`, `JWT_ERROR_EVENT`), and the `Message` envelope
  with `to_json()` and `Message.from_json(raw)`.
- `wingsd.errors`: `ServerError` and its subclasses for running, suspended,
  installing, transferring and restoring servers, `CrashTooFrequentError`
  and `ServerDoesNotExistError`, plus `is_too_frequent_crash_error` and
  `is_server_does_not_exist_error`.
- `wingsd.activity`: `RequestActivity` (server, user, ip) producing
  `Activity` records via `event(event, metadata)`, `with_user(user)`,
  `power_event(action)` and the activity event names.
- `wingsd.configuration`: `Configuration.from_dict(data)` / `to_dict()`,
  `set_suspended()`, `disk_space_bytes()` and `memory_limit()`, with
  `EggConfiguration` and `ConfigurationMeta`.
- `wingsd.crash`: `CrashHandler.handle_crash(...)` decides whether an
  offline process crashed, publishes console messages, restarts it through
  the `start` callback and raises `CrashTooFrequentError` when the last
  crash lies within `CrashDetectionSettings.timeout` seconds.
- `wingsd.request_error`: `RequestError` maps errors to an HTTP status and
  JSON body (`as_filesystem_error()`, `response(status)`);
  `FilesystemError` carries an `ErrorCode`.
- `wingsd.middleware`: `require_authorization(header, token)`,
  `access_control_headers(...)`, `remote_download_enabled(disabled)`,
  `capture_error(err, status, request_id)`, `new_request_id()` and
  `HttpError`.
- `wingsd.backup`: `LocalBackup` and `S3Backup` store gzip-compressed tar
  archives named `<uuid>.tar.gz`, honour `.gitignore`-style ignore
  patterns, report SHA-1 checksum and size as `ArchiveDetails`, and restore
  by calling a callback for each file. `S3Backup.generate` uploads the
  archive in parts with `S3FileUploader.upload_part`, retrying network
  errors and 5xx responses with exponential backoff, then deletes the local
  copy. Also `locate_local(backup_dir, uuid)`, `part_sizes(...)` and
  `AdapterType`.
- `wingsd.server_backup`: `run_backup(server, backup, client)` and
  `restore_backup(server, backup, reader, client)` act on a
  `ServerContext`, report to the panel through the client's
  `set_backup_status(uuid, body)` and `send_restoration_status(uuid,
  successful)` methods, and publish events on the server's bus.
  `server_wide_ignored(root)` reads the server's `.pteroignore` file (not a
  symlink, at most 32 KiB).

An `S3Backup` needs a `client` with a
`get_backup_remote_upload_urls(uuid, size)` method returning the part URLs
and part size (a mapping with `parts` and `part_size`, or an object with
those attributes).

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Examples

```python
from wingsd.tokens import FilePayload, parse_token

payload = parse_token(raw_token, "secret", FilePayload)
if payload.is_unique_request():
    print("download", payload.file_path, "for", payload.server_uuid)
```

A token can be used only once: a second `is_unique_request()` with the same
unique id returns `False` for the next hour.

```python
from wingsd.backup import LocalBackup

backup = LocalBackup(uuid="3f0c1d9e-0000-4000-8000-000000000000", backup_dir="/var/backups")
details = backup.generate("/srv/server-data", "*.log\ncache/")
print(details.checksum, details.size)
```

## What it does not do

The package is a library of parts. It has no HTTP server or routes, no
websocket connection handling, no pulling of remote files onto a server's
disk, no container or process management, no storage for activity records
and no command-line program. Those are left to the application that uses
it, which supplies the callbacks and client objects the functions above
expect.