# saveany

Building blocks for a bot that saves files sent in chats to a storage of the
user's choice. The package has:

- a thread-safe task queue and a worker pool that runs tasks, with shell hooks
  around them
- storage backends for the local file system, WebDAV and Alist
- regular-expression and album rules that choose a storage and a path
- a small Telegraph client, and a task that saves every picture of a Telegraph
  page
- a SQLite store for users, their saved directories and their rules

It needs Python 3.10 or newer. The only runtime dependency is `requests`.

## Modules

| Module | Contents |
| --- | --- |
| `saveany.enums` | `StorageType`, `TaskType`, `RuleType`, `ContextKey`, and the case-insensitive parsers `parse_storage_type`, `parse_task_type` and `parse_context_key`. The parsers raise `ValueError` for an unknown name. |
| `saveany.consts` | `VERSION`, `BUILD_TIME`, `GIT_COMMIT`, and the special rule values `RULE_STORAGE_NAME_CHOSEN` and `RULE_DIR_PATH_NEW_FOR_ALBUM` |
| `saveany.queue` | `TaskQueue`, `QueuedTask` and `QueueError` |
| `saveany.rules` | `Rule`, `FileNameRegexRule`, `MessageRegexRule` and `IsAlbumRule` |
| `saveany.hooks` | `run_hook(command)` |
| `saveany.storage_base` | the abstract `Storage`, `StorageError`, `StorageNameEmptyError`, `use_storage`, `current_storage` and `cannot_stream` |
| `saveany.local` | `LocalStorage` |
| `saveany.webdav` | `WebdavClient`, `WebdavStorage` and `WebdavError` |
| `saveany.alist` | `AlistStorage` and `AlistLoginError` |
| `saveany.registry` | `create_storage(storage_type, **kwargs)` |
| `saveany.telegraph` | `TelegraphClient`, `Page`, `NodeElement` and `TelegraphError` |
| `saveany.database` | `Database`, `User`, `Dir`, `StoredRule` and `NotFoundError` |
| `saveany.core` | `TaskRunner`, `ExecHooks`, the `Executable` protocol and `TaskCancelled` |
| `saveany.progress` | `should_update_progress`, `should_update_count_progress` and `ProgressWriter` |
| `saveany.tphtask` | `TelegraphTask` and `MessageProgress` |

## Storages

Every backend subclasses `Storage` and provides `join_storage_path(path)`,
`exists(storage_path)` and `save(reader, storage_path, content_length=None)`.
`save` returns the path that was actually written.

```python
import io
from saveany.local import LocalStorage

storage = LocalStorage("disk", "/srv/downloads")
path = storage.join_storage_path("photos/cat.jpg")
written = storage.save(io.BytesIO(b"..."), path)
```

Before it saves, a backend checks whether the target exists. If it does, the
backend tries `name_1.ext`, `name_2.ext` and so on until it finds a free name,
so `save` does not replace an existing file. After 1000 attempts
`WebdavStorage` falls back to a random name.

`create_storage` builds a backend from its type and keyword settings:

```python
from saveany.registry import create_storage

password = "password"
webdav = create_storage(
    "webdav",
    name="nas",
    url="https://dav.example.com/",
    username="user",
    password=password,
    base_path="bot",
)
```

`AlistStorage` needs either a `token`, which it checks against `/api/me`, or a
`username` and `password`. With a username and password it logs in at once
and, unless `auto_refresh=False`, logs in again every `token_exp` seconds on a
background thread. `start_token_refresh()` returns an event that stops this
when it is set. Login failures raise `AlistLoginError`.

Alist does not accept chunked uploads. `cannot_stream(storage)` returns the
reason for backends like this, and `None` for backends that can take a
stream. `TelegraphTask` checks it and copies each picture to a temporary file
before it uploads.

`use_storage(storage)` is a context manager that makes a storage current for
the code inside the block. `current_storage()` returns it.

## The task queue

`TaskQueue` hands tasks out in the order they were added. `get()` blocks until
a task that is not cancelled is available. A cancelled task stays in the queue
until `get()` skips it or `cleanup_cancelled()` removes it. `length()` counts
every waiting entry, and `active_length()` counts only those that are not
cancelled. Once `close()` has been called, `get()` still hands out the waiting
tasks, and raises `QueueError` when none are left. Adding a task with an ID
that is already queued also raises `QueueError`.

`TaskRunner` runs tasks from such a queue on worker threads:

```python
import threading
from saveany.core import ExecHooks, TaskRunner
from saveany.enums import TaskType

class Job:
    task_id = "job-1"

    def task_type(self):
        return TaskType.TGFILES

    def execute(self, cancel_event: threading.Event) -> None:
        ...

runner = TaskRunner(workers=2, hooks=ExecHooks(task_success="echo done"))
runner.run()
runner.add_task(Job())
runner.close()  # waits for the pending tasks and the workers
```

A task receives an event that `cancel_task(task_id)` sets. A task that stops
because of it should raise `TaskCancelled`. The runner then runs the
`task_cancel` hook instead of `task_fail`. Hooks run through `run_hook`, which
uses `sh -c`, or `cmd.exe /C` on Windows. An empty command does nothing, and a
non-zero exit status raises `subprocess.CalledProcessError`. The runner logs
hook failures and carries on.

## Rules

A rule pairs a condition with a `storage_name` and a `storage_path`:

- `FileNameRegexRule` matches an object whose `name` contains a match for its pattern.
- `MessageRegexRule` matches message text that contains a match for its pattern.
- `IsAlbumRule` matches when the media's album membership equals `match_album`.

`Database` stores rules per user as `StoredRule` records. A user turns them on
or off with `update_user_apply_rule`.

## Database

`Database(path)` opens or creates a SQLite file. It also accepts `":memory:"`,
and it works as a context manager. `sync_users(chat_ids)` creates the users
that are listed and deletes all other users, together with their directories
and rules. Lookups of a missing user or directory raise `NotFoundError`.

## Telegraph

`TelegraphClient.get_page(path)` fetches a page with its content as `Page` and
`NodeElement` objects. `download(url)` returns a readable body, which the
caller closes. API errors raise `TelegraphError`. `TelegraphTask` saves
picture *n* as `n.<ext>` under its storage path. It uses up to `workers`
threads and makes `retry` attempts per picture. It reports through
`MessageProgress`, which edits a chat message with a callable
`edit(chat_id, message_id, text, cancel_task_id)` that the caller supplies.
The message texts are in Chinese.

## Progress

`should_update_progress(total, downloaded, last_update_percent)` decides
whether a byte-based report is due. Files under 10 MiB are reported only at
100 %. Larger files are reported every 20 %, 10 % or 5 %, depending on their
size. `should_update_count_progress(downloaded, total)` reports every tenth
item and the last one. `ProgressWriter` wraps a binary file and calls
`on_progress(downloaded, total)` after each `write` or `write_at`.

## What is not included

The package does not contain the bot itself. It has no command to run, no
connection to a chat service, no configuration loading, and no task for
downloading chat files. `StorageType` names `minio` and `telegram`, but the
package has no backend for either, so `create_storage` raises `StorageError`
for them.

## Running the tests

```
pip install -e ".[test]"
pytest
```