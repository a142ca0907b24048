"""Saving every picture of a Telegraph page to a storage."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

from saveany.core import TaskCancelled
from saveany.enums import TaskType
from saveany.progress import should_update_count_progress
from saveany.storage_base import Storage, _join_posix, cannot_stream

logger = logging.getLogger("saveany.tphtask")

# Called as edit(chat_id, message_id, text, cancel_task_id); cancel_task_id is
# the task a cancel button should refer to, or None for no button.
MessageEditor = Callable[[int, int, str, "str | None"], None]


class _TaskInfo(Protocol):
    @property
    def task_id(self) -> str: ...

    storage_path: str

    def total_pics(self) -> int: ...

    def downloaded(self) -> int: ...

    def storage_name(self) -> str: ...


class MessageProgress:
    """Reports a Telegraph task's progress by editing a chat message."""

    def __init__(self, message_id: int, chat_id: int, edit: MessageEditor | None = None) -> None:
        self.message_id = message_id
        self.chat_id = chat_id
        self.edit = edit

    def _send(self, text: str, cancel_task_id: str | None) -> None:
        if self.edit is not None:
            self.edit(self.chat_id, self.message_id, text, cancel_task_id)

    def on_start(self, info: _TaskInfo) -> None:
        logger.debug(
            "Telegraph task progress tracking started for message %d in chat %d",
            self.message_id,
            self.chat_id,
        )
        self._send(f"开始下载Telegraph\n图片数量: {info.total_pics()}", info.task_id)

    def on_progress(self, info: _TaskInfo) -> None:
        downloaded, total = info.downloaded(), info.total_pics()
        if not should_update_count_progress(downloaded, total):
            return
        logger.debug("Progress update: %s, %d/%d", info.task_id, downloaded, total)
        self._send(f"正在下载\n当前进度: {downloaded}/{total}", info.task_id)

    def on_done(self, info: _TaskInfo, error: BaseException | None) -> None:
        if error is not None:
            if isinstance(error, TaskCancelled):
                logger.info("Telegraph task %s was canceled", info.task_id)
                self._send(f"处理已取消: {info.task_id}", None)
            else:
                logger.error("Telegraph task %s failed: %s", info.task_id, error)
                self._send(f"处理失败: {error}", None)
            return
        logger.info("Telegraph task %s completed successfully", info.task_id)
        self._send(
            f"处理完成\n图片数量: {info.total_pics()}\n"
            f"保存路径: [{info.storage_name()}]:{info.storage_path}",
            None,
        )


def _url_ext(url: str) -> str:
    """Extension of the last slash-separated element of url, dot included."""
    last = url.rsplit("/", 1)[-1]
    dot = last.rfind(".")
    return last[dot:] if dot >= 0 else ""


class TelegraphTask:
    """Downloads the pictures of a Telegraph page into a storage directory."""

    def __init__(
        self,
        task_id: str,
        ph_path: str,
        pics: Sequence[str],
        storage: Storage,
        storage_path: str,
        client: Any,
        progress: MessageProgress,
        *,
        workers: int = 1,
        retry: int = 0,
        retry_delay: float = 3.0,
        temp_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        self._task_id = task_id
        self.ph_path = ph_path
        self.pics = list(pics)
        self.storage = storage
        self.storage_path = storage_path
        self.client = client
        self.progress = progress
        self.workers = max(workers, 1)
        self.retry = retry
        self.retry_delay = retry_delay
        self.temp_dir = os.fspath(temp_dir) if temp_dir is not None else tempfile.gettempdir()
        self._cannot_stream = cannot_stream(storage) is not None
        self._downloaded = 0
        self._lock = threading.Lock()

    @property
    def task_id(self) -> str:
        return self._task_id

    def task_type(self) -> TaskType:
        return TaskType.TPHPICS

    def total_pics(self) -> int:
        return len(self.pics)

    def downloaded(self) -> int:
        with self._lock:
            return self._downloaded

    def storage_name(self) -> str:
        return self.storage.name

    def execute(self, cancel_event: threading.Event | None = None) -> None:
        """Download and save every picture; raise the first error met."""
        cancel_event = cancel_event or threading.Event()
        stop = threading.Event()
        first_error: list[BaseException] = []
        logger.info("Starting Telegraph task %s", self.ph_path)
        self.progress.on_start(self)

        def halted() -> bool:
            return stop.is_set() or cancel_event.is_set()

        def job(index: int, url: str) -> None:
            try:
                if halted():
                    raise TaskCancelled(f"task {self.task_id} was cancelled")
                self._process_pic(url, index, halted)
            except BaseException as err:  # first failure stops the others
                with self._lock:
                    if not first_error:
                        first_error.append(err)
                stop.set()
                if not isinstance(err, TaskCancelled):
                    logger.error("Error processing picture %s: %s", url, err)
                return
            with self._lock:
                self._downloaded += 1
            self.progress.on_progress(self)

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            for index, url in enumerate(self.pics):
                pool.submit(job, index, url)

        error = first_error[0] if first_error else None
        if error is None and cancel_event.is_set() and self.downloaded() < self.total_pics():
            error = TaskCancelled(f"task {self.task_id} was cancelled")
        if error is not None:
            logger.error("Error during Telegraph task execution: %s", error)
        else:
            logger.info("Telegraph task %s completed successfully", self.ph_path)
        self.progress.on_done(self, error)
        if error is not None:
            raise error

    def _process_pic(self, url: str, index: int, halted: Callable[[], bool]) -> None:
        attempts = max(self.retry, 1)
        last_error: Exception | None = None
        for attempt in range(attempts):
            if halted():
                raise TaskCancelled(f"task {self.task_id} was cancelled")
            try:
                self._save_pic(url, index)
                return
            except TaskCancelled:
                raise
            except Exception as err:  # any failure of one attempt is retried
                last_error = err
                logger.error("Failed to save picture %s: %s", url, err)
            if attempt + 1 < attempts:
                self._sleep(halted)
        assert last_error is not None
        raise last_error

    def _sleep(self, halted: Callable[[], bool]) -> None:
        deadline = time.monotonic() + self.retry_delay
        while (remaining := deadline - time.monotonic()) > 0:
            if halted():
                raise TaskCancelled(f"task {self.task_id} was cancelled")
            time.sleep(min(remaining, 0.05))

    def _save_pic(self, url: str, index: int) -> None:
        filename = f"{index + 1}{_url_ext(url)}"
        target = _join_posix(self.storage_path, filename)
        body = self.client.download(url)
        with contextlib.closing(body):
            if not self._cannot_stream:
                self.storage.save(body, target)
                return
            os.makedirs(self.temp_dir, exist_ok=True)
            cache_path = os.path.join(self.temp_dir, f"tph_{self.task_id}_{filename}")
            try:
                with open(cache_path, "w+b") as cache:
                    shutil.copyfileobj(body, cache)
                    size = cache.tell()
                    cache.seek(0)
                    self.storage.save(cache, target, size)
            finally:
                try:
                    os.remove(cache_path)
                except FileNotFoundError:
                    pass
                except OSError as err:
                    logger.error("Failed to remove cache file for picture %s: %s", filename, err)