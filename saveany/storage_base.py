"""The storage interface, the current-storage context and shared helpers."""

from __future__ import annotations

import contextvars
import logging
import posixpath
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from types import ModuleType
from typing import BinaryIO, ClassVar

from saveany.enums import StorageType


class StorageError(Exception):
    """Raised when a storage cannot complete an operation."""


class StorageNameEmptyError(StorageError):
    """Raised when a storage is created or looked up without a name."""

    def __init__(self, message: str = "storage name is empty") -> None:
        super().__init__(message)


def _join_posix(*elements: str) -> str:
    """Join slash-separated path elements, skipping empty ones, and clean the result."""
    joined = "/".join(element for element in elements if element)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


class Storage(ABC):
    """A place where downloaded files are saved."""

    storage_type: ClassVar[StorageType]
    _pathmod: ClassVar[ModuleType] = posixpath
    _max_unique_attempts: ClassVar[int | None] = None

    def __init__(self, name: str) -> None:
        if not name:
            raise StorageNameEmptyError()
        self.name = name
        self.logger = logging.getLogger(f"saveany.storage[{name}]")

    @abstractmethod
    def join_storage_path(self, path: str) -> str:
        """Return the full storage path for a path relative to the base."""

    @abstractmethod
    def save(self, reader: BinaryIO, storage_path: str, content_length: int | None = None) -> str:
        """Store the contents of reader and return the path actually written."""

    @abstractmethod
    def exists(self, storage_path: str) -> bool:
        """Return whether something is stored at storage_path."""

    def _split_ext(self, storage_path: str) -> tuple[str, str]:
        name = self._pathmod.basename(storage_path)
        dot = name.rfind(".")
        if dot < 0:
            return storage_path, ""
        ext = name[dot:]
        return storage_path[: len(storage_path) - len(ext)], ext

    def unique_path(self, storage_path: str) -> str:
        """Return storage_path, or a numbered variant of it that does not exist yet."""
        base, ext = self._split_ext(storage_path)
        candidate = storage_path
        attempt = 0
        while self.exists(candidate):
            attempt += 1
            candidate = f"{base}_{attempt}{ext}"
            limit = self._max_unique_attempts
            if limit is not None and attempt > limit:
                self.logger.error("Too many attempts to find a unique filename for %s", storage_path)
                candidate = f"{base}_{uuid.uuid4().hex}{ext}"
                break
        return candidate

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


_current_storage: contextvars.ContextVar[Storage | None] = contextvars.ContextVar(
    "saveany_current_storage", default=None
)


@contextmanager
def use_storage(storage: Storage | None) -> Iterator[Storage | None]:
    """Make storage the current one inside the block; None leaves it unchanged."""
    if storage is None:
        yield current_storage()
        return
    token = _current_storage.set(storage)
    try:
        yield storage
    finally:
        _current_storage.reset(token)


def current_storage() -> Storage | None:
    """Return the storage set by the innermost use_storage block, if any."""
    return _current_storage.get()


def cannot_stream(storage: object) -> str | None:
    """Return why a storage needs a seekable local file, or None if it can stream."""
    reason = getattr(storage, "cannot_stream", None)
    if callable(reason):
        return reason()
    return None