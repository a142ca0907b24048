"""Storage on the local file system."""

from __future__ import annotations

import os
import shutil
from typing import BinaryIO

from saveany.enums import StorageType
from saveany.storage_base import Storage


class LocalStorage(Storage):
    """Saves files under a directory on this machine."""

    storage_type = StorageType.LOCAL
    _pathmod = os.path

    def __init__(self, name: str, base_path: str | os.PathLike[str]) -> None:
        super().__init__(name)
        self.base_path = os.fspath(base_path)
        os.makedirs(self.base_path, exist_ok=True)

    def join_storage_path(self, path: str) -> str:
        return os.path.normpath(os.path.join(self.base_path, path))

    def save(self, reader: BinaryIO, storage_path: str, content_length: int | None = None) -> str:
        self.logger.info("Saving file to %s", storage_path)
        target = os.path.abspath(self.unique_path(storage_path))
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "wb") as handle:
            shutil.copyfileobj(reader, handle)
        return target

    def exists(self, storage_path: str) -> bool:
        return os.path.exists(os.path.abspath(storage_path))