"""Creating storages from their type and settings."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import requests

from saveany.alist import AlistStorage
from saveany.enums import StorageType, parse_storage_type
from saveany.local import LocalStorage
from saveany.storage_base import Storage, StorageError
from saveany.webdav import WebdavStorage

_CONSTRUCTORS: dict[StorageType, Callable[..., Storage]] = {
    StorageType.ALIST: AlistStorage,
    StorageType.LOCAL: LocalStorage,
    StorageType.WEBDAV: WebdavStorage,
}


def create_storage(storage_type: StorageType | str, **kwargs: Any) -> Storage:
    """Create and initialise a storage of the given type from keyword settings."""
    try:
        kind = parse_storage_type(str(storage_type))
    except ValueError as err:
        raise StorageError(f"unsupported storage type: {storage_type}") from err
    constructor = _CONSTRUCTORS.get(kind)
    if constructor is None:
        raise StorageError(f"unsupported storage type: {kind}")
    try:
        return constructor(**kwargs)
    except (StorageError, OSError, requests.RequestException) as err:
        raise StorageError(
            f"failed to initialise {kwargs.get('name', '')} storage: {err}"
        ) from err