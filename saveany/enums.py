"""Enumerations shared across the package."""

from __future__ import annotations

from enum import Enum
from typing import TypeVar


class _StrEnum(str, Enum):
    """String-valued enum whose str() is its value."""

    def __str__(self) -> str:
        return self.value


class ContextKey(_StrEnum):
    """Keys for values passed alongside an operation."""

    CONTENT_LENGTH = "content-length"


class RuleType(_StrEnum):
    """Kinds of storage rules."""

    FILENAME_REGEX = "FILENAME-REGEX"
    MESSAGE_REGEX = "MESSAGE-REGEX"
    IS_ALBUM = "IS-ALBUM"


class StorageType(_StrEnum):
    """Supported storage back ends."""

    LOCAL = "local"
    WEBDAV = "webdav"
    ALIST = "alist"
    MINIO = "minio"
    TELEGRAM = "telegram"


class TaskType(_StrEnum):
    """Kinds of tasks the bot can run."""

    TGFILES = "tgfiles"
    TPHPICS = "tphpics"


_E = TypeVar("_E", bound=_StrEnum)


def _parse(enum_cls: type[_E], name: str) -> _E:
    lookup = {member.value: member for member in enum_cls}
    member = lookup.get(name) or lookup.get(name.lower())
    if member is None:
        names = ", ".join(lookup)
        raise ValueError(f"{name} is not a valid {enum_cls.__name__}, try [{names}]")
    return member


def parse_context_key(name: str) -> ContextKey:
    """Parse a context key, case-insensitively."""
    return _parse(ContextKey, name)


def parse_storage_type(name: str) -> StorageType:
    """Parse a storage type, case-insensitively."""
    return _parse(StorageType, name)


def parse_task_type(name: str) -> TaskType:
    """Parse a task type, case-insensitively."""
    return _parse(TaskType, name)