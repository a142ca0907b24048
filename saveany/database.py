"""Persistent storage of users, their directories and their rules."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("saveany.database")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT,
    updated_at TEXT,
    chat_id INTEGER NOT NULL UNIQUE,
    silent INTEGER NOT NULL DEFAULT 0,
    default_storage TEXT NOT NULL DEFAULT '',
    apply_rule INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS dirs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT,
    updated_at TEXT,
    user_id INTEGER NOT NULL,
    storage_name TEXT NOT NULL DEFAULT '',
    path TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS rules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT,
    updated_at TEXT,
    user_id INTEGER NOT NULL,
    type TEXT NOT NULL DEFAULT '',
    data TEXT NOT NULL DEFAULT '',
    storage_name TEXT NOT NULL DEFAULT '',
    dir_path TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_dirs_user_id ON dirs (user_id);
CREATE INDEX IF NOT EXISTS idx_rules_user_id ON rules (user_id);
"""


class NotFoundError(LookupError):
    """Raised when a requested record does not exist."""


@dataclass
class Dir:
    """A saved directory of a user on one storage."""

    user_id: int
    storage_name: str
    path: str
    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class StoredRule:
    """A routing rule as stored for a user."""

    user_id: int
    type: str
    data: str
    storage_name: str
    dir_path: str
    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class User:
    """A bot user identified by their chat id."""

    chat_id: int
    id: int = 0
    silent: bool = False
    default_storage: str = ""
    apply_rule: bool = False
    dirs: list[Dir] = field(default_factory=list)
    rules: list[StoredRule] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dir_from_row(row: sqlite3.Row) -> Dir:
    return Dir(
        user_id=row["user_id"],
        storage_name=row["storage_name"],
        path=row["path"],
        id=row["id"],
        created_at=_parse_time(row["created_at"]),
        updated_at=_parse_time(row["updated_at"]),
    )


def _rule_from_row(row: sqlite3.Row) -> StoredRule:
    return StoredRule(
        user_id=row["user_id"],
        type=row["type"],
        data=row["data"],
        storage_name=row["storage_name"],
        dir_path=row["dir_path"],
        id=row["id"],
        created_at=_parse_time(row["created_at"]),
        updated_at=_parse_time(row["updated_at"]),
    )


class Database:
    """A SQLite database holding users, directories and rules."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        path = os.fspath(path)
        if path != ":memory:":
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        logger.debug("Database initialized at %s", path)

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self._conn:
            yield self._conn

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _load_user(self, row: sqlite3.Row) -> User:
        user_id = row["id"]
        return User(
            chat_id=row["chat_id"],
            id=user_id,
            silent=bool(row["silent"]),
            default_storage=row["default_storage"],
            apply_rule=bool(row["apply_rule"]),
            dirs=self.get_user_dirs(user_id),
            rules=[
                _rule_from_row(r)
                for r in self._query("SELECT * FROM rules WHERE user_id = ? ORDER BY id", (user_id,))
            ],
            created_at=_parse_time(row["created_at"]),
            updated_at=_parse_time(row["updated_at"]),
        )

    # Users

    def sync_users(self, chat_ids: Iterable[int]) -> None:
        """Create users for the given chat ids and delete every other user."""
        wanted = set(chat_ids)
        existing = {user.chat_id: user for user in self.get_all_users()}
        for chat_id in sorted(wanted - existing.keys()):
            self.create_user(chat_id)
            logger.info("Created user: %d", chat_id)
        for chat_id, user in existing.items():
            if chat_id not in wanted:
                self.delete_user(user)
                logger.info("Deleted user: %d", chat_id)

    def create_user(self, chat_id: int) -> User:
        """Create a user for chat_id unless one exists; return the user."""
        try:
            return self.get_user_by_chat_id(chat_id)
        except NotFoundError:
            pass
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO users (created_at, updated_at, chat_id) VALUES (?, ?, ?)",
                (now, now, chat_id),
            )
        return self.get_user_by_chat_id(chat_id)

    def get_all_users(self) -> list[User]:
        return [self._load_user(row) for row in self._query("SELECT * FROM users ORDER BY id")]

    def get_user_by_chat_id(self, chat_id: int) -> User:
        rows = self._query("SELECT * FROM users WHERE chat_id = ? ORDER BY id LIMIT 1", (chat_id,))
        if not rows:
            raise NotFoundError(f"user {chat_id} not found")
        return self._load_user(rows[0])

    def update_user(self, user: User) -> None:
        """Save the user's fields; the user must already exist."""
        existing = self.get_user_by_chat_id(user.chat_id)
        if not user.id:
            user.id = existing.id
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE users SET updated_at = ?, chat_id = ?, silent = ?, default_storage = ?,"
                " apply_rule = ? WHERE id = ?",
                (now, user.chat_id, int(user.silent), user.default_storage, int(user.apply_rule), user.id),
            )
        user.updated_at = _parse_time(now)

    def delete_user(self, user: User) -> None:
        """Delete the user together with their directories and rules."""
        user_id = user.id or self.get_user_by_chat_id(user.chat_id).id
        with self._transaction() as conn:
            conn.execute("DELETE FROM dirs WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM rules WHERE user_id = ?", (user_id,))
            conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

    # Directories

    def create_dir_for_user(self, user_id: int, storage_name: str, path: str) -> Dir:
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO dirs (created_at, updated_at, user_id, storage_name, path)"
                " VALUES (?, ?, ?, ?, ?)",
                (now, now, user_id, storage_name, path),
            )
            dir_id = cursor.lastrowid
        return Dir(
            user_id=user_id,
            storage_name=storage_name,
            path=path,
            id=dir_id or 0,
            created_at=_parse_time(now),
            updated_at=_parse_time(now),
        )

    def get_dir_by_id(self, dir_id: int) -> Dir:
        rows = self._query("SELECT * FROM dirs WHERE id = ?", (dir_id,))
        if not rows:
            raise NotFoundError(f"dir {dir_id} not found")
        return _dir_from_row(rows[0])

    def get_user_dirs(self, user_id: int) -> list[Dir]:
        return [
            _dir_from_row(row)
            for row in self._query("SELECT * FROM dirs WHERE user_id = ? ORDER BY id", (user_id,))
        ]

    def get_user_dirs_by_chat_id(self, chat_id: int) -> list[Dir]:
        return self.get_user_dirs(self.get_user_by_chat_id(chat_id).id)

    def get_dirs_by_user_id_and_storage_name(self, user_id: int, storage_name: str) -> list[Dir]:
        return [
            _dir_from_row(row)
            for row in self._query(
                "SELECT * FROM dirs WHERE user_id = ? AND storage_name = ? ORDER BY id",
                (user_id, storage_name),
            )
        ]

    def get_dirs_by_user_chat_id_and_storage_name(self, chat_id: int, storage_name: str) -> list[Dir]:
        user = self.get_user_by_chat_id(chat_id)
        return self.get_dirs_by_user_id_and_storage_name(user.id, storage_name)

    def delete_dir_for_user(self, user_id: int, storage_name: str, path: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "DELETE FROM dirs WHERE user_id = ? AND storage_name = ? AND path = ?",
                (user_id, storage_name, path),
            )

    def delete_dir_by_id(self, dir_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM dirs WHERE id = ?", (dir_id,))

    # Rules

    def create_rule(self, rule: StoredRule) -> StoredRule:
        """Insert the rule, filling in its id and timestamps."""
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO rules (created_at, updated_at, user_id, type, data, storage_name, dir_path)"
                " VALUES (?, ?, ?, ?, ?, ?, ?)",
                (now, now, rule.user_id, rule.type, rule.data, rule.storage_name, rule.dir_path),
            )
            rule.id = cursor.lastrowid or 0
        rule.created_at = rule.updated_at = _parse_time(now)
        return rule

    def delete_rule(self, rule_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))

    def update_user_apply_rule(self, chat_id: int, apply_rule: bool) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE users SET apply_rule = ?, updated_at = ? WHERE chat_id = ?",
                (int(apply_rule), _now(), chat_id),
            )

    def get_rules_by_user_chat_id(self, chat_id: int) -> list[StoredRule]:
        return [
            _rule_from_row(row)
            for row in self._query(
                "SELECT * FROM rules WHERE user_id = (SELECT id FROM users WHERE chat_id = ?)"
                " ORDER BY id",
                (chat_id,),
            )
        ]