"""Rules that route incoming files to a storage and path."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from saveany.enums import RuleType


class Rule(ABC):
    """A rule naming a storage and path to use when its input matches."""

    rule_type: ClassVar[RuleType]

    def __init__(self, storage_name: str, storage_path: str) -> None:
        self.storage_name = storage_name
        self.storage_path = storage_path

    @abstractmethod
    def match(self, value: Any) -> bool:
        """Return whether the rule applies to the given input."""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(storage_name={self.storage_name!r}, "
            f"storage_path={self.storage_path!r})"
        )


class FileNameRegexRule(Rule):
    """Matches files whose name contains a match for a regular expression."""

    rule_type = RuleType.FILENAME_REGEX

    def __init__(self, storage_name: str, storage_path: str, pattern: str) -> None:
        super().__init__(storage_name, storage_path)
        self.regex = re.compile(pattern)

    def match(self, file: Any) -> bool:
        return self.regex.search(file.name) is not None


class MessageRegexRule(Rule):
    """Matches message text containing a match for a regular expression."""

    rule_type = RuleType.MESSAGE_REGEX

    def __init__(self, storage_name: str, storage_path: str, pattern: str) -> None:
        super().__init__(storage_name, storage_path)
        self.regex = re.compile(pattern)

    def match(self, text: str) -> bool:
        return self.regex.search(text) is not None


class IsAlbumRule(Rule):
    """Matches media according to whether it belongs to an album."""

    rule_type = RuleType.IS_ALBUM

    def __init__(self, storage_name: str, storage_path: str, match_album: bool) -> None:
        super().__init__(storage_name, storage_path)
        self.match_album = match_album

    def match(self, is_album: bool) -> bool:
        return self.match_album == is_album