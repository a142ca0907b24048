import re
from dataclasses import dataclass

import pytest

from saveany.enums import RuleType
from saveany.rules import FileNameRegexRule, IsAlbumRule, MessageRegexRule, Rule


@dataclass
class FakeFile:
    name: str
    size: int = 0


def test_filename_rule_matches_anywhere_in_name():
    rule = FileNameRegexRule("local1", "/videos", r"\.mp4$")
    assert rule.match(FakeFile("clip.mp4"))
    assert not rule.match(FakeFile("clip.mp4.txt"))


def test_filename_rule_search_semantics():
    rule = FileNameRegexRule("s", "p", "report")
    assert rule.match(FakeFile("annual_report_final.pdf"))


def test_filename_rule_keeps_storage_info():
    rule = FileNameRegexRule("local1", "/videos", ".*")
    assert (rule.storage_name, rule.storage_path) == ("local1", "/videos")
    assert rule.rule_type is RuleType.FILENAME_REGEX


def test_invalid_regex_raises():
    with pytest.raises(re.error):
        FileNameRegexRule("s", "p", "(unclosed")
    with pytest.raises(re.error):
        MessageRegexRule("s", "p", "[bad")


def test_message_rule():
    rule = MessageRegexRule("alist", "/docs", "#save")
    assert rule.match("please #save this")
    assert not rule.match("nothing here")
    assert rule.rule_type is RuleType.MESSAGE_REGEX


@pytest.mark.parametrize(
    "match_album, is_album, expected",
    [(True, True, True), (True, False, False), (False, False, True), (False, True, False)],
)
def test_is_album_rule(match_album, is_album, expected):
    rule = IsAlbumRule("s", "p", match_album)
    assert rule.match(is_album) is expected
    assert rule.rule_type is RuleType.IS_ALBUM


def test_rules_are_rule_instances():
    rules = [
        FileNameRegexRule("a", "b", "x"),
        MessageRegexRule("a", "b", "x"),
        IsAlbumRule("a", "b", True),
    ]
    assert all(isinstance(r, Rule) for r in rules)
    assert {r.rule_type for r in rules} == set(RuleType)


def test_base_rule_is_abstract():
    with pytest.raises(TypeError):
        Rule("a", "b")