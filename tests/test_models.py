import pytest

from acgn_relay.models import KeywordsKind, Post, RegexKind, Rule


def test_regex_rule_trims_pattern_and_assigns_id():
    rule = Rule.regex("  .*release.*  ")

    assert isinstance(rule.kind, RegexKind)
    assert rule.kind.pattern == ".*release.*"
    assert 1 <= rule.id <= 999999


@pytest.mark.parametrize("pattern", ["", "   ", None])
def test_regex_rule_rejects_empty_pattern(pattern):
    with pytest.raises(ValueError):
        Rule.regex(pattern)


def test_keyword_rule_keeps_order_and_drops_empty_terms():
    rule = Rule.keywords(["1080p", "", "mkv"], rule_id=7)

    assert rule.id == 7
    assert rule.kind == KeywordsKind(("1080p", "mkv"))


def test_keyword_rule_requires_a_term():
    with pytest.raises(ValueError):
        Rule.keywords([])
    with pytest.raises(ValueError):
        Rule.keywords([""])


def test_rule_dict_shape():
    assert Rule.regex("abc", rule_id=1).to_dict() == {"id": 1, "regex": "abc"}
    assert Rule.keywords(["a", "b"], rule_id=2).to_dict() == {"id": 2, "keywords": ["a", "b"]}
    assert Rule.from_dict({"id": 2, "keywords": ["a", "b"]}) == Rule.keywords(["a", "b"], rule_id=2)


@pytest.mark.parametrize("data", [
    {"id": 1},
    {"id": 1, "regex": None, "keywords": None},
    {"id": 1, "regex": "a", "keywords": ["b"]},
    {"id": 1, "keywords": []},
    {"id": 1, "keywords": "abc"},
    {"id": 1, "keywords": ["a", 2]},
    {"id": 1, "regex": 5},
])
def test_rule_from_dict_rejects_invalid_variants(data):
    with pytest.raises(ValueError):
        Rule.from_dict(data)


def test_rule_describe():
    assert Rule.regex("x+", rule_id=3).describe() == "#3 regex: x+"
    assert Rule.keywords(["a", "b"], rule_id=4).describe() == "#4 keywords: a, b"


def test_post_from_dict_tolerates_missing_fields():
    post = Post.from_dict({"id": 5, "text": "hello", "link": "L", "date": 100})

    assert post.id == 5
    assert post.text == "hello"
    assert post.link == "L"
    assert post.date == 100
    assert post.channel_name == ""
    assert post.supports_streaming is False
