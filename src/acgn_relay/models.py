import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple, Union

# 规则 ID 范围（随机生成，不检查冲突）
RULE_ID_MAX = 999999


def generate_rule_id() -> int:
    """Generate a random rule id (collisions are not checked)"""
    return random.randint(1, RULE_ID_MAX)


@dataclass(frozen=True)
class RegexKind:
    """Full-text regular expression rule"""
    pattern: str


@dataclass(frozen=True)
class KeywordsKind:
    """Keyword conjunction rule: every term must appear in the text"""
    terms: Tuple[str, ...]


RuleKind = Union[RegexKind, KeywordsKind]


@dataclass(frozen=True)
class Rule:
    """A subscriber's filter rule

    Rules are immutable once created; "editing" is remove + add.
    """
    id: int
    kind: RuleKind

    @classmethod
    def regex(cls, pattern: str, rule_id: Optional[int] = None) -> "Rule":
        pattern = (pattern or "").strip()
        if not pattern:
            raise ValueError("regex pattern must not be empty")
        return cls(id=rule_id if rule_id is not None else generate_rule_id(), kind=RegexKind(pattern))

    @classmethod
    def keywords(cls, terms: Iterable[str], rule_id: Optional[int] = None) -> "Rule":
        cleaned = tuple(t for t in terms if t)
        if not cleaned:
            raise ValueError("keyword rule needs at least one term")
        return cls(id=rule_id if rule_id is not None else generate_rule_id(), kind=KeywordsKind(cleaned))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """Parse the stored shape: {"id": .., "regex": ..} or {"id": .., "keywords": [..]}"""
        rule_id = int(data["id"])
        regex = data.get("regex")
        keywords = data.get("keywords")
        if regex is not None and keywords is not None:
            raise ValueError(f"rule {rule_id} has both regex and keywords")
        if regex is not None:
            if not isinstance(regex, str):
                raise ValueError(f"rule {rule_id} regex must be a string")
            return cls.regex(regex, rule_id=rule_id)
        if keywords is not None:
            # 字符串也是可迭代的，会被拆成单个字符
            if not isinstance(keywords, list) or not all(isinstance(t, str) for t in keywords):
                raise ValueError(f"rule {rule_id} keywords must be a list of strings")
            return cls.keywords(keywords, rule_id=rule_id)
        raise ValueError(f"rule {rule_id} has neither regex nor keywords")

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.kind, RegexKind):
            return {"id": self.id, "regex": self.kind.pattern}
        return {"id": self.id, "keywords": list(self.kind.terms)}

    def describe(self) -> str:
        if isinstance(self.kind, RegexKind):
            return f"#{self.id} regex: {self.kind.pattern}"
        return f"#{self.id} keywords: {', '.join(self.kind.terms)}"


@dataclass(frozen=True)
class Post:
    """Search API post"""
    id: int
    channel_id: int
    channel_name: str
    size: int
    text: str
    file_suffix: str
    msg_id: int
    supports_streaming: bool
    link: str
    date: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        return cls(
            id=data.get("id", 0),
            channel_id=data.get("channel_id", 0),
            channel_name=data.get("channel_name") or "",
            size=data.get("size") or 0,
            text=data.get("text") or "",
            file_suffix=data.get("file_suffix") or "",
            msg_id=data.get("msg_id", 0),
            supports_streaming=bool(data.get("supports_streaming", False)),
            link=data.get("link") or "",
            date=data.get("date") or 0,
        )
