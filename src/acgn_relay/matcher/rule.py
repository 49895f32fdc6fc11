import logging
import re
from typing import Dict, Iterable, Optional, Tuple

from ..models import KeywordsKind, RegexKind, Rule

logger = logging.getLogger(__name__)

# 正则表达式安全限制
MAX_REGEX_LENGTH = 200  # 最大正则长度


def validate_regex(pattern: str) -> Tuple[bool, Optional[str]]:
    """验证正则表达式是否安全有效

    Returns:
        (is_valid, error_message)
    """
    # 长度检查
    if len(pattern) > MAX_REGEX_LENGTH:
        return False, f"pattern too long (max {MAX_REGEX_LENGTH} chars)"

    # 危险模式检查（可能导致 ReDoS）
    dangerous_patterns = [
        r'\(\.\*\)\+',      # (.*)+
        r'\(\.\+\)\+',      # (.+)+
        r'\(\.\*\)\*',      # (.*)*
        r'\(\.\+\)\*',      # (.+)*
        r'\([^\)]+\)\{[0-9]+,\}',  # 大量重复
    ]
    for dp in dangerous_patterns:
        if re.search(dp, pattern):
            return False, "pattern may cause catastrophic backtracking"

    # 尝试编译
    try:
        re.compile(pattern)
        return True, None
    except re.error as e:
        return False, f"syntax error: {e}"


class RuleMatcher:
    """Evaluates subscriber rules against a post's text

    - Regex rules: re.fullmatch, the pattern must cover the whole text
    - Keyword rules: every term is a case-sensitive substring
    - Rules within one subscriber are OR-combined
    """

    def __init__(self):
        # 缓存已编译的正则表达式，编译失败记为 None
        self._regex_cache: Dict[str, Optional[re.Pattern]] = {}

    def _get_compiled_regex(self, pattern: str) -> Optional[re.Pattern]:
        """获取编译后的正则表达式（带缓存）"""
        if pattern not in self._regex_cache:
            try:
                self._regex_cache[pattern] = re.compile(pattern)
            except re.error as e:
                logger.warning(f"无效正则 '{pattern}'，该规则不会命中: {e}")
                self._regex_cache[pattern] = None
        return self._regex_cache[pattern]

    def match_one(self, rule: Rule, text: str) -> bool:
        kind = rule.kind
        if isinstance(kind, RegexKind):
            compiled = self._get_compiled_regex(kind.pattern)
            if compiled is None:
                return False
            return compiled.fullmatch(text) is not None
        if isinstance(kind, KeywordsKind):
            return all(term in text for term in kind.terms)
        return False

    def match_any(self, rules: Iterable[Rule], text: str) -> bool:
        return any(self.match_one(rule, text) for rule in rules)
