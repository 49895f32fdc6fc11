from .rule import RuleMatcher, validate_regex

__all__ = ["RuleMatcher", "validate_regex"]
