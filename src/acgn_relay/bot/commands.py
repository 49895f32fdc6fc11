import logging
import time
from typing import Awaitable, Callable, Dict, List

from ..matcher import RuleMatcher, validate_regex
from ..models import Rule
from ..source import BaseSource, fetch_recent_posts
from ..store import RuleStore
from .messenger import Messenger

logger = logging.getLogger(__name__)

# /fetch_now 默认回溯天数
DEFAULT_FETCH_DAYS = 7
SECONDS_PER_DAY = 86400

# 不带参数也合法的命令
ZERO_ARG_COMMANDS = frozenset({"/start", "/help", "/list_rules", "/fetch_now"})

HELP_TEXT = (
    "👋 acgn.es 新资源提醒机器人\n\n"
    "📝 使用方法：\n"
    "/add_keyword_rule <word...> - all words must appear in the post\n"
    "/add_regex_rule <pattern> - the pattern must match the whole post text\n"
    "/list_rules - list your rules\n"
    "/remove_rule <id> - remove a rule\n"
    "/fetch_now [days] - check the last N days now (default 7)\n"
    "/help - this message\n\n"
    "💡 Rules are OR-combined: a post is sent if any rule matches.\n"
    "Keywords are case-sensitive. Example:\n"
    "/add_keyword_rule 1080p mkv\n"
    "/add_regex_rule .*(BDRip|WEB-DL).*"
)

INVALID_COMMAND = "❌ invalid command\n\nSend /help to see the supported commands"
NO_RULES = "📭 no rules found\n\nUse /add_keyword_rule or /add_regex_rule to add one"


class CommandProcessor:
    """Parses one subscriber message into a rule mutation or an immediate fetch

    Stateless between messages; all state lives in the rule store. Every
    message gets exactly one reply.
    """

    def __init__(
        self,
        rules: RuleStore,
        messenger: Messenger,
        source: BaseSource,
        matcher: RuleMatcher,
        clock: Callable[[], float] = time.time
    ):
        self.rules = rules
        self.messenger = messenger
        self.source = source
        self.matcher = matcher
        self.clock = clock
        self._handlers: Dict[str, Callable[[str, List[str]], Awaitable[str]]] = {
            "/start": self.help,
            "/help": self.help,
            "/add_regex_rule": self.add_regex_rule,
            "/add_keyword_rule": self.add_keyword_rule,
            "/list_rules": self.list_rules,
            "/remove_rule": self.remove_rule,
            "/fetch_now": self.fetch_now,
        }

    @staticmethod
    def parse(text: str) -> List[str]:
        """Split text into tokens, stripping the @botname suffix from the command"""
        tokens = (text or "").split()
        if tokens and tokens[0].startswith("/"):
            tokens[0] = tokens[0].split("@", 1)[0]
        return tokens

    async def handle(self, subscriber_id: str, text: str) -> str:
        tokens = self.parse(text)
        reply = await self._dispatch(subscriber_id, tokens)
        await self.messenger.send_message(subscriber_id, reply)
        return reply

    async def _dispatch(self, subscriber_id: str, tokens: List[str]) -> str:
        if not tokens or not tokens[0].startswith("/"):
            return INVALID_COMMAND

        command, args = tokens[0], tokens[1:]
        # 参数个数检查在命令匹配之前
        if not args and command not in ZERO_ARG_COMMANDS:
            return INVALID_COMMAND

        handler = self._handlers.get(command)
        if handler is None:
            logger.debug(f"未知命令 {subscriber_id}: {command}")
            return INVALID_COMMAND
        return await handler(subscriber_id, args)

    async def help(self, subscriber_id: str, args: List[str]) -> str:
        """Handle /start and /help"""
        return HELP_TEXT

    async def add_regex_rule(self, subscriber_id: str, args: List[str]) -> str:
        pattern = " ".join(args).strip()
        if not pattern:
            return "❌ invalid regex: pattern is empty"

        rule = Rule.regex(pattern)
        await self.rules.append(subscriber_id, rule)

        reply = f"✅ rule added: {rule.describe()}"
        is_valid, error_msg = validate_regex(pattern)
        if not is_valid:
            reply += f"\n\n⚠️ this pattern looks broken ({error_msg}); it may never match"
        return reply

    async def add_keyword_rule(self, subscriber_id: str, args: List[str]) -> str:
        terms = [a for a in args if a]
        if not terms:
            return "❌ invalid keywords: at least one word is required"

        rule = Rule.keywords(terms)
        await self.rules.append(subscriber_id, rule)
        return f"✅ rule added: {rule.describe()}"

    async def list_rules(self, subscriber_id: str, args: List[str]) -> str:
        rules = await self.rules.load(subscriber_id)
        if not rules:
            return NO_RULES
        lines = [f"📋 your rules ({len(rules)}):"]
        lines.extend(rule.describe() for rule in rules)
        return "\n".join(lines)

    async def remove_rule(self, subscriber_id: str, args: List[str]) -> str:
        try:
            rule_id = int(args[0].lstrip("#"))
        except ValueError:
            return f"❌ invalid rule id: {args[0]}"

        if await self.rules.remove(subscriber_id, rule_id):
            return f"✅ rule #{rule_id} removed"
        return f"⚠️ rule #{rule_id} not found"

    async def fetch_now(self, subscriber_id: str, args: List[str]) -> str:
        rules = await self.rules.load(subscriber_id)
        if not rules:
            return NO_RULES

        now = self.clock()
        days = DEFAULT_FETCH_DAYS
        cutoff = now - days * SECONDS_PER_DAY
        if args:
            try:
                days = int(args[0])
                cutoff = now - days * SECONDS_PER_DAY
            except (ValueError, OverflowError):
                # 无法解析或超出浮点范围的天数按默认值处理
                days = DEFAULT_FETCH_DAYS
                cutoff = now - days * SECONDS_PER_DAY

        posts = await fetch_recent_posts(self.source, 0, cutoff, clock=self.clock)

        sent = 0
        for post in posts:
            if not self.matcher.match_any(rules, post.text):
                continue
            if await self.messenger.send_message(subscriber_id, post.link):
                sent += 1

        logger.info(f"🔎 {subscriber_id} 手动拉取 {days} 天: {len(posts)} 条帖子, 命中 {sent} 条")
        return f"🔎 checked {len(posts)} posts from the last {days} day(s), {sent} matched"
