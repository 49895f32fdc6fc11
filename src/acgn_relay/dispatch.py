import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .bot.messenger import Messenger
from .matcher import RuleMatcher
from .source import BaseSource, fetch_recent_posts
from .store import RuleStore, WatermarkStore

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NO_RULES = "no_rules"
STATUS_ERROR = "error"


@dataclass
class DispatchResult:
    """Summary of one dispatch run"""
    status: str
    posts: int = 0
    sent: int = 0
    failed: int = 0
    watermark: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "posts": self.posts,
            "sent": self.sent,
            "failed": self.failed,
            "watermark": self.watermark,
        }


class DispatchJob:
    """Fetch new posts and forward links to every matching subscriber"""

    def __init__(
        self,
        rules: RuleStore,
        watermark: WatermarkStore,
        source: BaseSource,
        matcher: RuleMatcher,
        messenger: Messenger,
        clock: Callable[[], float] = time.time,
        on_error: Optional[Callable[[str], Awaitable[None]]] = None
    ):
        self.rules = rules
        self.watermark = watermark
        self.source = source
        self.matcher = matcher
        self.messenger = messenger
        self.clock = clock
        self.on_error = on_error

    async def _report(self, message: str) -> None:
        if self.on_error:
            await self.on_error(message)

    async def run(self) -> DispatchResult:
        try:
            subscribers = await self.rules.list_all()
        except Exception as e:
            # 规则读不到时不拉取，也不移动水位线
            logger.error(f"❌ 读取规则失败: {e}")
            await self._report(f"Dispatch job failed to load rules: {e}")
            return DispatchResult(status=STATUS_ERROR)

        if not subscribers:
            logger.info("📭 没有任何规则，跳过拉取")
            return DispatchResult(status=STATUS_NO_RULES)

        result = DispatchResult(status=STATUS_OK)
        try:
            cutoff = await self.watermark.get()
            logger.info(f"📡 开始拉取数据 ({self.source.get_source_name()})，水位线: {cutoff}")
            posts = await fetch_recent_posts(self.source, 0, cutoff, clock=self.clock)
            result.posts = len(posts)

            for post in posts:
                for subscriber_id, rules in subscribers.items():
                    if not self.matcher.match_any(rules, post.text):
                        continue
                    try:
                        ok = await self.messenger.send_message(subscriber_id, post.link)
                    except Exception as e:
                        logger.error(f"发送失败 {subscriber_id}: {e}")
                        ok = False
                    if ok:
                        result.sent += 1
                    else:
                        result.failed += 1

            logger.info(
                f"✅ 分发完成: 共 {result.posts} 条, 推送 {result.sent} 条通知, 失败 {result.failed} 条"
            )
        except Exception as e:
            result.status = STATUS_ERROR
            logger.error(f"❌ 分发失败: {e}")
            await self._report(f"Dispatch job failed: {e}")
        finally:
            result.watermark = self.clock()
            try:
                await self.watermark.set(result.watermark)
            except Exception as e:
                result.status = STATUS_ERROR
                logger.error(f"❌ 水位线写入失败: {e}")
                await self._report(f"Dispatch job failed to save watermark: {e}")

        return result
