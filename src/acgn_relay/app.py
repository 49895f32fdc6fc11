import asyncio
import json
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .bot.commands import CommandProcessor
from .bot.messenger import Messenger, TelegramMessenger
from .config import AppConfig
from .dispatch import DispatchJob, DispatchResult
from .kv import KeyValueStore, create_kv_store
from .matcher import RuleMatcher
from .source import BaseSource, SearchSource
from .store import RuleStore, WatermarkStore


def setup_logging(log_dir: Optional[Path] = None) -> None:
    """配置日志系统

    - 输出到 stdout（供 journald 收集）
    - 输出到文件（按天轮转，保留30天）
    """
    log_format = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # 清除已有的 handlers（避免重复添加）
    root_logger.handlers.clear()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(stream_handler)

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_dir / "app.log",
            when="midnight",      # 每天午夜轮转
            interval=1,
            backupCount=30,       # 保留30天
            encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        file_handler.suffix = "%Y-%m-%d"
        root_logger.addHandler(file_handler)

    # Suppress noisy logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def create_source(config: AppConfig) -> BaseSource:
    """Build the feed source from config"""
    feed = config.feed
    return SearchSource(
        base_url=feed.base_url,
        channel_id=feed.channel_id,
        page_size=feed.page_size,
        word=feed.word,
        file_suffix=feed.file_suffix,
        timeout=feed.timeout,
    )


class RelayApp:
    """Wires store, source, matcher and transport together

    Every entry point (webhook message, dispatch tick) is an independent
    invocation: it opens its own messenger session and reads all state from
    the key-value store.
    """

    def __init__(
        self,
        config: AppConfig,
        kv: KeyValueStore,
        source: Optional[BaseSource] = None,
        messenger_factory: Optional[Callable[[], Messenger]] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.kv = kv
        self.rules = RuleStore(kv)
        self.watermark = WatermarkStore(kv)
        self.source = source or create_source(config)
        self.matcher = RuleMatcher()
        self.messenger_factory = messenger_factory or (lambda: TelegramMessenger(config.bot_token))
        self.clock = clock
        self.scheduler: Optional[AsyncIOScheduler] = None

    @classmethod
    def from_config(cls, config: AppConfig, db_path: Optional[Path] = None) -> "RelayApp":
        return cls(config, create_kv_store(config.store_type, db_path))

    async def _notify_admin(self, messenger: Messenger, message: str) -> None:
        """Send notification to admin"""
        if not self.config.admin_chat_id:
            logger.warning("管理员 chat_id 未配置，无法发送告警")
            return

        if await messenger.send_message(str(self.config.admin_chat_id), f"🚨 {message}"):
            logger.info("📢 已发送管理员告警")
        else:
            logger.error("发送管理员告警失败")

    async def handle_message(self, chat_id: str, text: str) -> str:
        """Run the command processor for one inbound message"""
        async with self.messenger_factory() as messenger:
            processor = CommandProcessor(
                self.rules, messenger, self.source, self.matcher, clock=self.clock
            )
            return await processor.handle(chat_id, text)

    async def forward_update(self, update: dict) -> None:
        """Dump a raw webhook update into the admin chat"""
        if not self.config.admin_chat_id:
            return
        async with self.messenger_factory() as messenger:
            await messenger.send_message(
                str(self.config.admin_chat_id),
                json.dumps(update, indent=2, ensure_ascii=False),
                notify=False
            )

    async def run_dispatch(self) -> DispatchResult:
        """Run the dispatch job once"""
        async with self.messenger_factory() as messenger:
            async def on_error(message: str) -> None:
                await self._notify_admin(messenger, message)

            job = DispatchJob(
                self.rules,
                self.watermark,
                self.source,
                self.matcher,
                messenger,
                clock=self.clock,
                on_error=on_error,
            )
            return await job.run()

    async def set_webhook(self, url: str) -> bool:
        """Register (or clear, with an empty url) the bot webhook"""
        async with self.messenger_factory() as messenger:
            ok = await messenger.register_webhook(url, self.config.bot_secret)
        logger.info(f"🔗 Webhook {'设置' if url else '清除'}{'成功' if ok else '失败'}: {url or '-'}")
        return ok

    async def _run_async(self) -> None:
        interval = self.config.dispatch_interval
        if interval > 0:
            self.scheduler = AsyncIOScheduler()
            # misfire_grace_time: None 表示无限; coalesce: 错过多次只执行一次
            self.scheduler.add_job(
                self.run_dispatch,
                "interval",
                seconds=interval,
                id="dispatch",
                misfire_grace_time=None,
                coalesce=True,
                max_instances=1
            )
            self.scheduler.start()
            logger.info(f"⏰ 定时任务已启动, 每 {interval} 秒分发一次")
            await self.run_dispatch()
        else:
            logger.info("⏰ 定时任务已禁用，仅通过 /fowardJob 触发")

        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            if self.scheduler and self.scheduler.running:
                self.scheduler.shutdown()
            logger.info("🛑 已停止")

    def run(self) -> None:
        """Start webhook server and scheduler (blocking)"""
        from .web import WebhookServer

        web_server = WebhookServer(self, host=self.config.web_host, port=self.config.web_port)
        web_server.start()

        try:
            asyncio.run(self._run_async())
        except KeyboardInterrupt:
            logger.info("收到中断信号")
