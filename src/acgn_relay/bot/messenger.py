import asyncio
import logging
from abc import ABC, abstractmethod

from telegram import Bot
from telegram.error import BadRequest, Forbidden, NetworkError, TelegramError, TimedOut
from telegram.request import HTTPXRequest

logger = logging.getLogger(__name__)

# Telegram API 超时配置
CONNECT_TIMEOUT = 30.0  # 连接超时（秒）
READ_TIMEOUT = 30.0     # 读取超时（秒）
WRITE_TIMEOUT = 30.0    # 写入超时（秒）
POOL_TIMEOUT = 10.0     # 连接池超时（秒）

# 重试配置
MAX_RETRIES = 3         # 最大重试次数
RETRY_DELAY = 2.0       # 重试间隔（秒）


class Messenger(ABC):
    """Messaging transport used by the command processor and dispatch job

    Implementations report transport failures as return values and never raise.
    Used as an async context manager, one session per invocation.
    """

    async def __aenter__(self) -> "Messenger":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    @abstractmethod
    async def send_message(self, chat_id: str, text: str, notify: bool = True) -> bool:
        """Send a text message, True on success"""
        pass

    @abstractmethod
    async def register_webhook(self, url: str, secret: str) -> bool:
        """Point the bot's webhook at url; empty url clears it"""
        pass


class TelegramMessenger(Messenger):
    """Telegram Bot API transport"""

    def __init__(self, token: str, retry_delay: float = RETRY_DELAY):
        self.retry_delay = retry_delay
        # 配置自定义超时的 HTTP 请求
        request = HTTPXRequest(
            connect_timeout=CONNECT_TIMEOUT,
            read_timeout=READ_TIMEOUT,
            write_timeout=WRITE_TIMEOUT,
            pool_timeout=POOL_TIMEOUT,
        )
        self.bot = Bot(token=token, request=request)

    async def __aenter__(self) -> "TelegramMessenger":
        try:
            await self.bot.initialize()
        except TelegramError as e:
            # 初始化失败时后续发送会各自报告失败
            logger.error(f"Bot 初始化失败: {e}")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.bot.shutdown()
        except TelegramError as e:
            logger.warning(f"Bot 关闭出错: {e}")

    async def send_message(self, chat_id: str, text: str, notify: bool = True) -> bool:
        """带重试机制的消息发送

        Returns:
            True: 发送成功
            False: 发送失败（用户封禁或其他错误）
        """
        last_error = None

        for attempt in range(MAX_RETRIES):
            try:
                await self.bot.send_message(
                    chat_id=chat_id,
                    text=text,
                    disable_notification=not notify
                )
                return True
            except Forbidden:
                # 用户封禁了 Bot，不需要重试
                logger.debug(f"用户 {chat_id} 已封禁 Bot")
                return False
            except BadRequest as e:
                # BadRequest 继承自 NetworkError，请求本身有误，不需要重试
                logger.error(f"发送失败 {chat_id}: {e}")
                return False
            except (TimedOut, NetworkError) as e:
                # 网络问题，重试
                last_error = e
                if attempt < MAX_RETRIES - 1:
                    logger.warning(f"发送超时 {chat_id}，第 {attempt + 1} 次重试...")
                    await asyncio.sleep(self.retry_delay)
            except TelegramError as e:
                # 其他 Telegram 错误，不重试
                logger.error(f"发送失败 {chat_id}: {e}")
                return False

        # 所有重试都失败
        logger.error(f"发送失败 {chat_id}，已重试 {MAX_RETRIES} 次: {last_error}")
        return False

    async def register_webhook(self, url: str, secret: str) -> bool:
        try:
            if not url:
                return await self.bot.delete_webhook()
            return await self.bot.set_webhook(url=url, secret_token=secret)
        except TelegramError as e:
            logger.error(f"Webhook 设置失败 ({url or 'unset'}): {e}")
            return False
