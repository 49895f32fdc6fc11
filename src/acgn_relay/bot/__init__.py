from .messenger import Messenger, TelegramMessenger
from .commands import CommandProcessor

__all__ = ["Messenger", "TelegramMessenger", "CommandProcessor"]
