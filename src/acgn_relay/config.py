import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

# Telegram secret_token 允许的字符
SECRET_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,256}$")

# 环境变量覆盖（与 worker 部署时的变量名一致）
ENV_BOT_TOKEN = "ENV_BOT_TOKEN"
ENV_BOT_SECRET = "ENV_BOT_SECRET"
ENV_BOT_ADMIN_CHAT_ID = "ENV_BOT_ADMIN_CHAT_ID"


class StoreType(str, Enum):
    """Key-value store backend"""
    MEMORY = "memory"
    SQLITE = "sqlite"


class FeedConfig(BaseModel):
    """Upstream search API configuration"""
    base_url: str = Field(
        default="https://search.acgn.es/api/",
        description="Search API endpoint"
    )
    channel_id: int = Field(default=1, description="Search category id (cid)")
    page_size: int = Field(default=24, description="Posts per page (limit)")
    word: str = Field(default="*", description="Search word filter")
    file_suffix: str = Field(default="", description="File suffix filter")
    timeout: int = Field(default=30, description="HTTP timeout in seconds")


class AppConfig(BaseModel):
    """Application configuration"""

    bot_token: str = Field(description="Telegram Bot Token")
    bot_secret: str = Field(description="Shared secret for webhook and admin endpoints")
    admin_chat_id: Optional[int] = Field(
        default=None,
        description="Admin chat ID for receiving alerts"
    )
    forward_updates_to_admin: bool = Field(
        default=False,
        description="Forward every raw webhook update to the admin chat (debugging)"
    )
    public_url: Optional[str] = Field(
        default=None,
        description="Public base URL used when registering the webhook"
    )

    feed: FeedConfig = Field(default_factory=FeedConfig)

    store_type: StoreType = Field(
        default=StoreType.SQLITE,
        description="Key-value store backend: memory or sqlite"
    )
    dispatch_interval: int = Field(
        default=600,
        description="Dispatch job interval in seconds (0 to disable the scheduler)"
    )

    web_host: str = Field(default="0.0.0.0", description="Webhook server bind address")
    web_port: int = Field(default=8080, description="Webhook server port")

    @field_validator("bot_secret")
    @classmethod
    def check_secret(cls, value: str) -> str:
        if not SECRET_PATTERN.match(value):
            raise ValueError("bot_secret must be 1-256 characters of A-Z, a-z, 0-9, _ and -")
        return value

    @field_validator("dispatch_interval")
    @classmethod
    def check_interval(cls, value: int) -> int:
        if value < 0:
            raise ValueError("dispatch_interval must not be negative")
        return value


def env_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    """Collect config overrides from environment variables"""
    overrides: Dict[str, object] = {}
    if environ.get(ENV_BOT_TOKEN):
        overrides["bot_token"] = environ[ENV_BOT_TOKEN]
    if environ.get(ENV_BOT_SECRET):
        overrides["bot_secret"] = environ[ENV_BOT_SECRET]
    if environ.get(ENV_BOT_ADMIN_CHAT_ID):
        overrides["admin_chat_id"] = environ[ENV_BOT_ADMIN_CHAT_ID]
    return overrides


class ConfigManager:
    """Manages application configuration"""

    CONFIG_FILE = "config.json"
    DB_FILE = "data.db"

    def __init__(self, config_dir: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        # Default to current working directory
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()
        self.config_path = self.config_dir / self.CONFIG_FILE
        self.db_path = self.config_dir / self.DB_FILE
        self.environ = os.environ if environ is None else environ

    def ensure_config_dir(self) -> None:
        """Ensure config directory exists"""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_raw(self) -> Optional[dict]:
        """Load raw configuration as dict"""
        if not self.config_path.exists():
            return None
        with open(self.config_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def load(self) -> Optional[AppConfig]:
        """Load configuration from file, environment variables take precedence

        Returns None when neither the file nor the environment provides a config.
        """
        data = self.load_raw() or {}
        data.update(env_overrides(self.environ))
        if not data:
            return None
        return AppConfig.model_validate(data)

    def save(self, config: AppConfig) -> None:
        """Save configuration to file"""
        self.ensure_config_dir()
        with open(self.config_path, "w", encoding="utf-8") as f:
            # Only save non-None fields
            data = config.model_dump(mode="json", exclude_none=True)
            json.dump(data, f, indent=2, ensure_ascii=False)

    def exists(self) -> bool:
        """Check if a configuration is available (file or environment)"""
        return self.config_path.exists() or bool(env_overrides(self.environ))

    def get_db_path(self) -> Path:
        """Get database file path"""
        self.ensure_config_dir()
        return self.db_path
