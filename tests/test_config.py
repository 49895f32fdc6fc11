import json

import pytest
from pydantic import ValidationError

from acgn_relay.config import AppConfig, ConfigManager, StoreType


def write_config(tmp_path, data):
    (tmp_path / "config.json").write_text(json.dumps(data), encoding="utf-8")


def test_defaults():
    cfg = AppConfig(bot_token="t", bot_secret="abc-DEF_123")

    assert cfg.store_type == StoreType.SQLITE
    assert cfg.feed.base_url == "https://search.acgn.es/api/"
    assert cfg.feed.page_size == 24
    assert cfg.dispatch_interval == 600
    assert cfg.admin_chat_id is None


@pytest.mark.parametrize("secret", ["", "has space", "semi;colon", "x" * 257])
def test_secret_must_be_a_valid_telegram_secret_token(secret):
    with pytest.raises(ValidationError):
        AppConfig(bot_token="t", bot_secret=secret)


def test_negative_interval_is_rejected():
    with pytest.raises(ValidationError):
        AppConfig(bot_token="t", bot_secret="s", dispatch_interval=-1)


def test_missing_config_returns_none(tmp_path):
    manager = ConfigManager(tmp_path, environ={})

    assert manager.exists() is False
    assert manager.load() is None


def test_load_from_file(tmp_path):
    write_config(tmp_path, {"bot_token": "file-token", "bot_secret": "file_secret", "feed": {"page_size": 10}})

    cfg = ConfigManager(tmp_path, environ={}).load()

    assert cfg.bot_token == "file-token"
    assert cfg.feed.page_size == 10


def test_environment_overrides_file(tmp_path):
    write_config(tmp_path, {"bot_token": "file-token", "bot_secret": "file_secret"})
    environ = {"ENV_BOT_TOKEN": "env-token", "ENV_BOT_ADMIN_CHAT_ID": "12345"}

    cfg = ConfigManager(tmp_path, environ=environ).load()

    assert cfg.bot_token == "env-token"
    assert cfg.bot_secret == "file_secret"
    assert cfg.admin_chat_id == 12345


def test_environment_only(tmp_path):
    manager = ConfigManager(tmp_path, environ={"ENV_BOT_TOKEN": "t", "ENV_BOT_SECRET": "s"})

    assert manager.exists() is True
    assert manager.load().bot_secret == "s"


def test_save_roundtrip(tmp_path):
    manager = ConfigManager(tmp_path / "nested", environ={})
    cfg = AppConfig(bot_token="t", bot_secret="s", store_type=StoreType.MEMORY, public_url="https://x")

    manager.save(cfg)
    saved = json.loads(manager.config_path.read_text(encoding="utf-8"))

    assert saved["store_type"] == "memory"
    assert "admin_chat_id" not in saved
    assert manager.load() == cfg
