"""Pytest configuration and shared fixtures."""

import pytest

from acgn_relay.config import AppConfig, StoreType
from acgn_relay.kv import MemoryStore
from acgn_relay.store import RuleStore, WatermarkStore

from .fakes import FakeMessenger


@pytest.fixture
def kv() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def rule_store(kv: MemoryStore) -> RuleStore:
    return RuleStore(kv)


@pytest.fixture
def watermark_store(kv: MemoryStore) -> WatermarkStore:
    return WatermarkStore(kv)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        bot_token="123456:TEST-TOKEN",
        bot_secret="s3cret_token",
        admin_chat_id=999,
        store_type=StoreType.MEMORY,
    )
