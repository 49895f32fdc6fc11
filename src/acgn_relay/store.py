import json
import logging
from typing import Any, Dict, List, Optional

from .kv import KeyValueStore
from .models import Rule

logger = logging.getLogger(__name__)

RULES_KEY = "rules"
WATERMARK_KEY = "lastUpdated"


class RuleStore:
    """Per-subscriber rule lists, persisted as one JSON document

    Every call reads the whole document and every mutation writes it back.
    There is no conditional write: two mutations racing on the same document
    can lose one of them (last write wins).
    """

    def __init__(self, kv: KeyValueStore, key: str = RULES_KEY):
        self.kv = kv
        self.key = key

    async def _read(self) -> Dict[str, List[Dict[str, Any]]]:
        raw = await self.kv.get(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"❌ 规则文档解析失败，按空处理: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"❌ 规则文档格式异常 ({type(data).__name__})，按空处理")
            return {}
        return data

    async def _write(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        # 空列表的订阅者等价于不存在
        data = {k: v for k, v in data.items() if v}
        await self.kv.put(self.key, json.dumps(data, ensure_ascii=False))

    @staticmethod
    def _parse_rules(subscriber_id: str, entries: Any) -> List[Rule]:
        rules = []
        if not isinstance(entries, list):
            return rules
        for entry in entries:
            try:
                rules.append(Rule.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"跳过无效规则 {subscriber_id}: {entry!r} ({e})")
        return rules

    async def load(self, subscriber_id: str) -> List[Rule]:
        data = await self._read()
        return self._parse_rules(subscriber_id, data.get(subscriber_id))

    async def append(self, subscriber_id: str, rule: Rule) -> None:
        data = await self._read()
        data.setdefault(subscriber_id, []).append(rule.to_dict())
        await self._write(data)
        logger.info(f"➕ {subscriber_id} 添加规则 {rule.describe()}")

    async def remove(self, subscriber_id: str, rule_id: int) -> bool:
        data = await self._read()
        entries = data.get(subscriber_id) or []
        for i, entry in enumerate(entries):
            if isinstance(entry, dict) and entry.get("id") == rule_id:
                del entries[i]
                data[subscriber_id] = entries
                await self._write(data)
                logger.info(f"➖ {subscriber_id} 删除规则 #{rule_id}")
                return True
        return False

    async def list_all(self) -> Dict[str, List[Rule]]:
        data = await self._read()
        result = {}
        for subscriber_id, entries in data.items():
            rules = self._parse_rules(subscriber_id, entries)
            if rules:
                result[subscriber_id] = rules
        return result


class WatermarkStore:
    """Unix timestamp of the last dispatch run"""

    def __init__(self, kv: KeyValueStore, key: str = WATERMARK_KEY):
        self.kv = kv
        self.key = key

    async def get(self) -> Optional[float]:
        raw = await self.kv.get(self.key)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"⚠️ 无效的水位线 {raw!r}，按未设置处理")
            return None

    async def set(self, timestamp: float) -> None:
        await self.kv.put(self.key, repr(float(timestamp)))
