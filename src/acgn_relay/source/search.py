import logging
from typing import List

import requests

from ..models import Post
from .base import BaseSource

logger = logging.getLogger(__name__)


class SearchSource(BaseSource):
    """search.acgn.es JSON API data source

    API: https://search.acgn.es/api/?cid=1&page=0&limit=24&word=*&sort=time&file_suffix=
    """

    DEFAULT_URL = "https://search.acgn.es/api/"
    DEFAULT_USER_AGENT = "AcgnRelay/1.0"

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        channel_id: int = 1,
        page_size: int = 24,
        word: str = "*",
        file_suffix: str = "",
        timeout: int = 30,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        self.base_url = base_url
        self.channel_id = channel_id
        self.page_size = page_size
        self.word = word
        self.file_suffix = file_suffix
        self.timeout = timeout
        self.user_agent = user_agent

    def get_source_name(self) -> str:
        return "acgn.es search"

    def fetch_page(self, page: int) -> List[Post]:
        """Fetch one page, sorted by time descending"""
        params = {
            "cid": self.channel_id,
            "page": page,
            "limit": self.page_size,
            "word": self.word,
            "sort": "time",
            "file_suffix": self.file_suffix,
        }
        resp = requests.get(
            self.base_url,
            params=params,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            timeout=self.timeout
        )
        resp.raise_for_status()
        return self._parse_response(resp.json())

    def _parse_response(self, data) -> List[Post]:
        if not isinstance(data, dict):
            raise ValueError(f"unexpected response type: {type(data).__name__}")
        items = data.get("data") or []
        posts = []
        for item in items:
            if not isinstance(item, dict):
                logger.debug(f"跳过无效条目: {item!r}")
                continue
            posts.append(Post.from_dict(item))
        return posts
