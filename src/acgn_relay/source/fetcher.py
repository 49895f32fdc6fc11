import asyncio
import logging
import time
from typing import Callable, List, Optional

from ..models import Post
from .base import BaseSource

logger = logging.getLogger(__name__)

# 分页上限，最多拉取 11 页（0..10）
MIN_PAGE = 0
MAX_PAGE = 10

DEFAULT_LOOKBACK = 24 * 60 * 60


async def fetch_recent_posts(
    source: BaseSource,
    page: int = 0,
    cutoff: Optional[float] = None,
    clock: Callable[[], float] = time.time
) -> List[Post]:
    """Fetch posts newer than ``cutoff``, paging backward from ``page``

    Pages are requested while the oldest post of the current page is still
    newer than the cutoff. Only the last page is filtered; earlier pages are
    returned whole. Upstream order is kept. A page that fails to load ends
    pagination and whatever was collected so far is returned.
    """
    if page < MIN_PAGE or page > MAX_PAGE:
        return []

    if cutoff is None:
        cutoff = clock() - DEFAULT_LOOKBACK

    loop = asyncio.get_running_loop()
    posts: List[Post] = []

    while page <= MAX_PAGE:
        try:
            # 在线程池中执行同步请求，避免阻塞事件循环
            data = await loop.run_in_executor(None, source.fetch_page, page)
        except Exception as e:
            logger.error(f"❌ 拉取第 {page} 页失败 ({source.get_source_name()}): {e}")
            break

        if not data:
            break

        oldest = min(post.date for post in data)
        if oldest > cutoff:
            posts.extend(data)
            page += 1
            continue

        posts.extend(post for post in data if post.date > cutoff)
        break

    logger.info(f"📡 拉取完成: {len(posts)} 条新帖子 (截止时间 {cutoff:.0f})")
    return posts
