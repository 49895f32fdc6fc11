from .base import BaseSource
from .search import SearchSource
from .fetcher import fetch_recent_posts

__all__ = ["BaseSource", "SearchSource", "fetch_recent_posts"]
