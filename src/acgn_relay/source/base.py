from abc import ABC, abstractmethod
from typing import List

from ..models import Post


class BaseSource(ABC):
    """Abstract base class for paginated post sources"""

    @abstractmethod
    def fetch_page(self, page: int) -> List[Post]:
        """Fetch one page of posts, newest first"""
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Return the name of this source for logging"""
        pass
