"""Single-entry baseline cache keyed by (location, product type)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from .models import ProductType, ResultPage

logger = logging.getLogger(__name__)

BaselineKey = Tuple[Optional[str], Optional[ProductType]]


@dataclass(frozen=True)
class BaselineCacheEntry:
    key: BaselineKey
    page: ResultPage


class BaselineCache:
    """Holds the empty-query result for the current parameters.

    Exactly one entry is kept; storing under a new key replaces it and
    :meth:`invalidate` drops it. The page is kept unfiltered so that the
    availability filter runs on every read, cached or not.
    """

    def __init__(self) -> None:
        self._entry: Optional[BaselineCacheEntry] = None
        self.hits = 0
        self.misses = 0

    @property
    def entry(self) -> Optional[BaselineCacheEntry]:
        return self._entry

    def lookup(self, key: BaselineKey) -> Optional[ResultPage]:
        entry = self._entry
        if entry is not None and entry.key == key:
            self.hits += 1
            logger.debug("baseline cache_hit key=%s", key)
            return entry.page
        self.misses += 1
        logger.debug("baseline cache_miss key=%s", key)
        return None

    def store(self, key: BaselineKey, page: ResultPage) -> None:
        self._entry = BaselineCacheEntry(key=key, page=page)
        logger.debug("baseline cache_store key=%s items=%s", key, len(page.items))

    def invalidate(self) -> None:
        if self._entry is not None:
            logger.debug("baseline invalidate key=%s", self._entry.key)
        self._entry = None

    async def get_or_fetch(
        self,
        key: BaselineKey,
        loader: Callable[[], Awaitable[ResultPage]],
        *,
        is_current_key: Optional[Callable[[BaselineKey], bool]] = None,
    ) -> ResultPage:
        """Return the cached baseline or load and store it.

        ``is_current_key`` guards the write: a page loaded for parameters that
        changed while the load was in flight is returned but not stored.
        """
        cached = self.lookup(key)
        if cached is not None:
            return cached
        page = await loader()
        if is_current_key is None or is_current_key(key):
            self.store(key, page)
        else:
            logger.debug("baseline discard key=%s parameters changed", key)
        return page
