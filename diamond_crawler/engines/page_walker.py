from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Set

from ..backends.base import SearchBackend
from ..catalog import CatalogAggregator
from ..errors import BackendError
from ..models import SearchRange
from ..utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class WalkResult:
    retrieved: int
    pages: int
    error: Optional[BackendError] = None
    stopped: bool = False


class PageWalker:
    """
    Pages through one leaf range and feeds every page to the aggregator as it
    arrives, so pages already fetched survive a later failure.
    """

    def __init__(
        self,
        backend: SearchBackend,
        aggregator: CatalogAggregator,
        policy: RetryPolicy,
        *,
        page_size: int,
        window_cap: int,
        should_stop: Callable[[], bool] = lambda: False,
    ) -> None:
        self.backend = backend
        self.aggregator = aggregator
        self.policy = policy
        self.page_size = page_size
        self.window_cap = window_cap
        self.should_stop = should_stop

    async def walk(self, rng: SearchRange, expected: int) -> WalkResult:
        # Nothing past the window is reachable, whatever the probe said.
        target = min(expected, self.window_cap)
        seen: Set[str] = set()
        offset = 0
        pages = 0

        while len(seen) < target:
            if self.should_stop():
                return WalkResult(retrieved=len(seen), pages=pages, stopped=True)
            size = min(self.page_size, self.window_cap - offset)
            if size <= 0:
                break
            try:
                page = await self.policy.call(
                    self.backend.fetch_page, rng, offset, size, label=f"fetch_page {rng}@{offset}"
                )
            except BackendError as exc:
                logger.warning("Giving up on %s at offset %s after retries: %s", rng, offset, exc)
                return WalkResult(retrieved=len(seen), pages=pages, error=exc)
            pages += 1
            await self.aggregator.merge(rng, page.items, start=offset)
            seen.update(item.id for item in page.items)
            if not page.items or not page.has_more:
                break
            offset += size

        return WalkResult(retrieved=len(seen), pages=pages)
