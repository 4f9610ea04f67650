from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from .base import CrawlEngine, CrawlReport
from .page_walker import PageWalker
from ..backends.base import SearchBackend
from ..backends.http import HttpSearchBackend
from ..catalog import CatalogAggregator
from ..config import CrawlConfig
from ..errors import BackendError, FatalCrawlError
from ..models import Gap, LeafStat, ProbeResult, SearchRange
from ..utils.http import create_session
from ..utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class _QueueItem:
    range: SearchRange
    depth: int
    probe: Optional[ProbeResult] = None


class BisectCrawlEngine(CrawlEngine):
    """
    Enumerates a result set larger than the backend's window cap.
    - Ranges over the cap are split at the price midpoint and re-queued.
    - Ranges at or under the cap are paged by the PageWalker.
    - Workers share one queue and one lock-protected aggregator.
    """
    def __init__(
        self,
        config: CrawlConfig,
        backend: SearchBackend | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.policy = policy or RetryPolicy.from_config(config)
        self._cancelled = False
        self._leaves: List[LeafStat] = []
        self._gaps: List[Gap] = []
        self._seen: Set[SearchRange] = set()
        self._probes = 0
        self._pages = 0
        self._max_depth = 0

    def cancel(self) -> None:
        if not self._cancelled:
            logger.warning("Cancellation requested; letting in-flight requests finish")
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def crawl(self) -> CrawlReport:
        if self.backend is not None:
            return await self._crawl(self.backend)

        session = create_session(self.config.user_agent)
        try:
            return await self._crawl(HttpSearchBackend.from_config(session, self.config))
        finally:
            await session.close()

    async def _probe(self, backend: SearchBackend, rng: SearchRange) -> ProbeResult:
        self._probes += 1
        return await self.policy.call(backend.probe, rng, label=f"probe {rng}")

    async def _crawl(self, backend: SearchBackend) -> CrawlReport:
        cfg = self.config
        self._leaves, self._gaps = [], []
        self._seen = set()
        self._probes = self._pages = self._max_depth = 0
        root = SearchRange(cfg.min_price, cfg.max_price)
        try:
            root_probe = await self._probe(backend, root)
        except BackendError as exc:
            raise FatalCrawlError(
                f"Could not probe the price range {root} at {cfg.base_url}: {exc}. "
                "Check the base URL, shape and network access."
            ) from exc
        logger.info("%s items match %s (window cap %s)", root_probe.total_matches, root, cfg.window_cap)

        aggregator = CatalogAggregator()
        walker = PageWalker(
            backend,
            aggregator,
            self.policy,
            page_size=cfg.page_size,
            window_cap=cfg.window_cap,
            should_stop=lambda: self._cancelled,
        )
        q: asyncio.Queue[_QueueItem] = asyncio.Queue()
        q.put_nowait(_QueueItem(range=root, depth=0, probe=root_probe))

        async def worker() -> None:
            while True:
                item = await q.get()
                try:
                    # Single-price ranges can be reached from both sides of a boundary.
                    if item.range in self._seen:
                        continue
                    self._seen.add(item.range)
                    if self._cancelled:
                        self._gaps.append(Gap(
                            range=item.range,
                            kind="cancelled",
                            expected=item.probe.total_matches if item.probe else None,
                        ))
                        continue
                    await self._process(item, backend, walker, q)
                except Exception as exc:
                    # Keep the pool alive; the range is reported instead.
                    logger.exception("Unexpected error while crawling %s", item.range)
                    self._gaps.append(Gap(range=item.range, kind="failed", reason=repr(exc)))
                finally:
                    q.task_done()

        workers = [asyncio.create_task(worker()) for _ in range(cfg.max_concurrency)]
        try:
            await q.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        duplicates = aggregator.duplicates
        catalog = aggregator.finalize()
        report = CrawlReport(
            catalog=catalog,
            leaves=sorted(self._leaves, key=lambda leaf: leaf.range),
            gaps=sorted(self._gaps, key=lambda gap: gap.range),
            probe_count=self._probes,
            page_count=self._pages,
            max_depth=self._max_depth,
            duplicates=duplicates,
            cancelled=self._cancelled,
        )
        logger.info("Crawl finished: %s records from %s leaves, %s probes, %s pages, %s gaps",
                    len(catalog), len(report.leaves), report.probe_count, report.page_count, len(report.gaps))
        return report

    async def _process(
        self,
        item: _QueueItem,
        backend: SearchBackend,
        walker: PageWalker,
        q: "asyncio.Queue[_QueueItem]",
    ) -> None:
        cfg = self.config
        rng = item.range
        self._max_depth = max(self._max_depth, item.depth)

        probe = item.probe
        if probe is None:
            try:
                probe = await self._probe(backend, rng)
            except BackendError as exc:
                logger.warning("Could not probe %s: %s", rng, exc)
                self._gaps.append(Gap(range=rng, kind="failed", reason=str(exc)))
                return
        count = probe.total_matches

        if count > cfg.window_cap and rng.steps(cfg.price_step) == 1:
            await self._split_adjacent(item, count, backend, q)
            return

        if count > cfg.window_cap and rng.can_split(cfg.price_step):
            left, right = rng.split(cfg.price_step)
            logger.debug("%s has %s matches; splitting into %s and %s", rng, count, left, right)
            q.put_nowait(_QueueItem(range=left, depth=item.depth + 1))
            q.put_nowait(_QueueItem(range=right, depth=item.depth + 1))
            return

        if count == 0:
            self._leaves.append(LeafStat(range=rng, expected=0, retrieved=0, depth=item.depth))
            return

        if count > cfg.window_cap:
            logger.warning("Price point %s has %s matches; only the first %s are reachable",
                           rng, count, cfg.window_cap)

        result = await walker.walk(rng, count)
        self._pages += result.pages
        self._leaves.append(LeafStat(range=rng, expected=count, retrieved=result.retrieved, depth=item.depth))
        logger.info("Leaf %s: %s/%s items in %s pages", rng, result.retrieved, count, result.pages)

        if result.error is not None:
            gap = Gap(range=rng, kind="failed", expected=count, retrieved=result.retrieved, reason=str(result.error))
        elif result.stopped:
            gap = Gap(range=rng, kind="cancelled", expected=count, retrieved=result.retrieved)
        elif count > cfg.window_cap:
            gap = Gap(range=rng, kind="truncated", expected=count, retrieved=result.retrieved,
                      reason=f"more than {cfg.window_cap} items at one price")
        elif result.retrieved < count:
            gap = Gap(range=rng, kind="short", expected=count, retrieved=result.retrieved,
                      reason="backend returned fewer items than probed")
        else:
            return
        logger.warning("Gap: %s", gap.describe())
        self._gaps.append(gap)

    async def _split_adjacent(
        self,
        item: _QueueItem,
        count: int,
        backend: SearchBackend,
        q: "asyncio.Queue[_QueueItem]",
    ) -> None:
        """
        Split a range of two adjacent grid prices into its endpoints.
        Items priced strictly between the endpoints match neither child, so the
        endpoints are probed here and any shortfall is reported against the parent.
        """
        rng = item.range
        points = rng.split(self.config.price_step)
        probes: List[Optional[ProbeResult]] = [None, None]
        gap: Optional[Gap] = None
        try:
            for i, point in enumerate(points):
                probes[i] = await self._probe(backend, point)
        except BackendError as exc:
            gap = Gap(range=rng, kind="failed", expected=count,
                      reason=f"could not account for prices inside {rng}: {exc}")
        else:
            between = count - sum(p.total_matches for p in probes if p is not None)
            if between > 0:
                gap = Gap(range=rng, kind="truncated", expected=between,
                          reason=f"{between} items priced between grid points; lower price_step to reach them")

        if gap is not None:
            logger.warning("Gap: %s", gap.describe())
            self._gaps.append(gap)
        for point, probe in zip(points, probes):
            q.put_nowait(_QueueItem(range=point, depth=item.depth + 1, probe=probe))
