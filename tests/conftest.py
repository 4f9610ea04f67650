from decimal import ROUND_HALF_EVEN, Decimal
from typing import Callable, Iterable, List, Optional

import pytest

from diamond_crawler.config import CrawlConfig
from diamond_crawler.errors import BackendError, TransientBackendError
from diamond_crawler.models import Page, ProbeResult, RawItem, SearchRange
from diamond_crawler.utils.retry import RetryPolicy

CENT = Decimal("0.01")


class FakeBackend:
    """In-memory search backend with the same window cap behaviour as the real one."""

    def __init__(
        self,
        items: Iterable[RawItem],
        *,
        window_cap: int = 1000,
        fail_ranges: Iterable[SearchRange] = (),
        on_fetch: Optional[Callable[[SearchRange, int], None]] = None,
    ) -> None:
        self.items = sorted(items, key=lambda i: (i.price, i.id))
        self.window_cap = window_cap
        self.fail_ranges = set(fail_ranges)
        self.on_fetch = on_fetch
        self.probe_calls: List[SearchRange] = []
        self.fetch_calls: List[tuple] = []

    def matches(self, rng: SearchRange) -> List[RawItem]:
        return [i for i in self.items if rng.contains(i.price)]

    async def probe(self, rng: SearchRange) -> ProbeResult:
        self.probe_calls.append(rng)
        if rng in self.fail_ranges:
            raise TransientBackendError(f"simulated outage for {rng}")
        return ProbeResult(range=rng, total_matches=len(self.matches(rng)))

    async def fetch_page(self, rng: SearchRange, offset: int, page_size: int) -> Page:
        self.fetch_calls.append((rng, offset, page_size))
        if rng in self.fail_ranges:
            raise TransientBackendError(f"simulated outage for {rng}")
        if offset + page_size > self.window_cap:
            raise BackendError("Result window is too large", status=400)
        matches = self.matches(rng)
        reachable = matches[: self.window_cap]
        page = reachable[offset: offset + page_size]
        if self.on_fetch is not None:
            self.on_fetch(rng, offset)
        return Page(
            items=[RawItem(id=i.id, price=i.price, attributes=dict(i.attributes)) for i in page],
            has_more=offset + len(page) < len(reachable),
            total=len(matches),
        )


def make_item(n: int, price, **attributes) -> RawItem:
    attrs = {"carat": "0.5", "cut": "Ideal", "color": "G", "clarity": "VS1"}
    attrs.update(attributes)
    return RawItem(id=f"D{n:05d}", price=Decimal(str(price)), attributes=attrs)


def uniform_items(count: int, low, high) -> List[RawItem]:
    low, high = Decimal(str(low)), Decimal(str(high))
    span = high - low
    out = []
    for i in range(count):
        price = (low + span * i / (count - 1)).quantize(CENT, rounding=ROUND_HALF_EVEN)
        out.append(make_item(i, price))
    return out


@pytest.fixture
def fake_backend():
    return FakeBackend


@pytest.fixture
def items_factory():
    return uniform_items


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0, timeout=5.0)


@pytest.fixture
def make_config():
    def _make(**overrides) -> CrawlConfig:
        values = dict(
            min_price="100",
            max_price="5000",
            window_cap=1000,
            page_size=100,
            max_concurrency=4,
            backoff_base=0.0,
            backoff_jitter=0.0,
            output_path="-",
        )
        values.update(overrides)
        return CrawlConfig(**values)

    return _make


@pytest.fixture
def fast_env(monkeypatch):
    """Environment for CLI/API runs: no backoff sleeps."""
    monkeypatch.setenv("DIAMOND_BACKOFF_BASE", "0")
    monkeypatch.setenv("DIAMOND_BACKOFF_JITTER", "0")
    return monkeypatch
