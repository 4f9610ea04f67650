import asyncio

from diamond_crawler.catalog import CatalogAggregator
from diamond_crawler.engines.page_walker import PageWalker
from diamond_crawler.errors import TransientBackendError
from diamond_crawler.models import Page, SearchRange


def _walk(backend, rng, expected, policy, *, page_size=50, window_cap=1000, should_stop=lambda: False):
    aggregator = CatalogAggregator()
    walker = PageWalker(backend, aggregator, policy, page_size=page_size, window_cap=window_cap,
                        should_stop=should_stop)
    result = asyncio.run(walker.walk(rng, expected))
    return result, aggregator


def test_walk_retrieves_exactly_the_probed_count(fake_backend, items_factory, fast_policy):
    backend = fake_backend(items_factory(237, "100", "900"))
    rng = SearchRange("100", "900")
    result, aggregator = _walk(backend, rng, 237, fast_policy)
    assert result.retrieved == 237
    assert result.pages == 5
    assert result.error is None
    assert aggregator.catalog_size() == 237
    assert [offset for _, offset, _ in backend.fetch_calls] == [0, 50, 100, 150, 200]


def test_walk_never_requests_past_the_window(fake_backend, items_factory, fast_policy):
    backend = fake_backend(items_factory(40, "100", "200"), window_cap=25)
    result, _ = _walk(backend, SearchRange("100", "200"), 40, fast_policy, page_size=10, window_cap=25)
    assert result.retrieved == 25
    assert all(offset + size <= 25 for _, offset, size in backend.fetch_calls)
    assert backend.fetch_calls[-1][2] == 5


def test_walk_stops_at_probed_count_when_backend_never_finishes(items_factory, fast_policy):
    items = items_factory(30, "100", "200")

    class EndlessBackend:
        calls = 0

        async def fetch_page(self, rng, offset, page_size):
            EndlessBackend.calls += 1
            return Page(items=items[offset: offset + page_size], has_more=True)

    result, aggregator = _walk(EndlessBackend(), SearchRange("100", "200"), 30, fast_policy, page_size=10)
    assert result.retrieved == 30
    assert EndlessBackend.calls == 3
    assert aggregator.catalog_size() == 30


def test_walk_keeps_pages_fetched_before_a_failure(items_factory, fast_policy):
    items = items_factory(120, "100", "200")

    class FailsLater:
        async def fetch_page(self, rng, offset, page_size):
            if offset >= 50:
                raise TransientBackendError("connection reset")
            return Page(items=items[offset: offset + page_size], has_more=True)

    result, aggregator = _walk(FailsLater(), SearchRange("100", "200"), 120, fast_policy)
    assert isinstance(result.error, TransientBackendError)
    assert result.retrieved == 50
    assert aggregator.catalog_size() == 50


def test_walk_stops_when_asked(fake_backend, items_factory, fast_policy):
    backend = fake_backend(items_factory(100, "100", "200"))
    stop = {"now": False}

    def on_fetch(rng, offset):
        stop["now"] = True

    backend.on_fetch = on_fetch
    result, aggregator = _walk(backend, SearchRange("100", "200"), 100, fast_policy, page_size=20,
                               should_stop=lambda: stop["now"])
    assert result.stopped
    assert result.retrieved == 20
    assert len(backend.fetch_calls) == 1
