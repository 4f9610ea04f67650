from __future__ import annotations

from typing import Protocol

from ..models import Page, ProbeResult, SearchRange


class SearchBackend(Protocol):
    """
    Interface for a capped, offset-paginated search backend.
    Keep this small and stable; the engine owns retries, timeouts and queueing.
    """

    async def probe(self, rng: SearchRange) -> ProbeResult:
        """Return how many items match ``rng`` without fetching full pages."""
        ...

    async def fetch_page(self, rng: SearchRange, offset: int, page_size: int) -> Page:
        """
        Return items ``offset .. offset + page_size`` of the price-sorted matches.
        Callers never ask past the window cap.
        """
        ...
