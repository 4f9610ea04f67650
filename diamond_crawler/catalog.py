from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from .models import CatalogRecord, RawItem, SearchRange

logger = logging.getLogger(__name__)

Catalog = Dict[str, CatalogRecord]

# (source range low, source range high, position within that range)
_Rank = Tuple[Decimal, Decimal, int]


class CatalogAggregator:
    """
    Owns the deduplicated catalog while the crawl runs.

    Duplicates are expected where sibling ranges share a boundary price.
    The observation from the range with the greater ``(low, high)`` wins, and
    within a range the later position wins, so the result does not depend on
    which worker finished first.
    """

    def __init__(self) -> None:
        self._records: Catalog = {}
        self._ranks: Dict[str, _Rank] = {}
        self._lock = asyncio.Lock()
        self._finalized = False
        self.duplicates = 0
        self.conflicts = 0

    async def merge(self, source: SearchRange, items: Iterable[RawItem], *, start: int = 0) -> int:
        """Merge items observed in ``source`` at positions ``start, start+1, ...``. Returns new ids added."""
        added = 0
        async with self._lock:
            if self._finalized:
                raise RuntimeError("catalog already finalized")
            for position, item in enumerate(items, start=start):
                rank: _Rank = (source.low, source.high, position)
                current = self._ranks.get(item.id)
                if current is None:
                    added += 1
                else:
                    self.duplicates += 1
                    existing = self._records[item.id]
                    if existing.price != item.price or existing.attributes != item.attributes:
                        self.conflicts += 1
                        logger.debug("conflicting observations for %s (%s vs %s)", item.id, existing.price, item.price)
                    if current > rank:
                        continue
                self._ranks[item.id] = rank
                self._records[item.id] = CatalogRecord.from_item(item)
        return added

    def catalog_size(self) -> int:
        return len(self._records)

    def finalize(self) -> Catalog:
        """Hand the catalog over. Can only be called once."""
        if self._finalized:
            raise RuntimeError("catalog already finalized")
        self._finalized = True
        records, self._records = self._records, {}
        self._ranks = {}
        if self.conflicts:
            logger.warning("%s duplicate ids carried differing values; kept the highest-range observation",
                           self.conflicts)
        return records
