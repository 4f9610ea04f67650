from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List
from abc import ABC, abstractmethod

from ..catalog import Catalog
from ..models import Gap, LeafStat


@dataclass
class CrawlReport:
    catalog: Catalog = field(default_factory=dict)  # id -> record
    leaves: List[LeafStat] = field(default_factory=list)
    gaps: List[Gap] = field(default_factory=list)
    probe_count: int = 0
    page_count: int = 0
    max_depth: int = 0
    duplicates: int = 0
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return not self.gaps and not self.cancelled

    def summary(self) -> Dict[str, Any]:
        return {
            "records": len(self.catalog),
            "leaves": len(self.leaves),
            "probes": self.probe_count,
            "pages": self.page_count,
            "max_depth": self.max_depth,
            "duplicates": self.duplicates,
            "cancelled": self.cancelled,
            "gaps": [g.to_dict() for g in self.gaps],
        }


class CrawlEngine(ABC):
    """
    Abstract engine interface. Implementations own the crawl lifecycle.
    """
    @abstractmethod
    async def crawl(self) -> CrawlReport:  # pragma: no cover - interface
        ...

    def cancel(self) -> None:  # pragma: no cover - optional
        """Request a graceful stop; the report returned by crawl() is partial."""
