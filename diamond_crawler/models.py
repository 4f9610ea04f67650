from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .utils.parsing import first_scalar, to_price

# Shape selector -> backend shape code.
SHAPES: Dict[str, str] = {
    "round": "RD",
    "princess": "PR",
    "emerald": "EC",
    "asscher": "AS",
    "cushion": "CU",
    "marquise": "MQ",
    "oval": "OV",
    "pear": "PS",
    "heart": "HS",
    "radiant": "RA",
}

CHARACTERISTIC_COLUMNS: List[str] = [
    "carat",
    "cut",
    "color",
    "clarity",
    "depth",
    "table",
    "polish",
    "symmetry",
    "fluorescence",
    "culet",
    "lw_ratio",
    "shape",
]

# Backend attribute names accepted for each output column, first match wins.
_ATTRIBUTE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "carat": ("carat", "caratWeight", "weight"),
    "cut": ("cut", "cutGrade"),
    "color": ("color", "colour"),
    "clarity": ("clarity",),
    "depth": ("depth", "depthPercent"),
    "table": ("table", "tablePercent"),
    "polish": ("polish",),
    "symmetry": ("symmetry",),
    "fluorescence": ("fluorescence",),
    "culet": ("culet",),
    "lw_ratio": ("lxwRatio", "lwRatio", "lw_ratio"),
    "shape": ("shapeName", "shape"),
}


@dataclass(frozen=True, order=True)
class SearchRange:
    """
    Closed price interval ``[low, high]``; both bounds are matched by the backend.
    """
    low: Decimal
    high: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "low", to_price(self.low))
        object.__setattr__(self, "high", to_price(self.high))
        if self.low > self.high:
            raise ValueError(f"invalid range: low {self.low} > high {self.high}")

    def contains(self, price: Decimal) -> bool:
        return self.low <= price <= self.high

    def steps(self, step: Decimal) -> int:
        """Number of price-grid steps between the bounds."""
        return int((self.high - self.low) / step)

    def can_split(self, step: Decimal) -> bool:
        return self.steps(step) >= 1

    def split(self, step: Decimal) -> Tuple["SearchRange", "SearchRange"]:
        """
        Split at the midpoint. Children share the midpoint so that items priced
        exactly there are matched by both; the aggregator drops the duplicate.
        Each child is strictly narrower than the parent.
        """
        n = self.steps(step)
        if n < 1:
            raise ValueError(f"range {self} cannot be split further")
        if n == 1:
            return SearchRange(self.low, self.low), SearchRange(self.high, self.high)
        mid = self.low + (n // 2) * step
        return SearchRange(self.low, mid), SearchRange(mid, self.high)

    def __str__(self) -> str:
        return f"[{self.low}, {self.high}]"


@dataclass
class ProbeResult:
    range: SearchRange
    total_matches: int


@dataclass
class RawItem:
    """One listing as returned by the backend."""

    id: str
    price: Decimal
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Page:
    items: List[RawItem]
    has_more: bool
    total: Optional[int] = None


@dataclass
class CatalogRecord:
    """Normalized catalog row; characteristics are derived from ``attributes``."""

    id: str
    price: Decimal
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: RawItem) -> "CatalogRecord":
        return cls(id=item.id, price=item.price, attributes=dict(item.attributes))

    def characteristics(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for column in CHARACTERISTIC_COLUMNS:
            value = None
            for key in _ATTRIBUTE_ALIASES[column]:
                if key in self.attributes:
                    value = first_scalar(self.attributes[key])
                    if value is not None:
                        break
            out[column] = value
        return out

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "price": str(self.price)}
        data.update(self.characteristics())
        return data


@dataclass
class Gap:
    """A reported hole in the catalog: a range that was not fully retrieved."""

    range: SearchRange
    kind: str  # "failed" | "truncated" | "cancelled" | "short"
    expected: Optional[int] = None
    retrieved: int = 0
    reason: Optional[str] = None

    def describe(self) -> str:
        expected = "?" if self.expected is None else str(self.expected)
        text = f"{self.kind} {self.range}: retrieved {self.retrieved}/{expected}"
        if self.reason:
            text += f" ({self.reason})"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "low": str(self.range.low),
            "high": str(self.range.high),
            "kind": self.kind,
            "expected": self.expected,
            "retrieved": self.retrieved,
            "reason": self.reason,
        }


@dataclass
class LeafStat:
    range: SearchRange
    expected: int
    retrieved: int
    depth: int
