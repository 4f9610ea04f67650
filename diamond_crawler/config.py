from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict
from pathlib import Path
import os
import json

from .version import __version__, CONFIG_SCHEMA_VERSION
from .models import SHAPES
from .utils.parsing import quantize_to_step, to_price

DEFAULT_BASE_URL = "https://www.bluenile.com/api/public/diamond-search-grid/v2"
DEFAULT_ENGINE = "diamond_crawler.engines.bisect_engine:BisectCrawlEngine"
DEFAULT_EXPORTER = "diamond_crawler.export.csv_exporter:CSVExporter"


@dataclass
class CrawlConfig:
    """
    Canonical configuration object passed throughout the system.
    Keep it dataclass-only (no heavy deps) to stay upgrade-friendly.
    """
    schema_version: int = CONFIG_SCHEMA_VERSION
    base_url: str = DEFAULT_BASE_URL
    shape: str = "round"
    # Full price domain, closed on both ends.
    min_price: Decimal = Decimal("100")
    max_price: Decimal = Decimal("100000")
    # Smallest price increment the backend distinguishes.
    price_step: Decimal = Decimal("0.01")
    # Most results any single filtered query can reach.
    window_cap: int = 1000
    page_size: int = 100
    max_concurrency: int = 4
    request_timeout: float = 15.0
    retries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 30.0
    backoff_jitter: float = 0.25
    user_agent: str = f"diamond_crawler/{__version__}"
    # Dotted paths for engine/exporter to allow runtime swapping without code changes.
    engine: str = DEFAULT_ENGINE
    exporter: str = DEFAULT_EXPORTER
    # Where to write results ("-" for stdout)
    output_path: str = "output/diamonds.csv"

    def __post_init__(self) -> None:
        self.min_price = to_price(self.min_price)
        self.max_price = to_price(self.max_price)
        self.price_step = to_price(self.price_step)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("min_price", "max_price", "price_step"):
            data[key] = str(data[key])
        return data

    @property
    def shape_code(self) -> str:
        return SHAPES[self.shape]

    # ---------- Loaders ----------

    @classmethod
    def from_env(cls) -> "CrawlConfig":
        """
        Build config from environment variables (all optional).
        """
        def _get(name: str, default: str) -> str:
            return os.getenv(name, default)

        return cls(
            base_url=_get("DIAMOND_BASE_URL", DEFAULT_BASE_URL),
            shape=_get("DIAMOND_SHAPE", "round").strip().lower(),
            min_price=_get("DIAMOND_MIN_PRICE", "100"),
            max_price=_get("DIAMOND_MAX_PRICE", "100000"),
            price_step=_get("DIAMOND_PRICE_STEP", "0.01"),
            window_cap=int(_get("DIAMOND_WINDOW_CAP", "1000")),
            page_size=int(_get("DIAMOND_PAGE_SIZE", "100")),
            max_concurrency=int(_get("DIAMOND_MAX_CONCURRENCY", "4")),
            request_timeout=float(_get("DIAMOND_REQUEST_TIMEOUT", "15.0")),
            retries=int(_get("DIAMOND_RETRIES", "3")),
            backoff_base=float(_get("DIAMOND_BACKOFF_BASE", "0.5")),
            backoff_max=float(_get("DIAMOND_BACKOFF_MAX", "30.0")),
            backoff_jitter=float(_get("DIAMOND_BACKOFF_JITTER", "0.25")),
            user_agent=_get("DIAMOND_USER_AGENT", f"diamond_crawler/{__version__}"),
            engine=_get("DIAMOND_ENGINE", DEFAULT_ENGINE),
            exporter=_get("DIAMOND_EXPORTER", DEFAULT_EXPORTER),
            output_path=_get("DIAMOND_OUTPUT_PATH", "output/diamonds.csv"),
        )

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> "CrawlConfig":
        """
        Load configuration from a JSON file. Supports schema migration for older versions.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        data = migrate_config(data)
        return cls(**data)

    # ---------- Validation ----------

    def validate(self) -> None:
        if self.shape not in SHAPES:
            raise ValueError(f"unknown shape {self.shape!r}; expected one of {', '.join(SHAPES)}")
        if self.price_step <= 0:
            raise ValueError("price_step must be > 0")
        if self.min_price < 0:
            raise ValueError("min_price must be >= 0")
        if self.min_price > self.max_price:
            raise ValueError("min_price must be <= max_price")
        if self.window_cap <= 0:
            raise ValueError("window_cap must be > 0")
        if not 0 < self.page_size <= self.window_cap:
            raise ValueError("page_size must be in 1..window_cap")
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        if self.retries < 1:
            raise ValueError("retries must be >= 1 (it counts the first attempt)")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        # Snap the domain onto the price grid so every split lands on a real price.
        self.min_price = quantize_to_step(self.min_price, self.price_step)
        high = quantize_to_step(self.max_price, self.price_step)
        self.max_price = high if high == self.max_price else high + self.price_step
        if self.output_path != "-":
            Path(self.output_path).parent.mkdir(parents=True, exist_ok=True)


def migrate_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Migrate config dict to the latest schema version.
    Keep this pure and additive. Add migrations here as you bump schema.
    """
    raw = dict(raw)
    schema = raw.get("schema_version", 1)

    if schema < 2:
        # v1 configs came from the URL crawler; only the shared knobs carry over.
        kept = {"max_concurrency", "request_timeout", "retries", "user_agent"}
        raw = {k: v for k, v in raw.items() if k in kept}
        if "retries" in raw:
            # v1 counted retries after the first attempt; v2 counts attempts.
            raw["retries"] = int(raw["retries"]) + 1
        raw["schema_version"] = 2

    raw.setdefault("schema_version", CONFIG_SCHEMA_VERSION)
    return raw
