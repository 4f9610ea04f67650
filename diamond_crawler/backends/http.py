from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List

import aiohttp
from aiohttp import ClientSession, ClientTimeout
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import BackendDecodeError, BackendError, RateLimitedError, TransientBackendError
from ..models import Page, ProbeResult, RawItem, SearchRange
from ..utils.http import parse_retry_after
from ..utils.parsing import first_scalar, to_price

logger = logging.getLogger(__name__)


class SearchResponse(BaseModel):
    """Envelope of one search-grid response."""

    model_config = ConfigDict(extra="ignore")

    total: int = Field(validation_alias=AliasChoices("countRaw", "count", "total"), ge=0)
    results: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("total", mode="before")
    @classmethod
    def _strip_thousands(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.replace(",", "").strip()
        return v


class SearchResult(BaseModel):
    """One diamond listing; everything besides id and price is kept as attributes."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(validation_alias=AliasChoices("id", "sku", "diamondId"))
    price: Decimal

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> Any:
        v = first_scalar(v)
        return str(v) if isinstance(v, (int, str)) else v

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, v: Any) -> Decimal:
        return to_price(first_scalar(v))

    def to_item(self) -> RawItem:
        return RawItem(id=self.id, price=self.price, attributes=dict(self.model_extra or {}))


class HttpSearchBackend:
    """
    aiohttp client for the diamond search grid.
    Results are requested price-ascending so offsets are stable within a range.
    """

    def __init__(
        self,
        session: ClientSession,
        base_url: str,
        shape_code: str,
        *,
        timeout: float = 15.0,
    ) -> None:
        self.session = session
        self.base_url = base_url
        self.shape_code = shape_code
        self.timeout = timeout

    @classmethod
    def from_config(cls, session: ClientSession, cfg: Any) -> "HttpSearchBackend":
        return cls(session, cfg.base_url, cfg.shape_code, timeout=cfg.request_timeout)

    def _params(self, rng: SearchRange, offset: int, page_size: int) -> Dict[str, str]:
        return {
            "shape": self.shape_code,
            "minPrice": str(rng.low),
            "maxPrice": str(rng.high),
            "startIndex": str(offset),
            "pageSize": str(page_size),
            "sortColumn": "price",
            "sortDirection": "asc",
        }

    async def _search(self, params: Dict[str, str]) -> SearchResponse:
        try:
            async with self.session.get(
                self.base_url, params=params, timeout=ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status == 429:
                    raise RateLimitedError(
                        f"rate limited by {self.base_url}",
                        retry_after=parse_retry_after(resp.headers.get("Retry-After")),
                    )
                if resp.status >= 500:
                    raise TransientBackendError(f"HTTP {resp.status} from {self.base_url}", status=resp.status)
                if resp.status >= 400:
                    raise BackendError(f"HTTP {resp.status} from {self.base_url}", status=resp.status)
                body = await resp.text()
        except aiohttp.ClientError as exc:
            raise TransientBackendError(f"request to {self.base_url} failed: {exc!r}") from exc
        except asyncio.TimeoutError as exc:
            raise TransientBackendError(f"request to {self.base_url} timed out") from exc

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise BackendDecodeError(f"response is not JSON: {body[:120]!r}") from exc
        try:
            return SearchResponse.model_validate(payload)
        except ValidationError as exc:
            raise BackendDecodeError(f"unexpected response shape: {exc.error_count()} errors") from exc

    async def probe(self, rng: SearchRange) -> ProbeResult:
        data = await self._search(self._params(rng, 0, 1))
        logger.debug("probe %s -> %s", rng, data.total)
        return ProbeResult(range=rng, total_matches=data.total)

    async def fetch_page(self, rng: SearchRange, offset: int, page_size: int) -> Page:
        data = await self._search(self._params(rng, offset, page_size))
        items: List[RawItem] = []
        for raw in data.results:
            try:
                items.append(SearchResult.model_validate(raw).to_item())
            except ValidationError as exc:
                raise BackendDecodeError(f"malformed result at offset {offset} in {rng}") from exc
        has_more = bool(items) and offset + len(items) < data.total
        return Page(items=items, has_more=has_more, total=data.total)

