from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..backends.base import SearchBackend
from ..config import CrawlConfig
from ..engines.base import CrawlReport
from ..errors import FatalCrawlError
from ..export.base import sorted_records
from ..models import SHAPES
from ..utils.loader import load_symbol
from ..version import __version__

logger = logging.getLogger(__name__)

app = FastAPI(title="diamond_crawler API", version=__version__)


class CrawlRequest(BaseModel):
    shape: str = "round"
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    page_size: Optional[int] = Field(default=None, gt=0)
    max_concurrency: Optional[int] = Field(default=None, gt=0)
    include_records: bool = True


def get_backend() -> Optional[SearchBackend]:
    """Backend used by /crawl; None means the configured HTTP endpoint."""
    return None


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/shapes")
async def shapes() -> Dict[str, Dict[str, str]]:
    return {"shapes": SHAPES}


@app.post("/crawl")
async def crawl(req: CrawlRequest, backend: Optional[SearchBackend] = Depends(get_backend)) -> Dict[str, Any]:
    try:
        cfg = CrawlConfig.from_env()
        cfg.shape = req.shape.strip().lower()
        if req.min_price is not None:
            cfg.min_price = req.min_price
        if req.max_price is not None:
            cfg.max_price = req.max_price
        if req.page_size is not None:
            cfg.page_size = req.page_size
        if req.max_concurrency is not None:
            cfg.max_concurrency = req.max_concurrency
        # Results go back in the response body, never to disk.
        cfg.output_path = "-"
        cfg.validate()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    engine_cls = load_symbol(cfg.engine)
    engine = engine_cls(cfg, backend=backend)
    try:
        report: CrawlReport = await engine.crawl()
    except FatalCrawlError as exc:
        logger.error("%s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    body = report.summary()
    if req.include_records:
        body["items"] = [record.to_dict() for record in sorted_records(report.catalog)]
    return body
