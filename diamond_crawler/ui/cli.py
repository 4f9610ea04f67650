from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List

from ..config import CrawlConfig
from ..engines.base import CrawlEngine, CrawlReport
from ..errors import FatalCrawlError
from ..models import SHAPES
from ..utils.loader import load_symbol
from ..utils.logging import setup_logging
from ..utils.parsing import to_price

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Download the complete diamond catalog for one shape")
    p.add_argument("--shape", type=str.lower, choices=sorted(SHAPES), default=None,
                   help="Diamond shape to crawl (default from config)")
    p.add_argument("--config", type=str, help="Path to config JSON", default=None)
    p.add_argument("--base-url", type=str, default=None, help="Search endpoint URL")
    p.add_argument("--min-price", type=str, default=None, help="Lower bound of the price domain")
    p.add_argument("--max-price", type=str, default=None, help="Upper bound of the price domain")
    p.add_argument("--page-size", type=int, default=None, help="Results per page request")
    p.add_argument("--max-concurrency", type=int, default=None, help="Max concurrent ranges (default from config)")
    p.add_argument("--exporter", type=str, default=None, help="Exporter dotted path (module:ClassName)")
    p.add_argument("--output", type=str, default=None, help="Output file path, '-' for stdout")
    p.add_argument("--log-level", type=str, default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--serve", action="store_true", help="Run REST API server instead of CLI crawl")
    p.add_argument("--host", type=str, default="127.0.0.1", help="API host (when --serve)")
    p.add_argument("--port", type=int, default=8000, help="API port (when --serve)")
    return p


def _load_config(args: argparse.Namespace) -> CrawlConfig:
    if args.config:
        cfg = CrawlConfig.from_file(args.config)
    else:
        cfg = CrawlConfig.from_env()

    if args.shape:
        cfg.shape = args.shape
    if args.base_url:
        cfg.base_url = args.base_url
    if args.min_price is not None:
        cfg.min_price = to_price(args.min_price)
    if args.max_price is not None:
        cfg.max_price = to_price(args.max_price)
    if args.page_size is not None:
        cfg.page_size = args.page_size
    if args.max_concurrency is not None:
        cfg.max_concurrency = args.max_concurrency
    if args.exporter:
        cfg.exporter = args.exporter
    if args.output:
        cfg.output_path = args.output

    cfg.validate()
    return cfg


def run_server(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("diamond_crawler.apis.app:app", host=host, port=port)


def _install_signal_handlers(engine: CrawlEngine) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.cancel)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform/loop; Ctrl-C then aborts without a partial export.
            pass


def log_report(report: CrawlReport, output_path: str) -> None:
    for gap in report.gaps:
        logger.warning("Known gap: %s", gap.describe())
    logger.info("Records: %s | Leaves: %s | Probes: %s | Pages: %s | Gaps: %s | Output: %s",
                len(report.catalog),
                len(report.leaves),
                report.probe_count,
                report.page_count,
                len(report.gaps),
                output_path)
    if not report.complete:
        logger.warning("Catalog is incomplete: %s known gap(s)%s",
                       len(report.gaps), " (cancelled)" if report.cancelled else "")


def run_cli(argv: List[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.serve:
        run_server(args.host, args.port)
        return EXIT_OK

    try:
        cfg = _load_config(args)
        # Dynamic engine + exporter loading so upgrades don't require code edits.
        engine_cls = load_symbol(cfg.engine)
        exporter_cls = load_symbol(cfg.exporter)
    except (ValueError, TypeError, OSError, ImportError, AttributeError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG

    engine = engine_cls(cfg)

    async def _run() -> CrawlReport:
        _install_signal_handlers(engine)
        return await engine.crawl()

    try:
        report: CrawlReport = asyncio.run(_run())
    except FatalCrawlError as exc:
        logger.error("%s", exc)
        return EXIT_FATAL

    exporter = exporter_cls()
    try:
        exporter.export(report.catalog, cfg.output_path)
    except OSError as exc:
        if cfg.output_path == "-":
            logger.error("Could not write the catalog to stdout: %s", exc)
            return EXIT_FATAL
        logger.error("Could not write %s: %s; writing the catalog to stdout instead", cfg.output_path, exc)
        exporter.export(report.catalog, "-")
        log_report(report, "-")
        return EXIT_FATAL
    log_report(report, cfg.output_path)
    return EXIT_CANCELLED if report.cancelled else EXIT_OK


def main() -> int:
    return run_cli(sys.argv[1:])
