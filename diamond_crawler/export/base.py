from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, List, Protocol

from ..catalog import Catalog
from ..models import CatalogRecord


class Exporter(Protocol):
    def export(self, data: Catalog, path: str) -> None:
        ...


def sorted_records(data: Catalog) -> List[CatalogRecord]:
    """Stable row order so repeated crawls produce identical files."""
    return sorted(data.values(), key=lambda r: (r.price, r.id))


@contextmanager
def open_output(path: str, *, newline: str | None = None) -> Iterator[IO[str]]:
    """Open ``path`` for writing; "-" means standard output."""
    if path == "-":
        yield sys.stdout
        sys.stdout.flush()
        return
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline=newline) as f:
        yield f
