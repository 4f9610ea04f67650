from __future__ import annotations

import csv

from .base import open_output, sorted_records
from ..catalog import Catalog
from ..models import CHARACTERISTIC_COLUMNS


class CSVExporter:
    """
    Writes one row per catalog record with a fixed header.
    Missing characteristics become empty cells.
    """

    _headers = ["id", "price", *CHARACTERISTIC_COLUMNS]

    def export(self, data: Catalog, path: str) -> None:
        with open_output(path, newline="") as f:
            w = csv.writer(f)
            w.writerow(self._headers)
            for record in sorted_records(data):
                row = record.to_dict()
                w.writerow(["" if row[h] is None else row[h] for h in self._headers])
