from __future__ import annotations

import json

from .base import open_output, sorted_records
from ..catalog import Catalog


class JSONExporter:
    def export(self, data: Catalog, path: str) -> None:
        with open_output(path) as f:
            serializable = [record.to_dict() for record in sorted_records(data)]
            json.dump(serializable, f, indent=2, ensure_ascii=False, default=str)
