import csv
import json
from decimal import Decimal

from diamond_crawler.export.csv_exporter import CSVExporter
from diamond_crawler.export.json_exporter import JSONExporter
from diamond_crawler.models import CHARACTERISTIC_COLUMNS, CatalogRecord


def _catalog():
    records = [
        CatalogRecord(id="B", price=Decimal("2500.00"), attributes={"carat": 1.0, "cut": "Ideal", "color": "F"}),
        CatalogRecord(id="A", price=Decimal("990.50"), attributes={"carat": 0.4}),
        CatalogRecord(id="C", price=Decimal("990.50"), attributes={"clarity": ["VS2"], "shapeName": "Oval"}),
    ]
    return {r.id: r for r in records}


def test_csv_has_fixed_header_and_sorted_rows(tmp_path):
    out = tmp_path / "nested" / "diamonds.csv"
    CSVExporter().export(_catalog(), str(out))

    with open(out, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = list(reader)
    assert reader.fieldnames == ["id", "price", *CHARACTERISTIC_COLUMNS]
    assert [r["id"] for r in rows] == ["A", "C", "B"]
    assert rows[0]["price"] == "990.50"
    assert rows[0]["cut"] == ""
    assert rows[1]["clarity"] == "VS2"
    assert rows[1]["shape"] == "Oval"
    assert rows[2]["color"] == "F"


def test_csv_to_stdout(capsys):
    CSVExporter().export(_catalog(), "-")
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0].startswith("id,price,carat,cut")
    assert len(lines) == 4


def test_json_export(tmp_path):
    out = tmp_path / "diamonds.json"
    JSONExporter().export(_catalog(), str(out))
    data = json.loads(out.read_text(encoding="utf-8"))
    assert [d["id"] for d in data] == ["A", "C", "B"]
    assert data[2]["carat"] == 1.0
    assert data[0]["color"] is None
