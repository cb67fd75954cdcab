from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.services.io_utils import load_history, parse_order_csv
from backend.app.services.validation_service import ValidationService


def test_load_history_reads_array(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text(
        json.dumps([{"date": "2024-01-01", "total": 12, "slots": {"08-10": 12}}, "junk"]),
        encoding="utf-8",
    )

    records = load_history(path)

    assert records == [{"date": "2024-01-01", "total": 12, "slots": {"08-10": 12}}]


def test_load_history_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_history(tmp_path / "absent.json")


@pytest.mark.parametrize("content", ['{"date": "2024-01-01"}', "not json"])
def test_load_history_rejects_non_array(tmp_path: Path, content: str) -> None:
    path = tmp_path / "history.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError):
        load_history(path)


def test_parse_order_csv_sums_slots() -> None:
    text = "Slot,Commandes_Reservees\n08-10,3\n10-12,abc\n08-10,2\n,5\n18-20,4\n"

    record = parse_order_csv(text, "2024-01-01")

    assert record == {
        "date": "2024-01-01",
        "weekday": 1,
        "total": 9,
        "slots": {"08-10": 5, "10-12": 0, "18-20": 4},
    }


def test_parse_order_csv_from_file(tmp_path: Path) -> None:
    path = tmp_path / "orders.csv"
    path.write_text("slot,commandes_reservees,client\n14-16,7,x\n", encoding="utf-8")

    record = parse_order_csv(path, "2024-01-07")

    assert record["weekday"] == 0
    assert record["total"] == 7


def test_parse_order_csv_requires_columns() -> None:
    with pytest.raises(ValueError):
        parse_order_csv("slot,orders\n08-10,3\n", "2024-01-01")


def test_validation_service_reports_checks(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text(
        json.dumps(
            [
                {"date": "2024-01-01", "total": 10, "slots": {}},
                {"date": "2024-01-01", "total": 11, "slots": {}, "special": "promo"},
                {"date": "bad", "total": 1, "slots": {}},
            ]
        ),
        encoding="utf-8",
    )

    result = ValidationService(history_path=str(path)).run()
    checks = {check["name"]: check["ok"] for check in result["checks"]}

    assert checks["file_history_exists"] is True
    assert checks["history_json_ok"] is True
    assert checks["dates_parse"] is False
    assert checks["dates_unique"] is False
    assert checks["training_days_available"] is True
    assert result["ok"] is False


def test_validation_service_missing_file(tmp_path: Path) -> None:
    result = ValidationService(history_path=str(tmp_path / "history.json")).run()

    assert result["ok"] is False
    assert result["checks"][0]["name"] == "file_history_exists"
