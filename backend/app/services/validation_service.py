r"""backend\app\services\validation_service.py"""

from __future__ import annotations

import os

import pandas as pd

from ..core.config import get_settings
from ..models.schemas import HistoryDay
from .io_utils import load_history

REQUIRED_DAY_KEYS = ["date"]
RECOMMENDED_DAY_KEYS = ["total", "slots"]


class ValidationService:
    def __init__(self, history_path: str | None = None):
        self.history_path = history_path or get_settings().history_path

    def run(self) -> dict:
        checks = []

        def add(name: str, ok: bool, msg: str = "") -> None:
            checks.append({"name": name, "ok": bool(ok), "message": msg})

        path = self.history_path
        add("file_history_exists", os.path.exists(path), path)

        if os.path.exists(path):
            try:
                records = load_history(path)
            except ValueError as exc:
                add("history_json_ok", False, str(exc))
                records = None
            else:
                add("history_json_ok", True, f"{len(records)} records")

            if records:
                df = pd.DataFrame.from_records(records)
                ok = all(c in df.columns for c in REQUIRED_DAY_KEYS)
                add("history_keys_ok", ok, f"have: {list(df.columns)[:8]}")
                missing = [c for c in RECOMMENDED_DAY_KEYS if c not in df.columns]
                add("history_totals_present", not missing, f"missing: {missing}" if missing else "")

                if ok:
                    dates = pd.to_datetime(df["date"], errors="coerce", format="%Y-%m-%d")
                    bad = int(dates.isna().sum())
                    add("dates_parse", bad == 0, f"{bad} unparseable dates")
                    dupes = int(dates.dropna().duplicated().sum())
                    add("dates_unique", dupes == 0, f"{dupes} duplicated dates")

                    specials = 0
                    for record in records:
                        try:
                            day = HistoryDay.from_raw(record)
                        except (ValueError, TypeError):
                            continue
                        if day.special and day.special != "none":
                            specials += 1
                    add("training_days_available", specials < len(records), f"{specials} special days")

        overall = all(x["ok"] for x in checks)
        return {"ok": overall, "checks": checks}
