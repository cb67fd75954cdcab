from __future__ import annotations

import io
import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from ..models.schemas import parse_day, sunday_weekday

SLOT_COLUMN = "slot"
ORDERS_COLUMN = "commandes_reservees"


def load_history(path: str | Path) -> List[Dict[str, Any]]:
    """Load the day history stored as a JSON array.

    Parameters
    ----------
    path:
        Location of ``history.json``.  Each element is a raw day record
        ``{date, total, slots, weekday?, special?}``.

    Raises ``FileNotFoundError`` when the file is missing and ``ValueError``
    when it does not hold an array of objects.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"history file not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON array of day records")
    return [record for record in payload if isinstance(record, dict)]


def parse_order_csv(source: str | Path, day: date | str) -> Dict[str, Any]:
    """Aggregate a per-order slot export into a single day record.

    ``source`` is either a path to the CSV or its text content.  Header names
    are matched case-insensitively; rows without a slot are ignored and
    non-numeric order counts count as zero.
    """

    if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source and Path(source).exists()):
        frame = pd.read_csv(source, dtype=str)
    else:
        frame = pd.read_csv(io.StringIO(str(source).strip()), dtype=str)

    frame.columns = [str(col).strip().lower() for col in frame.columns]
    if SLOT_COLUMN not in frame.columns or ORDERS_COLUMN not in frame.columns:
        raise ValueError(f"order CSV must have '{SLOT_COLUMN}' and '{ORDERS_COLUMN}' columns")

    frame[SLOT_COLUMN] = frame[SLOT_COLUMN].fillna("").str.strip()
    frame = frame[frame[SLOT_COLUMN] != ""]
    orders = pd.to_numeric(frame[ORDERS_COLUMN], errors="coerce").fillna(0).astype(int)
    per_slot = orders.groupby(frame[SLOT_COLUMN], sort=False).sum()

    slots = {str(slot): int(value) for slot, value in per_slot.items()}
    target = parse_day(day)
    return {
        "date": target.isoformat(),
        "weekday": sunday_weekday(target),
        "total": sum(slots.values()),
        "slots": slots,
    }
