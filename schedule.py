"""
Static timetable lookup.

The schedule export is a semicolon-delimited CSV with a header row; each row
is one scheduled passage and ``cod_variante`` names the line variant it
belongs to.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, List

from eta_exceptions import ScheduleUnavailableError

DEFAULT_SCHEDULE_PATH = Path("data/uptu_pasada_circular.csv")
VARIANT_COLUMN = "cod_variante"


def _parse_int(value: str):
    try:
        return int(value.strip(), 10)
    except (AttributeError, ValueError):
        return None


def get_bus_schedules(variant: int, path: Path = DEFAULT_SCHEDULE_PATH) -> List[Dict[str, str]]:
    """Rows of the schedule whose ``cod_variante`` equals ``variant``."""
    try:
        with path.open("r", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f, delimiter=";")
            if reader.fieldnames is None or VARIANT_COLUMN not in reader.fieldnames:
                raise ScheduleUnavailableError(f"{path} has no {VARIANT_COLUMN} column")
            return [row for row in reader if _parse_int(row.get(VARIANT_COLUMN)) == variant]
    except OSError as exc:
        raise ScheduleUnavailableError(f"cannot read schedule {path}: {exc}") from exc


__all__ = ["DEFAULT_SCHEDULE_PATH", "VARIANT_COLUMN", "get_bus_schedules"]
