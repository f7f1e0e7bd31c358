from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence
import csv
import time

DEFAULT_LOOKBACK_DAYS = 1


def _date_for_timestamp(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat()


@dataclass(frozen=True)
class Fix:
    """A single observed position of a vehicle."""
    vehicle_id: str
    variant: int
    lat: float
    lon: float
    timestamp: int  # epoch seconds

    @property
    def point(self):
        return (self.lat, self.lon)

    def to_row(self) -> List[str]:
        return [
            str(self.timestamp),
            self.vehicle_id,
            str(self.variant),
            repr(self.lat),
            repr(self.lon),
        ]

    def to_dict(self) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "variant": self.variant,
            "lat": self.lat,
            "lon": self.lon,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_row(cls, row: Sequence[str]) -> Optional["Fix"]:
        if len(row) < 5:
            return None
        try:
            return cls(
                vehicle_id=row[1],
                variant=int(row[2]),
                lat=float(row[3]),
                lon=float(row[4]),
                timestamp=int(row[0]),
            )
        except ValueError:
            return None


class FixStorage:
    """Append-only history of vehicle fixes, one CSV file per UTC day."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def _file_for_timestamp(self, ts: int) -> Path:
        return self.base_dir / f"{_date_for_timestamp(ts)}.csv"

    def write_fix(self, fix: Fix) -> None:
        self.write_fixes([fix])

    def write_fixes(self, fixes: Sequence[Fix]) -> None:
        if not fixes:
            return
        self.base_dir.mkdir(parents=True, exist_ok=True)
        grouped_rows: dict[Path, List[List[str]]] = {}
        for fix in fixes:
            path = self._file_for_timestamp(fix.timestamp)
            grouped_rows.setdefault(path, []).append(fix.to_row())

        for path, rows in grouped_rows.items():
            with path.open("a", newline="") as f:
                writer = csv.writer(f)
                writer.writerows(rows)

    def clear(self) -> int:
        if not self.base_dir.exists():
            return 0
        deleted = 0
        for path in self.base_dir.glob("*.csv"):
            try:
                path.unlink()
                deleted += 1
            except FileNotFoundError:
                continue
        return deleted

    def _iter_files(self, since: Optional[int]) -> Iterator[Path]:
        if since is None:
            yield from sorted(self.base_dir.glob("*.csv"))
            return
        current = datetime.fromtimestamp(since, tz=timezone.utc).date()
        end_date = datetime.now(timezone.utc).date()
        while current <= end_date:
            yield self.base_dir / f"{current.isoformat()}.csv"
            current += timedelta(days=1)

    def _iter_fixes(self, since: Optional[int] = None) -> Iterator[Fix]:
        if not self.base_dir.exists():
            return
        for path in self._iter_files(since):
            if not path.exists():
                continue
            with path.open("r", newline="") as f:
                for row in csv.reader(f):
                    fix = Fix.from_row(row)
                    if fix is None:
                        print(f"[fix_storage] skipping malformed row in {path.name}: {row!r}")
                        continue
                    if since is not None and fix.timestamp < since:
                        continue
                    yield fix

    @staticmethod
    def _most_recent_first(fixes: Iterable[Fix]) -> List[Fix]:
        return sorted(fixes, key=lambda fix: fix.timestamp, reverse=True)

    def query_vehicle_fixes(self, vehicle_id: str, since: Optional[int] = None) -> List[Fix]:
        """Fixes of ``vehicle_id``, most recent first.

        With ``since`` (epoch seconds) only the day files from that date up to
        today are read, and older fixes are dropped.
        """
        return self._most_recent_first(
            fix for fix in self._iter_fixes(since) if fix.vehicle_id == vehicle_id
        )

    def query_variant_fixes(self, variant: int, since: Optional[int] = None) -> List[Fix]:
        """Fixes reported for line variant ``variant``, most recent first."""
        return self._most_recent_first(
            fix for fix in self._iter_fixes(since) if fix.variant == variant
        )


def lookback_start(days: Optional[int], now: Optional[float] = None) -> Optional[int]:
    """Epoch second where a ``days`` lookback window opens; None keeps the whole history."""
    if days is None:
        return None
    if now is None:
        now = time.time()
    return int(now) - int(days) * 86400


__all__ = ["DEFAULT_LOOKBACK_DAYS", "Fix", "FixStorage", "lookback_start"]
