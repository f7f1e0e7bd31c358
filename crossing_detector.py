"""
Crossing detection over a vehicle's position history.

A vehicle "crossed" a reference point when one of its fixes lies within the
distance tolerance of that point. The detector walks the history once, most
recent fix first, and keeps the timestamp of every fix that qualifies as an
origin (near point A) or destination (near point B) crossing. Later fixes in
the scan overwrite earlier ones, so each crossing ends up at the oldest
qualifying fix.

Legacy gate
-----------
The deployed detector gated the origin crossing on the *previous* fix's
distance to B instead of the current fix's distance to A. ``legacy_gate=True``
reproduces that behaviour; the default gates each crossing on its own
distance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from fix_storage import Fix
from geometry import Point, haversine

CROSSING_TOLERANCE_M = 90.0

# Seed for the running distance to B; just outside the tolerance.
SENTINEL_DISTANCE_M = 100.0


@dataclass
class Crossings:
    origin_ts: Optional[int] = None
    destination_ts: Optional[int] = None

    @property
    def complete(self) -> bool:
        return self.origin_ts is not None and self.destination_ts is not None

    @property
    def missing(self) -> str:
        labels = []
        if self.origin_ts is None:
            labels.append("origin")
        if self.destination_ts is None:
            labels.append("destination")
        return ",".join(labels)


def find_crossings(
    fixes: Iterable[Fix],
    point_a: Point,
    point_b: Point,
    *,
    tolerance_m: float = CROSSING_TOLERANCE_M,
    legacy_gate: bool = False,
) -> Crossings:
    """Scan ``fixes`` (most recent first) for passages near A and B."""
    crossings = Crossings()
    d_b = SENTINEL_DISTANCE_M
    for fix in fixes:
        d_a = haversine(point_a, fix.point)
        gate = d_b if legacy_gate else d_a
        if gate < tolerance_m:
            crossings.origin_ts = fix.timestamp

        d_b = haversine(point_b, fix.point)
        if d_b < tolerance_m:
            crossings.destination_ts = fix.timestamp
    return crossings


def elapsed_seconds(t1: int, t2: int) -> int:
    """Absolute span between two epoch-second timestamps, in seconds.

    The span is split into days/hours/minutes/seconds and recombined.
    """
    res = abs(int(t1) - int(t2))
    days, rem = divmod(res, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    return days * 24 * 60 * 60 + hours * 60 * 60 + minutes * 60 + seconds


__all__ = [
    "CROSSING_TOLERANCE_M",
    "Crossings",
    "SENTINEL_DISTANCE_M",
    "elapsed_seconds",
    "find_crossings",
]
