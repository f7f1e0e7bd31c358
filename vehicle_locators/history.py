"""
History-backed last vehicle locator.

Answers "last vehicle near the stop" from the fixes collected by the ingest
endpoint: the newest fix of the variant lying within the tolerance of the
stop wins. Only fixes inside the lookback window count, so a bus seen at the
stop days ago is not reported.
"""

from __future__ import annotations

from typing import Callable, Optional
import time

from crossing_detector import CROSSING_TOLERANCE_M
from fix_storage import DEFAULT_LOOKBACK_DAYS, FixStorage, lookback_start
from geometry import Point, within

from . import LastVehicleLocator, VehicleSighting


class HistoryLastVehicleLocator(LastVehicleLocator):
    def __init__(
        self,
        storage: FixStorage,
        *,
        tolerance_m: float = CROSSING_TOLERANCE_M,
        lookback_days: Optional[int] = DEFAULT_LOOKBACK_DAYS,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.tolerance_m = tolerance_m
        self.lookback_days = lookback_days
        self.clock = clock

    async def find_last_vehicle(self, variant: int, point: Point) -> Optional[VehicleSighting]:
        since = lookback_start(self.lookback_days, self.clock())
        for fix in self.storage.query_variant_fixes(variant, since=since):
            if within(point, fix.point, self.tolerance_m):
                return VehicleSighting(
                    vehicle_id=fix.vehicle_id,
                    lat=fix.lat,
                    lon=fix.lon,
                    timestamp=fix.timestamp,
                )
        return None

    def get_source_name(self) -> str:
        return "history"


def history_locator_factory(
    storage: FixStorage,
    tolerance_m: float = CROSSING_TOLERANCE_M,
    lookback_days: Optional[int] = DEFAULT_LOOKBACK_DAYS,
) -> LastVehicleLocator:
    """Build the default locator for a tracker."""
    return HistoryLastVehicleLocator(storage, tolerance_m=tolerance_m, lookback_days=lookback_days)


__all__ = ["HistoryLastVehicleLocator", "history_locator_factory"]
