"""
ETA engine.

Combines the stop topology of a line variant, live bus positions near its
stops, and the stored fix history to answer next-bus, last-bus and
travel-time questions for a stop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
import asyncio
import time

from crossing_detector import CROSSING_TOLERANCE_M, elapsed_seconds, find_crossings
from eta_exceptions import IncompleteHistoryError, StopNotFoundError
from fix_storage import DEFAULT_LOOKBACK_DAYS, FixStorage, lookback_start
from geometry import Point
from montevideo_client import MontevideoClient
from orion_client import OrionClient
from vehicle_locators import LastVehicleLocator, VehicleSighting


@dataclass
class Stop:
    """A stop of a line variant; ``ordinal`` is its position in traversal order."""
    stop_id: int
    variant: int
    lat: float
    lon: float
    ordinal: int

    @property
    def point(self) -> Point:
        return (self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stop_id": self.stop_id,
            "variant": self.variant,
            "lat": self.lat,
            "lon": self.lon,
            "ordinal": self.ordinal,
        }


@dataclass
class Candidate:
    """A vehicle reported near one of the upstream stops."""
    vehicle_id: str
    stop_ordinal: int
    lat: float
    lon: float
    variant: Optional[int] = None

    @property
    def point(self) -> Point:
        return (self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vehicle_id": self.vehicle_id,
            "stop_ordinal": self.stop_ordinal,
            "lat": self.lat,
            "lon": self.lon,
            "variant": self.variant,
        }


def _attr_value(entity: Mapping[str, Any], name: str) -> Any:
    # NGSI normalized attributes look like {"value": ..., "type": ...}
    raw = entity.get(name)
    if isinstance(raw, Mapping) and "value" in raw:
        return raw["value"]
    return raw


def stop_from_record(record: Mapping[str, Any]) -> Optional[Stop]:
    """Build a Stop from a topology record, or None when fields are missing."""
    try:
        return Stop(
            stop_id=int(record["codigoParada"]),
            variant=int(record["linea"]),
            lat=float(record["lat"]),
            lon=float(record["long"]),
            ordinal=int(record["ordinal"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def candidate_from_entity(entity: Mapping[str, Any], stop_ordinal: int) -> Optional[Candidate]:
    """Tag a live-position record with the ordinal of the stop it was found near."""
    vehicle_id = entity.get("id")
    location = _attr_value(entity, "location")
    if vehicle_id is None or not isinstance(location, Mapping):
        return None
    coords = location.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    try:
        # GeoJSON order is [lon, lat]
        lon = float(coords[0])
        lat = float(coords[1])
    except (TypeError, ValueError):
        return None
    variant_raw = _attr_value(entity, "linea")
    try:
        variant = int(variant_raw) if variant_raw is not None else None
    except (TypeError, ValueError):
        variant = None
    return Candidate(
        vehicle_id=str(vehicle_id),
        stop_ordinal=stop_ordinal,
        lat=lat,
        lon=lon,
        variant=variant,
    )


def upstream_stops(variant: int, stops: Iterable[Stop], target_stop_id: int) -> List[Stop]:
    """Stops of ``variant`` up to and including the target, earliest first, target last."""
    ordered = sorted((s for s in stops if s.variant == variant), key=lambda s: s.ordinal)
    target = next((s for s in ordered if s.stop_id == target_stop_id), None)
    if target is None:
        raise StopNotFoundError(variant, target_stop_id)
    return [s for s in ordered if s.ordinal <= target.ordinal]


class EtaTracker:
    """
    Correlates live and historical vehicle positions with the stops of a line variant.

    next_vehicle:
    - Query the live-position service once per upstream stop, concurrently
    - Keep the nearest-ranked vehicle of each stop, tagged with the stop ordinal
    - The vehicle found near the highest ordinal wins

    elapsed_between / eta_at_stop:
    - Scan a vehicle's recent fix history (the lookback window) for its passages near two points
    - Report the span between them in seconds

    Any collaborator failure propagates; "nothing found" is returned as None.
    """

    def __init__(
        self,
        topology: MontevideoClient,
        live_positions: OrionClient,
        storage: FixStorage,
        last_vehicle_locator: LastVehicleLocator,
        *,
        tolerance_m: float = CROSSING_TOLERANCE_M,
        legacy_crossing_gate: bool = False,
        lookback_days: Optional[int] = DEFAULT_LOOKBACK_DAYS,
        clock: Callable[[], float] = time.time,
    ):
        self.topology = topology
        self.live_positions = live_positions
        self.storage = storage
        self.last_vehicle_locator = last_vehicle_locator
        self.tolerance_m = tolerance_m
        self.legacy_crossing_gate = legacy_crossing_gate
        self.lookback_days = lookback_days
        self.clock = clock

    async def get_variant_stops(self, variant: int) -> List[Stop]:
        records = await self.topology.get_stops_by_bus_variant(variant)
        stops: List[Stop] = []
        for record in records:
            stop = stop_from_record(record)
            if stop is None or stop.variant != variant:
                continue
            stops.append(stop)
        stops.sort(key=lambda s: s.ordinal)
        return stops

    async def get_variant_stop(self, variant: int, stop_id: int) -> Stop:
        for stop in await self.get_variant_stops(variant):
            if stop.stop_id == stop_id:
                return stop
        raise StopNotFoundError(variant, stop_id)

    async def get_upstream_stops(self, variant: int, stop_id: int) -> List[Stop]:
        return upstream_stops(variant, await self.get_variant_stops(variant), stop_id)

    async def _nearest_at_stop(self, variant: int, stop: Stop) -> Optional[Candidate]:
        entities = await self.live_positions.get_buses_of_variant_near_to(variant, stop.point)
        for entity in entities:
            candidate = candidate_from_entity(entity, stop.ordinal)
            if candidate is not None:
                return candidate
        return None

    async def next_vehicle(self, variant: int, stop_id: int) -> Optional[Candidate]:
        stops = await self.get_upstream_stops(variant, stop_id)
        # gather keeps argument order, so results line up with ascending ordinals
        per_stop = await asyncio.gather(*(self._nearest_at_stop(variant, stop) for stop in stops))
        candidates = [c for c in per_stop if c is not None]
        if not candidates:
            return None
        return candidates[-1]

    async def last_vehicle_near_stop(self, variant: int, stop_id: int) -> Optional[VehicleSighting]:
        stop = await self.get_variant_stop(variant, stop_id)
        return await self.last_vehicle_locator.find_last_vehicle(variant, stop.point)

    def elapsed_between(self, vehicle_id: str, point_a: Point, point_b: Point) -> int:
        """Seconds the vehicle took between its passages near A and near B."""
        since = lookback_start(self.lookback_days, self.clock())
        fixes = self.storage.query_vehicle_fixes(vehicle_id, since=since)
        crossings = find_crossings(
            fixes,
            point_a,
            point_b,
            tolerance_m=self.tolerance_m,
            legacy_gate=self.legacy_crossing_gate,
        )
        if not crossings.complete:
            raise IncompleteHistoryError(vehicle_id, crossings.missing)
        return elapsed_seconds(crossings.origin_ts, crossings.destination_ts)

    async def eta_at_stop(self, variant: int, stop_id: int) -> Optional[int]:
        next_bus, last_bus = await asyncio.gather(
            self.next_vehicle(variant, stop_id),
            self.last_vehicle_near_stop(variant, stop_id),
        )
        if next_bus is None or last_bus is None:
            print(
                f"[eta] no trackable bus variant={variant} stop={stop_id} "
                f"next={'yes' if next_bus else 'no'} last={'yes' if last_bus else 'no'}"
            )
            return None
        return self.elapsed_between(last_bus.vehicle_id, next_bus.point, last_bus.point)


__all__ = [
    "Candidate",
    "EtaTracker",
    "Stop",
    "candidate_from_entity",
    "stop_from_record",
    "upstream_stops",
]
