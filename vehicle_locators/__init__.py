"""
Vehicle Locators Module

This module provides a modular interface for answering "which vehicle of a
line variant passed this stop last". Different data sources can implement
their own locators by subclassing LastVehicleLocator.

Example usage:
    from vehicle_locators.history import HistoryLastVehicleLocator

    locator = HistoryLastVehicleLocator(storage=fix_storage)
    sighting = await locator.find_last_vehicle(variant=4102, point=(-34.90, -56.18))
    # Returns: VehicleSighting(vehicle_id=..., lat=..., lon=..., timestamp=...) or None
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from geometry import Point


@dataclass
class VehicleSighting:
    """A vehicle observed near a reference point."""
    vehicle_id: str
    lat: float
    lon: float
    timestamp: Optional[int] = None  # epoch seconds

    @property
    def point(self) -> Point:
        return (self.lat, self.lon)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "vehicle_id": self.vehicle_id,
            "lat": self.lat,
            "lon": self.lon,
            "timestamp": self.timestamp,
        }


class LastVehicleLocator(ABC):
    """
    Abstract base class for "last vehicle near a point" lookups.

    The locator is handed the line variant and the stop position and must
    return the vehicle that most recently passed within its tolerance of
    that position, or None when nothing qualifies. Lookup failures of an
    external source should surface as UpstreamUnavailableError.
    """

    @abstractmethod
    async def find_last_vehicle(self, variant: int, point: Point) -> Optional[VehicleSighting]:
        """Return the most recent vehicle of ``variant`` seen near ``point``."""
        pass

    def get_source_name(self) -> str:
        return "unknown"


# Export public API
__all__ = [
    "LastVehicleLocator",
    "VehicleSighting",
]
