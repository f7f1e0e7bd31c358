"""Exception hierarchy for the bus ETA service."""

from __future__ import annotations

from typing import Optional


class EtaError(Exception):
    """Base exception for all ETA service errors."""


class StopNotFoundError(EtaError):
    """The requested stop does not belong to the line variant."""

    def __init__(self, variant: int, stop_id: int) -> None:
        self.variant = variant
        self.stop_id = stop_id
        super().__init__(f"stop {stop_id} not found for variant {variant}")


class UpstreamUnavailableError(EtaError):
    """An external service call failed, timed out or returned garbage."""

    def __init__(
        self,
        message: str,
        *,
        service: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class IncompleteHistoryError(EtaError):
    """No fix in the vehicle history fell within tolerance of a reference point.

    ``missing`` names the crossing that could not be established:
    ``"origin"``, ``"destination"`` or ``"origin,destination"``.
    """

    def __init__(self, vehicle_id: str, missing: str) -> None:
        self.vehicle_id = vehicle_id
        self.missing = missing
        super().__init__(f"no {missing} crossing found in history of vehicle {vehicle_id}")


class ScheduleUnavailableError(EtaError):
    """The static schedule file could not be read."""


__all__ = [
    "EtaError",
    "IncompleteHistoryError",
    "ScheduleUnavailableError",
    "StopNotFoundError",
    "UpstreamUnavailableError",
]
