"""Async client for the Orion context broker (live bus positions and feed subscription)."""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import httpx

from eta_exceptions import UpstreamUnavailableError
from geometry import Point

DEFAULT_NEAR_MAX_DISTANCE_M = 100.0
BUS_ENTITY_TYPE = "Bus"
NOTIFIED_ATTRS = ["location", "linea", "timestamp"]


class OrionClient:
    """Minimal NGSI v2 client: geo-query bus entities and manage the location subscription."""

    def __init__(
        self,
        base_url: str,
        *,
        service: Optional[str] = None,
        service_path: Optional[str] = None,
        near_max_distance_m: float = DEFAULT_NEAR_MAX_DISTANCE_M,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service = service
        self._service_path = service_path
        self._near_max_distance_m = near_max_distance_m
        self._timeout = httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0))
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_env(cls) -> "OrionClient":
        """Build an ``OrionClient`` using environment configuration.

        * ``ORION_BASE`` - Example: ``http://orion:1026`` (required)
        * ``ORION_SERVICE`` / ``ORION_SERVICE_PATH`` - FIWARE tenant headers (optional)
        * ``ORION_NEAR_MAX_DISTANCE_M`` - radius of the "near" geo-query (default 100)
        * ``ORION_HTTP_TIMEOUT_S`` - per-request timeout (default 10)
        """

        base_url = (os.getenv("ORION_BASE") or "").strip()
        if not base_url:
            raise RuntimeError("Missing required environment variables: ORION_BASE")

        return cls(
            base_url=base_url,
            service=(os.getenv("ORION_SERVICE") or "").strip() or None,
            service_path=(os.getenv("ORION_SERVICE_PATH") or "").strip() or None,
            near_max_distance_m=float(os.getenv("ORION_NEAR_MAX_DISTANCE_M", str(DEFAULT_NEAR_MAX_DISTANCE_M))),
            timeout_s=float(os.getenv("ORION_HTTP_TIMEOUT_S", "10")),
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._service:
            headers["Fiware-Service"] = self._service
        if self._service_path:
            headers["Fiware-ServicePath"] = self._service_path
        return headers

    async def get_buses_of_variant_near_to(self, variant: int, point: Point) -> List[Dict[str, Any]]:
        """Bus entities of ``variant`` near ``point``, in the broker's proximity order."""
        client = await self._ensure_client()
        lat, lon = point
        params = {
            "type": BUS_ENTITY_TYPE,
            "q": f"linea=={variant}",
            "georel": f"near;maxDistance:{self._near_max_distance_m:g}",
            "geometry": "point",
            "coords": f"{lat},{lon}",
        }
        url = f"{self._base_url}/v2/entities"
        try:
            response = await client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailableError(
                f"orion entity query failed: {exc.response.status_code}",
                service="orion",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"orion entity query failed: {exc}", service="orion") from exc
        except ValueError as exc:
            raise UpstreamUnavailableError("invalid orion response", service="orion") from exc
        if not isinstance(data, list):
            raise UpstreamUnavailableError("unexpected orion response", service="orion")
        return data

    async def subscribe_to_bus_location_changes(self, callback_url: str) -> str:
        """Register ``callback_url`` for bus location notifications; return the subscription id."""
        client = await self._ensure_client()
        payload = {
            "description": "Bus location changes",
            "subject": {
                "entities": [{"idPattern": ".*", "type": BUS_ENTITY_TYPE}],
                "condition": {"attrs": ["location"]},
            },
            "notification": {
                "http": {"url": callback_url},
                "attrs": NOTIFIED_ATTRS,
            },
        }
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        try:
            response = await client.post(f"{self._base_url}/v2/subscriptions", json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailableError(
                f"orion subscription failed: {exc.response.status_code}",
                service="orion",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"orion subscription failed: {exc}", service="orion") from exc

        # Location: /v2/subscriptions/<id>
        location = response.headers.get("Location") or ""
        subscription_id = location.rstrip("/").rsplit("/", 1)[-1] if location else ""
        if not subscription_id:
            raise UpstreamUnavailableError("orion subscription response carried no id", service="orion")
        return subscription_id

    async def unsubscribe(self, subscription_id: str) -> None:
        client = await self._ensure_client()
        try:
            response = await client.delete(
                f"{self._base_url}/v2/subscriptions/{subscription_id}",
                headers=self._headers(),
            )
            if response.status_code != 404:
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"orion unsubscribe failed: {exc}", service="orion") from exc


__all__ = ["OrionClient"]
