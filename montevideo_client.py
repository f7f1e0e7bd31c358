"""Async client for the Montevideo open-data stop topology service."""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import httpx

from eta_exceptions import UpstreamUnavailableError

DEFAULT_STOPS_URL = "https://www.montevideo.gub.uy/transporteRest/paradas/variante/{variant}"


class MontevideoClient:
    """Fetch the stops served by a line variant."""

    def __init__(
        self,
        stops_url: str = DEFAULT_STOPS_URL,
        *,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if "{variant}" not in stops_url:
            raise ValueError("stops_url must contain a {variant} placeholder")
        self._stops_url = stops_url
        self._timeout = httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0))
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_env(cls) -> "MontevideoClient":
        stops_url = (os.getenv("MONTEVIDEO_STOPS_URL") or "").strip() or DEFAULT_STOPS_URL
        return cls(
            stops_url=stops_url,
            timeout_s=float(os.getenv("MONTEVIDEO_HTTP_TIMEOUT_S", "10")),
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_stops_by_bus_variant(self, variant: int) -> List[Dict[str, Any]]:
        """Raw stop records (``codigoParada``, ``linea``, ``lat``, ``long``, ``ordinal``)."""
        client = await self._ensure_client()
        url = self._stops_url.format(variant=variant)
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailableError(
                f"stop topology request failed: {exc.response.status_code}",
                service="montevideo",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(
                f"stop topology request failed: {exc}", service="montevideo"
            ) from exc
        except ValueError as exc:
            raise UpstreamUnavailableError("invalid stop topology response", service="montevideo") from exc
        if not isinstance(data, list):
            raise UpstreamUnavailableError("unexpected stop topology response", service="montevideo")
        return data


__all__ = ["MontevideoClient"]
