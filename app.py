"""
Bus ETA Service — next bus and travel-time API (FastAPI)

Purpose
=======
Track buses of a line variant from the live Orion feed and answer, per stop:
which bus is coming next, which bus passed last, and how long a bus takes
between two points according to the positions it reported.

Key features
------------
- Subscribe to bus location changes on startup; store every notified fix.
- Next bus at a stop: geo-query the broker around every upstream stop.
- ETA at a stop: replay the last bus's history between the next bus's
  position and the stop.
- Timetable lookup from the static schedule export.

Run
---
$ uvicorn app:app --reload --port 8080

Environment
-----------
- PYTHON >= 3.10
- pip install fastapi uvicorn httpx pydantic
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
import os
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from crossing_detector import CROSSING_TOLERANCE_M
from eta_exceptions import (
    IncompleteHistoryError,
    ScheduleUnavailableError,
    StopNotFoundError,
    UpstreamUnavailableError,
)
from eta_tracker import EtaTracker
from fix_ingest import SubscriptionState, ingest
from fix_storage import DEFAULT_LOOKBACK_DAYS, FixStorage
from montevideo_client import MontevideoClient
from orion_client import OrionClient
from schedule import DEFAULT_SCHEDULE_PATH, get_bus_schedules
from vehicle_locators.history import history_locator_factory

# ---------------------------
# Config
# ---------------------------
PUBLIC_URL = (os.getenv("PUBLIC_URL") or "").strip().rstrip("/")
FIX_DATA_DIR = Path(os.getenv("FIX_DATA_DIR", "data/fixes"))
SCHEDULE_CSV_PATH = Path(os.getenv("SCHEDULE_CSV_PATH", str(DEFAULT_SCHEDULE_PATH)))
CROSSING_TOLERANCE = float(os.getenv("CROSSING_TOLERANCE_M", str(CROSSING_TOLERANCE_M)))
CROSSING_LEGACY_GATE = os.getenv("CROSSING_LEGACY_GATE", "").lower() in {"1", "true", "yes"}
# 0 keeps the whole history
FIX_LOOKBACK_DAYS: Optional[int] = int(os.getenv("FIX_LOOKBACK_DAYS", str(DEFAULT_LOOKBACK_DAYS))) or None
ORION_SUBSCRIBE_ON_STARTUP = os.getenv("ORION_SUBSCRIBE_ON_STARTUP", "true").lower() in {
    "1",
    "true",
    "yes",
}
ACCUMULATE_PATH = "/orion/accumulate"


class OrionNotification(BaseModel):
    subscriptionId: Optional[str] = None
    data: List[Dict[str, Any]] = Field(default_factory=list)


# ---------------------------
# App & state
# ---------------------------
app = FastAPI(title="Bus ETA Service")
app.state.subscription = SubscriptionState()
app.state.orion_client = None
app.state.montevideo_client = None
app.state.fix_storage = None
app.state.tracker = None


def build_tracker(
    topology: MontevideoClient,
    live_positions: OrionClient,
    storage: FixStorage,
) -> EtaTracker:
    locator = history_locator_factory(storage, CROSSING_TOLERANCE, FIX_LOOKBACK_DAYS)
    print(f"[startup] last vehicle locator={locator.get_source_name()} lookback_days={FIX_LOOKBACK_DAYS}")
    return EtaTracker(
        topology,
        live_positions,
        storage,
        locator,
        tolerance_m=CROSSING_TOLERANCE,
        legacy_crossing_gate=CROSSING_LEGACY_GATE,
        lookback_days=FIX_LOOKBACK_DAYS,
    )


async def subscribe_to_feed() -> Optional[str]:
    """Register the accumulate webhook with Orion and remember the subscription id."""
    client: Optional[OrionClient] = app.state.orion_client
    if client is None:
        print("[orion] client not configured; skipping subscription")
        return None
    if not PUBLIC_URL:
        print("[orion] PUBLIC_URL not set; skipping subscription")
        return None
    callback_url = f"{PUBLIC_URL}{ACCUMULATE_PATH}"
    try:
        subscription_id = await client.subscribe_to_bus_location_changes(callback_url)
    except UpstreamUnavailableError as exc:
        print(f"[orion] subscription failed: {exc}")
        return None
    previous_id = app.state.subscription.subscription_id
    app.state.subscription.replace(subscription_id, callback_url)
    print(f"[orion] subscribed id={subscription_id} callback={callback_url}")
    if previous_id and previous_id != subscription_id:
        try:
            await client.unsubscribe(previous_id)
        except UpstreamUnavailableError as exc:
            print(f"[orion] failed to drop previous subscription {previous_id}: {exc}")
    return subscription_id


@app.on_event("startup")
async def init_clients() -> None:
    try:
        app.state.orion_client = OrionClient.from_env()
    except RuntimeError as exc:
        print(f"[orion] client not configured: {exc}")
        app.state.orion_client = None
    app.state.montevideo_client = MontevideoClient.from_env()
    app.state.fix_storage = FixStorage(FIX_DATA_DIR)
    if app.state.orion_client is not None:
        app.state.tracker = build_tracker(
            app.state.montevideo_client,
            app.state.orion_client,
            app.state.fix_storage,
        )
    print(
        f"[startup] fixes={FIX_DATA_DIR} tolerance_m={CROSSING_TOLERANCE} "
        f"legacy_gate={CROSSING_LEGACY_GATE}"
    )


@app.on_event("startup")
async def init_subscription() -> None:
    if ORION_SUBSCRIBE_ON_STARTUP:
        await subscribe_to_feed()


@app.on_event("shutdown")
async def shutdown_clients() -> None:
    client = getattr(app.state, "orion_client", None)
    subscription_id = app.state.subscription.subscription_id
    if client is not None and subscription_id:
        try:
            await client.unsubscribe(subscription_id)
        except UpstreamUnavailableError as exc:
            print(f"[orion] unsubscribe failed: {exc}")
    if client is not None:
        await client.aclose()
    montevideo_client = getattr(app.state, "montevideo_client", None)
    if montevideo_client is not None:
        await montevideo_client.aclose()


def _get_tracker() -> EtaTracker:
    tracker = getattr(app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(status_code=503, detail="eta tracker unavailable")
    return tracker


def _get_storage() -> FixStorage:
    storage = getattr(app.state, "fix_storage", None)
    if storage is None:
        raise HTTPException(status_code=503, detail="fix storage unavailable")
    return storage


def _upstream_error(exc: UpstreamUnavailableError) -> HTTPException:
    print(f"[eta] upstream {exc.service or 'service'} unavailable: {exc}")
    return HTTPException(status_code=502, detail=f"{exc.service or 'upstream'} unavailable")


# ---------------------------
# Health
# ---------------------------
@app.get("/v1/health")
async def health():
    return {
        "ok": getattr(app.state, "tracker", None) is not None,
        "subscription_id": app.state.subscription.subscription_id,
    }


# ---------------------------
# Schedules & stops
# ---------------------------
@app.get("/v1/variants/{variant}/schedules")
def variant_schedules(variant: int):
    try:
        rows = get_bus_schedules(variant, SCHEDULE_CSV_PATH)
    except ScheduleUnavailableError as exc:
        print(f"[schedule] {exc}")
        raise HTTPException(status_code=503, detail="schedule unavailable") from exc
    return {"variant": variant, "schedules": rows}


@app.get("/v1/variants/{variant}/stops")
async def variant_stops(variant: int):
    tracker = _get_tracker()
    try:
        stops = await tracker.get_variant_stops(variant)
    except UpstreamUnavailableError as exc:
        raise _upstream_error(exc) from exc
    return {"variant": variant, "stops": [stop.to_dict() for stop in stops]}


# ---------------------------
# Next / last bus, ETA
# ---------------------------
@app.get("/v1/variants/{variant}/stops/{stop_id}/next_bus")
async def next_bus(variant: int, stop_id: int):
    tracker = _get_tracker()
    try:
        candidate = await tracker.next_vehicle(variant, stop_id)
    except StopNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UpstreamUnavailableError as exc:
        raise _upstream_error(exc) from exc
    if candidate is None:
        return {"status": "no_vehicle", "vehicle": None}
    return {"status": "ok", "vehicle": candidate.to_dict()}


@app.get("/v1/variants/{variant}/stops/{stop_id}/last_bus")
async def last_bus(variant: int, stop_id: int):
    tracker = _get_tracker()
    try:
        sighting = await tracker.last_vehicle_near_stop(variant, stop_id)
    except StopNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UpstreamUnavailableError as exc:
        raise _upstream_error(exc) from exc
    if sighting is None:
        return {"status": "no_vehicle", "vehicle": None}
    return {"status": "ok", "vehicle": sighting.to_dict()}


@app.get("/v1/variants/{variant}/stops/{stop_id}/eta")
async def eta(variant: int, stop_id: int):
    tracker = _get_tracker()
    try:
        seconds = await tracker.eta_at_stop(variant, stop_id)
    except StopNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UpstreamUnavailableError as exc:
        raise _upstream_error(exc) from exc
    except IncompleteHistoryError as exc:
        return {"status": "incomplete_history", "eta_seconds": None, "missing": exc.missing}
    if seconds is None:
        return {"status": "no_vehicle", "eta_seconds": None}
    return {"status": "ok", "eta_seconds": seconds}


@app.get("/v1/buses/{bus_id}/elapsed")
def bus_elapsed(
    bus_id: str,
    from_lat: float = Query(...),
    from_lon: float = Query(...),
    to_lat: float = Query(...),
    to_lon: float = Query(...),
):
    tracker = _get_tracker()
    try:
        seconds = tracker.elapsed_between(bus_id, (from_lat, from_lon), (to_lat, to_lon))
    except IncompleteHistoryError as exc:
        return {"status": "incomplete_history", "elapsed_seconds": None, "missing": exc.missing}
    return {"status": "ok", "elapsed_seconds": seconds}


# ---------------------------
# Feed webhook & subscription
# ---------------------------
@app.post(ACCUMULATE_PATH)
def orion_accumulate(payload: OrionNotification):
    storage = _get_storage()
    written = ingest(payload.model_dump(), app.state.subscription, storage)
    return {"ok": True, "stored": written}


@app.post("/v1/subscription/refresh")
async def refresh_subscription():
    if getattr(app.state, "orion_client", None) is None:
        raise HTTPException(status_code=503, detail="orion client not configured")
    subscription_id = await subscribe_to_feed()
    if subscription_id is None:
        raise HTTPException(status_code=502, detail="orion subscription failed")
    return {"ok": True, "subscription_id": subscription_id}
