"""
Feed notification ingest.

The live feed delivers notifications shaped like::

    {
      "subscriptionId": "5c1f...",
      "data": [
        {
          "id": "bus-1203",
          "type": "Bus",
          "linea": {"value": 4102},
          "location": {"value": {"type": "Point", "coordinates": [-56.18, -34.90]}},
          "timestamp": {"value": "2018-11-20T14:03:12.000Z"}
        }
      ]
    }

Only notifications for the subscription registered at startup are stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from fix_storage import Fix, FixStorage


@dataclass
class SubscriptionState:
    """The feed subscription this process registered; None until startup subscribes."""
    subscription_id: Optional[str] = None
    callback_url: Optional[str] = None

    def replace(self, subscription_id: str, callback_url: Optional[str] = None) -> None:
        self.subscription_id = subscription_id
        if callback_url is not None:
            self.callback_url = callback_url

    def accepts(self, subscription_id: Any) -> bool:
        return self.subscription_id is not None and subscription_id == self.subscription_id


def parse_iso8601_utc(value: str) -> datetime:
    text = value.strip()
    if text.lower().endswith("z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt


def to_epoch_seconds(value: Any) -> int:
    """ISO-8601 strings or epoch milliseconds to integer epoch seconds."""
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp {value!r}")
    if isinstance(value, (int, float)):
        return int(value // 1000)
    if isinstance(value, str):
        return int(parse_iso8601_utc(value).timestamp())
    raise ValueError(f"invalid timestamp {value!r}")


def _value(entry: Mapping[str, Any], name: str) -> Any:
    raw = entry.get(name)
    if isinstance(raw, Mapping) and "value" in raw:
        return raw["value"]
    return raw


def fix_from_entry(entry: Mapping[str, Any]) -> Fix:
    """Build a Fix from one notification entry; raises ValueError when malformed."""
    vehicle_id = entry.get("id")
    if not vehicle_id:
        raise ValueError("entry has no id")
    location = _value(entry, "location")
    coords = location.get("coordinates") if isinstance(location, Mapping) else None
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        raise ValueError(f"entry {vehicle_id} has no coordinates")
    try:
        variant = int(_value(entry, "linea"))
        lon = float(coords[0])
        lat = float(coords[1])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"entry {vehicle_id}: {exc}") from exc
    return Fix(
        vehicle_id=str(vehicle_id),
        variant=variant,
        lat=lat,
        lon=lon,
        timestamp=to_epoch_seconds(_value(entry, "timestamp")),
    )


def ingest(notification: Mapping[str, Any], subscription: SubscriptionState, storage: FixStorage) -> int:
    """Store every entry of ``notification`` as a Fix. Returns the number written."""
    subscription_id = notification.get("subscriptionId")
    if not subscription.accepts(subscription_id):
        print(
            f"[ingest] discarding notification for subscription {subscription_id!r} "
            f"(active={subscription.subscription_id!r})"
        )
        return 0

    entries = notification.get("data") or []
    written = 0
    for entry in entries:
        if not isinstance(entry, Mapping):
            print(f"[ingest] skipping non-object entry: {entry!r}")
            continue
        try:
            fix = fix_from_entry(entry)
        except ValueError as exc:
            print(f"[ingest] skipping malformed entry: {exc}")
            continue
        try:
            storage.write_fix(fix)
        except OSError as exc:
            print(f"[ingest] failed to store fix for {fix.vehicle_id}: {exc}")
            continue
        written += 1
    return written


__all__ = [
    "SubscriptionState",
    "fix_from_entry",
    "ingest",
    "parse_iso8601_utc",
    "to_epoch_seconds",
]
