import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fix_ingest import SubscriptionState, fix_from_entry, ingest, to_epoch_seconds
from fix_storage import Fix, FixStorage


class MemoryFixStorage:
    def __init__(self):
        self.fixes = []

    def write_fix(self, fix):
        self.fixes.append(fix)


class FailingFixStorage:
    def __init__(self, fail_for):
        self.fail_for = fail_for
        self.fixes = []

    def write_fix(self, fix):
        if fix.vehicle_id == self.fail_for:
            raise OSError("disk full")
        self.fixes.append(fix)


def _entry(vehicle_id, lon, lat, ts="2018-11-20T14:03:12.000Z", variant=4102):
    return {
        "id": vehicle_id,
        "type": "Bus",
        "linea": {"type": "Number", "value": variant},
        "location": {"type": "geo:json", "value": {"type": "Point", "coordinates": [lon, lat]}},
        "timestamp": {"type": "DateTime", "value": ts},
    }


def _notification(subscription_id, *entries):
    return {"subscriptionId": subscription_id, "data": list(entries)}


def test_entries_become_fixes_with_swapped_coordinates():
    storage = MemoryFixStorage()
    subscription = SubscriptionState("sub-1")

    written = ingest(
        _notification(
            "sub-1",
            _entry("bus-1", -56.1645, -34.9011),
            _entry("bus-2", -56.1819, -34.8836, ts="2018-11-20T14:03:20Z"),
        ),
        subscription,
        storage,
    )

    assert written == 2
    assert storage.fixes == [
        Fix(vehicle_id="bus-1", variant=4102, lat=-34.9011, lon=-56.1645, timestamp=1542722592),
        Fix(vehicle_id="bus-2", variant=4102, lat=-34.8836, lon=-56.1819, timestamp=1542722600),
    ]


def test_foreign_subscription_is_discarded():
    storage = MemoryFixStorage()
    written = ingest(
        _notification("someone-else", _entry("bus-1", -56.1645, -34.9011)),
        SubscriptionState("sub-1"),
        storage,
    )
    assert written == 0
    assert storage.fixes == []


def test_notifications_are_discarded_before_subscribing():
    storage = MemoryFixStorage()
    written = ingest(_notification(None, _entry("bus-1", -56.1645, -34.9011)), SubscriptionState(), storage)
    assert written == 0
    assert storage.fixes == []


def test_malformed_entries_are_skipped():
    storage = MemoryFixStorage()
    broken_location = _entry("bus-2", -56.18, -34.88)
    broken_location["location"] = {"value": {"type": "Point", "coordinates": [-56.18]}}
    no_timestamp = _entry("bus-3", -56.18, -34.88)
    del no_timestamp["timestamp"]

    written = ingest(
        _notification("sub-1", _entry("bus-1", -56.1645, -34.9011), broken_location, no_timestamp, "junk"),
        SubscriptionState("sub-1"),
        storage,
    )

    assert written == 1
    assert [fix.vehicle_id for fix in storage.fixes] == ["bus-1"]


def test_write_failures_do_not_stop_the_batch():
    storage = FailingFixStorage(fail_for="bus-1")
    written = ingest(
        _notification("sub-1", _entry("bus-1", -56.1645, -34.9011), _entry("bus-2", -56.1819, -34.8836)),
        SubscriptionState("sub-1"),
        storage,
    )
    assert written == 1
    assert [fix.vehicle_id for fix in storage.fixes] == ["bus-2"]


def test_ingested_fix_reads_back_for_crossing_queries(tmp_path):
    storage = FixStorage(tmp_path)
    ingest(_notification("sub-1", _entry("bus-1", -56.1645123, -34.9011456)), SubscriptionState("sub-1"), storage)

    [fix] = storage.query_vehicle_fixes("bus-1")

    assert fix.vehicle_id == "bus-1"
    assert fix.lat == -34.9011456
    assert fix.lon == -56.1645123
    assert fix.timestamp == 1542722592


def test_subscription_replace():
    subscription = SubscriptionState("sub-1")
    subscription.replace("sub-2", "https://eta.example.com/orion/accumulate")
    assert not subscription.accepts("sub-1")
    assert subscription.accepts("sub-2")
    assert subscription.callback_url == "https://eta.example.com/orion/accumulate"


def test_timestamp_conversion():
    assert to_epoch_seconds("2018-11-20T14:03:12Z") == 1542722592
    assert to_epoch_seconds("2018-11-20T11:03:12-03:00") == 1542722592
    assert to_epoch_seconds(1542722592500) == 1542722592
    with pytest.raises(ValueError):
        to_epoch_seconds(None)


def test_fix_from_entry_accepts_plain_attribute_values():
    entry = {
        "id": "bus-9",
        "linea": "4102",
        "location": {"coordinates": [-56.1645, -34.9011]},
        "timestamp": "2018-11-20T14:03:12Z",
    }
    fix = fix_from_entry(entry)
    assert (fix.variant, fix.lat, fix.lon) == (4102, -34.9011, -56.1645)
