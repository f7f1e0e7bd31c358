import asyncio
import sys
import time
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fix_storage import Fix, FixStorage
from vehicle_locators import LastVehicleLocator
from vehicle_locators.history import HistoryLastVehicleLocator, history_locator_factory

STOP = (-34.9050, -56.1800)
# 2018-11-20T15:03:12Z
NOW = 1542726192


def _fix(vehicle_id, ts, lat, lon=-56.1800, variant=4102):
    return Fix(vehicle_id=vehicle_id, variant=variant, lat=lat, lon=lon, timestamp=ts)


def test_most_recent_vehicle_near_stop_wins(tmp_path):
    storage = FixStorage(tmp_path)
    storage.write_fixes([
        _fix("bus-1", 1542722592, -34.9050),
        _fix("bus-2", 1542722700, -34.9051),
        _fix("bus-3", 1542722800, -34.9200),  # far away
        _fix("bus-4", 1542722900, -34.9050, variant=4103),
    ])

    sighting = asyncio.run(HistoryLastVehicleLocator(storage, clock=lambda: NOW).find_last_vehicle(4102, STOP))

    assert sighting.vehicle_id == "bus-2"
    assert sighting.point == (-34.9051, -56.1800)
    assert sighting.timestamp == 1542722700


def test_nothing_near_stop_is_none(tmp_path):
    storage = FixStorage(tmp_path)
    storage.write_fix(_fix("bus-3", 1542722800, -34.9200))
    assert asyncio.run(HistoryLastVehicleLocator(storage, clock=lambda: NOW).find_last_vehicle(4102, STOP)) is None


def test_factory_builds_history_locator(tmp_path):
    locator = history_locator_factory(FixStorage(tmp_path), 50.0)
    assert isinstance(locator, LastVehicleLocator)
    assert locator.get_source_name() == "history"
    assert locator.tolerance_m == 50.0


def test_sightings_older_than_lookback_are_ignored(tmp_path):
    storage = FixStorage(tmp_path)
    now = int(time.time())
    storage.write_fixes([
        _fix("bus-1", now - 3 * 86400, -34.9050),
        _fix("bus-2", now - 600, -34.9200),  # recent but far away
    ])

    locator = HistoryLastVehicleLocator(storage, lookback_days=1, clock=lambda: now)
    assert asyncio.run(locator.find_last_vehicle(4102, STOP)) is None

    unbounded = HistoryLastVehicleLocator(storage, lookback_days=None)
    assert asyncio.run(unbounded.find_last_vehicle(4102, STOP)).vehicle_id == "bus-1"
