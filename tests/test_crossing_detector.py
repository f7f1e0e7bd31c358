import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from crossing_detector import elapsed_seconds, find_crossings
from fix_storage import Fix

POINT_A = (-34.9000, -56.1800)
POINT_B = (-34.9100, -56.1800)  # ~1.1 km south of A
FAR = (-34.9500, -56.2500)


def _fix(ts, point, vehicle_id="bus-1"):
    return Fix(vehicle_id=vehicle_id, variant=4102, lat=point[0], lon=point[1], timestamp=ts)


@pytest.mark.parametrize("legacy_gate", [False, True])
def test_origin_and_destination_found_in_descending_history(legacy_gate):
    fixes = [_fix(300, FAR), _fix(200, POINT_B), _fix(100, POINT_A)]

    crossings = find_crossings(fixes, POINT_A, POINT_B, legacy_gate=legacy_gate)

    assert crossings.complete
    assert crossings.origin_ts == 100
    assert crossings.destination_ts == 200
    assert elapsed_seconds(crossings.origin_ts, crossings.destination_ts) == 100


def test_fix_just_off_the_point_still_counts():
    # ~55 m north of A
    near_a = (POINT_A[0] + 0.0005, POINT_A[1])
    crossings = find_crossings([_fix(200, POINT_B), _fix(100, near_a)], POINT_A, POINT_B)
    assert crossings.origin_ts == 100


def test_fix_beyond_tolerance_is_ignored():
    # ~111 m north of A
    off_a = (POINT_A[0] + 0.001, POINT_A[1])
    crossings = find_crossings([_fix(200, POINT_B), _fix(100, off_a)], POINT_A, POINT_B)
    assert crossings.origin_ts is None
    assert crossings.missing == "origin"


def test_later_qualifying_fixes_overwrite_earlier_ones():
    fixes = [
        _fix(500, POINT_B),
        _fix(400, POINT_B),
        _fix(300, FAR),
        _fix(200, POINT_A),
        _fix(100, POINT_A),
    ]
    crossings = find_crossings(fixes, POINT_A, POINT_B)
    assert crossings.destination_ts == 400
    assert crossings.origin_ts == 100


def test_legacy_gate_uses_previous_distance_to_destination():
    fixes = [_fix(300, POINT_B), _fix(200, FAR), _fix(100, POINT_A)]

    symmetric = find_crossings(fixes, POINT_A, POINT_B)
    legacy = find_crossings(fixes, POINT_A, POINT_B, legacy_gate=True)

    assert (symmetric.origin_ts, symmetric.destination_ts) == (100, 300)
    # The fix right after the one near B is taken as origin, wherever it is.
    assert (legacy.origin_ts, legacy.destination_ts) == (200, 300)


def test_no_fix_near_destination_leaves_both_unset_under_legacy_gate():
    fixes = [_fix(200, POINT_A), _fix(100, POINT_A)]

    assert find_crossings(fixes, POINT_A, POINT_B).missing == "destination"
    assert find_crossings(fixes, POINT_A, POINT_B, legacy_gate=True).missing == "origin,destination"


def test_empty_history_has_no_crossings():
    crossings = find_crossings([], POINT_A, POINT_B)
    assert not crossings.complete
    assert crossings.missing == "origin,destination"


def test_custom_tolerance():
    off_a = (POINT_A[0] + 0.001, POINT_A[1])
    crossings = find_crossings([_fix(200, POINT_B), _fix(100, off_a)], POINT_A, POINT_B, tolerance_m=150.0)
    assert crossings.origin_ts == 100


def test_elapsed_seconds_over_several_days_matches_direct_difference():
    start = 1_542_722_592
    end = start + 2 * 86400 + 3 * 3600 + 4 * 60 + 5
    assert elapsed_seconds(start, end) == end - start == 183845
    assert elapsed_seconds(end, start) == end - start


def test_elapsed_seconds_of_identical_timestamps_is_zero():
    assert elapsed_seconds(1_542_722_592, 1_542_722_592) == 0
