#!/usr/bin/env python3
# RuckFusion - sensor fusion and energy expenditure engine for load carriage
# Copyright (C) 2024 RuckFusion Contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Tests for the two-dimensional location filter."""
import math
import os
import sys

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.helpers import LocalFrame
from fusion.location import LocationFusionFilter
from fusion.structures import Coordinate, MovementType, PositionAccuracy, PositionFix

ORIGIN = (47.3769, 8.5417)
FRAME = LocalFrame(*ORIGIN)


def fix_at(x, y, t, accuracy=5.0, speed=None, course=None):
    lat, lon = FRAME.to_geodetic(x, y)
    return PositionFix(Coordinate(lat, lon), accuracy, t, speed=speed, course=course)


def walk_north(filt, until, speed=1.4):
    """Feed one fix per second with ±2 m east-west noise."""
    outputs = []
    for t in range(0, until + 1):
        east = 2.0 if t % 2 else -2.0
        outputs.append(filt.process_fix(fix_at(east, speed * t, float(t), speed=speed, course=0.0),
                                        MovementType.WALKING))
    return outputs


def test_first_fix_initializes_at_fix():
    filt = LocationFusionFilter()
    out = filt.process_fix(fix_at(0.0, 0.0, 0.0, accuracy=4.0, speed=1.0, course=90.0))
    assert filt.initialized
    assert out.coordinate.latitude == pytest.approx(ORIGIN[0])
    assert out.coordinate.longitude == pytest.approx(ORIGIN[1])
    assert out.speed == pytest.approx(1.0)
    assert out.course == pytest.approx(90.0)
    assert out.horizontal_uncertainty == pytest.approx(4.0)
    assert not out.predicted


@pytest.mark.parametrize("accuracy,lat", [
    (0.0, ORIGIN[0]),
    (-1.0, ORIGIN[0]),
    (150.0, ORIGIN[0]),
    (float('nan'), ORIGIN[0]),
    (5.0, float('nan')),
    (5.0, 95.0),
])
def test_invalid_fixes_are_rejected(accuracy, lat):
    filt = LocationFusionFilter()
    fix = PositionFix(Coordinate(lat, ORIGIN[1]), accuracy, 0.0)
    assert filt.process_fix(fix) is None
    assert not filt.initialized
    assert filt.rejected_fixes == 1


def test_tracks_straight_walk():
    filt = LocationFusionFilter()
    outputs = walk_north(filt, 30)
    last = outputs[-1]
    assert last.speed == pytest.approx(1.4, abs=0.3)
    assert last.course == pytest.approx(0.0, abs=10.0) or last.course == pytest.approx(360.0, abs=10.0)
    x, y = FRAME.to_local(last.coordinate.latitude, last.coordinate.longitude)
    assert y == pytest.approx(1.4 * 30, abs=4.0)
    assert abs(x) < 3.0
    assert last.accuracy == PositionAccuracy.GOOD


def test_old_fix_is_ignored():
    filt = LocationFusionFilter()
    walk_north(filt, 5)
    assert filt.process_fix(fix_at(0.0, 0.0, 3.0), MovementType.WALKING) is None


def test_stationary_fixes_do_not_move_position():
    filt = LocationFusionFilter()
    filt.process_fix(fix_at(0.0, 0.0, 0.0, speed=0.0))
    for t in range(1, 30):
        east = 3.0 if t % 2 else -3.0
        out = filt.process_fix(fix_at(east, 3.0, float(t)), MovementType.STATIONARY)
        assert out.speed == 0.0
        assert out.coordinate.latitude == pytest.approx(ORIGIN[0], abs=1e-9)
        assert out.coordinate.longitude == pytest.approx(ORIGIN[1], abs=1e-9)


def test_stationary_suppression_is_bounded():
    filt = LocationFusionFilter()
    filt.process_fix(fix_at(0.0, 0.0, 0.0, speed=0.0))
    outputs = [filt.process_fix(fix_at(0.0, 4.0, float(t)), MovementType.STATIONARY) for t in range(1, 70)]
    # Past the suppression limit one measurement update pulls the estimate north
    assert outputs[-1].coordinate.latitude > ORIGIN[0]
    assert all(o.speed == 0.0 for o in outputs)


def test_gap_predicts_then_degrades_to_poor():
    filt = LocationFusionFilter()
    walk_north(filt, 10)
    assert not filt.in_gap(20.0)
    assert filt.in_gap(25.0)

    predicted = filt.predict(25.0)
    assert predicted.predicted
    assert predicted.accuracy == PositionAccuracy.DEGRADED
    _, y = FRAME.to_local(predicted.coordinate.latitude, predicted.coordinate.longitude)
    assert y > 14.0

    late = filt.predict(75.0)
    assert late.accuracy == PositionAccuracy.POOR
    assert filt.inflated

    recovered = filt.process_fix(fix_at(0.0, 100.0, 76.0), MovementType.WALKING)
    assert recovered.accuracy == PositionAccuracy.GOOD
    assert not filt.inflated


def test_predict_before_first_fix_returns_none():
    assert LocationFusionFilter().predict(10.0) is None


def test_predict_stationary_holds_position():
    filt = LocationFusionFilter()
    walk_north(filt, 10)
    before = filt.predict(11.5, moving=False)
    after = filt.predict(30.0, moving=False)
    assert after.speed == 0.0
    assert after.coordinate.latitude == pytest.approx(before.coordinate.latitude, abs=1e-9)
    assert math.isfinite(after.horizontal_uncertainty)
