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

"""Tests for the event reorder window."""
import os
import sys

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.reorder import ReorderBuffer
from fusion.structures import Coordinate, PositionFix, PressureSample


def sample(t):
    return PressureSample(0.0, t)


def timestamps(events):
    return [e.timestamp for e in events]


def test_events_are_held_for_the_window():
    buf = ReorderBuffer(window=1.0)
    assert buf.push(sample(0.0)) == []
    assert buf.push(sample(0.5)) == []
    assert timestamps(buf.push(sample(1.2))) == [0.0]
    assert len(buf) == 2


def test_out_of_order_events_within_window_are_sorted():
    buf = ReorderBuffer(window=1.0)
    released = []
    for t in (0.0, 0.4, 0.2, 0.9, 0.6, 2.0, 3.5):
        released.extend(buf.push(sample(t)))
    released.extend(buf.drain())
    assert timestamps(released) == [0.0, 0.2, 0.4, 0.6, 0.9, 2.0, 3.5]
    assert buf.dropped == 0


def test_late_event_is_dropped():
    buf = ReorderBuffer(window=1.0)
    buf.push(sample(0.0))
    buf.push(sample(5.0))
    assert buf.last_released == 0.0
    buf.push(sample(4.5))
    buf.push(sample(7.0))
    assert buf.push(sample(2.0)) == []
    assert buf.dropped == 1


def test_non_finite_timestamp_is_dropped():
    buf = ReorderBuffer()
    assert buf.push(sample(float('nan'))) == []
    assert buf.dropped == 1
    assert len(buf) == 0


def test_equal_timestamps_keep_arrival_order():
    buf = ReorderBuffer(window=1.0)
    first, second = PressureSample(1.0, 3.0), PressureSample(2.0, 3.0)
    buf.push(first)
    buf.push(second)
    assert buf.drain() == [first, second]


def test_release_until_cutoff():
    buf = ReorderBuffer(window=10.0)
    for t in (1.0, 2.0, 3.0):
        buf.push(sample(t))
    assert timestamps(buf.release_until(2.5)) == [1.0, 2.0]
    assert timestamps(buf.drain()) == [3.0]


def test_equal_timestamps_follow_source_order():
    fix = PositionFix(Coordinate(46.5, 6.6), 5.0, 3.0)
    pressure = PressureSample(1.0, 3.0)
    for arrival in ([fix, pressure], [pressure, fix]):
        buf = ReorderBuffer(window=1.0)
        for event in arrival:
            buf.push(event)
        assert buf.drain() == [pressure, fix]


def test_advance_closes_window_behind_cutoff():
    buf = ReorderBuffer(window=1.0)
    buf.push(sample(1.0))
    assert buf.oldest == 1.0
    assert timestamps(buf.advance(5.0)) == [1.0]
    assert buf.oldest is None

    assert buf.push(sample(4.0)) == []
    assert buf.dropped == 1
    buf.push(sample(5.0))
    assert len(buf) == 1
