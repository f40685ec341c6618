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

"""Tests for movement classification and its dwell-time hysteresis."""
import os
import sys

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.movement import MovementClassifier, classify_speed
from fusion.structures import MovementType


@pytest.mark.parametrize("speed,expected", [
    (0.0, MovementType.STATIONARY),
    (0.49, MovementType.STATIONARY),
    (0.5, MovementType.WALKING),
    (1.4, MovementType.WALKING),
    (2.0, MovementType.JOGGING),
    (3.9, MovementType.JOGGING),
    (4.0, MovementType.RUNNING),
    (6.5, MovementType.RUNNING),
])
def test_classify_speed_thresholds(speed, expected):
    assert classify_speed(speed) == expected


def test_initial_state_is_stationary_without_confidence():
    state = MovementClassifier(100.0).state
    assert state.movement_type == MovementType.STATIONARY
    assert state.confidence == 0.0
    assert state.since == 100.0


def test_walking_requires_dwell_time():
    classifier = MovementClassifier(0.0)
    for t in range(0, 5):
        state = classifier.add_speed(1.4, float(t))
    # Candidate appeared at t=2, dwell of 4 s not yet reached
    assert state.movement_type == MovementType.STATIONARY

    for t in range(5, 8):
        state = classifier.add_speed(1.4, float(t))
    assert state.movement_type == MovementType.WALKING
    assert state.since == 6.0
    assert state.confidence == pytest.approx(1.0)


def test_speed_jitter_around_threshold_does_not_flap():
    classifier = MovementClassifier(0.0)
    for t in range(10):
        classifier.add_speed(1.4, float(t))
    assert classifier.state.movement_type == MovementType.WALKING

    changes = 0
    previous = classifier.state.movement_type
    for t in range(10, 40):
        speed = 2.05 if t % 2 else 1.95
        state = classifier.add_speed(speed, float(t))
        if state.movement_type != previous:
            changes += 1
            previous = state.movement_type
    assert changes <= 1


def test_short_stop_is_ignored():
    classifier = MovementClassifier(0.0)
    for t in range(12):
        classifier.add_speed(1.4, float(t))
    assert classifier.state.movement_type == MovementType.WALKING

    for t in range(12, 14):
        state = classifier.add_speed(0.0, float(t))
    assert state.movement_type == MovementType.WALKING


def test_motion_only_fallback_detects_walking():
    classifier = MovementClassifier(0.0)
    state = None
    for i in range(100):
        state = classifier.add_motion(0.2, i * 0.1)
    assert state.movement_type == MovementType.WALKING


def test_confidence_decays_without_data():
    classifier = MovementClassifier(0.0, window=5.0)
    for t in range(10):
        classifier.add_speed(1.4, float(t))
    confidence = classifier.state.confidence
    # A lone motion sample long after the speed window empties
    state = classifier.add_motion(0.01, 30.0)
    assert state.confidence < confidence
    assert state.movement_type == MovementType.WALKING
