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

"""Tests for grade and cumulative gain / loss."""
import os
import sys

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.grade import GradeCalculator


def test_flat_ground_has_zero_grade():
    grade = GradeCalculator()
    grade.update(100.0, 0.0)
    for _ in range(20):
        grade.update(100.0, 1.0)
    assert grade.smoothed_grade == 0.0
    assert grade.cumulative_gain == 0.0


def test_grade_needs_minimum_distance():
    grade = GradeCalculator()
    grade.update(100.0, 0.0)
    assert grade.update(100.4, 4.0) == 0.0
    assert grade.update(100.5, 1.0) == pytest.approx(10.0)


def test_steady_climb():
    grade = GradeCalculator()
    grade.update(100.0, 0.0)
    elevation = 100.0
    for _ in range(10):
        elevation += 0.5
        grade.update(elevation, 5.0)
    assert grade.current_grade == pytest.approx(10.0)
    assert grade.smoothed_grade == pytest.approx(10.0)
    assert grade.cumulative_gain == pytest.approx(5.0)


def test_grade_is_rounded_to_precision():
    grade = GradeCalculator()
    grade.update(100.0, 0.0)
    grade.update(100.165, 5.0)
    assert grade.current_grade == pytest.approx(3.5)


@pytest.mark.parametrize("raw,expected,clamped", [
    (200.0, 45.0, True),
    (-80.0, -45.0, True),
    (44.9, 45.0, False),
    (12.2, 12.0, False),
])
def test_clamp(raw, expected, clamped):
    grade, flag = GradeCalculator().clamp(raw)
    assert grade == pytest.approx(expected)
    assert flag is clamped


def test_steep_step_is_clamped_and_flagged():
    grade = GradeCalculator()
    grade.update(100.0, 0.0)
    grade.update(110.0, 5.0)
    assert grade.current_grade == 45.0
    assert grade.clamped
    assert grade.clamp_count == 1


def test_noise_below_threshold_is_not_counted():
    grade = GradeCalculator()
    for elevation in (100.0, 100.3, 100.1, 100.4, 100.2):
        grade.update(elevation, 0.0)
    assert grade.cumulative_gain == 0.0
    assert grade.cumulative_loss == 0.0

    grade.update(101.0, 0.0)
    grade.update(99.0, 0.0)
    assert grade.cumulative_gain == pytest.approx(1.0)
    assert grade.cumulative_loss == pytest.approx(2.0)


def test_missing_elevation_keeps_grade():
    grade = GradeCalculator()
    grade.update(100.0, 0.0)
    grade.update(100.5, 5.0)
    assert grade.update(None, 5.0) == pytest.approx(10.0)
