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

"""Tests for barometric / GPS elevation fusion."""
import os
import sys

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.elevation import ElevationFusionEngine
from fusion.structures import ElevationConfidence, PressureSample


def calibrated_engine():
    engine = ElevationFusionEngine()
    engine.process_gps_altitude(400.0, 5.0, 0.0)
    engine.process_pressure(PressureSample(0.0, 1.0))
    return engine


def test_unavailable_without_sources():
    engine = ElevationFusionEngine()
    assert engine.altitude is None
    assert engine.confidence == ElevationConfidence.UNAVAILABLE
    assert engine.snapshot(0.0, 0.0, 0.0, 0.0, 0.0).uncertainty is None


def test_gps_only_altitude():
    engine = ElevationFusionEngine()
    assert engine.process_gps_altitude(400.0, 5.0, 0.0) == pytest.approx(400.0)
    assert engine.confidence == ElevationConfidence.GPS_ONLY
    assert 3.0 <= engine.uncertainty <= 5.0


def test_gps_noise_is_smoothed():
    engine = ElevationFusionEngine()
    for t in range(20):
        engine.process_gps_altitude(400.0 + (4.0 if t % 2 else -4.0), 5.0, float(t))
    assert engine.altitude == pytest.approx(400.0, abs=3.0)


def test_barometer_calibrates_against_recent_gps():
    engine = calibrated_engine()
    assert engine.base_elevation == pytest.approx(400.0)
    assert engine.confidence == ElevationConfidence.HIGH
    assert engine.uncertainty == 1.0

    engine.process_pressure(PressureSample(2.0, 2.0))
    assert engine.altitude == pytest.approx(401.0)


def test_calibration_is_not_repeated():
    engine = calibrated_engine()
    engine.process_gps_altitude(450.0, 5.0, 2.0)
    engine.process_pressure(PressureSample(0.0, 3.0))
    assert engine.base_elevation == pytest.approx(400.0)


def test_no_calibration_with_old_gps():
    engine = ElevationFusionEngine()
    engine.process_gps_altitude(400.0, 5.0, 0.0)
    engine.process_pressure(PressureSample(0.0, 10.0))
    assert engine.base_elevation is None
    assert engine.confidence == ElevationConfidence.GPS_ONLY


def test_implausible_pressure_step_is_clamped():
    engine = calibrated_engine()
    engine.process_pressure(PressureSample(50.0, 2.0))
    assert engine.clamped
    assert engine.clamp_count == 1
    # 5 m/s for 1 s plus the 0.5 m margin
    assert engine._last_relative == pytest.approx(5.5)

    engine.process_pressure(PressureSample(6.0, 3.0))
    assert not engine.clamped


def test_stale_barometer_falls_back_to_gps():
    engine = calibrated_engine()
    engine.check_staleness(3.0)
    assert engine.confidence == ElevationConfidence.HIGH
    engine.check_staleness(10.0)
    assert engine.confidence == ElevationConfidence.GPS_ONLY


def test_unavailable_barometer_is_never_high():
    engine = ElevationFusionEngine(barometer_available=False)
    engine.process_gps_altitude(400.0, 5.0, 0.0)
    for t in range(1, 10):
        engine.process_pressure(PressureSample(float(t), float(t)))
        assert engine.confidence == ElevationConfidence.GPS_ONLY


def test_barometer_loss_downgrades_immediately():
    engine = calibrated_engine()
    engine.set_barometer_available(False, 1.5)
    assert engine.confidence == ElevationConfidence.GPS_ONLY
