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

"""Tests for adaptive GPS configuration selection."""
import os
import sys

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.errors import InvalidConfigurationError
from fusion.sampling import AdaptiveSamplingController, power_adjustment
from fusion.structures import GPSConfig, MovementState, MovementType, PowerState


def movement(movement_type):
    return MovementState(movement_type, 1.0, 10.0, 0.0)


def test_for_tier_reads_configured_values():
    cfg = GPSConfig.for_tier('high_performance')
    assert cfg.accuracy_tier == 'best_for_navigation'
    assert cfg.distance_filter == 5.0
    assert cfg.update_interval == 0.1


def test_for_tier_rejects_unknown_tier():
    with pytest.raises(InvalidConfigurationError):
        GPSConfig.for_tier('turbo')


@pytest.mark.parametrize("level,low_power,expected", [
    (0.8, False, 'normal'),
    (0.8, True, 'low'),
    (0.20, False, 'low'),
    (0.15, False, 'low'),
    (0.10, False, 'critical'),
    (0.05, True, 'critical'),
])
def test_power_adjustment(level, low_power, expected):
    assert power_adjustment(PowerState(level, 0.0, low_power)) == expected


def test_power_adjustment_without_state():
    assert power_adjustment(None) == 'normal'


@pytest.mark.parametrize("movement_type,tier", [
    (MovementType.STATIONARY, 'battery_saver'),
    (MovementType.WALKING, 'balanced'),
    (MovementType.JOGGING, 'high_performance'),
    (MovementType.RUNNING, 'high_performance'),
])
def test_movement_baseline(movement_type, tier):
    controller = AdaptiveSamplingController(0.0)
    assert controller.desired_tier(movement(movement_type), None) == tier


def test_low_battery_never_upgrades_and_never_reaches_critical():
    controller = AdaptiveSamplingController(0.0)
    low = PowerState(0.15, 0.0)
    assert controller.desired_tier(movement(MovementType.RUNNING), low) == 'balanced'
    assert controller.desired_tier(movement(MovementType.WALKING), low) == 'battery_saver'
    assert controller.desired_tier(movement(MovementType.STATIONARY), low) == 'battery_saver'


def test_critical_battery_forces_last_tier():
    controller = AdaptiveSamplingController(0.0)
    critical = PowerState(0.05, 0.0)
    assert controller.desired_tier(movement(MovementType.RUNNING), critical) == 'critical'


def test_initial_config_is_default_tier():
    assert AdaptiveSamplingController(0.0).config.tier == 'balanced'


def test_hold_time_limits_changes():
    changes = []
    controller = AdaptiveSamplingController(0.0, on_change=changes.append)

    cfg, changed = controller.select(movement(MovementType.STATIONARY), None, 2.0)
    assert not changed
    assert cfg.tier == 'balanced'

    cfg, changed = controller.select(movement(MovementType.STATIONARY), None, 6.0)
    assert changed
    assert cfg.tier == 'battery_saver'

    cfg, changed = controller.select(movement(MovementType.RUNNING), None, 8.0)
    assert not changed
    cfg, changed = controller.select(movement(MovementType.RUNNING), None, 11.0)
    assert changed
    assert cfg.tier == 'high_performance'

    assert [c.tier for c in changes] == ['battery_saver', 'high_performance']
    assert controller.changes == 2


def test_critical_battery_bypasses_hold():
    controller = AdaptiveSamplingController(0.0)
    cfg, changed = controller.select(movement(MovementType.WALKING), PowerState(0.05, 1.0), 1.0)
    assert changed
    assert cfg.tier == 'critical'


def test_non_adaptive_uses_default_tier():
    controller = AdaptiveSamplingController(0.0, adaptive=False)
    assert controller.desired_tier(movement(MovementType.RUNNING), None) == 'balanced'
    assert controller.desired_tier(movement(MovementType.RUNNING), PowerState(0.05, 0.0)) == 'critical'
