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

"""
Adaptive GPS sampling.

Chooses one of a fixed set of GPS configurations from the movement state and
the power state. Movement sets the baseline tier; low battery and low-power
mode can only push the choice towards more conservative tiers.
"""
import logging

try:
    from .. import config
except ImportError:
    import config

from .structures import GPSConfig

logger = logging.getLogger(__name__)


def _tier_order():
    return tuple(getattr(config, 'GPS_TIER_ORDER',
                         ('high_performance', 'balanced', 'battery_saver', 'critical')))


def power_adjustment(power_state):
    """
    How the power state constrains the tier choice.

    Args:
        power_state: PowerState or None

    Returns:
        str: 'normal', 'low' (one tier more conservative) or 'critical'
    """
    if power_state is None:
        return 'normal'
    if power_state.battery_level <= getattr(config, 'CRITICAL_BATTERY_LEVEL', 0.10):
        return 'critical'
    if power_state.low_power_mode or power_state.battery_level <= getattr(config, 'LOW_BATTERY_LEVEL', 0.20):
        return 'low'
    return 'normal'


class AdaptiveSamplingController:
    """
    Selects the active GPS configuration.

    Args:
        start_time: session start, used as the time of the initial selection
        adaptive: when False the default tier is used regardless of movement
        min_hold: minimum seconds between two configuration changes
        on_change: optional callable(GPSConfig) invoked on every change
    """

    def __init__(self, start_time, adaptive=True, min_hold=None, on_change=None):
        self.adaptive = adaptive
        self.min_hold = (min_hold if min_hold is not None
                         else getattr(config, 'GPS_CONFIG_MIN_HOLD_SECONDS', 5.0))
        self.on_change = on_change
        self._order = _tier_order()

        default_tier = getattr(config, 'DEFAULT_GPS_TIER', 'balanced')
        self._current = GPSConfig.for_tier(default_tier)
        self._last_change = start_time
        self.changes = 0

    @property
    def config(self):
        return self._current

    def _baseline_index(self, movement_state):
        if not self.adaptive or movement_state is None:
            tier = getattr(config, 'DEFAULT_GPS_TIER', 'balanced')
        else:
            tiers = getattr(config, 'MOVEMENT_TIER', {})
            tier = tiers.get(movement_state.movement_type.value,
                             getattr(config, 'DEFAULT_GPS_TIER', 'balanced'))
        return self._order.index(tier)

    def desired_tier(self, movement_state, power_state):
        """Tier the inputs call for, ignoring the hold time."""
        index = self._baseline_index(movement_state)
        adjustment = power_adjustment(power_state)
        if adjustment == 'critical':
            index = len(self._order) - 1
        elif adjustment == 'low':
            # The last tier is reserved for critical battery
            index = max(index, min(index + 1, len(self._order) - 2))
        return self._order[index]

    def select(self, movement_state, power_state, now):
        """
        Re-evaluate the configuration.

        Args:
            movement_state: current MovementState (or None)
            power_state: latest PowerState (or None)
            now: timestamp of the triggering event

        Returns:
            tuple: (GPSConfig, changed)
        """
        tier = self.desired_tier(movement_state, power_state)
        if tier == self._current.tier:
            return self._current, False

        forced = power_adjustment(power_state) == 'critical'
        if not forced and now - self._last_change < self.min_hold:
            return self._current, False

        previous = self._current.tier
        self._current = GPSConfig.for_tier(tier)
        self._last_change = now
        self.changes += 1
        logger.info("GPS configuration %s -> %s%s", previous, tier, " (critical battery)" if forced else "")
        if self.on_change is not None:
            self.on_change(self._current)
        return self._current, True
