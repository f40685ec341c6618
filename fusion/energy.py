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
Energy expenditure for load carriage.

Metabolic rate follows the Pandolf equation:

    MR = k1·W + k2·(W+L)·(L/W)² + η·(W+L)·(k3·V² + k4·V·G)

    W  - body mass (kg)          L - load mass (kg)
    V  - speed (m/s)             G - grade (%)
    η  - terrain multiplier      MR in watts

The rate is scaled by environmental factors (temperature, altitude),
converted to kcal/min and integrated over time.
"""
import logging
import math

try:
    from .. import config
except ImportError:
    import config

from .errors import InvalidConfigurationError
from .structures import EnergyState, PositionAccuracy
from .uncertainty import calculate_total_uncertainty, speed_sigma

logger = logging.getLogger(__name__)


def standing_metabolic_rate(body_mass, load_mass):
    """Cost of standing with the load (W): the speed-independent terms."""
    k1 = getattr(config, 'PANDOLF_K1', 1.5)
    k2 = getattr(config, 'PANDOLF_K2', 2.0)
    return k1 * body_mass + k2 * (body_mass + load_mass) * (load_mass / body_mass) ** 2


def locomotion_cost(body_mass, load_mass, speed, grade_percent):
    """Terrain-dependent term before the η multiplier (W)."""
    k3 = getattr(config, 'PANDOLF_K3', 1.5)
    k4 = getattr(config, 'PANDOLF_K4', 0.35)
    return (body_mass + load_mass) * (k3 * speed ** 2 + k4 * speed * grade_percent)


def pandolf_metabolic_rate(body_mass, load_mass, speed, grade_percent, terrain_factor=1.0):
    """
    Metabolic rate of load carriage.

    Downhill grades can drive the locomotion term negative; the result never
    drops below the standing cost.

    Args:
        body_mass: body mass (kg), must be positive
        load_mass: carried load (kg), must be non-negative
        speed: walking speed (m/s)
        grade_percent: grade (%)
        terrain_factor: terrain multiplier η

    Returns:
        float: metabolic rate in watts

    Raises:
        InvalidConfigurationError: on non-positive body mass or negative load
    """
    if body_mass is None or body_mass <= 0:
        raise InvalidConfigurationError(f"body_mass must be positive, got {body_mass}")
    if load_mass is None or load_mass < 0:
        raise InvalidConfigurationError(f"load_mass must be non-negative, got {load_mass}")

    speed = max(speed, 0.0)
    standing = standing_metabolic_rate(body_mass, load_mass)
    moving = terrain_factor * locomotion_cost(body_mass, load_mass, speed, grade_percent)
    return max(standing, standing + moving)


def temperature_factor(temperature_c):
    if temperature_c is None:
        return 1.0
    comfort_low, comfort_high = getattr(config, 'COMFORT_TEMPERATURE_RANGE', (5.0, 25.0))
    extreme_low, extreme_high = getattr(config, 'EXTREME_TEMPERATURE_RANGE', (-5.0, 30.0))
    if temperature_c < extreme_low or temperature_c > extreme_high:
        return getattr(config, 'EXTREME_TEMPERATURE_FACTOR', 1.15)
    if temperature_c < comfort_low or temperature_c > comfort_high:
        return getattr(config, 'COMFORT_TEMPERATURE_FACTOR', 1.05)
    return 1.0


def altitude_factor(altitude_m):
    if altitude_m is None:
        return 1.0
    threshold = getattr(config, 'ALTITUDE_THRESHOLD_M', 1500.0)
    if altitude_m <= threshold:
        return 1.0
    per_1000 = getattr(config, 'ALTITUDE_FACTOR_PER_1000M', 0.10)
    factor = 1.0 + per_1000 * (altitude_m - threshold) / 1000.0
    return min(factor, getattr(config, 'ALTITUDE_FACTOR_MAX', 1.5))


def environmental_factor(temperature_c=None, altitude_m=None):
    """Combined multiplier for thermal stress and hypoxia."""
    return temperature_factor(temperature_c) * altitude_factor(altitude_m)


def watts_to_kcal_per_min(watts):
    return watts * getattr(config, 'WATTS_TO_KCAL_PER_MIN', 0.01433)


class EnergyExpenditureEstimator:
    """
    Integrates the metabolic rate over a session.

    Args:
        context: SessionContext with the participant masses
        temperature_c: ambient temperature, None when unknown
    """

    def __init__(self, context, temperature_c=None):
        # Validates the masses once, before any sample is processed
        pandolf_metabolic_rate(context.body_mass, context.load_mass, 0.0, 0.0)
        self.context = context
        self.temperature_c = temperature_c

        self.cumulative_calories = 0.0
        self.cumulative_low = 0.0
        self.cumulative_high = 0.0
        self._last_time = None
        self._last_rate = None
        self._last_low = None
        self._last_high = None
        self._state = EnergyState(0.0, 0.0, (0.0, 0.0), (0.0, 0.0), context.session_start)

    @property
    def state(self):
        return self._state

    def set_temperature(self, temperature_c):
        self.temperature_c = temperature_c

    def update(self, timestamp, speed, grade_percent, terrain, altitude=None,
               horizontal_uncertainty=None, sigma_grade=1.0,
               position_accuracy=PositionAccuracy.GOOD, sigma_speed=None):
        """
        Recompute the rate and integrate since the previous update.

        Args:
            timestamp: time of the update (seconds)
            speed: fused speed (m/s)
            grade_percent: smoothed grade (%)
            terrain: TerrainEstimate (multiplier and confidence)
            altitude: current altitude for the altitude factor (metres)
            horizontal_uncertainty: fused position σ (metres)
            sigma_grade: grade σ (%)
            position_accuracy: fused position quality
            sigma_speed: explicit speed σ overriding the one derived from position

        Returns:
            EnergyState
        """
        if speed is None or not math.isfinite(speed):
            speed = 0.0
        if grade_percent is None or not math.isfinite(grade_percent):
            grade_percent = 0.0

        body, load = self.context.body_mass, self.context.load_mass
        eta = terrain.multiplier
        env = environmental_factor(self.temperature_c, altitude)
        watts = pandolf_metabolic_rate(body, load, speed, grade_percent, eta) * env

        components = calculate_total_uncertainty(
            metabolic_watts=watts,
            total_mass=body + load,
            speed=max(speed, 0.0),
            grade_percent=grade_percent,
            terrain_factor=eta * env,
            terrain_confidence=terrain.confidence,
            sigma_speed=sigma_speed if sigma_speed is not None else speed_sigma(horizontal_uncertainty),
            sigma_grade=sigma_grade,
            position_accuracy=position_accuracy,
        )

        rate = watts_to_kcal_per_min(watts)
        half_width = watts_to_kcal_per_min(components.half_width_w)
        low = max(0.0, rate - half_width)
        high = rate + half_width

        if self._last_time is not None:
            minutes = max(timestamp - self._last_time, 0.0) / getattr(config, 'SECONDS_PER_MINUTE', 60.0)
            # Trapezoidal integration; every term is non-negative
            self.cumulative_calories += 0.5 * (self._last_rate + rate) * minutes
            self.cumulative_low += 0.5 * (self._last_low + low) * minutes
            self.cumulative_high += 0.5 * (self._last_high + high) * minutes

        if self._last_time is None or timestamp >= self._last_time:
            self._last_time = timestamp
        self._last_rate, self._last_low, self._last_high = rate, low, high

        self._state = EnergyState(
            instantaneous_rate=rate,
            cumulative_calories=self.cumulative_calories,
            confidence_interval=(low, high),
            cumulative_interval=(self.cumulative_low, self.cumulative_high),
            timestamp=timestamp,
            metabolic_watts=watts,
        )
        return self._state
