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
Metabolic rate uncertainty.

Accounts for uncertainty sources:
- The load carriage equation itself (relative model error)
- Speed (fused position velocity)
- Grade (depends on elevation source)
- Terrain multiplier (depends on terrain confidence)

Components are 1σ and combined in quadrature (assumed independent), then
widened by a quality multiplier and scaled to the configured confidence
level with the normal quantile.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.stats import norm

try:
    from .. import config
except ImportError:
    import config

from .structures import ElevationConfidence, PositionAccuracy


@dataclass
class UncertaintyComponents:
    """Metabolic rate uncertainty components (in watts, 1σ)."""
    model_w: float
    speed_w: float
    grade_w: float
    terrain_w: float
    quality_multiplier: float
    half_width_w: float      # Half width of the confidence interval


def speed_sigma(horizontal_uncertainty: Optional[float]) -> float:
    """
    Speed σ from the fused position uncertainty.

    The filter velocity behaves like a difference of two positions, each ±σ_pos,
    taken an averaging period T apart: σ_v ≈ √2·σ_pos / T.
    """
    floor = getattr(config, 'ENERGY_SPEED_SIGMA_MIN', 0.1)
    if horizontal_uncertainty is None:
        return floor
    period = getattr(config, 'ENERGY_SPEED_AVERAGING_SECONDS', 10.0)
    return max(floor, float(np.sqrt(2.0) * horizontal_uncertainty / period))


def grade_sigma(elevation_confidence: ElevationConfidence) -> float:
    """Grade σ in percent for the current elevation source."""
    if elevation_confidence == ElevationConfidence.HIGH:
        return getattr(config, 'ENERGY_GRADE_SIGMA_FUSED', 1.0)
    return getattr(config, 'ENERGY_GRADE_SIGMA_GPS', 3.0)


def get_quality_multiplier(position_accuracy: PositionAccuracy) -> float:
    """
    Uncertainty multiplier from position quality:
    good → 1.0, degraded (predicting) → 1.2, poor → 1.5
    """
    if position_accuracy == PositionAccuracy.POOR:
        return getattr(config, 'POSITION_POOR_MULTIPLIER', 1.5)
    if position_accuracy == PositionAccuracy.DEGRADED:
        return getattr(config, 'POSITION_DEGRADED_MULTIPLIER', 1.2)
    return 1.0


def calculate_total_uncertainty(
    metabolic_watts: float,
    total_mass: float,
    speed: float,
    grade_percent: float,
    terrain_factor: float,
    terrain_confidence: float,
    sigma_speed: float,
    sigma_grade: float,
    position_accuracy: PositionAccuracy = PositionAccuracy.GOOD,
) -> UncertaintyComponents:
    """
    Computes all uncertainty components of the metabolic rate.

    With MR = ... + η(W+L)(k3·V² + k4·V·G):
        ∂MR/∂V = η(W+L)(2·k3·V + k4·G)
        ∂MR/∂G = η(W+L)·k4·V
        ∂MR/∂η = (W+L)(k3·V² + k4·V·G)

    Args:
        metabolic_watts: estimated metabolic rate (W)
        total_mass: body + load (kg)
        speed: walking speed (m/s)
        grade_percent: grade (%)
        terrain_factor: terrain multiplier η
        terrain_confidence: 0..1
        sigma_speed: speed σ (m/s)
        sigma_grade: grade σ (%)
        position_accuracy: fused position quality

    Returns:
        UncertaintyComponents
    """
    k3 = getattr(config, 'PANDOLF_K3', 1.5)
    k4 = getattr(config, 'PANDOLF_K4', 0.35)
    model_error = getattr(config, 'ENERGY_MODEL_ERROR', 0.05)
    terrain_sigma_max = getattr(config, 'ENERGY_TERRAIN_SIGMA', 0.2)
    level = getattr(config, 'ENERGY_CONFIDENCE_LEVEL', 0.95)

    model_w = metabolic_watts * model_error
    speed_w = abs(terrain_factor * total_mass * (2 * k3 * speed + k4 * grade_percent)) * sigma_speed
    grade_w = abs(terrain_factor * total_mass * k4 * speed) * sigma_grade

    confidence = max(0.0, min(1.0, terrain_confidence))
    sigma_eta = terrain_sigma_max * (1.0 - confidence)
    terrain_w = abs(total_mass * (k3 * speed ** 2 + k4 * speed * grade_percent)) * sigma_eta

    quality_multiplier = get_quality_multiplier(position_accuracy)

    sigma = np.sqrt(model_w ** 2 + speed_w ** 2 + grade_w ** 2 + terrain_w ** 2) * quality_multiplier
    z = norm.ppf(0.5 + level / 2.0)

    return UncertaintyComponents(
        model_w=float(model_w),
        speed_w=float(speed_w),
        grade_w=float(grade_w),
        terrain_w=float(terrain_w),
        quality_multiplier=float(quality_multiplier),
        half_width_w=float(sigma * z),
    )
