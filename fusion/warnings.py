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
Warning and notification generation module.
Turns the quality flags of a metrics snapshot into user-facing messages.
Degradations are reported here, never raised.
"""

import logging

try:
    from .. import config
    from ..locales.strings import WARNINGS, CAUTIONS
except ImportError:
    import config
    from locales.strings import WARNINGS, CAUTIONS

from .structures import ElevationConfidence, PositionAccuracy

logger = logging.getLogger(__name__)


def compute_warnings(quality, terrain=None, power_state=None, elevation=None):
    """
    Unified function for computing all warnings.

    Args:
        quality: QualityFlags of the snapshot
        terrain: TerrainEstimate
        power_state: latest PowerState
        elevation: ElevationState

    Returns:
        tuple: (warnings: dict, cautions: dict)
    """
    warnings = {}
    cautions = {}

    _check_position(quality, warnings, cautions)
    _check_elevation(quality, elevation, warnings, cautions)
    _check_terrain(quality, terrain, cautions)
    _check_power(power_state, warnings, cautions)
    _check_clamping(quality, cautions)

    if quality.late_samples_dropped > 0:
        warnings['late_samples'] = WARNINGS['late_samples'].format(count=quality.late_samples_dropped)

    return warnings, cautions


def _check_position(quality, warnings, cautions):
    if quality.position_accuracy == PositionAccuracy.POOR:
        seconds = getattr(config, 'MAX_SUPPRESSION_SECONDS', 60.0)
        warnings['position_poor'] = WARNINGS['position_poor'].format(seconds=seconds)
    elif quality.position_accuracy == PositionAccuracy.DEGRADED:
        cautions['position_degraded'] = CAUTIONS['position_degraded']


def _check_elevation(quality, elevation, warnings, cautions):
    if quality.elevation_confidence == ElevationConfidence.UNAVAILABLE:
        warnings['elevation_unavailable'] = WARNINGS['elevation_unavailable']
    elif quality.elevation_confidence == ElevationConfidence.GPS_ONLY:
        uncertainty = elevation.uncertainty if elevation is not None and elevation.uncertainty else \
            getattr(config, 'GPS_ELEVATION_MAX_UNCERTAINTY_M', 5.0)
        cautions['elevation_gps_only'] = CAUTIONS['elevation_gps_only'].format(uncertainty=uncertainty)


def _check_terrain(quality, terrain, cautions):
    if not quality.motion_available:
        cautions['motion_unavailable'] = CAUTIONS['motion_unavailable']
    threshold = getattr(config, 'TERRAIN_MIN_CONFIDENCE', 0.6)
    if terrain is not None and terrain.source != 'manual' and quality.terrain_confidence < threshold:
        cautions['terrain_low_confidence'] = CAUTIONS['terrain_low_confidence'].format(
            confidence=quality.terrain_confidence, terrain=terrain.terrain_type.value)


def _check_power(power_state, warnings, cautions):
    if power_state is None:
        return
    if power_state.battery_level <= getattr(config, 'CRITICAL_BATTERY_LEVEL', 0.10):
        warnings['critical_battery'] = WARNINGS['critical_battery'].format(level=power_state.battery_level)
    elif power_state.low_power_mode or power_state.battery_level <= getattr(config, 'LOW_BATTERY_LEVEL', 0.20):
        cautions['low_power'] = CAUTIONS['low_power']


def _check_clamping(quality, cautions):
    if quality.grade_clamped:
        cautions['grade_clamped'] = CAUTIONS['grade_clamped'].format(
            limit=getattr(config, 'MAX_GRADE_PERCENT', 45.0))
    if quality.elevation_clamped:
        cautions['elevation_clamped'] = CAUTIONS['elevation_clamped']
