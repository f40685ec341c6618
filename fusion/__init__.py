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

"""Real-time sensor fusion and energy expenditure for load carriage."""

from .errors import InvalidConfigurationError
from .structures import (
    ClearTerrainOverride,
    Coordinate,
    ElevationConfidence,
    ElevationState,
    EnergyState,
    EnvironmentReading,
    FusedPosition,
    GPSConfig,
    MapSurfaceHint,
    MetricsSnapshot,
    MotionSample,
    MovementState,
    MovementType,
    PositionAccuracy,
    PositionFix,
    PowerState,
    PressureSample,
    QualityFlags,
    Sensor,
    SensorStatus,
    SessionContext,
    SessionOptions,
    SessionSnapshot,
    TerrainEstimate,
    TerrainOverride,
    TerrainSegment,
    TerrainType,
)
from .calculator import SessionCalculator
from .session import SampleSink, TrackingSession

__all__ = [
    # Session
    'TrackingSession',
    'SampleSink',
    'SessionCalculator',
    'InvalidConfigurationError',
    # Inputs
    'Coordinate',
    'PositionFix',
    'MotionSample',
    'PressureSample',
    'PowerState',
    'SessionContext',
    'SessionOptions',
    'TerrainOverride',
    'ClearTerrainOverride',
    'MapSurfaceHint',
    'SensorStatus',
    'EnvironmentReading',
    'Sensor',
    # Outputs
    'MovementType',
    'MovementState',
    'GPSConfig',
    'FusedPosition',
    'PositionAccuracy',
    'ElevationState',
    'ElevationConfidence',
    'TerrainType',
    'TerrainSegment',
    'TerrainEstimate',
    'EnergyState',
    'QualityFlags',
    'MetricsSnapshot',
    'SessionSnapshot',
]
