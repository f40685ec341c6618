#!/usr/bin/env python3
# RuckFusion - sensor fusion and energy expenditure engine for load carriage
# Copyright (C) 2024 RuckFusion Contributors
#
# Shared data-structure definitions used across the fusion pipeline.
# Every record that crosses a component boundary is defined here so the
# data flow between components is explicit.

"""
Core records used in the RuckFusion pipeline.

Inputs
------
Sensor samples (``PositionFix``, ``MotionSample``, ``PressureSample``,
``PowerState``) and commands (``TerrainOverride``, ``ClearTerrainOverride``,
``MapSurfaceHint``, ``SensorStatus``, ``EnvironmentReading``) all carry a
``timestamp`` in seconds and travel through the same ordered event stream.

Derived state
-------------
``MovementState``, ``GPSConfig``, ``FusedPosition``, ``ElevationState``,
``TerrainSegment`` and ``EnergyState`` are produced by the individual
components. They are immutable; a component publishes a new record instead
of mutating the previous one.

Outputs
-------
``MetricsSnapshot`` is the periodic record published to subscribers;
``SessionSnapshot`` is the frozen record returned once the session stops.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

try:
    from .. import config
except ImportError:
    import config

from .errors import InvalidConfigurationError


class MovementType(Enum):
    STATIONARY = 'stationary'
    WALKING = 'walking'
    JOGGING = 'jogging'
    RUNNING = 'running'


class PositionAccuracy(Enum):
    """Quality of the fused position."""
    GOOD = 'good'          # Measurement updates are flowing
    DEGRADED = 'degraded'  # Predicting through a signal gap
    POOR = 'poor'          # Gap exceeded the maximum suppression duration


class ElevationConfidence(Enum):
    HIGH = 'high'                # Barometer fused with calibrated GPS base
    GPS_ONLY = 'gps_only'        # Barometer absent, stale or uncalibrated
    UNAVAILABLE = 'unavailable'  # No altitude source yet


class TerrainType(Enum):
    PAVEMENT = 'pavement'
    TRAIL = 'trail'
    GRAVEL = 'gravel'
    GRASS = 'grass'
    SAND = 'sand'
    MUD = 'mud'
    SNOW = 'snow'
    STAIRS = 'stairs'

    @property
    def multiplier(self) -> float:
        """Energy cost multiplier relative to pavement (configurable)."""
        multipliers = getattr(config, 'TERRAIN_MULTIPLIERS', {})
        return float(multipliers.get(self.value, 1.0))


class Sensor(Enum):
    POSITION = 'position'
    MOTION = 'motion'
    BAROMETER = 'barometer'


# ============================================================
# Input samples
# ============================================================

@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class PositionFix:
    """One GNSS fix. Negative or None speed/course means unknown."""
    coordinate: Coordinate
    horizontal_accuracy: float
    timestamp: float
    altitude: Optional[float] = None
    vertical_accuracy: Optional[float] = None
    speed: Optional[float] = None
    course: Optional[float] = None

    @property
    def has_speed(self) -> bool:
        return self.speed is not None and self.speed >= 0 and math.isfinite(self.speed)

    @property
    def has_altitude(self) -> bool:
        return (self.altitude is not None and math.isfinite(self.altitude)
                and self.vertical_accuracy is not None and self.vertical_accuracy > 0)


@dataclass(frozen=True)
class MotionSample:
    """Raw accelerometer (g, gravity included) and gyroscope (rad/s) reading."""
    acceleration: Tuple[float, float, float]
    timestamp: float
    rotation_rate: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def magnitude(self) -> float:
        x, y, z = self.acceleration
        return math.sqrt(x * x + y * y + z * z)

    @property
    def dynamic_acceleration(self) -> float:
        """Deviation of the acceleration magnitude from 1 g."""
        return abs(self.magnitude - 1.0)


@dataclass(frozen=True)
class PressureSample:
    """Barometric altitude relative to the altimeter start, metres."""
    relative_altitude: float
    timestamp: float


@dataclass(frozen=True)
class PowerState:
    battery_level: float
    timestamp: float
    low_power_mode: bool = False


# ============================================================
# Commands (travel the same queue as samples)
# ============================================================

@dataclass(frozen=True)
class TerrainOverride:
    terrain_type: TerrainType
    duration: float
    timestamp: float


@dataclass(frozen=True)
class ClearTerrainOverride:
    timestamp: float


@dataclass(frozen=True)
class MapSurfaceHint:
    """Surface type reported by a map service for the current coordinate."""
    terrain_type: TerrainType
    confidence: float
    timestamp: float


@dataclass(frozen=True)
class SensorStatus:
    sensor: Sensor
    available: bool
    timestamp: float


@dataclass(frozen=True)
class EnvironmentReading:
    temperature_c: Optional[float]
    timestamp: float


# ============================================================
# Derived state
# ============================================================

@dataclass(frozen=True)
class MovementState:
    movement_type: MovementType
    confidence: float
    time_in_state: float
    since: float


@dataclass(frozen=True)
class GPSConfig:
    tier: str
    accuracy_tier: str
    distance_filter: float
    update_interval: float
    battery_per_hour: float

    @classmethod
    def for_tier(cls, tier: str) -> 'GPSConfig':
        tiers = getattr(config, 'GPS_TIERS', {})
        if tier not in tiers:
            raise InvalidConfigurationError(f"Unknown GPS tier: {tier}")
        accuracy, distance, interval, battery = tiers[tier]
        return cls(tier, accuracy, float(distance), float(interval), float(battery))


@dataclass(frozen=True)
class FusedPosition:
    coordinate: Coordinate
    horizontal_uncertainty: float
    speed: float
    course: Optional[float]
    timestamp: float
    accuracy: PositionAccuracy = PositionAccuracy.GOOD
    predicted: bool = False
    altitude: Optional[float] = None
    smoothed_altitude: Optional[float] = None


@dataclass(frozen=True)
class ElevationState:
    base_elevation: Optional[float]
    current_altitude: Optional[float]
    cumulative_gain: float
    cumulative_loss: float
    current_grade: float
    smoothed_grade: float
    confidence: ElevationConfidence
    uncertainty: Optional[float]
    timestamp: float
    clamped: bool = False


@dataclass(frozen=True)
class TerrainSegment:
    """Contiguous stretch on one surface. end_time is None while open."""
    terrain_type: TerrainType
    start_time: float
    end_time: Optional[float] = None
    distance: float = 0.0
    manual: bool = False

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass(frozen=True)
class TerrainEstimate:
    terrain_type: TerrainType
    confidence: float
    source: str  # 'motion', 'map', 'manual', 'default'

    @property
    def multiplier(self) -> float:
        return self.terrain_type.multiplier


@dataclass(frozen=True)
class EnergyState:
    """Metabolic rate (kcal/min) and its running integral (kcal)."""
    instantaneous_rate: float
    cumulative_calories: float
    confidence_interval: Tuple[float, float]
    cumulative_interval: Tuple[float, float]
    timestamp: float
    metabolic_watts: float = 0.0


# ============================================================
# Session configuration
# ============================================================

@dataclass(frozen=True)
class SessionContext:
    """Participant masses and start time. Validated once, never mutated."""
    body_mass: float
    load_mass: float
    session_start: float

    def __post_init__(self):
        min_body = getattr(config, 'MIN_BODY_MASS_KG', 0.0)
        max_body = getattr(config, 'MAX_BODY_MASS_KG', 250.0)
        max_load = getattr(config, 'MAX_LOAD_MASS_KG', 100.0)
        for name, value in (('body_mass', self.body_mass), ('load_mass', self.load_mass),
                            ('session_start', self.session_start)):
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidConfigurationError(f"{name} must be a finite number, got {value!r}")
        if self.body_mass <= min_body or self.body_mass > max_body:
            raise InvalidConfigurationError(
                f"body_mass must be in ({min_body}, {max_body}] kg, got {self.body_mass}")
        if self.load_mass < 0 or self.load_mass > max_load:
            raise InvalidConfigurationError(
                f"load_mass must be in [0, {max_load}] kg, got {self.load_mass}")


@dataclass(frozen=True)
class SessionOptions:
    adaptive_sampling: bool = True
    terrain_detection: bool = True
    temperature_c: Optional[float] = None
    default_terrain: Optional[TerrainType] = None

    def __post_init__(self):
        if self.temperature_c is not None and not math.isfinite(self.temperature_c):
            raise InvalidConfigurationError("temperature_c must be finite")
        if self.default_terrain is not None and not isinstance(self.default_terrain, TerrainType):
            raise InvalidConfigurationError(
                f"default_terrain must be a TerrainType, got {self.default_terrain!r}")


# ============================================================
# Outputs
# ============================================================

@dataclass(frozen=True)
class QualityFlags:
    gps_tier: str
    position_accuracy: PositionAccuracy
    elevation_confidence: ElevationConfidence
    terrain_confidence: float
    barometer_available: bool
    motion_available: bool
    grade_clamped: bool = False
    elevation_clamped: bool = False
    late_samples_dropped: int = 0


@dataclass(frozen=True)
class MetricsSnapshot:
    timestamp: float
    movement: MovementState
    gps_config: GPSConfig
    position: Optional[FusedPosition]
    elevation: ElevationState
    terrain: TerrainEstimate
    energy: EnergyState
    distance: float
    quality: QualityFlags
    warnings: Dict[str, str] = field(default_factory=dict)
    cautions: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SessionSnapshot:
    context: SessionContext
    start_time: float
    end_time: float
    duration: float
    total_distance: float
    cumulative_gain: float
    cumulative_loss: float
    total_calories: float
    calories_interval: Tuple[float, float]
    terrain_segments: Tuple[TerrainSegment, ...]
    final_metrics: Optional[MetricsSnapshot]
