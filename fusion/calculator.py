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
Session calculator: the single-writer state machine of a tracking session.

Owns one instance of every component and applies timestamp-ordered events:

    sample -> movement -> GPS configuration -> location -> elevation
           -> grade -> terrain -> energy -> metrics snapshot

Nothing here is thread-safe; TrackingSession serializes access to it. Used
directly, it is a deterministic replay engine: the same ordered events
always produce the same snapshots.
"""
import logging
import math
from dataclasses import replace

try:
    from .. import config
except ImportError:
    import config

from .elevation import ElevationFusionEngine
from .energy import EnergyExpenditureEstimator
from .errors import InvalidConfigurationError
from .grade import GradeCalculator
from .helpers import haversine_distance
from .location import LocationFusionFilter
from .movement import MovementClassifier
from .reorder import ReorderBuffer
from .sampling import AdaptiveSamplingController
from .structures import (
    ClearTerrainOverride, EnvironmentReading, MapSurfaceHint, MetricsSnapshot,
    MotionSample, MovementType, PositionAccuracy, PositionFix, PowerState,
    PressureSample, QualityFlags, Sensor, SensorStatus, SessionContext,
    SessionOptions, SessionSnapshot, TerrainOverride,
)
from .terrain import TerrainClassifier
from .uncertainty import grade_sigma
from .warnings import compute_warnings

logger = logging.getLogger(__name__)


class SessionCalculator:
    """
    Applies events to the fusion pipeline and produces snapshots.

    Args:
        context: SessionContext (validated masses and start time)
        options: SessionOptions, defaults when None
        power_state: initial PowerState, if known
        on_config_change: callable(GPSConfig) invoked when the GPS tier changes
    """

    def __init__(self, context, options=None, power_state=None, on_config_change=None):
        if not isinstance(context, SessionContext):
            raise InvalidConfigurationError(f"context must be a SessionContext, got {type(context).__name__}")
        options = options if options is not None else SessionOptions()
        if not isinstance(options, SessionOptions):
            raise InvalidConfigurationError(f"options must be SessionOptions, got {type(options).__name__}")

        self.context = context
        self.options = options
        start = context.session_start

        self.movement = MovementClassifier(start)
        self.sampling = AdaptiveSamplingController(start, adaptive=options.adaptive_sampling,
                                                   on_change=on_config_change)
        self.location = LocationFusionFilter()
        self.elevation = ElevationFusionEngine()
        self.grade = GradeCalculator()
        self.terrain = TerrainClassifier(start, enabled=options.terrain_detection,
                                         initial_terrain=options.default_terrain)
        self.energy = EnergyExpenditureEstimator(context, options.temperature_c)
        self.reorder = ReorderBuffer()

        self.power_state = power_state
        self.position = None
        self.distance = 0.0
        self.time = start
        self.motion_available = True

        self.metrics_interval = getattr(config, 'METRICS_INTERVAL_SECONDS', 1.0)
        self.prediction_interval = getattr(config, 'PREDICTION_INTERVAL_SECONDS', 1.0)
        self._last_metrics_time = None
        self._last_prediction_time = None
        self._latest_metrics = None
        self._final = None
        self.skipped_events = 0

        self._handlers = {
            PositionFix: self._on_position,
            MotionSample: self._on_motion,
            PressureSample: self._on_pressure,
            PowerState: self._on_power_state,
            TerrainOverride: self._on_override,
            ClearTerrainOverride: self._on_clear_override,
            MapSurfaceHint: self._on_map_hint,
            SensorStatus: self._on_sensor_status,
            EnvironmentReading: self._on_environment,
        }

        # Initial selection so the sample source starts with a sensible tier
        self.sampling.select(self.movement.state, self.power_state, start)

    @property
    def finalized(self):
        return self._final is not None

    @property
    def latest_metrics(self):
        return self._latest_metrics

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def submit(self, event):
        """
        Route an event through the reorder window.

        Returns:
            list: metrics snapshots produced by the events released
        """
        if self.finalized:
            logger.debug("Session finalized, %s dropped", type(event).__name__)
            return []
        snapshots = []
        for ready in self.reorder.push(event):
            snapshot = self.apply(ready)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def release_until(self, cutoff):
        """
        Apply buffered events older than cutoff (idle stream).

        Events arriving later with a timestamp before cutoff are dropped as late.
        """
        snapshots = []
        for ready in self.reorder.advance(cutoff):
            snapshot = self.apply(ready)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def flush(self):
        """Apply everything still held in the reorder window."""
        snapshots = []
        for ready in self.reorder.drain():
            snapshot = self.apply(ready)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def apply(self, event):
        """
        Apply one event, assumed to be in timestamp order.

        Returns:
            MetricsSnapshot when one is due, otherwise None

        Raises:
            InvalidConfigurationError: for an out-of-range terrain override
        """
        if self.finalized:
            logger.debug("Session finalized, %s dropped", type(event).__name__)
            return None

        handler = self._handlers.get(type(event))
        if handler is None:
            self.skipped_events += 1
            logger.warning("Unknown event type %s skipped", type(event).__name__)
            return None

        ts = event.timestamp
        if ts is None or not math.isfinite(ts) or ts < self.context.session_start:
            self.skipped_events += 1
            logger.debug("%s with timestamp %r outside the session skipped", type(event).__name__, ts)
            return None

        self.time = max(self.time, ts)
        handler(event)
        self._after_event(self.time)
        return self._maybe_emit(self.time)

    def tick(self, now):
        """
        Time passes without samples (worker idle timeout).

        Produces predicted positions when the fix stream has gone quiet and
        lets stale sources downgrade their confidence.
        """
        pending = self.reorder.oldest
        if pending is not None:
            # Never run ahead of events still held for reordering
            now = min(now, pending)
        if self.finalized or now <= self.time:
            return None
        self.time = now
        if self.location.in_gap(now):
            self._predict(now)
        self._after_event(now)
        return self._maybe_emit(now)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_position(self, fix):
        ts = fix.timestamp
        if fix.has_speed and self.location.is_valid_fix(fix):
            self.movement.add_speed(fix.speed, ts)

        position = self.location.process_fix(fix, self.movement.state.movement_type)
        if position is None:
            return

        if not fix.has_speed:
            self.movement.add_speed(position.speed, ts)
        if fix.has_altitude:
            self.elevation.process_gps_altitude(fix.altitude, fix.vertical_accuracy, ts)
        self._advance_position(position)

    def _on_motion(self, sample):
        if not all(math.isfinite(v) for v in sample.acceleration):
            self.skipped_events += 1
            logger.debug("Non-finite motion sample at %.3f skipped", sample.timestamp)
            return
        self.movement.add_motion(sample.dynamic_acceleration, sample.timestamp)
        if self.motion_available:
            self.terrain.add_motion(sample)
        if self.location.in_gap(sample.timestamp):
            self._predict(sample.timestamp)

    def _on_pressure(self, sample):
        self.elevation.process_pressure(sample)
        # Zero horizontal distance: only gain / loss can change here
        self.grade.update(self.elevation.altitude, 0.0)

    def _on_power_state(self, state):
        self.power_state = state

    def _on_override(self, command):
        self.terrain.set_override(command.terrain_type, command.duration, command.timestamp)
        logger.info("Terrain override %s for %.0f s", command.terrain_type.value, command.duration)

    def _on_clear_override(self, command):
        self.terrain.clear_override(command.timestamp)

    def _on_map_hint(self, hint):
        self.terrain.set_map_hint(hint)

    def _on_sensor_status(self, status):
        if status.sensor == Sensor.BAROMETER:
            self.elevation.set_barometer_available(status.available, status.timestamp)
        elif status.sensor == Sensor.MOTION:
            self.motion_available = status.available
            self.terrain.set_motion_available(status.available)
        logger.info("Sensor %s %s", status.sensor.value, "available" if status.available else "unavailable")

    def _on_environment(self, reading):
        self.energy.set_temperature(reading.temperature_c)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _predict(self, timestamp):
        if (self._last_prediction_time is not None
                and timestamp - self._last_prediction_time < self.prediction_interval):
            return
        moving = self.movement.state.movement_type != MovementType.STATIONARY
        position = self.location.predict(timestamp, moving=moving)
        if position is not None:
            self._last_prediction_time = timestamp
            self._advance_position(position)

    def _advance_position(self, position):
        step = 0.0
        if self.position is not None:
            step = haversine_distance(self.position.coordinate.latitude, self.position.coordinate.longitude,
                                      position.coordinate.latitude, position.coordinate.longitude)
        self.distance += step
        self.terrain.add_distance(step)
        self.grade.update(self.elevation.altitude, step)

        self.position = replace(position, smoothed_altitude=self.elevation.altitude)
        self.energy.update(
            timestamp=position.timestamp,
            speed=position.speed,
            grade_percent=self.grade.smoothed_grade,
            terrain=self.terrain.current,
            altitude=self.elevation.altitude,
            horizontal_uncertainty=position.horizontal_uncertainty,
            sigma_grade=grade_sigma(self.elevation.confidence),
            position_accuracy=position.accuracy,
        )

    def _after_event(self, timestamp):
        self.elevation.check_staleness(timestamp)
        speed = self.position.speed if self.position is not None else None
        self.terrain.update(timestamp, speed)
        self.sampling.select(self.movement.state, self.power_state, timestamp)

    def _maybe_emit(self, timestamp):
        if self._last_metrics_time is not None and timestamp - self._last_metrics_time < self.metrics_interval:
            return None
        self._last_metrics_time = timestamp
        self._latest_metrics = self.snapshot()
        return self._latest_metrics

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def position_accuracy(self):
        if not self.location.initialized:
            return PositionAccuracy.DEGRADED
        return self.location.accuracy(self.time)

    def snapshot(self):
        """Current metrics as an immutable record."""
        elevation = self.elevation.snapshot(
            gain=self.grade.cumulative_gain,
            loss=self.grade.cumulative_loss,
            grade=self.grade.current_grade,
            smoothed_grade=self.grade.smoothed_grade,
            timestamp=self.time,
        )
        terrain = self.terrain.current
        quality = QualityFlags(
            gps_tier=self.sampling.config.tier,
            position_accuracy=self.position_accuracy(),
            elevation_confidence=self.elevation.confidence,
            terrain_confidence=terrain.confidence,
            barometer_available=self.elevation.barometer_available,
            motion_available=self.motion_available,
            grade_clamped=self.grade.clamped,
            elevation_clamped=self.elevation.clamped,
            late_samples_dropped=self.reorder.dropped,
        )
        warnings, cautions = compute_warnings(quality, terrain, self.power_state, elevation)
        return MetricsSnapshot(
            timestamp=self.time,
            movement=self.movement.state,
            gps_config=self.sampling.config,
            position=self.position,
            elevation=elevation,
            terrain=terrain,
            energy=self.energy.state,
            distance=self.distance,
            quality=quality,
            warnings=warnings,
            cautions=cautions,
        )

    def finalize(self, end_time=None):
        """
        Freeze the session. Idempotent: later calls return the same record.

        Args:
            end_time: session end, defaults to the last event time

        Returns:
            SessionSnapshot
        """
        if self._final is not None:
            return self._final

        self.flush()
        end = self.time if end_time is None else max(end_time, self.time)
        self.time = end

        # Carry the last rate to the end of the session
        if self.position is not None and self.energy.state.timestamp < end:
            self.energy.update(
                timestamp=end,
                speed=self.position.speed,
                grade_percent=self.grade.smoothed_grade,
                terrain=self.terrain.current,
                altitude=self.elevation.altitude,
                horizontal_uncertainty=self.position.horizontal_uncertainty,
                sigma_grade=grade_sigma(self.elevation.confidence),
                position_accuracy=self.position_accuracy(),
            )

        segments = self.terrain.finalize(end)
        final_metrics = self.snapshot()
        self._latest_metrics = final_metrics
        energy = self.energy.state
        start = self.context.session_start

        self._final = SessionSnapshot(
            context=self.context,
            start_time=start,
            end_time=end,
            duration=end - start,
            total_distance=self.distance,
            cumulative_gain=self.grade.cumulative_gain,
            cumulative_loss=self.grade.cumulative_loss,
            total_calories=energy.cumulative_calories,
            calories_interval=energy.cumulative_interval,
            terrain_segments=segments,
            final_metrics=final_metrics,
        )
        logger.info("Session finalized: %.0f m, %.0f kcal, %d terrain segments",
                    self.distance, energy.cumulative_calories, len(segments))
        return self._final
