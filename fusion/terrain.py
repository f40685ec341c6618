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
Terrain classification.

Surface type is inferred from the variance of the accelerometer magnitude
(hard surfaces give a regular, low-variance gait signal; soft or broken
surfaces give an irregular one), optionally combined with a surface hint
from a map service. The classifier keeps a ledger of contiguous terrain
segments covering the whole session.
"""
import logging
from collections import deque
from dataclasses import replace

import numpy as np

try:
    from .. import config
except ImportError:
    import config

from .errors import InvalidConfigurationError
from .structures import TerrainEstimate, TerrainSegment, TerrainType

logger = logging.getLogger(__name__)


def default_terrain():
    name = getattr(config, 'DEFAULT_TERRAIN', 'trail')
    return TerrainType(name)


def classify_variance(variance, speed):
    """
    Terrain type and confidence from accelerometer magnitude variance.

    Args:
        variance: variance of |a| over the window (g²)
        speed: current speed (m/s), separates soft surfaces from broken ground

    Returns:
        tuple: (TerrainType, confidence 0..1)
    """
    pavement_max = getattr(config, 'TERRAIN_PAVEMENT_MAX_VARIANCE', 0.08)
    trail_max = getattr(config, 'TERRAIN_TRAIL_MAX_VARIANCE', 0.25)
    sand_max = getattr(config, 'TERRAIN_SAND_MAX_VARIANCE', 0.45)
    soft_speed = getattr(config, 'TERRAIN_SOFT_SURFACE_MAX_SPEED', 1.2)

    if variance < pavement_max:
        terrain, low, high = TerrainType.PAVEMENT, 0.0, pavement_max
    elif variance < trail_max:
        terrain, low, high = TerrainType.TRAIL, pavement_max, trail_max
    elif speed is not None and speed < soft_speed:
        if variance < sand_max:
            terrain, low, high = TerrainType.SAND, trail_max, sand_max
        else:
            terrain, low, high = TerrainType.SNOW, sand_max, 2 * sand_max - trail_max
    else:
        terrain, low, high = TerrainType.GRAVEL, trail_max, 2 * trail_max

    # Confidence falls off towards the band edges
    half_width = (high - low) / 2.0
    center = low + half_width
    distance = min(abs(variance - center) / half_width, 1.0) if half_width > 0 else 1.0
    return terrain, 1.0 - 0.5 * distance


class TerrainSegmentLedger:
    """Contiguous, non-overlapping terrain segments from session start to end."""

    def __init__(self, start_time, terrain_type, manual=False):
        self._closed = []
        self._open = TerrainSegment(terrain_type, start_time, manual=manual)

    @property
    def current(self):
        return self._open

    @property
    def segments(self):
        segments = list(self._closed)
        if self._open is not None:
            segments.append(self._open)
        return tuple(segments)

    def add_distance(self, distance):
        if self._open is not None and distance > 0:
            self._open = replace(self._open, distance=self._open.distance + distance)

    def switch(self, terrain_type, timestamp, manual=False):
        if self._open is None:
            return
        if terrain_type == self._open.terrain_type and manual == self._open.manual:
            return
        timestamp = max(timestamp, self._open.start_time)
        if timestamp == self._open.start_time and self._open.distance == 0:
            # Nothing happened on the open segment, replace it
            previous = self._closed[-1] if self._closed else None
            if previous is not None and previous.terrain_type == terrain_type and previous.manual == manual:
                self._open = replace(self._closed.pop(), end_time=None)
            else:
                self._open = TerrainSegment(terrain_type, timestamp, manual=manual)
            return
        self._closed.append(replace(self._open, end_time=timestamp))
        self._open = TerrainSegment(terrain_type, timestamp, manual=manual)
        logger.info("Terrain segment %s started at %.1f%s",
                    terrain_type.value, timestamp, " (manual)" if manual else "")

    def close(self, timestamp):
        if self._open is None:
            return self.segments
        self._closed.append(replace(self._open, end_time=max(timestamp, self._open.start_time)))
        self._open = None
        return self.segments


class TerrainClassifier:
    """
    Periodic terrain classification with map hints, hysteresis and manual
    override.

    Args:
        start_time: session start
        enabled: when False the initial terrain is kept for the whole session
        initial_terrain: terrain assumed until the first classification
    """

    def __init__(self, start_time, enabled=True, initial_terrain=None):
        self.enabled = enabled
        self.interval = getattr(config, 'TERRAIN_EVALUATION_INTERVAL', 10.0)
        self.window = getattr(config, 'TERRAIN_WINDOW_SECONDS', 10.0)
        self.min_samples = getattr(config, 'TERRAIN_MIN_MOTION_SAMPLES', 20)
        self.stable_evaluations = getattr(config, 'TERRAIN_STABLE_EVALUATIONS', 2)
        self.min_confidence = getattr(config, 'TERRAIN_MIN_CONFIDENCE', 0.6)

        terrain = initial_terrain or default_terrain()
        self.ledger = TerrainSegmentLedger(start_time, terrain)
        self.estimate = TerrainEstimate(terrain, 0.5 if enabled else 1.0, 'default')

        self._magnitudes = deque()  # (timestamp, |a|)
        self.motion_available = True
        self._map_hint = None

        self._override = None
        self._override_until = None

        self._candidate = None
        self._candidate_count = 0
        self._next_evaluation = start_time + self.interval

    @property
    def current(self):
        return self.estimate

    @property
    def override_active(self):
        return self._override is not None

    def add_motion(self, sample):
        self._magnitudes.append((sample.timestamp, sample.magnitude))

    def add_distance(self, distance):
        self.ledger.add_distance(distance)

    def set_motion_available(self, available):
        self.motion_available = available
        if not available:
            self._magnitudes.clear()

    def set_map_hint(self, hint):
        self._map_hint = hint

    def set_override(self, terrain_type, duration, timestamp):
        """
        Pin the terrain for a bounded duration.

        Raises:
            InvalidConfigurationError: duration is not in (0, max]
        """
        max_duration = getattr(config, 'TERRAIN_MAX_OVERRIDE_SECONDS', 4 * 3600.0)
        if not isinstance(terrain_type, TerrainType):
            raise InvalidConfigurationError(f"Unknown terrain type: {terrain_type!r}")
        if duration is None or not 0 < duration <= max_duration:
            raise InvalidConfigurationError(
                f"Override duration must be in (0, {max_duration:.0f}] s, got {duration}")
        self._override = terrain_type
        self._override_until = timestamp + duration
        self.estimate = TerrainEstimate(terrain_type, 1.0, 'manual')
        self.ledger.switch(terrain_type, timestamp, manual=True)
        self._candidate = None
        self._candidate_count = 0

    def clear_override(self, timestamp):
        if self._override is None:
            return
        logger.info("Terrain override %s ended at %.1f", self._override.value, timestamp)
        held = self._override
        self._override = None
        self._override_until = None
        # Automatic operation continues on the held terrain until a new one is stable
        self.estimate = TerrainEstimate(held, self.min_confidence, 'default')
        self.ledger.switch(held, timestamp, manual=False)

    def _motion_classification(self, timestamp, speed):
        cutoff = timestamp - self.window
        while self._magnitudes and self._magnitudes[0][0] < cutoff:
            self._magnitudes.popleft()
        if not self.motion_available or len(self._magnitudes) < self.min_samples:
            return None
        variance = float(np.var([m for _, m in self._magnitudes]))
        return classify_variance(variance, speed)

    def _fuse(self, motion, hint):
        """
        Combine motion classification with the map hint.

        Returns:
            TerrainEstimate or None when neither source is usable
        """
        if motion is None and hint is None:
            return None
        if motion is None:
            return TerrainEstimate(hint.terrain_type, hint.confidence, 'map')

        terrain, confidence = motion
        if hint is None:
            return TerrainEstimate(terrain, confidence, 'motion')
        if confidence < self.min_confidence:
            return TerrainEstimate(hint.terrain_type, hint.confidence, 'map')
        if hint.terrain_type == terrain:
            boost = getattr(config, 'TERRAIN_AGREEMENT_BOOST', 0.15)
            return TerrainEstimate(terrain, min(1.0, confidence + boost), 'motion')
        penalty = getattr(config, 'TERRAIN_DISAGREEMENT_PENALTY', 0.8)
        return TerrainEstimate(terrain, confidence * penalty, 'motion')

    def update(self, timestamp, speed=None):
        """
        Run a classification if one is due.

        Args:
            timestamp: current event time
            speed: current fused speed (m/s)

        Returns:
            bool: True when an evaluation ran
        """
        if self._override is not None and timestamp >= self._override_until:
            self.clear_override(self._override_until)

        if timestamp < self._next_evaluation:
            return False
        while self._next_evaluation <= timestamp:
            self._next_evaluation += self.interval

        if not self.enabled or self._override is not None:
            return True

        estimate = self._fuse(self._motion_classification(timestamp, speed), self._map_hint)
        if estimate is None:
            decay = getattr(config, 'TERRAIN_CONFIDENCE_DECAY', 0.9)
            self.estimate = replace(self.estimate, confidence=self.estimate.confidence * decay)
            return True

        if estimate.terrain_type == self.estimate.terrain_type:
            self._candidate = None
            self._candidate_count = 0
            self.estimate = estimate
            return True

        if estimate.terrain_type == self._candidate:
            self._candidate_count += 1
        else:
            self._candidate = estimate.terrain_type
            self._candidate_count = 1

        if self._candidate_count >= self.stable_evaluations:
            self.estimate = estimate
            self.ledger.switch(estimate.terrain_type, timestamp)
            self._candidate = None
            self._candidate_count = 0
        return True

    def finalize(self, timestamp):
        if self._override is not None and timestamp >= self._override_until:
            self.clear_override(self._override_until)
        return self.ledger.close(timestamp)
