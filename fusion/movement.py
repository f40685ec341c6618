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
Movement classification.

Classifies the participant as stationary, walking, jogging or running from a
rolling window of speed samples (taken from position fixes) and motion
magnitudes. Transitions are debounced by a dwell time so the classification
cannot flap when the speed hovers around a threshold.
"""
import logging
from collections import deque

import numpy as np

try:
    from .. import config
except ImportError:
    import config

from .structures import MovementState, MovementType

logger = logging.getLogger(__name__)


def classify_speed(speed):
    """
    Map a speed to a movement type using the configured thresholds.

    Args:
        speed: speed in m/s

    Returns:
        MovementType
    """
    if speed < getattr(config, 'STATIONARY_MAX_SPEED', 0.5):
        return MovementType.STATIONARY
    if speed < getattr(config, 'WALKING_MAX_SPEED', 2.0):
        return MovementType.WALKING
    if speed < getattr(config, 'JOGGING_MAX_SPEED', 4.0):
        return MovementType.JOGGING
    return MovementType.RUNNING


class MovementClassifier:
    """Rolling-window movement classifier with dwell-time hysteresis."""

    def __init__(self, start_time, window=None, dwell=None, min_samples=None):
        self.window = window if window is not None else getattr(config, 'MOVEMENT_WINDOW_SECONDS', 10.0)
        self.dwell = dwell if dwell is not None else getattr(config, 'MOVEMENT_DWELL_SECONDS', 4.0)
        self.min_samples = (min_samples if min_samples is not None
                            else getattr(config, 'MOVEMENT_MIN_SAMPLES', 3))
        self.decay = getattr(config, 'MOVEMENT_CONFIDENCE_DECAY', 0.9)

        self._speeds = deque()   # (timestamp, speed)
        self._motion = deque()   # (timestamp, dynamic acceleration in g)

        self._current = MovementType.STATIONARY
        self._since = start_time
        self._last_change = None
        self._confidence = 0.0
        self._pending = None
        self._pending_since = None
        self._now = start_time

    @property
    def state(self):
        return MovementState(
            movement_type=self._current,
            confidence=self._confidence,
            time_in_state=max(0.0, self._now - self._since),
            since=self._since,
        )

    def add_speed(self, speed, timestamp):
        """Feed a speed sample (m/s) and re-evaluate."""
        self._speeds.append((timestamp, max(0.0, speed)))
        return self._evaluate(timestamp)

    def add_motion(self, dynamic_acceleration, timestamp):
        """Feed a motion magnitude sample and re-evaluate."""
        self._motion.append((timestamp, dynamic_acceleration))
        return self._evaluate(timestamp)

    def _trim(self, now):
        cutoff = now - self.window
        for buf in (self._speeds, self._motion):
            while buf and buf[0][0] < cutoff:
                buf.popleft()

    def _candidate(self):
        """
        Returns:
            tuple: (MovementType, confidence) or None when data is insufficient
        """
        if len(self._speeds) >= self.min_samples:
            speeds = np.array([s for _, s in self._speeds])
            candidate = classify_speed(float(np.median(speeds)))
            agreeing = sum(1 for s in speeds if classify_speed(s) == candidate)
            return candidate, agreeing / len(speeds)

        if not self._speeds and len(self._motion) >= self.min_samples:
            # Motion-only fallback: still vs walking
            threshold = getattr(config, 'MOTION_STILL_THRESHOLD_G', 0.03)
            activity = np.array([a for _, a in self._motion])
            moving = activity > threshold
            if float(np.mean(activity)) > threshold:
                return MovementType.WALKING, float(np.mean(moving))
            return MovementType.STATIONARY, float(np.mean(~moving))

        return None

    def _evaluate(self, now):
        self._now = max(self._now, now)
        self._trim(self._now)

        result = self._candidate()
        if result is None:
            self._confidence *= self.decay
            return self.state

        candidate, confidence = result
        if candidate == self._current:
            self._pending = None
            self._pending_since = None
            self._confidence = confidence
            return self.state

        if candidate != self._pending:
            self._pending = candidate
            self._pending_since = self._now

        held = self._now - self._pending_since >= self.dwell
        rested = self._last_change is None or self._now - self._last_change >= self.dwell
        if held and rested:
            logger.info("Movement %s -> %s (confidence %.2f)",
                        self._current.value, candidate.value, confidence)
            self._current = candidate
            self._since = self._now
            self._last_change = self._now
            self._confidence = confidence
            self._pending = None
            self._pending_since = None
        else:
            # Evidence against the current state lowers its confidence
            self._confidence = min(self._confidence, 1.0 - confidence)

        return self.state
