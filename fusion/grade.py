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
Grade and cumulative elevation change.

Grade is rise over run in percent, sampled once enough horizontal distance
has accumulated, clamped to a physically plausible range, rounded to a fixed
precision and smoothed over the last few samples.
"""
import logging
from collections import deque

try:
    from .. import config
except ImportError:
    import config

from .filters import moving_average, round_to_precision

logger = logging.getLogger(__name__)


class GradeCalculator:

    def __init__(self, min_distance=None, max_grade=None, window=None):
        self.min_distance = (min_distance if min_distance is not None
                             else getattr(config, 'MIN_DISTANCE_FOR_GRADE', 5.0))
        self.max_grade = (max_grade if max_grade is not None
                          else getattr(config, 'MAX_GRADE_PERCENT', 45.0))
        window = window if window is not None else getattr(config, 'GRADE_SMOOTHING_WINDOW', 5)
        self.precision = getattr(config, 'GRADE_PRECISION_PERCENT', 0.5)
        self.noise_threshold = getattr(config, 'ELEVATION_NOISE_THRESHOLD_M', 0.5)

        self._grades = deque(maxlen=window)
        self._run_distance = 0.0
        self._run_start_elevation = None

        self._reference_elevation = None
        self.cumulative_gain = 0.0
        self.cumulative_loss = 0.0

        self.current_grade = 0.0
        self.smoothed_grade = 0.0
        self.clamped = False
        self.clamp_count = 0

    def _accumulate(self, elevation):
        """Count elevation change beyond the noise threshold toward gain/loss."""
        if self._reference_elevation is None:
            self._reference_elevation = elevation
            return
        delta = elevation - self._reference_elevation
        if abs(delta) < self.noise_threshold:
            return
        if delta > 0:
            self.cumulative_gain += delta
        else:
            self.cumulative_loss += -delta
        self._reference_elevation = elevation

    def clamp(self, grade):
        """
        Clamp and round a raw grade.

        Returns:
            tuple: (grade, clamped flag)
        """
        clamped = abs(grade) > self.max_grade
        grade = max(-self.max_grade, min(self.max_grade, grade))
        return round_to_precision(grade, self.precision), clamped

    def update(self, elevation, horizontal_distance):
        """
        Feed the current elevation and the horizontal distance since the
        previous call.

        Args:
            elevation: fused altitude (metres) or None when unavailable
            horizontal_distance: metres travelled since the last update

        Returns:
            float: smoothed grade in percent
        """
        if elevation is None:
            return self.smoothed_grade

        self._accumulate(elevation)

        if self._run_start_elevation is None:
            self._run_start_elevation = elevation
            self._run_distance = 0.0
            return self.smoothed_grade

        self._run_distance += max(horizontal_distance, 0.0)
        if self._run_distance < self.min_distance:
            return self.smoothed_grade

        raw = (elevation - self._run_start_elevation) / self._run_distance * 100.0
        grade, clamped = self.clamp(raw)
        self.clamped = clamped
        if clamped:
            self.clamp_count += 1
            logger.debug("Grade %.1f%% clamped to %.1f%%", raw, grade)

        self.current_grade = grade
        self._grades.append(grade)
        self.smoothed_grade = round_to_precision(moving_average(list(self._grades)), self.precision)

        self._run_start_elevation = elevation
        self._run_distance = 0.0
        return self.smoothed_grade
