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
Elevation fusion.

The barometer gives precise relative altitude with no absolute reference;
GPS gives absolute altitude with several metres of noise. The first pressure
sample that has a recent GPS altitude next to it fixes the base elevation:

    base_elevation = gps_altitude - relative_altitude

and from then on altitude = base_elevation + smoothed relative altitude.
Without a usable barometer the engine falls back to Kalman-smoothed GPS
altitude and reports the lower confidence level.
"""
import logging
import math
from collections import deque

try:
    from .. import config
except ImportError:
    import config

from .filters import AltitudeKalman, moving_average
from .structures import ElevationConfidence, ElevationState

logger = logging.getLogger(__name__)


class ElevationFusionEngine:
    """Combines barometric and GPS altitude into one estimate."""

    def __init__(self, smoothing_window=None, barometer_available=True):
        window = (smoothing_window if smoothing_window is not None
                  else getattr(config, 'BAROMETER_SMOOTHING_WINDOW', 4))
        self._relative = deque(maxlen=window)
        self._gps_filter = AltitudeKalman()

        self.barometer_available = barometer_available
        self.base_elevation = None
        self.calibrated_at = None

        self._last_pressure_time = None
        self._last_relative = None
        self._gps_altitude = None
        self._gps_vertical_accuracy = None
        self._gps_time = None

        self.altitude = None
        self.confidence = ElevationConfidence.UNAVAILABLE
        self.uncertainty = None
        self.clamped = False
        self.clamp_count = 0
        self.timestamp = None

    def set_barometer_available(self, available, timestamp):
        if available == self.barometer_available:
            return
        self.barometer_available = available
        logger.info("Barometer %s", "available" if available else "unavailable")
        if not available:
            self._relative.clear()
            self._last_relative = None
        self._refresh(timestamp)

    def barometer_fresh(self, timestamp):
        stale = getattr(config, 'BAROMETER_STALE_SECONDS', 5.0)
        return (self.barometer_available and self._last_pressure_time is not None
                and timestamp - self._last_pressure_time <= stale)

    def process_gps_altitude(self, altitude, vertical_accuracy, timestamp):
        """
        Feed a GPS altitude.

        Returns:
            float: the current altitude estimate (may be None)
        """
        if altitude is None or not math.isfinite(altitude):
            return self.altitude
        self._gps_altitude = altitude
        self._gps_vertical_accuracy = vertical_accuracy
        self._gps_time = timestamp
        self._gps_filter.update(altitude, vertical_accuracy, timestamp)
        self._refresh(timestamp)
        return self.altitude

    def process_pressure(self, sample):
        """
        Feed a barometric relative altitude sample.

        Returns:
            float: the current altitude estimate (may be None)
        """
        if not self.barometer_available:
            return self.altitude
        relative = sample.relative_altitude
        if not math.isfinite(relative):
            logger.debug("Non-finite pressure sample at %.3f skipped", sample.timestamp)
            return self.altitude

        self.clamped = False
        if self._last_relative is not None and self._last_pressure_time is not None:
            dt = max(sample.timestamp - self._last_pressure_time, 0.0)
            limit = (getattr(config, 'MAX_VERTICAL_SPEED_MPS', 5.0) * dt
                     + getattr(config, 'VERTICAL_SPEED_MARGIN_M', 0.5))
            step = relative - self._last_relative
            if abs(step) > limit:
                relative = self._last_relative + math.copysign(limit, step)
                self.clamped = True
                self.clamp_count += 1
                logger.debug("Barometric step of %.1f m clamped to %.1f m", step, limit)

        self._last_relative = relative
        self._last_pressure_time = sample.timestamp
        self._relative.append(relative)

        if self.base_elevation is None:
            self._try_calibrate(sample.timestamp, relative)

        self._refresh(sample.timestamp)
        return self.altitude

    def _try_calibrate(self, timestamp, relative):
        max_age = getattr(config, 'CALIBRATION_MAX_GPS_AGE', 5.0)
        if self._gps_altitude is None or abs(timestamp - self._gps_time) > max_age:
            return
        self.base_elevation = self._gps_filter.x - relative
        self.calibrated_at = timestamp
        logger.info("Barometer calibrated: base elevation %.1f m", self.base_elevation)

    def _refresh(self, timestamp):
        self.timestamp = timestamp
        if self.base_elevation is not None and self.barometer_fresh(timestamp) and self._relative:
            self.altitude = self.base_elevation + moving_average(list(self._relative))
            self.confidence = ElevationConfidence.HIGH
            self.uncertainty = getattr(config, 'FUSED_ELEVATION_UNCERTAINTY_M', 1.0)
        elif self._gps_filter.initialized:
            self.altitude = self._gps_filter.x
            self.confidence = ElevationConfidence.GPS_ONLY
            low = getattr(config, 'GPS_ELEVATION_MIN_UNCERTAINTY_M', 3.0)
            high = getattr(config, 'GPS_ELEVATION_MAX_UNCERTAINTY_M', 5.0)
            self.uncertainty = min(max(self._gps_filter.sigma, low), high)
        else:
            self.altitude = None
            self.confidence = ElevationConfidence.UNAVAILABLE
            self.uncertainty = None

    def check_staleness(self, timestamp):
        """Downgrade confidence when pressure samples stopped arriving."""
        if self.confidence == ElevationConfidence.HIGH and not self.barometer_fresh(timestamp):
            logger.info("Barometer stale, falling back to GPS altitude")
            self._refresh(timestamp)

    def snapshot(self, gain, loss, grade, smoothed_grade, timestamp=None):
        """
        Build the published ElevationState.

        Args:
            gain, loss: cumulative elevation gain / loss (metres)
            grade, smoothed_grade: latest and smoothed grade (percent)
        """
        return ElevationState(
            base_elevation=self.base_elevation,
            current_altitude=self.altitude,
            cumulative_gain=gain,
            cumulative_loss=loss,
            current_grade=grade,
            smoothed_grade=smoothed_grade,
            confidence=self.confidence,
            uncertainty=self.uncertainty,
            timestamp=timestamp if timestamp is not None else (self.timestamp or 0.0),
            clamped=self.clamped,
        )
