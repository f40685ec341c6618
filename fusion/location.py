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
Location fusion.

Two-dimensional constant velocity Kalman filter over GNSS fixes.

State vector: [x, y, vx, vy] in metres / m/s in a local east-north frame
anchored at the first accepted fix. Measurement noise follows each fix's
horizontal accuracy.

Suppression
-----------
Measurement updates are suppressed while the participant is stationary (the
velocity is pinned to zero so GPS wander does not accumulate as distance),
and the filter switches to prediction when fixes stop arriving for longer
than the signal-gap threshold. Either kind of suppression is bounded: after
the maximum suppression duration the covariance is inflated once, the
velocity estimate is dropped and the accuracy is reported as poor.
"""
import logging
import math

import numpy as np

try:
    from .. import config
except ImportError:
    import config

from .filters import constant_velocity_model, kalman_predict, kalman_update
from .helpers import LocalFrame, course_from_velocity
from .structures import Coordinate, FusedPosition, MovementType, PositionAccuracy

logger = logging.getLogger(__name__)


class LocationFusionFilter:
    """Incremental position filter producing FusedPosition records."""

    H = np.array([[1.0, 0.0, 0.0, 0.0],
                  [0.0, 1.0, 0.0, 0.0]])

    def __init__(self, process_noise=None, gap_threshold=None, max_suppression=None):
        self.q = (process_noise if process_noise is not None
                  else getattr(config, 'LOCATION_PROCESS_NOISE', 0.5))
        self.gap_threshold = (gap_threshold if gap_threshold is not None
                              else getattr(config, 'SIGNAL_GAP_SECONDS', 10.0))
        self.max_suppression = (max_suppression if max_suppression is not None
                                else getattr(config, 'MAX_SUPPRESSION_SECONDS', 60.0))
        self.min_accuracy = getattr(config, 'LOCATION_MIN_ACCURACY_M', 3.0)
        self.max_accuracy = getattr(config, 'LOCATION_MAX_ACCURACY_M', 100.0)
        self.max_var = getattr(config, 'LOCATION_MAX_POSITION_VAR', 1.0e6)
        self.inflation = getattr(config, 'SUPPRESSION_INFLATION', 4.0)

        self.frame = None
        self.x = None
        self.P = None
        self.time = None

        self.last_update_time = None     # Last accepted measurement update
        self.last_fix_time = None        # Last valid fix, updated or not
        self.suppressed_since = None
        self.inflated = False
        self.last_fix = None
        self.rejected_fixes = 0

    @property
    def initialized(self):
        return self.x is not None

    def is_valid_fix(self, fix):
        acc = fix.horizontal_accuracy
        coord = fix.coordinate
        return (acc is not None and math.isfinite(acc) and 0 < acc <= self.max_accuracy
                and math.isfinite(coord.latitude) and math.isfinite(coord.longitude)
                and -90.0 <= coord.latitude <= 90.0 and -180.0 <= coord.longitude <= 180.0)

    def _initialize(self, fix):
        self.frame = LocalFrame(fix.coordinate.latitude, fix.coordinate.longitude)
        vx = vy = 0.0
        if fix.has_speed and fix.course is not None and fix.course >= 0:
            rad = math.radians(fix.course)
            vx = fix.speed * math.sin(rad)
            vy = fix.speed * math.cos(rad)
        self.x = np.array([0.0, 0.0, vx, vy])
        acc = max(fix.horizontal_accuracy, self.min_accuracy)
        v_var = getattr(config, 'LOCATION_INITIAL_VELOCITY_VAR', 10.0)
        self.P = np.diag([acc * acc, acc * acc, v_var, v_var])
        self.time = fix.timestamp
        self.last_update_time = fix.timestamp
        self.last_fix_time = fix.timestamp
        logger.info("Location filter initialized at %.6f, %.6f (±%.1f m)",
                    fix.coordinate.latitude, fix.coordinate.longitude, acc)

    def _predict(self, timestamp):
        min_dt = getattr(config, 'LOCATION_MIN_DT', 1e-6)
        dt = timestamp - self.time
        if dt < min_dt:
            return
        F, Q = constant_velocity_model(dt, self.q)
        self.x, self.P = kalman_predict(self.x, self.P, F, Q)
        self.time = timestamp
        self._cap_covariance()

    def _cap_covariance(self):
        for i in range(2):
            if self.P[i, i] > self.max_var:
                scale = math.sqrt(self.max_var / self.P[i, i])
                self.P[i, :] *= scale
                self.P[:, i] *= scale

    def _stop(self):
        self.x[2] = 0.0
        self.x[3] = 0.0
        self.P[2:, :2] = 0.0
        self.P[:2, 2:] = 0.0

    def _enter_suppression(self, timestamp):
        if self.suppressed_since is None:
            self.suppressed_since = timestamp

    def _check_suppression_limit(self, timestamp):
        if self.suppressed_since is None or self.inflated:
            return
        if timestamp - self.suppressed_since > self.max_suppression:
            self.P[:2, :2] *= self.inflation
            self._cap_covariance()
            self._stop()
            self.inflated = True
            logger.warning("Position suppressed for %.0f s, accuracy degraded to poor",
                           timestamp - self.suppressed_since)

    def _leave_suppression(self):
        self.suppressed_since = None
        self.inflated = False

    def accuracy(self, timestamp):
        if self.inflated:
            return PositionAccuracy.POOR
        if self.in_gap(timestamp):
            return PositionAccuracy.DEGRADED
        return PositionAccuracy.GOOD

    def process_fix(self, fix, movement_type=None):
        """
        Fuse one GNSS fix.

        Args:
            fix: PositionFix
            movement_type: current MovementType (Stationary suppresses updates)

        Returns:
            FusedPosition, or None when the fix is rejected
        """
        if not self.is_valid_fix(fix):
            self.rejected_fixes += 1
            logger.debug("Rejected fix at %.3f (accuracy %s)", fix.timestamp, fix.horizontal_accuracy)
            return None

        if not self.initialized:
            self._initialize(fix)
            self.last_fix = fix
            return self._output(fix.timestamp, fix)

        if fix.timestamp < self.time:
            logger.debug("Fix at %.3f older than filter time %.3f, ignored", fix.timestamp, self.time)
            return None

        self._predict(fix.timestamp)
        self.last_fix = fix
        self.last_fix_time = fix.timestamp

        stationary = movement_type == MovementType.STATIONARY
        if stationary:
            self._enter_suppression(fix.timestamp)
            self._check_suppression_limit(fix.timestamp)
            if not self.inflated:
                self._stop()
                return self._output(fix.timestamp, fix)
            # Stationary suppression is bounded; measurements resume below

        acc = max(fix.horizontal_accuracy, self.min_accuracy)
        R = np.eye(2) * (acc * acc)
        z = np.array(self.frame.to_local(fix.coordinate.latitude, fix.coordinate.longitude))
        self.x, self.P, _ = kalman_update(self.x, self.P, z, self.H, R)
        if stationary:
            self._stop()
        self.last_update_time = fix.timestamp
        self._leave_suppression()
        return self._output(fix.timestamp, fix)

    def predict(self, timestamp, moving=True):
        """
        Advance the filter without a measurement (signal gap).

        Args:
            timestamp: time to predict to
            moving: False when the motion stream says the device is still

        Returns:
            FusedPosition with predicted=True, or None before the first fix
        """
        if not self.initialized or timestamp <= self.time:
            return None
        self._enter_suppression(self.last_fix_time)
        if not moving:
            self._stop()
        self._predict(timestamp)
        self._check_suppression_limit(timestamp)
        return self._output(timestamp, None, predicted=True)

    def in_gap(self, timestamp):
        return (self.initialized and self.last_fix_time is not None
                and timestamp - self.last_fix_time > self.gap_threshold)

    @property
    def horizontal_uncertainty(self):
        if self.P is None:
            return None
        return math.sqrt(max(self.P[0, 0], self.P[1, 1]))

    def _output(self, timestamp, fix, predicted=False):
        lat, lon = self.frame.to_geodetic(self.x[0], self.x[1])
        vx, vy = float(self.x[2]), float(self.x[3])
        altitude = fix.altitude if fix is not None and fix.has_altitude else None
        return FusedPosition(
            coordinate=Coordinate(lat, lon),
            horizontal_uncertainty=self.horizontal_uncertainty,
            speed=math.hypot(vx, vy),
            course=course_from_velocity(vx, vy),
            timestamp=timestamp,
            accuracy=self.accuracy(timestamp),
            predicted=predicted,
            altitude=altitude,
        )
