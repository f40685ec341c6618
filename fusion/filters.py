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
Filtering primitives shared by the fusion components.
Contains the incremental Kalman building blocks (constant velocity model,
one-dimensional altitude filter) and the smoothing helpers.
"""

import numpy as np
from scipy.signal import savgol_filter

try:
    from .. import config
except ImportError:
    import config


def constant_velocity_model(dt, q, dims=2):
    """
    Transition and process noise matrices for a constant velocity model.

    State layout is [p_1..p_dims, v_1..v_dims]. Process noise follows the
    white acceleration model with spectral density q².

    Args:
        dt: time step (seconds)
        q: process noise (m/s²)
        dims: number of spatial dimensions

    Returns:
        tuple: (F, Q)
    """
    n = 2 * dims
    F = np.eye(n)
    Q = np.zeros((n, n))

    dt2 = dt * dt
    dt3 = dt2 * dt
    q2 = q * q
    for i in range(dims):
        j = i + dims
        F[i, j] = dt
        Q[i, i] = (dt3 / 3.0) * q2
        Q[i, j] = (dt2 / 2.0) * q2
        Q[j, i] = Q[i, j]  # Symmetric
        Q[j, j] = dt * q2
    return F, Q


def kalman_predict(x, P, F, Q):
    """Propagate state and covariance one step."""
    x = F.dot(x)
    P = F.dot(P).dot(F.T) + Q
    return x, P


def kalman_update(x, P, z, H, R):
    """
    Measurement update.

    Returns:
        tuple: (x, P, innovation)
    """
    y = z - H.dot(x)
    S = H.dot(P).dot(H.T) + R
    K = P.dot(H.T).dot(np.linalg.inv(S))
    x = x + K.dot(y)
    P = (np.eye(P.shape[0]) - K.dot(H)).dot(P)
    # Keep P symmetric against round-off
    P = 0.5 * (P + P.T)
    return x, P, y


class AltitudeKalman:
    """
    One-dimensional Kalman filter for GPS altitude smoothing.

    Model assumes altitude stays roughly constant between fixes; the
    measurement noise follows each fix's vertical accuracy.
    """

    def __init__(self, q=None, min_r=None):
        if q is None:
            q = getattr(config, 'KALMAN_ALTITUDE_Q', 0.5)
        if min_r is None:
            min_r = getattr(config, 'KALMAN_ALTITUDE_MIN_R', 2.0)
        self.q = q
        self.min_r = min_r
        self.x = None
        self.P = None
        self.last_time = None

    @property
    def initialized(self):
        return self.x is not None

    def update(self, altitude, vertical_accuracy, timestamp):
        r = max(vertical_accuracy if vertical_accuracy else self.min_r, self.min_r)
        if self.x is None:
            self.x = altitude
            self.P = r * r
            self.last_time = timestamp
            return self.x

        min_dt = getattr(config, 'KALMAN_MIN_DT', 1e-6)
        dti = max(timestamp - self.last_time, min_dt)
        self.last_time = timestamp

        # Prediction - covariance increases over time
        self.P = self.P + self.q ** 2 * dti

        K = self.P / (self.P + r ** 2)
        self.x = self.x + K * (altitude - self.x)
        self.P = (1 - K) * self.P
        return self.x

    @property
    def sigma(self):
        return float(np.sqrt(self.P)) if self.P is not None else None


def moving_average(values):
    """Mean of a window of values (None for an empty window)."""
    if not values:
        return None
    return float(np.mean(values))


def round_to_precision(value, precision):
    """Round to the nearest multiple of precision (e.g. 0.5)."""
    if precision <= 0:
        return value
    return round(value / precision) * precision


def calculate_savgol_window_size(data_length, window_length=None, divisor=None):
    """
    Calculate appropriate Savitzky-Golay window size for given data length.

    Args:
        data_length: length of data array
        window_length: base window length (default: config.SAVGOL_WINDOW_LENGTH)
        divisor: divisor for dynamic sizing (default: config.SAVGOL_WINDOW_DIVISOR)

    Returns:
        int: window size (always odd, >= 3)
    """
    if window_length is None:
        window_length = getattr(config, 'SAVGOL_WINDOW_LENGTH', 11)
    if divisor is None:
        divisor = getattr(config, 'SAVGOL_WINDOW_DIVISOR', 5)

    window_size = min(window_length, data_length // divisor)
    if window_size % 2 == 0:
        window_size = max(3, window_size - 1)
    return window_size


def apply_savgol_filter(data, window_size, polyorder=None):
    """
    Applies Savitzky-Golay filter for series smoothing.

    Returns:
        smoothed data or original data when the window does not fit
    """
    if polyorder is None:
        polyorder = getattr(config, 'SAVGOL_POLYORDER', 1)
    if window_size <= polyorder or window_size % 2 == 0 or window_size > len(data):
        return data
    return savgol_filter(data, window_size, polyorder)
