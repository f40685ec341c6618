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
Geodesy helpers: great-circle distance, a local metric frame and course from velocity.
"""
import math

try:
    from .. import config
except ImportError:
    import config


def _earth_radius():
    return getattr(config, 'EARTH_RADIUS_M', 6371000.0)


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Great-circle distance between two coordinates.

    Args:
        lat1, lon1: first point (degrees)
        lat2, lon2: second point (degrees)

    Returns:
        float: distance in metres
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * _earth_radius() * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class LocalFrame:
    """
    Equirectangular projection around an origin coordinate.

    Accurate to well under a metre over the few kilometres a session covers,
    which is far below GNSS noise. x points east, y points north.
    """

    def __init__(self, origin_lat, origin_lon):
        self.origin_lat = origin_lat
        self.origin_lon = origin_lon
        self._cos_lat = math.cos(math.radians(origin_lat))

    def to_local(self, lat, lon):
        r = _earth_radius()
        x = math.radians(lon - self.origin_lon) * r * self._cos_lat
        y = math.radians(lat - self.origin_lat) * r
        return x, y

    def to_geodetic(self, x, y):
        r = _earth_radius()
        lat = self.origin_lat + math.degrees(y / r)
        lon = self.origin_lon + math.degrees(x / (r * self._cos_lat))
        return lat, lon


def course_from_velocity(vx, vy, min_speed=0.1):
    """Course over ground in degrees from an east/north velocity, None when too slow."""
    if math.hypot(vx, vy) < min_speed:
        return None
    return (math.degrees(math.atan2(vx, vy)) + 360) % 360
