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
Localization strings for RuckFusion.
English dictionary for user-facing messages.
"""

# Error messages
ERRORS = {
    'file_not_found': "File not found: {file_path}",
    'no_fixes': "No usable position fixes in {file_path}",
    'invalid_configuration': "Invalid configuration: {details}",
    'chart_failed': "Could not create session charts",
}

# Warnings - conditions that make the metrics unreliable
WARNINGS = {
    'position_poor': "GPS signal lost for more than {seconds:.0f} s, position is an estimate",
    'critical_battery': "Battery critical ({level:.0%}), GPS switched to minimal sampling",
    'elevation_unavailable': "No altitude source available, grade and elevation are not tracked",
    'late_samples': "{count} late samples were discarded",
}

# Cautions - less critical remarks
CAUTIONS = {
    'position_degraded': "GPS signal gap, position is being predicted",
    'elevation_gps_only': "Barometer unavailable, elevation uses GPS altitude (±{uncertainty:.0f} m)",
    'terrain_low_confidence': "Terrain detection uncertain ({confidence:.0%}) for {terrain}",
    'motion_unavailable': "Motion sensors unavailable, terrain follows map data only",
    'grade_clamped': "Grade exceeded ±{limit:.0f}% and was clamped",
    'elevation_clamped': "Implausible barometric jump was clamped",
    'low_power': "Low power mode, GPS sampling reduced",
}

# Axis labels and chart titles
LABELS = {
    'elevation_title': "Elevation and grade",
    'energy_title': "Energy expenditure",
    'speed_title': "Speed and movement",

    'time_axis': "Time (min)",
    'elevation_axis': "Elevation (m)",
    'grade_axis': "Grade (%)",
    'rate_axis': "Rate (kcal/min)",
    'calories_axis': "Cumulative (kcal)",
    'speed_axis': "Speed (m/s)",

    'elevation': "Elevation",
    'grade': "Smoothed grade",
    'rate': "Metabolic rate",
    'rate_interval': "95% interval",
    'calories': "Cumulative energy",
    'speed': "Fused speed",
    'predicted': "Predicted position",
}

# Summary field descriptions for the replay output
SUMMARY = {
    'title': "Session summary",
    'distance': "Distance: {distance:.2f} km",
    'duration': "Duration: {minutes:.1f} min",
    'gain_loss': "Elevation: +{gain:.0f} m / -{loss:.0f} m",
    'calories': "Energy: {calories:.0f} kcal ({low:.0f}-{high:.0f})",
    'segment': "{terrain}: {distance:.0f} m, {minutes:.1f} min",
}
