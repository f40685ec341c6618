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
RuckFusion visualization module.

Session charts from a list of metrics snapshots using matplotlib.
"""
import logging
import os

import matplotlib.pyplot as plt
import numpy as np

try:
    from .. import config
except ImportError:
    import config

try:
    from locales.strings import LABELS
except ImportError:
    from ..locales.strings import LABELS

from .filters import apply_savgol_filter, calculate_savgol_window_size

logger = logging.getLogger(__name__)

TERRAIN_COLORS = {
    'pavement': '#7f8c8d',
    'trail': '#27ae60',
    'gravel': '#a0522d',
    'grass': '#2ecc71',
    'sand': '#f1c40f',
    'mud': '#6e2c00',
    'snow': '#aed6f1',
    'stairs': '#8e44ad',
}


def _series(history, start_time):
    """Extracts numpy series from snapshots."""
    minutes = np.array([(s.timestamp - start_time) / 60.0 for s in history])
    altitude = np.array([s.elevation.current_altitude if s.elevation.current_altitude is not None else np.nan
                         for s in history])
    grade = np.array([s.elevation.smoothed_grade for s in history])
    rate = np.array([s.energy.instantaneous_rate for s in history])
    low = np.array([s.energy.confidence_interval[0] for s in history])
    high = np.array([s.energy.confidence_interval[1] for s in history])
    calories = np.array([s.energy.cumulative_calories for s in history])
    speed = np.array([s.position.speed if s.position is not None else np.nan for s in history])
    predicted = np.array([s.position is not None and s.position.predicted for s in history])
    return minutes, altitude, grade, rate, low, high, calories, speed, predicted


def _shade_segments(ax, segments, start_time, end_time):
    for segment in segments:
        end = segment.end_time if segment.end_time is not None else end_time
        ax.axvspan((segment.start_time - start_time) / 60.0, (end - start_time) / 60.0,
                   color=TERRAIN_COLORS.get(segment.terrain_type.value, '#bdc3c7'), alpha=0.12, lw=0)


def plot_session_charts(history, summary, output_file, title=None):
    """
    Elevation, energy and speed charts for one session.

    Args:
        history: list of MetricsSnapshot in time order
        summary: SessionSnapshot (terrain segments, start/end)
        output_file: PNG path
        title: optional chart title

    Returns:
        str: path of the written file, or None when there is nothing to plot
    """
    if not history:
        logger.warning("No metrics to plot")
        return None

    start = summary.start_time
    minutes, altitude, grade, rate, low, high, calories, speed, predicted = _series(history, start)

    window = calculate_savgol_window_size(len(grade))
    grade_smooth = apply_savgol_filter(grade, window)

    fig, (ax_elev, ax_energy, ax_speed) = plt.subplots(
        3, 1, figsize=getattr(config, 'CHART_FIGSIZE', (12, 10)), sharex=True)

    _shade_segments(ax_elev, summary.terrain_segments, start, summary.end_time)
    ax_elev.plot(minutes, altitude, '-', linewidth=1.5, color='#2980b9', label=LABELS['elevation'])
    ax_elev.set_ylabel(LABELS['elevation_axis'])
    ax_elev.grid(True, linestyle='--', alpha=0.7)
    ax_grade = ax_elev.twinx()
    ax_grade.plot(minutes, grade_smooth, '-', linewidth=1, color='#e67e22', alpha=0.8, label=LABELS['grade'])
    ax_grade.set_ylabel(LABELS['grade_axis'])
    ax_elev.set_title(f"{title}\n{LABELS['elevation_title']}" if title else LABELS['elevation_title'])

    handles, labels = ax_elev.get_legend_handles_labels()
    handles2, labels2 = ax_grade.get_legend_handles_labels()
    ax_elev.legend(handles + handles2, labels + labels2, loc='upper left', fontsize=9)

    _shade_segments(ax_energy, summary.terrain_segments, start, summary.end_time)
    ax_energy.fill_between(minutes, low, high, color='#c0392b', alpha=0.15, label=LABELS['rate_interval'])
    ax_energy.plot(minutes, rate, '-', linewidth=1, color='#c0392b', label=LABELS['rate'])
    ax_energy.set_ylabel(LABELS['rate_axis'])
    ax_energy.grid(True, linestyle='--', alpha=0.7)
    ax_cal = ax_energy.twinx()
    ax_cal.plot(minutes, calories, '-', linewidth=1.5, color='#2c3e50', label=LABELS['calories'])
    ax_cal.set_ylabel(LABELS['calories_axis'])
    ax_energy.set_title(LABELS['energy_title'])

    handles, labels = ax_energy.get_legend_handles_labels()
    handles2, labels2 = ax_cal.get_legend_handles_labels()
    ax_energy.legend(handles + handles2, labels + labels2, loc='upper left', fontsize=9)

    ax_speed.plot(minutes, speed, '-', linewidth=1, color='#16a085', label=LABELS['speed'])
    if predicted.any():
        ax_speed.scatter(minutes[predicted], speed[predicted], s=8, color='#e74c3c', zorder=3,
                         label=LABELS['predicted'])
    ax_speed.set_ylabel(LABELS['speed_axis'])
    ax_speed.set_xlabel(LABELS['time_axis'])
    ax_speed.set_title(LABELS['speed_title'])
    ax_speed.grid(True, linestyle='--', alpha=0.7)
    ax_speed.legend(loc='upper left', fontsize=9)

    fig.tight_layout()
    directory = os.path.dirname(output_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.savefig(output_file, dpi=getattr(config, 'CHART_DPI', 150), bbox_inches='tight', facecolor='white')
    plt.close(fig)
    logger.info("Session chart written to %s", output_file)
    return output_file
