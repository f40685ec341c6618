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
RuckFusion CLI entry point.

Replays a recorded NMEA track through the session engine and prints the
session summary as JSON.
"""
import json
import os
import sys
import argparse
import logging

# Add script directory to path for imports
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from fusion.calculator import SessionCalculator
from fusion.errors import InvalidConfigurationError
from fusion.structures import SessionContext, SessionOptions, TerrainType
from parsers.nmea_handler import calculate_gps_frequency, find_fix_gaps, read_position_fixes
from locales.strings import ERRORS, SUMMARY

logging.basicConfig(
    level=logging.ERROR,
    format='%(levelname)s: %(message)s',
    stream=sys.stderr
)
logger = logging.getLogger('ruckfusion_replay')


def format_duration(seconds):
    """Format duration in seconds to hh:mm:ss string."""
    if seconds is None:
        return ""
    seconds = int(round(seconds))
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


def replay_fixes(fixes, context, options=None):
    """
    Feed position fixes through a SessionCalculator.

    Returns:
        tuple: (list of MetricsSnapshot, SessionSnapshot)
    """
    calculator = SessionCalculator(context, options)
    history = []
    for fix in fixes:
        history.extend(calculator.submit(fix))
    history.extend(calculator.flush())
    summary = calculator.finalize()
    if summary.final_metrics is not None:
        history.append(summary.final_metrics)
    return history, summary


def format_json_response(summary, gps_frequency=None, gaps=None, chart_path=None):
    """
    Format JSON response for CLI output.

    Args:
        summary: SessionSnapshot
        gps_frequency: fix rate in Hz
        gaps: list of gap dicts from find_fix_gaps
        chart_path: written chart file, if any

    Returns:
        dict with JSON response
    """
    low, high = summary.calories_interval
    final = summary.final_metrics
    response = {
        "success": True,
        "session": {
            "body_mass": summary.context.body_mass,
            "load_mass": summary.context.load_mass,
            "start_time": summary.start_time,
            "end_time": summary.end_time,
            "duration_s": round(summary.duration, 1),
            "duration_formatted": format_duration(summary.duration),
        },
        "results": {
            "distance_m": round(summary.total_distance, 1),
            "elevation_gain_m": round(summary.cumulative_gain, 1),
            "elevation_loss_m": round(summary.cumulative_loss, 1),
            "calories_kcal": round(summary.total_calories, 1),
            "calories_interval_kcal": [round(low, 1), round(high, 1)],
        },
        "terrain_segments": [
            {
                "terrain": segment.terrain_type.value,
                "start_time": segment.start_time,
                "end_time": segment.end_time,
                "distance_m": round(segment.distance, 1),
                "manual": segment.manual,
            }
            for segment in summary.terrain_segments
        ],
        "summary_text": [
            SUMMARY['title'],
            SUMMARY['distance'].format(distance=summary.total_distance / 1000.0),
            SUMMARY['duration'].format(minutes=summary.duration / 60.0),
            SUMMARY['gain_loss'].format(gain=summary.cumulative_gain, loss=summary.cumulative_loss),
            SUMMARY['calories'].format(calories=summary.total_calories, low=low, high=high),
        ] + [
            SUMMARY['segment'].format(
                terrain=segment.terrain_type.value,
                distance=segment.distance,
                minutes=((segment.end_time or summary.end_time) - segment.start_time) / 60.0)
            for segment in summary.terrain_segments
        ],
    }

    if gps_frequency is not None:
        response["gps_frequency"] = gps_frequency

    if gaps:
        response["signal_gaps"] = [
            {"start": g['start'], "end": g['end'], "duration_s": round(g['duration'], 1)} for g in gaps
        ]

    if chart_path:
        response["graphs"] = {"session": chart_path}

    if final is not None:
        response["quality"] = {
            "gps_tier": final.quality.gps_tier,
            "position_accuracy": final.quality.position_accuracy.value,
            "elevation_confidence": final.quality.elevation_confidence.value,
            "terrain_confidence": round(final.quality.terrain_confidence, 2),
        }
        if final.warnings:
            response["warning"] = final.warnings
        if final.cautions:
            response["caution"] = final.cautions

    return response


def _print_error(message):
    print(json.dumps({"success": False, "error": message}, ensure_ascii=False, indent=2))
    sys.exit(1)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description='Load carriage energy expenditure from NMEA data')
    parser.add_argument('nmea_file', help='Path to NMEA file')
    parser.add_argument('--body-mass', dest='body_mass', type=float, help='Body mass in kg', required=True)
    parser.add_argument('--load-mass', dest='load_mass', type=float, help='Carried load in kg', default=0.0)
    parser.add_argument('--temperature', type=float, help='Ambient temperature in °C', default=None)
    parser.add_argument('--terrain', choices=[t.value for t in TerrainType],
                        help='Terrain assumed until detection decides', default=None)
    parser.add_argument('--no-adaptive', dest='adaptive', action='store_false',
                        help='Disable adaptive GPS sampling')
    parser.add_argument('--no-terrain', dest='terrain_detection', action='store_false',
                        help='Disable automatic terrain detection')
    parser.add_argument('--output', help='Output path for the session chart (PNG)', default=None)
    parser.add_argument('--log-level', dest='log_level', default='ERROR',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')
    args = parser.parse_args()

    logging.getLogger().setLevel(args.log_level)

    try:
        if not os.path.exists(args.nmea_file):
            _print_error(ERRORS['file_not_found'].format(file_path=args.nmea_file))

        fixes = read_position_fixes(args.nmea_file)
        if not fixes:
            _print_error(ERRORS['no_fixes'].format(file_path=args.nmea_file))

        try:
            context = SessionContext(args.body_mass, args.load_mass, fixes[0].timestamp)
            options = SessionOptions(
                adaptive_sampling=args.adaptive,
                terrain_detection=args.terrain_detection,
                temperature_c=args.temperature,
                default_terrain=TerrainType(args.terrain) if args.terrain else None,
            )
        except InvalidConfigurationError as e:
            _print_error(ERRORS['invalid_configuration'].format(details=e))

        history, summary = replay_fixes(fixes, context, options)

        chart_path = None
        if args.output:
            # matplotlib is only loaded for charts
            from fusion.visualization import plot_session_charts
            chart_path = plot_session_charts(history, summary, args.output,
                                             title=os.path.basename(args.nmea_file))
            if not chart_path:
                _print_error(ERRORS['chart_failed'])

        response = format_json_response(
            summary,
            calculate_gps_frequency([f.timestamp for f in fixes]),
            find_fix_gaps(fixes),
            chart_path,
        )
        print(json.dumps(response, ensure_ascii=False, indent=2))

    except Exception as e:
        logger.exception("Replay failed")
        _print_error(f"Error: {str(e)}")


if __name__ == "__main__":
    main()
