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
NMEA file handler - turns a recorded NMEA log into PositionFix samples.

RMC sentences give position, speed and course; GGA sentences give altitude
and HDOP. Sentences with the same UTC time are merged into one fix.
"""
import logging
from datetime import datetime, timedelta, timezone

import pynmea2

try:
    from .. import config
    from ..fusion.structures import Coordinate, PositionFix
except ImportError:
    import config
    from fusion.structures import Coordinate, PositionFix

logger = logging.getLogger(__name__)


def convert_nmea_to_seconds(date, time_of_day):
    """Returns UTC epoch seconds for an NMEA date and time."""
    dt = datetime.combine(date, time_of_day.replace(tzinfo=None)).replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _has_position(msg):
    return bool(getattr(msg, 'lat', '')) and bool(getattr(msg, 'lon', ''))


def _parse_lines(file_path):
    """Parses every RMC / GGA sentence, skipping malformed ones."""
    messages = []
    with open(file_path, 'r') as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line.startswith('$'):
                continue
            try:
                msg = pynmea2.parse(line)
            except pynmea2.ParseError as e:
                logger.debug(f"NMEA parse error on line {line_no}: {e}")
                continue
            if msg.sentence_type in ('RMC', 'GGA') and getattr(msg, 'timestamp', None) is not None:
                messages.append(msg)
    return messages


def read_position_fixes(file_path):
    """
    Extracts position fixes from an NMEA file.

    Args:
        file_path: path to NMEA log

    Returns:
        list of PositionFix sorted by timestamp

    Raises:
        FileNotFoundError: file does not exist
    """
    messages = _parse_lines(file_path)

    first_date = next((m.datestamp for m in messages
                       if m.sentence_type == 'RMC' and getattr(m, 'datestamp', None)), None)
    if first_date is None:
        first_date = datetime.now(timezone.utc).date()
        logger.warning("No RMC date in %s, assuming today's date", file_path)

    uere = getattr(config, 'NMEA_UERE_METERS', 5.0)
    default_hdop = getattr(config, 'NMEA_DEFAULT_HDOP', 1.0)
    vertical_factor = getattr(config, 'NMEA_VERTICAL_ACCURACY_FACTOR', 1.5)
    knots_to_ms = getattr(config, 'KNOTS_TO_MS', 0.514444)

    epochs = {}
    current_date = first_date
    previous_time = None
    for msg in messages:
        if msg.sentence_type == 'RMC' and getattr(msg, 'datestamp', None):
            current_date = msg.datestamp
        elif previous_time is not None and msg.timestamp < previous_time and msg.sentence_type == 'GGA':
            # Midnight rollover before the next RMC carries the new date
            current_date = current_date + timedelta(days=1)
        previous_time = msg.timestamp

        ts = convert_nmea_to_seconds(current_date, msg.timestamp)
        epoch = epochs.setdefault(ts, {})

        if msg.sentence_type == 'RMC':
            if getattr(msg, 'status', 'A') != 'A':
                logger.debug(f"Skipped void RMC at {msg.timestamp}")
                continue
            if _has_position(msg):
                epoch['lat'], epoch['lon'] = msg.latitude, msg.longitude
            if msg.spd_over_grnd is not None:
                epoch['speed'] = float(msg.spd_over_grnd) * knots_to_ms
            if msg.true_course is not None:
                epoch['course'] = float(msg.true_course)
        else:
            if not msg.gps_qual:
                continue
            if _has_position(msg) and 'lat' not in epoch:
                epoch['lat'], epoch['lon'] = msg.latitude, msg.longitude
            if msg.altitude is not None:
                epoch['altitude'] = float(msg.altitude)
            if getattr(msg, 'horizontal_dil', None) not in (None, ''):
                epoch['hdop'] = float(msg.horizontal_dil)

    fixes = []
    for ts in sorted(epochs):
        epoch = epochs[ts]
        if 'lat' not in epoch:
            continue
        horizontal = epoch.get('hdop', default_hdop) * uere
        altitude = epoch.get('altitude')
        fixes.append(PositionFix(
            coordinate=Coordinate(epoch['lat'], epoch['lon']),
            horizontal_accuracy=horizontal,
            timestamp=ts,
            altitude=altitude,
            vertical_accuracy=horizontal * vertical_factor if altitude is not None else None,
            speed=epoch.get('speed'),
            course=epoch.get('course'),
        ))

    logger.info("Read %d fixes from %s", len(fixes), file_path)
    return fixes


def calculate_gps_frequency(timestamps):
    """
    Calculates GPS frequency in Hz from timestamps in seconds.
    """
    if len(timestamps) < 2:
        return 0

    interval_sum = 0.0
    count = 0
    for i in range(1, len(timestamps)):
        time_diff = timestamps[i] - timestamps[i - 1]
        if 0 < time_diff < 5.0:
            interval_sum += time_diff
            count += 1

    if count == 0:
        return 0
    return round(count / interval_sum, 2)


def find_fix_gaps(fixes, threshold=None):
    """
    Finds gaps in the fix stream longer than threshold seconds.

    Returns:
        list of dicts: {'start': ts, 'end': ts, 'duration': seconds}
    """
    if threshold is None:
        threshold = getattr(config, 'SIGNAL_GAP_SECONDS', 10.0)
    gaps = []
    for prev, curr in zip(fixes, fixes[1:]):
        duration = curr.timestamp - prev.timestamp
        if duration > threshold:
            gaps.append({'start': prev.timestamp, 'end': curr.timestamp, 'duration': duration})
    return gaps
