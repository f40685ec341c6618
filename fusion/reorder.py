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
Bounded reorder window for the event stream.

Sensor callbacks from different sources arrive slightly out of timestamp
order. Events are held until the newest timestamp seen is more than the
window ahead of them, then released in timestamp order. An event older than
one already released is dropped.

Events sharing a timestamp are applied in a fixed source order (commands,
power, pressure, motion, position) so the result does not depend on which
callback won the race.
"""
import heapq
import logging
import math

try:
    from .. import config
except ImportError:
    import config

from .structures import (
    ClearTerrainOverride, EnvironmentReading, MapSurfaceHint, MotionSample,
    PositionFix, PowerState, PressureSample, SensorStatus, TerrainOverride,
)

logger = logging.getLogger(__name__)

SOURCE_ORDER = (
    SensorStatus,
    EnvironmentReading,
    TerrainOverride,
    ClearTerrainOverride,
    MapSurfaceHint,
    PowerState,
    PressureSample,
    MotionSample,
    PositionFix,
)


def source_rank(event):
    for rank, event_type in enumerate(SOURCE_ORDER):
        if isinstance(event, event_type):
            return rank
    return len(SOURCE_ORDER)


class ReorderBuffer:

    def __init__(self, window=None):
        self.window = window if window is not None else getattr(config, 'REORDER_WINDOW_SECONDS', 1.0)
        self._heap = []
        self._seq = 0
        self.newest = None
        self.last_released = None
        self.dropped = 0

    def __len__(self):
        return len(self._heap)

    @property
    def oldest(self):
        """Timestamp of the oldest buffered event, or None."""
        return self._heap[0][0] if self._heap else None

    def push(self, event):
        """
        Add an event and release everything that left the window.

        Returns:
            list: events ready to apply, in timestamp order
        """
        ts = event.timestamp
        if ts is None or not math.isfinite(ts):
            self.dropped += 1
            logger.debug("Event without a usable timestamp dropped: %r", event)
            return []
        if self.last_released is not None and ts < self.last_released:
            self.dropped += 1
            logger.debug("Late %s at %.3f dropped (already applied up to %.3f)",
                         type(event).__name__, ts, self.last_released)
            return []

        heapq.heappush(self._heap, (ts, source_rank(event), self._seq, event))
        self._seq += 1
        if self.newest is None or ts > self.newest:
            self.newest = ts
        return self.release_until(self.newest - self.window)

    def release_until(self, cutoff):
        """Release events with timestamp strictly before cutoff."""
        released = []
        while self._heap and self._heap[0][0] < cutoff:
            ts, _, _, event = heapq.heappop(self._heap)
            self.last_released = ts
            released.append(event)
        return released

    def advance(self, cutoff):
        """
        Release events before cutoff and close the window behind it.

        Used when time moves on without new events: anything arriving
        later with a timestamp before cutoff counts as late.
        """
        released = self.release_until(cutoff)
        if self.last_released is None or cutoff > self.last_released:
            self.last_released = cutoff
        return released

    def drain(self):
        """Release everything still buffered."""
        released = []
        while self._heap:
            ts, _, _, event = heapq.heappop(self._heap)
            self.last_released = ts
            released.append(event)
        return released
