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
Tracking session actor.

Sensor callbacks may fire on any thread. They only enqueue: every sample,
command and power tick goes onto one inbox queue, and a single worker thread
drains it into the SessionCalculator. Metrics snapshots are published on an
output queue, followed by None once the session has stopped.

Usage:

    session = TrackingSession(SessionContext(80.0, 20.0, time.time()))
    session.start()
    session.on_position(fix)          # from the location callback
    session.motion.on_sample(sample)  # or through a per-source sink
    ...
    summary = session.stop()
"""
import logging
import threading
import time
from queue import Empty, Full, Queue

try:
    from .. import config
except ImportError:
    import config

from .calculator import SessionCalculator
from .errors import InvalidConfigurationError
from .structures import (
    ClearTerrainOverride, EnvironmentReading, MapSurfaceHint, MotionSample,
    PositionFix, PowerState, PressureSample, Sensor, SensorStatus, TerrainOverride,
    TerrainType,
)

logger = logging.getLogger(__name__)

_STOP = object()


class SampleSink:
    """Entry point for one sample source. on_sample never blocks."""

    def __init__(self, session, sample_type):
        self._session = session
        self.sample_type = sample_type

    def on_sample(self, sample):
        """
        Hand a sample to the session.

        Returns:
            bool: False when the sample was dropped (session stopped or inbox full)

        Raises:
            TypeError: sample is not of this source's type
        """
        if not isinstance(sample, self.sample_type):
            raise TypeError(f"Expected {self.sample_type.__name__}, got {type(sample).__name__}")
        return self._session._enqueue(sample)


class TrackingSession:
    """
    Owns the calculator of one session and serializes all access to it.

    Args:
        context: SessionContext
        options: SessionOptions
        power_state: initial PowerState
        on_config_change: callable(GPSConfig), called on the worker thread
            whenever the GPS configuration changes
        clock: callable returning the current time in the sample time base.
            When given, the worker uses it while idle to release buffered
            samples and to detect signal gaps. Leave None for replays.
    """

    def __init__(self, context, options=None, power_state=None, on_config_change=None, clock=None):
        self._calculator = SessionCalculator(context, options, power_state, on_config_change)
        self._clock = clock

        self._inbox = Queue(maxsize=getattr(config, 'INBOX_MAX_SIZE', 10000))
        self.metrics = Queue()
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._worker = None
        self._final = None
        self._latest = None

        self.dropped_after_stop = 0
        self.dropped_inbox_full = 0
        self.failed_events = 0

        self.position = SampleSink(self, PositionFix)
        self.motion = SampleSink(self, MotionSample)
        self.pressure = SampleSink(self, PressureSample)
        self.power = SampleSink(self, PowerState)

    @property
    def context(self):
        return self._calculator.context

    @property
    def running(self):
        return self._worker is not None and self._worker.is_alive()

    @property
    def latest_metrics(self):
        return self._latest

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        with self._lock:
            if self._worker is not None or self._final is not None:
                return
            self._worker = threading.Thread(target=self._run, name='ruckfusion-session', daemon=True)
            self._worker.start()
            logger.info("Session started (body %.1f kg, load %.1f kg)",
                        self.context.body_mass, self.context.load_mass)

    def stop(self, end_time=None):
        """
        Stop the session and return its frozen summary.

        Samples enqueued before the call are applied; anything arriving
        afterwards is dropped. Safe to call repeatedly and from several
        threads; every call returns the same SessionSnapshot.

        Args:
            end_time: session end, defaults to the last sample time
        """
        with self._lock:
            if self._final is not None:
                return self._final
            self._stop_event.set()
            if self._worker is not None:
                self._inbox.put(_STOP)
                self._worker.join()
            else:
                self._drain_inbox()
            self._finish(end_time)
            return self._final

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _enqueue(self, event):
        if self._stop_event.is_set():
            self.dropped_after_stop += 1
            logger.debug("Session stopped, %s dropped", type(event).__name__)
            return False
        try:
            self._inbox.put_nowait(event)
        except Full:
            self.dropped_inbox_full += 1
            logger.warning("Session inbox full, %s dropped", type(event).__name__)
            return False
        return True

    def on_sample(self, sample):
        """Generic entry point, dispatches on the sample type."""
        for sink in (self.position, self.motion, self.pressure, self.power):
            if isinstance(sample, sink.sample_type):
                return sink.on_sample(sample)
        raise TypeError(f"Unsupported sample type: {type(sample).__name__}")

    def on_position(self, fix):
        return self.position.on_sample(fix)

    def on_motion(self, sample):
        return self.motion.on_sample(sample)

    def on_pressure(self, sample):
        return self.pressure.on_sample(sample)

    def on_power_state(self, state):
        return self.power.on_sample(state)

    def _now(self, timestamp):
        if timestamp is not None:
            return timestamp
        return self._clock() if self._clock is not None else time.time()

    def set_terrain_override(self, terrain_type, duration, timestamp=None):
        """
        Pin the terrain type for `duration` seconds.

        Raises:
            InvalidConfigurationError: unknown terrain or duration out of range
        """
        max_duration = getattr(config, 'TERRAIN_MAX_OVERRIDE_SECONDS', 4 * 3600.0)
        if not isinstance(terrain_type, TerrainType):
            raise InvalidConfigurationError(f"Unknown terrain type: {terrain_type!r}")
        if duration is None or not 0 < duration <= max_duration:
            raise InvalidConfigurationError(
                f"Override duration must be in (0, {max_duration:.0f}] s, got {duration}")
        return self._enqueue(TerrainOverride(terrain_type, duration, self._now(timestamp)))

    def clear_terrain_override(self, timestamp=None):
        return self._enqueue(ClearTerrainOverride(self._now(timestamp)))

    def set_map_hint(self, terrain_type, confidence, timestamp=None):
        if not isinstance(terrain_type, TerrainType):
            raise InvalidConfigurationError(f"Unknown terrain type: {terrain_type!r}")
        if not 0.0 <= confidence <= 1.0:
            raise InvalidConfigurationError(f"Hint confidence must be in [0, 1], got {confidence}")
        return self._enqueue(MapSurfaceHint(terrain_type, confidence, self._now(timestamp)))

    def report_sensor_status(self, sensor, available, timestamp=None):
        if not isinstance(sensor, Sensor):
            raise InvalidConfigurationError(f"Unknown sensor: {sensor!r}")
        return self._enqueue(SensorStatus(sensor, bool(available), self._now(timestamp)))

    def set_temperature(self, temperature_c, timestamp=None):
        return self._enqueue(EnvironmentReading(temperature_c, self._now(timestamp)))

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def get_metrics(self, timeout=None):
        """Next published snapshot, or None on timeout / end of stream."""
        try:
            return self.metrics.get(timeout=timeout)
        except Empty:
            return None

    def iter_metrics(self, timeout=None):
        """Yield snapshots until the session has stopped (or timeout)."""
        while True:
            snapshot = self.get_metrics(timeout)
            if snapshot is None:
                return
            yield snapshot

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _publish(self, snapshots):
        for snapshot in snapshots:
            if snapshot is not None:
                self._latest = snapshot
                self.metrics.put(snapshot)

    def _apply(self, event):
        try:
            self._publish(self._calculator.submit(event))
        except Exception:
            self.failed_events += 1
            logger.exception("Failed to apply %s", type(event).__name__)

    def _idle(self):
        if self._clock is None:
            return
        calc = self._calculator
        horizon = self._clock() - calc.reorder.window
        self._publish(calc.release_until(horizon))
        self._publish([calc.tick(horizon)])

    def _run(self):
        wait = getattr(config, 'SAMPLE_WAIT_TIMEOUT', 0.5)
        while True:
            try:
                event = self._inbox.get(timeout=wait)
            except Empty:
                self._idle()
                continue
            if event is _STOP:
                break
            self._apply(event)
        self._drain_inbox()

    def _drain_inbox(self):
        while True:
            try:
                event = self._inbox.get_nowait()
            except Empty:
                return
            if event is not _STOP:
                self._apply(event)

    def _finish(self, end_time):
        calc = self._calculator
        self._publish(calc.flush())
        self._final = calc.finalize(end_time)
        self._publish([self._final.final_metrics])
        self.metrics.put(None)
        logger.info("Session stopped (%d dropped after stop, %d inbox overflow)",
                    self.dropped_after_stop, self.dropped_inbox_full)
