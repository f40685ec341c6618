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

"""Tests for terrain classification and the segment ledger."""
import math
import os
import sys

import pytest

# Add parent directory to path for imports
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from fusion.errors import InvalidConfigurationError
from fusion.structures import MapSurfaceHint, MotionSample, TerrainType
from fusion.terrain import TerrainClassifier, TerrainSegmentLedger, classify_variance, default_terrain

# Alternating magnitudes 1 ± a give a variance of a²
PAVEMENT_AMPLITUDE = 0.2      # variance 0.04
SAND_AMPLITUDE = math.sqrt(0.35)


def run(classifier, amplitude, start, end, speed=1.0, hint=None, rate=10):
    """Feed motion samples between start and end (seconds) and update."""
    if hint is not None:
        classifier.set_map_hint(hint)
    i = int(start * rate)
    while i <= int(end * rate):
        t = i / float(rate)
        z = 1.0 + (amplitude if i % 2 else -amplitude)
        classifier.add_motion(MotionSample((0.0, 0.0, z), t))
        classifier.update(t, speed)
        i += 1


def test_default_terrain_is_trail():
    assert default_terrain() == TerrainType.TRAIL


@pytest.mark.parametrize("variance,speed,terrain,confidence", [
    (0.04, 1.4, TerrainType.PAVEMENT, 1.0),
    (0.165, 1.4, TerrainType.TRAIL, 1.0),
    (0.35, 1.0, TerrainType.SAND, 1.0),
    (0.375, 1.5, TerrainType.GRAVEL, 1.0),
    (0.55, 0.8, TerrainType.SNOW, 1.0),
    (0.0, 1.4, TerrainType.PAVEMENT, 0.5),
])
def test_classify_variance(variance, speed, terrain, confidence):
    result, conf = classify_variance(variance, speed)
    assert result == terrain
    assert conf == pytest.approx(confidence)


def test_ledger_segments_are_contiguous():
    ledger = TerrainSegmentLedger(0.0, TerrainType.TRAIL)
    ledger.add_distance(100.0)
    ledger.switch(TerrainType.SAND, 60.0)
    ledger.add_distance(40.0)
    ledger.switch(TerrainType.SAND, 70.0)  # same terrain, no new segment
    ledger.switch(TerrainType.PAVEMENT, 120.0)
    segments = ledger.close(200.0)

    assert [s.terrain_type for s in segments] == [TerrainType.TRAIL, TerrainType.SAND, TerrainType.PAVEMENT]
    assert segments[0].start_time == 0.0
    assert segments[-1].end_time == 200.0
    for prev, curr in zip(segments, segments[1:]):
        assert prev.end_time == curr.start_time
    assert [s.distance for s in segments] == [100.0, 40.0, 0.0]


def test_initial_estimate():
    classifier = TerrainClassifier(0.0)
    assert classifier.current.terrain_type == TerrainType.TRAIL
    assert classifier.current.source == 'default'
    assert classifier.current.multiplier == pytest.approx(1.2)


def test_sand_detected_after_two_stable_evaluations():
    classifier = TerrainClassifier(0.0)
    run(classifier, SAND_AMPLITUDE, 0.0, 15.0)
    # One evaluation so far, not yet stable
    assert classifier.current.terrain_type == TerrainType.TRAIL

    run(classifier, SAND_AMPLITUDE, 15.1, 25.0)
    assert classifier.current.terrain_type == TerrainType.SAND
    assert classifier.current.source == 'motion'
    assert classifier.current.multiplier == pytest.approx(2.1)

    segments = classifier.finalize(25.0)
    assert [s.terrain_type for s in segments] == [TerrainType.TRAIL, TerrainType.SAND]
    assert segments[0].end_time == segments[1].start_time == 20.0


def test_low_motion_confidence_defers_to_map_hint():
    classifier = TerrainClassifier(0.0)
    hint = MapSurfaceHint(TerrainType.GRASS, 0.8, 0.0)
    run(classifier, 0.0, 0.0, 25.0, hint=hint)
    assert classifier.current.terrain_type == TerrainType.GRASS
    assert classifier.current.source == 'map'
    assert classifier.current.confidence == pytest.approx(0.8)


def test_map_hint_alone_without_motion():
    classifier = TerrainClassifier(0.0)
    classifier.set_motion_available(False)
    classifier.set_map_hint(MapSurfaceHint(TerrainType.PAVEMENT, 0.9, 0.0))
    classifier.update(10.0)
    classifier.update(20.0)
    assert classifier.current.terrain_type == TerrainType.PAVEMENT
    assert classifier.current.source == 'map'


def test_disagreeing_hint_lowers_confidence():
    classifier = TerrainClassifier(0.0, initial_terrain=TerrainType.PAVEMENT)
    run(classifier, PAVEMENT_AMPLITUDE, 0.0, 10.0, hint=MapSurfaceHint(TerrainType.SAND, 0.9, 0.0))
    assert classifier.current.terrain_type == TerrainType.PAVEMENT
    assert classifier.current.confidence == pytest.approx(0.8, abs=0.02)


def test_agreeing_hint_is_capped_at_one():
    classifier = TerrainClassifier(0.0, initial_terrain=TerrainType.PAVEMENT)
    run(classifier, PAVEMENT_AMPLITUDE, 0.0, 10.0, hint=MapSurfaceHint(TerrainType.PAVEMENT, 0.9, 0.0))
    assert classifier.current.confidence == pytest.approx(1.0)


def test_confidence_decays_without_sources():
    classifier = TerrainClassifier(0.0)
    classifier.update(10.0)
    assert classifier.current.confidence == pytest.approx(0.45)
    assert classifier.current.terrain_type == TerrainType.TRAIL


def test_disabled_detection_keeps_initial_terrain():
    classifier = TerrainClassifier(0.0, enabled=False, initial_terrain=TerrainType.GRAVEL)
    run(classifier, SAND_AMPLITUDE, 0.0, 40.0)
    assert classifier.current.terrain_type == TerrainType.GRAVEL
    assert classifier.current.confidence == 1.0
    assert len(classifier.finalize(40.0)) == 1


def test_override_pins_terrain_until_expiry():
    classifier = TerrainClassifier(0.0)
    classifier.set_override(TerrainType.MUD, 60.0, 5.0)
    assert classifier.current.terrain_type == TerrainType.MUD
    assert classifier.current.source == 'manual'
    assert classifier.override_active

    run(classifier, SAND_AMPLITUDE, 5.0, 50.0)
    assert classifier.current.terrain_type == TerrainType.MUD

    classifier.update(70.0)
    assert not classifier.override_active
    segments = classifier.finalize(70.0)
    assert [(s.terrain_type, s.manual) for s in segments] == [
        (TerrainType.TRAIL, False), (TerrainType.MUD, True), (TerrainType.MUD, False)]
    assert segments[1].start_time == 5.0
    assert segments[1].end_time == 65.0


def test_clear_override():
    classifier = TerrainClassifier(0.0)
    classifier.set_override(TerrainType.SNOW, 600.0, 0.0)
    classifier.clear_override(30.0)
    assert not classifier.override_active
    assert classifier.current.terrain_type == TerrainType.SNOW
    assert classifier.current.source == 'default'


@pytest.mark.parametrize("duration", [0.0, -5.0, 4 * 3600.0 + 1, None])
def test_override_duration_is_validated(duration):
    classifier = TerrainClassifier(0.0)
    with pytest.raises(InvalidConfigurationError):
        classifier.set_override(TerrainType.SAND, duration, 0.0)
    assert not classifier.override_active
