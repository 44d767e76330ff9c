"""Tests for narration cue scheduling and the mix bus (Layer 1)."""

import math

import numpy as np
from pydub import AudioSegment

from storyreel.constants import FALLBACK_MS, FPS, PAD_MS
from storyreel.models import Page, Story
from storyreel.scheduler import (
    MixBus,
    frame_count,
    plan_segments,
    play,
    schedule_duration,
)


def _tone(n_samples, rate=48000, value=1000):
    """Constant-valued mono clip, easy to recognise after mixing."""
    samples = np.full(n_samples, value, dtype=np.int16)
    return AudioSegment(data=samples.tobytes(), sample_width=2, frame_rate=rate, channels=1)


def _samples(data):
    return np.frombuffer(data, dtype="<i2")


# --- Durations ---

def test_duration_with_narration():
    page = Page(0, "x", narration=AudioSegment.silent(duration=1500, frame_rate=48000))
    assert schedule_duration(page) == 1500 + PAD_MS


def test_duration_without_narration():
    assert schedule_duration(Page(0, "x")) == FALLBACK_MS


def test_frame_count_rounds_up():
    assert frame_count(1000) == FPS
    assert frame_count(1001) == FPS + 1
    assert frame_count(FALLBACK_MS) == math.ceil(FALLBACK_MS / (1000 / FPS))


def test_plan_segments():
    story = Story("T", [
        Page(0, "a", narration=AudioSegment.silent(duration=2000, frame_rate=48000)),
        Page(1, "b"),
    ])
    plans = plan_segments(story)
    assert [p.index for p in plans] == [0, 1]
    assert plans[0].has_narration and not plans[1].has_narration
    assert plans[0].frame_count == frame_count(2000 + PAD_MS)
    assert plans[1].duration_ms == FALLBACK_MS


# --- Mix bus ---

def test_bus_is_silent_without_clips():
    bus = MixBus()
    data = bus.pull(1600)
    assert len(data) == 3200
    assert not _samples(data).any()
    assert bus.cursor == 1600


def test_bus_plays_clip_from_cursor():
    bus = MixBus()
    bus.pull(1600)
    bus.connect(_tone(800))
    out = _samples(bus.pull(1600))
    assert (out[:800] == 1000).all()
    assert not out[800:].any()
    assert not _samples(bus.pull(1600)).any()


def test_bus_clip_spans_pulls():
    bus = MixBus()
    bus.connect(_tone(2400))
    first = _samples(bus.pull(1600))
    second = _samples(bus.pull(1600))
    assert (first == 1000).all()
    assert (second[:800] == 1000).all()
    assert not second[800:].any()


def test_bus_mixes_and_clips():
    bus = MixBus()
    bus.connect(_tone(100, value=30000))
    bus.connect(_tone(100, value=30000))
    out = _samples(bus.pull(100))
    assert (out == 32767).all()


def test_bus_resamples_clip():
    bus = MixBus()
    bus.connect(_tone(24000, rate=24000))
    total = sum(len(bus.pull(1600)) // 2 for _ in range(40))
    assert total == 64000
    assert not _samples(bus.pull(1600)).any()


def test_samples_for_tick_has_no_drift():
    bus = MixBus(sample_rate=44100)
    assert bus.samples_for_tick(0, fps=30) == 1470
    assert sum(bus.samples_for_tick(t, fps=24) for t in range(24)) == 44100


def test_play_without_narration_is_noop():
    bus = MixBus()
    play(Page(0, "x"), bus)
    assert not _samples(bus.pull(1600)).any()


def test_play_connects_narration():
    bus = MixBus()
    play(Page(0, "x", narration=_tone(10)), bus)
    assert (_samples(bus.pull(10)) == 1000).all()
