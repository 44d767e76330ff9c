"""Narration cues: per-page durations and the shared mix bus.

Audio and video stay in sync by duration matching, not by a shared clock.
Each page's narration starts at the bus cursor when its segment starts, and
the segment is held for the narration length plus a trailing pad. Segment
lengths are computed independently per page, so rounding error is bounded
to one frame interval per segment rather than accumulating over the story.
"""

import math

import numpy as np
from pydub import AudioSegment

from storyreel.constants import PAD_MS, FALLBACK_MS, FPS, BUS_SAMPLE_RATE
from storyreel.models import Page, SegmentPlan, Story


def schedule_duration(page: Page) -> float:
    """On-screen time for a page in milliseconds."""
    if page.narration is None:
        return FALLBACK_MS
    return page.narration.duration_seconds * 1000 + PAD_MS


def frame_count(duration_ms: float, fps: int = FPS) -> int:
    return math.ceil(duration_ms / (1000 / fps))


def plan_segments(story: Story, fps: int = FPS) -> list[SegmentPlan]:
    plans = []
    for page in story.pages:
        duration_ms = schedule_duration(page)
        plans.append(SegmentPlan(
            index=page.index,
            duration_ms=duration_ms,
            frame_count=frame_count(duration_ms, fps),
            has_narration=page.narration is not None,
        ))
    return plans


class MixBus:
    """Mono 16-bit mixer feeding the capture sink.

    Clips are connected at the current play cursor; the sink pulls samples
    one frame interval at a time, which advances the cursor.
    """

    def __init__(self, sample_rate: int = BUS_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.cursor = 0
        self._sources = []   # (start_sample, int16 samples)

    def connect(self, clip: AudioSegment) -> None:
        """Start playing clip immediately, i.e. at the current cursor."""
        clip = clip.set_frame_rate(self.sample_rate).set_channels(1).set_sample_width(2)
        samples = np.frombuffer(clip.raw_data, dtype=np.int16)
        if len(samples):
            self._sources.append((self.cursor, samples))

    def pull(self, n_samples: int) -> bytes:
        """Mix and return the next n_samples as s16le bytes."""
        start, end = self.cursor, self.cursor + n_samples
        mix = np.zeros(n_samples, dtype=np.int32)
        remaining = []
        for src_start, samples in self._sources:
            src_end = src_start + len(samples)
            lo, hi = max(start, src_start), min(end, src_end)
            if hi > lo:
                mix[lo - start:hi - start] += samples[lo - src_start:hi - src_start]
            if src_end > end:
                remaining.append((src_start, samples))
        self._sources = remaining
        self.cursor = end
        return np.clip(mix, -32768, 32767).astype("<i2").tobytes()

    def samples_for_tick(self, tick: int, fps: int = FPS) -> int:
        """Samples covering video frame `tick`, rounded without drift."""
        return (round((tick + 1) * self.sample_rate / fps)
                - round(tick * self.sample_rate / fps))


def play(page: Page, mix_bus: MixBus) -> None:
    """Fire-and-forget: connect the page's narration, if any, to the bus."""
    if page.narration is not None:
        mix_bus.connect(page.narration)
