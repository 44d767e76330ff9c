"""Shared fixtures for storyreel tests."""

from concurrent.futures import Future

import pytest
from PIL import Image
from pydub import AudioSegment

from storyreel.models import Page, Story


class FakeEncoder:
    """In-process stand-in for FFmpegEncoder: one chunk per frame."""

    def __init__(self, capture_format, width, height, fps, sample_rate, on_chunk, on_write=None):
        self.capture_format = capture_format
        self.width = width
        self.height = height
        self.fps = fps
        self.sample_rate = sample_rate
        self.on_chunk = on_chunk
        self.on_write = on_write
        self.started = False
        self.finished = False
        self.aborted = False
        self.frames = 0
        self.audio_bytes = 0
        self.frame_bytes = set()

    def start(self):
        self.started = True

    def write(self, frame, audio):
        self.frames += 1
        self.audio_bytes += len(audio)
        self.frame_bytes.add(len(frame))
        self.on_chunk(b"f%d;" % self.frames)
        if self.on_write:
            self.on_write(self.frames)

    def finish(self):
        self.finished = True
        self.on_chunk(b"end")
        done = Future()
        done.set_result(None)
        return done

    def abort(self):
        self.aborted = True


class EncoderFactory:
    def __init__(self):
        self.created = []
        self.on_write = None

    def __call__(self, *args):
        encoder = FakeEncoder(*args, on_write=self.on_write)
        self.created.append(encoder)
        return encoder

    @property
    def last(self):
        return self.created[-1]


@pytest.fixture
def encoder_factory():
    return EncoderFactory()


@pytest.fixture
def driver_options(encoder_factory):
    """Timeline options that never touch a real ffmpeg."""
    return {"is_supported": lambda mime: True, "encoder_factory": encoder_factory}


@pytest.fixture
def red_image():
    return Image.new("RGB", (64, 48), (255, 0, 0))


@pytest.fixture
def sample_story(red_image):
    """Three pages; the middle one has neither illustration nor narration."""
    return Story(
        title="The Little Lamp",
        pages=[
            Page(index=0, text="Once there was a lamp.", illustration=red_image,
                 narration=AudioSegment.silent(duration=1200)),
            Page(index=1, text="It waited in the dark."),
            Page(index=2, text="작은 등불이 빛났어요.",
                 narration=AudioSegment.silent(duration=500)),
        ],
    )
