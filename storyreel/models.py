"""Data models for story-to-video export."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydub import AudioSegment


@dataclass
class Page:
    index: int
    text: str
    illustration: Any = None                 # Image, bytes, path, URL or data: URL
    narration: AudioSegment | None = None    # absent until generated, may never arrive


@dataclass
class Story:
    title: str
    pages: list[Page] = field(default_factory=list)


@dataclass(frozen=True)
class Layout:
    """Pixel geometry derived from an export format."""
    width: int
    height: int
    image_size: int
    image_y: int
    caption_y: int
    caption_width: int
    caption_line_height: int
    caption_font_size: int
    title_font_size: int
    subtitle_font_size: int

    @property
    def image_x(self) -> int:
        return (self.width - self.image_size) // 2


_LAYOUTS = {
    "landscape": Layout(
        width=1920, height=1080,
        image_size=800, image_y=80,
        caption_y=980, caption_width=1600, caption_line_height=70,
        caption_font_size=48, title_font_size=80, subtitle_font_size=40,
    ),
    "portrait": Layout(
        width=1080, height=1920,
        image_size=900, image_y=350,
        caption_y=1500, caption_width=900, caption_line_height=60,
        caption_font_size=40, title_font_size=60, subtitle_font_size=30,
    ),
}


class ExportFormat(Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"

    @property
    def layout(self) -> Layout:
        return _LAYOUTS[self.value]


@dataclass
class SegmentPlan:
    index: int
    duration_ms: float
    frame_count: int
    has_narration: bool


@dataclass
class SegmentRecord:
    """What the timeline actually emitted for one segment."""
    label: str            # "title" or "page N"
    planned_frames: int
    emitted_frames: int
    duration_ms: float


class CaptureState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass
class VideoBlob:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return "mp4" if "mp4" in self.mime_type else "webm"
