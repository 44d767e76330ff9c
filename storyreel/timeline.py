"""Timeline driver: title card, then one held segment per page.

States run strictly forward: idle -> title card -> page 0..N-1 ->
finalizing -> done. Every segment is a fixed number of frames, so the
video timeline is independent of how fast the encoder runs. Writing a
frame to the capture session is the only per-tick suspension point, and
cancellation is checked between ticks.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from storyreel.assets import prefetch_illustrations
from storyreel.capture import CaptureSession, FFmpegEncoder
from storyreel.compositor import create_surface, render_title, render_page
from storyreel.constants import FPS, TITLE_HOLD_FRAMES, MIME_CANDIDATES, IMAGE_FETCH_TIMEOUT
from storyreel.errors import ExportInProgressError, StoryReelError
from storyreel.models import ExportFormat, SegmentRecord, Story, VideoBlob
from storyreel.scheduler import MixBus, frame_count, play, schedule_duration

logger = logging.getLogger(__name__)


class CancelToken:
    """Cooperative cancellation, safe to trigger from another thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class DriverState(Enum):
    IDLE = "idle"
    TITLE_CARD = "title_card"
    PAGE = "page"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass
class ExportResult:
    blob: VideoBlob
    segments: list[SegmentRecord] = field(default_factory=list)
    cancelled: bool = False
    fps: int = FPS

    @property
    def total_frames(self) -> int:
        return sum(s.emitted_frames for s in self.segments)

    @property
    def duration_ms(self) -> float:
        return self.total_frames * 1000 / self.fps


class TimelineDriver:
    """Runs one export. Single use: build a new driver for every run."""

    def __init__(
        self,
        story: Story,
        export_format: ExportFormat,
        on_progress: Callable[[str], None] | None = None,
        cancel_token: CancelToken | None = None,
        fps: int = FPS,
        candidates: list[str] = MIME_CANDIDATES,
        is_supported: Callable[[str], bool] | None = None,
        encoder_factory=FFmpegEncoder,
        image_timeout: float = IMAGE_FETCH_TIMEOUT,
    ):
        self.story = story
        self.export_format = export_format
        self.on_progress = on_progress or (lambda message: None)
        self.cancel_token = cancel_token or CancelToken()
        self.fps = fps
        self.candidates = candidates
        self.is_supported = is_supported
        self.encoder_factory = encoder_factory
        self.image_timeout = image_timeout
        self.state = DriverState.IDLE
        self.page_index = None
        self.segments = []

    def run(self) -> ExportResult:
        if self.state is not DriverState.IDLE:
            raise StoryReelError("TimelineDriver instances cannot be reused")
        layout = self.export_format.layout

        # Everything fatal happens before recording starts
        illustrations = prefetch_illustrations(self.story, timeout=self.image_timeout)
        surface = create_surface(layout)
        mix_bus = MixBus()
        session = CaptureSession.open(
            surface, mix_bus,
            candidates=self.candidates,
            is_supported=self.is_supported,
            encoder_factory=self.encoder_factory,
            fps=self.fps,
        )
        session.start()

        try:
            self.state = DriverState.TITLE_CARD
            self.on_progress("Preparing opening...")
            render_title(surface, self.story.title, layout)
            self._hold(session, surface.tobytes(), "title", TITLE_HOLD_FRAMES,
                       TITLE_HOLD_FRAMES * 1000 / self.fps)

            total = len(self.story.pages)
            for i, page in enumerate(self.story.pages):
                if self.cancel_token.cancelled:
                    break
                self.state = DriverState.PAGE
                self.page_index = i
                self.on_progress(f"Recording page {i + 1} / {total}...")

                illustration = illustrations.get(page.index)
                try:
                    render_page(surface, page, layout, illustration)
                except (OSError, ValueError) as e:
                    logger.warning("Page %d illustration failed to render (%s); caption only", i + 1, e)
                    render_page(surface, page, layout, None)

                play(page, mix_bus)
                duration_ms = schedule_duration(page)
                self._hold(session, surface.tobytes(), f"page {i + 1}",
                           frame_count(duration_ms, self.fps), duration_ms)
        except Exception:
            session.abort()
            raise

        cancelled = self.cancel_token.cancelled
        if cancelled:
            logger.info("Export cancelled at %s; finalizing partial video", self._position())

        self.state = DriverState.FINALIZING
        blob = session.stop()
        self.state = DriverState.DONE
        return ExportResult(blob=blob, segments=self.segments, cancelled=cancelled, fps=self.fps)

    def _hold(self, session: CaptureSession, frame: bytes, label: str,
              frames: int, duration_ms: float) -> None:
        """Emit `frames` copies of the painted frame, stopping early on cancel."""
        emitted = 0
        for _ in range(frames):
            if self.cancel_token.cancelled:
                break
            session.capture_frame(frame)
            emitted += 1
        self.segments.append(SegmentRecord(
            label=label, planned_frames=frames, emitted_frames=emitted, duration_ms=duration_ms,
        ))

    def _position(self) -> str:
        if self.page_index is None:
            return "title card"
        return f"page {self.page_index + 1}"


def export_story(
    story: Story,
    export_format: ExportFormat,
    on_progress: Callable[[str], None] | None = None,
    cancel_token: CancelToken | None = None,
    **options,
) -> ExportResult:
    """Run a single export with a fresh set of resources."""
    return TimelineDriver(story, export_format, on_progress, cancel_token, **options).run()


class StoryExporter:
    """Serializes exports: a second request while one runs is rejected."""

    def __init__(self, **options):
        self.options = options
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def export(
        self,
        story: Story,
        export_format: ExportFormat,
        on_progress: Callable[[str], None] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ExportResult:
        if not self._lock.acquire(blocking=False):
            raise ExportInProgressError("An export is already in progress")
        try:
            return export_story(story, export_format, on_progress, cancel_token, **self.options)
        finally:
            self._lock.release()
