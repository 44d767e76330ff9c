"""Capture session: negotiate a container/codec, encode, collect chunks.

The sink is an ffmpeg subprocess fed raw rgb24 frames on stdin and raw PCM
from the mix bus on a second pipe. Encoded output is read from stdout in
arrival order and kept in memory until stop() concatenates it.
"""

import logging
import os
import queue
import shutil
import subprocess
import threading
from concurrent.futures import Future, TimeoutError as FinishTimeout
from dataclasses import dataclass
from typing import Callable

from PIL import Image

from storyreel.constants import (
    FPS,
    MIME_CANDIDATES,
    VIDEO_BITRATE,
    AUDIO_BITRATE,
    CHUNK_SIZE,
    VIDEO_QUEUE_FRAMES,
    ENCODER_FINISH_TIMEOUT,
)
from storyreel.errors import CaptureStateError, EncoderError, UnsupportedFormatError
from storyreel.models import CaptureState, VideoBlob
from storyreel.scheduler import MixBus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureFormat:
    mime_type: str
    muxer: str
    video_codec: str
    audio_codec: str


FORMATS = {
    "video/webm;codecs=vp9,opus": CaptureFormat("video/webm;codecs=vp9,opus", "webm", "libvpx-vp9", "libopus"),
    "video/webm;codecs=vp8,opus": CaptureFormat("video/webm;codecs=vp8,opus", "webm", "libvpx", "libopus"),
    "video/webm": CaptureFormat("video/webm", "webm", "libvpx", "libvorbis"),
    "video/mp4": CaptureFormat("video/mp4", "mp4", "libx264", "aac"),
}


def _ffmpeg_names(flag: str) -> set[str]:
    """Names listed by `ffmpeg -encoders` / `ffmpeg -muxers`."""
    result = subprocess.run(
        ["ffmpeg", "-hide_banner", flag],
        capture_output=True, text=True, timeout=30,
    )
    names = set()
    seen_separator = False
    for line in result.stdout.splitlines():
        stripped = line.strip()
        if stripped.startswith("--"):
            seen_separator = True
            continue
        if not seen_separator:
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            names.update(parts[1].split(","))
    return names


def ffmpeg_support() -> Callable[[str], bool]:
    """Build an is-supported predicate from the local ffmpeg build."""
    if not shutil.which("ffmpeg"):
        return lambda mime: False
    encoders = _ffmpeg_names("-encoders")
    muxers = _ffmpeg_names("-muxers")

    def is_supported(mime: str) -> bool:
        fmt = FORMATS.get(mime)
        return (fmt is not None and fmt.muxer in muxers
                and fmt.video_codec in encoders and fmt.audio_codec in encoders)

    return is_supported


def negotiate_format(
    candidates: list[str] = MIME_CANDIDATES,
    is_supported: Callable[[str], bool] | None = None,
) -> CaptureFormat:
    """First supported candidate, in preference order."""
    if is_supported is None:
        is_supported = ffmpeg_support()
    for mime in candidates:
        if mime in FORMATS and is_supported(mime):
            return FORMATS[mime]
    raise UnsupportedFormatError(
        f"None of the capture formats are supported: {', '.join(candidates)}"
    )


class FFmpegEncoder:
    """Encode rgb24 frames plus s16le mono audio through an ffmpeg process.

    Video and audio are written by separate feeder threads so ffmpeg can
    read its two inputs independently; the bounded video queue provides
    back-pressure to the caller.
    """

    def __init__(self, capture_format: CaptureFormat, width: int, height: int,
                 fps: int, sample_rate: int, on_chunk: Callable[[bytes], None]):
        self.capture_format = capture_format
        self.width = width
        self.height = height
        self.fps = fps
        self.sample_rate = sample_rate
        self.on_chunk = on_chunk
        self.proc = None
        self._video_q = queue.Queue(maxsize=VIDEO_QUEUE_FRAMES)
        self._audio_q = queue.Queue()
        self._threads = []
        self._stderr = []
        self._stderr_thread = None
        self._done = Future()

    def _command(self, audio_fd: int) -> list[str]:
        fmt = self.capture_format
        cmd = [
            "ffmpeg", "-hide_banner", "-loglevel", "error", "-y",
            "-f", "rawvideo", "-pix_fmt", "rgb24",
            "-s", f"{self.width}x{self.height}",
            "-framerate", str(self.fps),
            "-i", "pipe:0",
            "-f", "s16le", "-ar", str(self.sample_rate), "-ac", "1",
            "-i", f"pipe:{audio_fd}",
            "-map", "0:v", "-map", "1:a",
            "-c:v", fmt.video_codec, "-b:v", VIDEO_BITRATE, "-pix_fmt", "yuv420p",
        ]
        if fmt.video_codec.startswith("libvpx"):
            cmd += ["-deadline", "realtime", "-cpu-used", "8"]
        else:
            cmd += ["-preset", "veryfast"]
        cmd += ["-c:a", fmt.audio_codec, "-b:a", AUDIO_BITRATE]
        if fmt.muxer == "mp4":
            # Non-seekable output needs a fragmented mp4
            cmd += ["-movflags", "frag_keyframe+empty_moov"]
        cmd += ["-f", fmt.muxer, "pipe:1"]
        return cmd

    def start(self) -> None:
        audio_r, audio_w = os.pipe()
        try:
            self.proc = subprocess.Popen(
                self._command(audio_r),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                pass_fds=(audio_r,),
            )
        except OSError as e:
            os.close(audio_w)
            raise EncoderError(f"Could not start ffmpeg: {e}") from e
        finally:
            os.close(audio_r)
        audio_pipe = os.fdopen(audio_w, "wb")

        self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
        self._threads = [
            threading.Thread(target=self._feed, args=(self._video_q, self.proc.stdin), daemon=True),
            threading.Thread(target=self._feed, args=(self._audio_q, audio_pipe), daemon=True),
            self._stderr_thread,
            threading.Thread(target=self._read_output, daemon=True),
        ]
        for t in self._threads:
            t.start()

    def _feed(self, q: queue.Queue, pipe) -> None:
        try:
            while True:
                data = q.get()
                if data is None:
                    break
                try:
                    pipe.write(data)
                except BrokenPipeError:
                    # ffmpeg died; keep draining so producers never block
                    continue
        finally:
            try:
                pipe.close()
            except BrokenPipeError:
                pass

    def _drain_stderr(self) -> None:
        for line in self.proc.stderr:
            self._stderr.append(line.decode("utf-8", "replace").rstrip())

    def _read_output(self) -> None:
        while True:
            data = self.proc.stdout.read1(CHUNK_SIZE)
            if not data:
                break
            self.on_chunk(data)
        returncode = self.proc.wait()
        # stderr closes when ffmpeg exits; collect its last lines first
        self._stderr_thread.join(timeout=5)
        if returncode != 0:
            message = "; ".join(self._stderr[-5:]) or f"exit code {returncode}"
            self._done.set_exception(EncoderError(f"ffmpeg failed: {message}"))
        else:
            self._done.set_result(None)

    def write(self, frame: bytes, audio: bytes) -> None:
        self._audio_q.put(audio)
        self._video_q.put(frame)

    def finish(self) -> Future:
        """Close both inputs; the future resolves once ffmpeg has flushed."""
        self._audio_q.put(None)
        self._video_q.put(None)
        return self._done

    def abort(self) -> None:
        if self.proc and self.proc.poll() is None:
            self.proc.kill()
        self._audio_q.put(None)
        try:
            self._video_q.put(None, timeout=5)
        except queue.Full:
            logger.warning("Video feeder did not drain after ffmpeg was killed")


class CaptureSession:
    """One recording: idle -> recording -> stopped, never backwards."""

    def __init__(self, surface: Image.Image, mix_bus: MixBus, capture_format: CaptureFormat,
                 encoder_factory=FFmpegEncoder, fps: int = FPS):
        self.surface = surface
        self.mix_bus = mix_bus
        self.capture_format = capture_format
        self.fps = fps
        self.state = CaptureState.IDLE
        self.chunks = []
        self.frames_captured = 0
        width, height = surface.size
        self._encoder = encoder_factory(
            capture_format, width, height, fps, mix_bus.sample_rate, self._on_chunk,
        )

    @classmethod
    def open(cls, surface: Image.Image, mix_bus: MixBus,
             candidates: list[str] = MIME_CANDIDATES,
             is_supported: Callable[[str], bool] | None = None,
             encoder_factory=FFmpegEncoder, fps: int = FPS) -> "CaptureSession":
        """Negotiate a format and build an idle session; fatal if none fits."""
        capture_format = negotiate_format(candidates, is_supported)
        logger.info("Capturing as %s", capture_format.mime_type)
        return cls(surface, mix_bus, capture_format, encoder_factory=encoder_factory, fps=fps)

    def _on_chunk(self, data: bytes) -> None:
        if data:
            self.chunks.append(data)

    def _require(self, expected: CaptureState, action: str) -> None:
        if self.state is not expected:
            raise CaptureStateError(f"Cannot {action} a {self.state.value} capture session")

    def start(self) -> None:
        self._require(CaptureState.IDLE, "start")
        self._encoder.start()
        self.state = CaptureState.RECORDING

    def capture_frame(self, frame: bytes | None = None) -> None:
        """Sample one frame of the surface and one frame interval of the bus."""
        self._require(CaptureState.RECORDING, "capture on")
        if frame is None:
            frame = self.surface.tobytes()
        audio = self.mix_bus.pull(self.mix_bus.samples_for_tick(self.frames_captured, self.fps))
        self._encoder.write(frame, audio)
        self.frames_captured += 1

    @property
    def duration_ms(self) -> float:
        return self.frames_captured * 1000 / self.fps

    def stop(self, timeout: float = ENCODER_FINISH_TIMEOUT) -> VideoBlob:
        """Stop sampling and wait for the encoder's final chunk.

        An encoder that has not flushed within `timeout` seconds is killed.
        """
        self._require(CaptureState.RECORDING, "stop")
        self.state = CaptureState.STOPPED
        try:
            self._encoder.finish().result(timeout=timeout)
        except FinishTimeout as e:
            self._encoder.abort()
            raise EncoderError(f"Encoder did not finish within {timeout}s") from e
        logger.debug("Captured %d frames in %d chunks", self.frames_captured, len(self.chunks))
        return VideoBlob(data=b"".join(self.chunks), mime_type=self.capture_format.mime_type)

    def abort(self) -> None:
        """Tear down the encoder without producing output."""
        if self.state is CaptureState.RECORDING:
            self._encoder.abort()
        self.state = CaptureState.STOPPED
