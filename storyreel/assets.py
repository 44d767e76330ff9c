"""Illustration and narration loading with graceful degradation.

Every loader returns None instead of raising when an asset cannot be
fetched or decoded; a broken asset costs one page its picture or voice,
never the whole export.
"""

import base64
import binascii
import io
import logging
import os

import requests
from PIL import Image, UnidentifiedImageError
from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from storyreel.constants import (
    IMAGE_FETCH_TIMEOUT,
    NARRATION_PCM_RATE,
    NARRATION_PCM_CHANNELS,
)
from storyreel.models import Story

logger = logging.getLogger(__name__)


def decode_pcm(
    data: bytes,
    sample_rate: int = NARRATION_PCM_RATE,
    channels: int = NARRATION_PCM_CHANNELS,
) -> AudioSegment:
    """Wrap raw little-endian 16-bit PCM as an AudioSegment."""
    frame_width = 2 * channels
    usable = len(data) - len(data) % frame_width
    return AudioSegment(
        data=data[:usable],
        sample_width=2,
        frame_rate=sample_rate,
        channels=channels,
    )


def _read_image_bytes(ref: str, timeout: float) -> bytes:
    if ref.startswith("data:"):
        _, _, payload = ref.partition(",")
        return base64.b64decode(payload)
    if ref.startswith(("http://", "https://")):
        response = requests.get(ref, timeout=timeout)
        response.raise_for_status()
        return response.content
    with open(ref, "rb") as f:
        return f.read()


def load_illustration(ref, timeout: float = IMAGE_FETCH_TIMEOUT) -> Image.Image | None:
    """Resolve an illustration reference to a fully decoded RGB image.

    Accepts a Pillow image, raw bytes, a file path, an http(s) URL or a
    data: URL. Remote fetches get one attempt bounded by timeout.
    """
    if ref is None:
        return None
    try:
        if isinstance(ref, Image.Image):
            image = ref
        else:
            data = ref if isinstance(ref, bytes) else _read_image_bytes(str(ref), timeout)
            image = Image.open(io.BytesIO(data))
        # Pillow decodes lazily; force it here so a corrupt file fails now
        return image.convert("RGB")
    except (OSError, ValueError, binascii.Error, UnidentifiedImageError, Image.DecompressionBombError,
            requests.RequestException) as e:
        logger.warning("Could not load illustration %s: %s", _describe(ref), e)
        return None


def load_narration(ref) -> AudioSegment | None:
    """Resolve a narration reference to an AudioSegment.

    Files ending in .pcm are raw TTS output (24 kHz mono s16le); anything
    else goes through pydub/ffmpeg.
    """
    if ref is None:
        return None
    if isinstance(ref, AudioSegment):
        return ref
    try:
        if isinstance(ref, bytes):
            return decode_pcm(ref)
        path = str(ref)
        if path.lower().endswith(".pcm"):
            with open(path, "rb") as f:
                return decode_pcm(f.read())
        return AudioSegment.from_file(path)
    except (OSError, CouldntDecodeError, IndexError) as e:
        logger.warning("Could not decode narration %s: %s", _describe(ref), e)
        return None


def prefetch_illustrations(story: Story, timeout: float = IMAGE_FETCH_TIMEOUT) -> dict[int, Image.Image | None]:
    """Resolve every page's illustration once, before recording starts.

    Returns a read-only view keyed by page index; pages themselves are
    left untouched.
    """
    resolved = {}
    for page in story.pages:
        resolved[page.index] = load_illustration(page.illustration, timeout=timeout)
    return resolved


def _describe(ref) -> str:
    if isinstance(ref, bytes):
        return f"<{len(ref)} bytes>"
    text = str(ref)
    if text.startswith("data:"):
        return text[:32] + "..."
    return os.path.basename(text) if os.path.exists(text) else text[:80]
