"""Tests for constants and models (Layer 0)."""

from storyreel import constants
from storyreel.models import CaptureState, ExportFormat, Page, Story, VideoBlob


def test_page_defaults():
    """Illustration and narration are optional."""
    page = Page(index=0, text="Hello.")
    assert page.illustration is None
    assert page.narration is None


def test_story_defaults_to_no_pages():
    assert Story(title="Empty").pages == []


def test_landscape_layout():
    layout = ExportFormat.LANDSCAPE.layout
    assert (layout.width, layout.height) == (1920, 1080)
    assert layout.image_x == (1920 - 800) // 2
    assert layout.caption_width == 1600


def test_portrait_layout():
    layout = ExportFormat.PORTRAIT.layout
    assert (layout.width, layout.height) == (1080, 1920)
    assert layout.image_x == 90
    assert layout.caption_y == 1500


def test_format_from_name():
    assert ExportFormat("portrait") is ExportFormat.PORTRAIT


def test_capture_states():
    assert [s.value for s in CaptureState] == ["idle", "recording", "stopped"]


def test_blob_extension():
    assert VideoBlob(b"x", "video/mp4").extension == "mp4"
    assert VideoBlob(b"xy", "video/webm;codecs=vp8,opus").extension == "webm"
    assert VideoBlob(b"xy", "video/webm").size == 2


def test_constants_exist():
    """All module-level constants are defined."""
    expected = [
        "FPS",
        "PAD_MS",
        "FALLBACK_MS",
        "TITLE_HOLD_FRAMES",
        "BUS_SAMPLE_RATE",
        "NARRATION_PCM_RATE",
        "VIDEO_BITRATE",
        "MIME_CANDIDATES",
        "IMAGE_FETCH_TIMEOUT",
        "OUTPUT_DIR",
        "VERSION",
    ]
    for name in expected:
        assert hasattr(constants, name), f"Missing constant: {name}"


def test_bus_rate_divides_into_frames():
    assert constants.BUS_SAMPLE_RATE % constants.FPS == 0
