"""Tests for exporter module (Layer 3)."""

import json
import os

from storyreel.exporter import save_video, suggested_filename
from storyreel.models import ExportFormat, SegmentRecord, VideoBlob
from storyreel.timeline import ExportResult


def _make_result(mime="video/webm;codecs=vp9,opus", cancelled=False):
    return ExportResult(
        blob=VideoBlob(data=b"\x1a\x45\xdf\xa3video", mime_type=mime),
        segments=[
            SegmentRecord("title", 90, 90, 3000),
            SegmentRecord("page 1", 84, 84, 2780.5),
        ],
        cancelled=cancelled,
    )


def test_filename_normalizes_whitespace():
    name = suggested_filename("The  Little\tLamp", ExportFormat.LANDSCAPE, "webm")
    assert name == "The_Little_Lamp_landscape.webm"


def test_filename_mp4_extension():
    assert suggested_filename("Lamp", ExportFormat.PORTRAIT, "mp4") == "Lamp_portrait.mp4"


def test_filename_keeps_korean():
    assert suggested_filename("작은 등불", ExportFormat.PORTRAIT, "webm") == "작은_등불_portrait.webm"


def test_filename_replaces_path_separators():
    name = suggested_filename('Ruth/Naomi: "Where\\you go"?', ExportFormat.LANDSCAPE, "webm")
    assert name == "Ruth_Naomi___Where_you_go___landscape.webm"


def test_save_video_title_with_slash_stays_in_output_dir(tmp_path):
    path = save_video(_make_result(), "Ruth/Naomi", ExportFormat.LANDSCAPE, str(tmp_path))
    assert os.path.dirname(path) == str(tmp_path)
    assert os.path.basename(path) == "Ruth_Naomi_landscape.webm"
    assert (tmp_path / "Ruth_Naomi_landscape.json").exists()


def test_save_video_mp4_blob(tmp_path):
    path = save_video(_make_result(mime="video/mp4"), "Lamp", ExportFormat.PORTRAIT, str(tmp_path))
    assert path.endswith("Lamp_portrait.mp4")


def test_save_video_writes_blob(tmp_path):
    path = save_video(_make_result(), "Little Lamp", ExportFormat.LANDSCAPE, str(tmp_path / "out"))
    assert os.path.basename(path) == "Little_Lamp_landscape.webm"
    with open(path, "rb") as f:
        assert f.read() == b"\x1a\x45\xdf\xa3video"


def test_save_video_writes_manifest(tmp_path):
    save_video(_make_result(), "Little Lamp", ExportFormat.LANDSCAPE, str(tmp_path))
    with open(tmp_path / "Little_Lamp_landscape.json") as f:
        data = json.load(f)
    for field in ["title", "format", "mime_type", "file", "bytes", "generated_at",
                  "storyreel_version", "cancelled", "segments", "stats"]:
        assert field in data, f"Missing field: {field}"
    assert data["stats"]["frames"] == 174
    assert data["stats"]["duration_seconds"] == 5.8
    assert [s["label"] for s in data["segments"]] == ["title", "page 1"]


def test_manifest_records_cancellation(tmp_path):
    save_video(_make_result(mime="video/mp4", cancelled=True), "Lamp", ExportFormat.PORTRAIT, str(tmp_path))
    with open(tmp_path / "Lamp_portrait.json") as f:
        assert json.load(f)["cancelled"] is True
