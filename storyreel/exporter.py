"""Deliver an exported video to disk with a provenance manifest."""

import json
import os
import re
from datetime import datetime, timezone

from storyreel.constants import VERSION
from storyreel.models import ExportFormat, VideoBlob


def suggested_filename(title: str, export_format: ExportFormat, extension: str) -> str:
    """Download name, e.g. "My Story" as landscape webm -> My_Story_landscape.webm

    Path separators and other characters illegal in file names become "_".
    """
    stem = re.sub(r"\s+", "_", title)
    stem = re.sub(r'[\\/:*?"<>|]', "_", stem)
    return f"{stem}_{export_format.value}.{extension}"


def save_video(result, title: str, export_format: ExportFormat, output_dir: str) -> str:
    """Write the video blob and a <name>.json manifest into output_dir.

    `result` is a timeline ExportResult. Returns the video path.
    """
    blob: VideoBlob = result.blob
    os.makedirs(output_dir, exist_ok=True)
    filename = suggested_filename(title, export_format, blob.extension)
    video_path = os.path.join(output_dir, filename)
    with open(video_path, "wb") as f:
        f.write(blob.data)

    manifest = {
        "title": title,
        "format": export_format.value,
        "mime_type": blob.mime_type,
        "file": filename,
        "bytes": blob.size,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "storyreel_version": VERSION,
        "cancelled": result.cancelled,
        "segments": [
            {
                "label": s.label,
                "duration_ms": round(s.duration_ms, 1),
                "planned_frames": s.planned_frames,
                "emitted_frames": s.emitted_frames,
            }
            for s in result.segments
        ],
        "stats": {
            "fps": result.fps,
            "frames": result.total_frames,
            "duration_seconds": round(result.duration_ms / 1000, 2),
        },
    }
    manifest_path = os.path.splitext(video_path)[0] + ".json"
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)

    return video_path
