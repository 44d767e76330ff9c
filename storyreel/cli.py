"""CLI interface with subcommand routing."""

import argparse
import logging
import os
import shutil
import signal
import sys

from storyreel.capture import ffmpeg_support
from storyreel.constants import FPS, MIME_CANDIDATES, OUTPUT_DIR, TITLE_HOLD_FRAMES, VERSION
from storyreel.errors import StoryFormatError, StoryReelError
from storyreel.exporter import save_video
from storyreel.models import ExportFormat, Story
from storyreel.parser import load_story, find_missing_narration
from storyreel.scheduler import plan_segments
from storyreel.timeline import CancelToken, export_story


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required but not found.", file=sys.stderr)
        print("Install with: brew install ffmpeg", file=sys.stderr)
        raise SystemExit(1)


def _load(path: str) -> Story:
    if not os.path.exists(path):
        print(f"Error: File not found: {path}", file=sys.stderr)
        raise SystemExit(1)
    try:
        return load_story(path)
    except StoryFormatError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


def _confirm_missing_narration(story: Story, assume_yes: bool) -> bool:
    """Pre-flight: ask before exporting pages that have no narration."""
    missing = find_missing_narration(story)
    if not missing or assume_yes:
        return True
    pages = ", ".join(str(i + 1) for i in missing)
    print(f"Warning: page(s) {pages} have no narration yet.", file=sys.stderr)
    if not sys.stdin.isatty():
        print("Re-run with --yes to export them silently.", file=sys.stderr)
        raise SystemExit(1)
    response = input("Export without narration for those pages? [y/N] ").strip().lower()
    return response in ("y", "yes")


def cmd_export(args):
    """Record a story to a video file."""
    _check_ffmpeg()
    story = _load(args.story)
    export_format = ExportFormat(args.format)

    if not _confirm_missing_narration(story, args.yes):
        print("Export cancelled. Generate the missing narration and try again.")
        return

    token = CancelToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    try:
        result = export_story(
            story, export_format,
            on_progress=lambda message: print(f"  {message}"),
            cancel_token=token,
        )
    except StoryReelError as e:
        print(f"Error: Export failed: {e}", file=sys.stderr)
        raise SystemExit(1)
    finally:
        signal.signal(signal.SIGINT, previous)

    try:
        path = save_video(result, story.title, export_format, args.output)
    except OSError as e:
        print(f"Error: Could not save video: {e}", file=sys.stderr)
        raise SystemExit(1)
    if result.cancelled:
        print(f"Cancelled: partial video saved to {path}")
    else:
        print(f"Done: {path} ({result.duration_ms / 1000:.1f}s)")


def cmd_plan(args):
    """Show per-segment durations and frame counts without recording."""
    _check_ffmpeg()
    story = _load(args.story)
    plans = plan_segments(story)

    print(f"Story: {story.title}")
    print(f"Pages: {len(story.pages)} at {FPS} fps")
    title_ms = TITLE_HOLD_FRAMES * 1000 / FPS
    print(f"  {'title':<10} {title_ms:>9.0f} ms {TITLE_HOLD_FRAMES:>6} frames")
    for plan in plans:
        label = f"page {plan.index + 1}"
        note = "" if plan.has_narration else "  (no narration)"
        print(f"  {label:<10} {plan.duration_ms:>9.0f} ms {plan.frame_count:>6} frames{note}")
    total_frames = TITLE_HOLD_FRAMES + sum(p.frame_count for p in plans)
    print(f"Total: {total_frames} frames ({total_frames / FPS:.1f}s)")


def cmd_formats(args):
    """List capture formats and whether the local ffmpeg can produce them."""
    is_supported = ffmpeg_support()
    print("Capture formats (preference order):")
    for mime in MIME_CANDIDATES:
        marker = "[ok]" if is_supported(mime) else "[--]"
        print(f"  {marker} {mime}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="storyreel",
        description="StoryReel: record illustrated, narrated stories to video",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # export
    export_parser = subparsers.add_parser("export", help="Record a story manifest to video")
    export_parser.add_argument("story", help="Path to the story JSON manifest")
    export_parser.add_argument("--format", choices=[f.value for f in ExportFormat],
                               default=ExportFormat.LANDSCAPE.value, help="Output orientation")
    export_parser.add_argument("--output", default=OUTPUT_DIR, help="Output directory")
    export_parser.add_argument("-y", "--yes", action="store_true",
                               help="Export pages without narration without asking")
    export_parser.set_defaults(func=cmd_export)

    # plan
    plan_parser = subparsers.add_parser("plan", help="Show the segment timing plan")
    plan_parser.add_argument("story", help="Path to the story JSON manifest")
    plan_parser.set_defaults(func=cmd_plan)

    # formats
    formats_parser = subparsers.add_parser("formats", help="List supported capture formats")
    formats_parser.set_defaults(func=cmd_formats)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
