"""Load a story manifest (JSON) into Story/Page models."""

import json
import os

from storyreel.assets import load_narration
from storyreel.errors import StoryFormatError
from storyreel.models import Page, Story


def _resolve_ref(ref, base_dir: str):
    """Relative file paths resolve against the manifest directory."""
    if not ref:
        return None
    if not isinstance(ref, str):
        raise StoryFormatError(f"Asset reference must be a string, got {type(ref).__name__}")
    if ref.startswith(("http://", "https://", "data:")) or os.path.isabs(ref):
        return ref
    return os.path.join(base_dir, ref)


def parse_story(data: dict, base_dir: str = ".") -> Story:
    """Build a Story from manifest data.

    Expected shape:
      {"title": str, "pages": [{"text": str, "image": ref?, "narration": ref?}]}

    Narration is decoded here; a clip that cannot be decoded is left absent.
    Illustrations stay as references until export time.
    """
    if not isinstance(data, dict):
        raise StoryFormatError("Story manifest must be a JSON object")
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise StoryFormatError("Story manifest needs a non-empty 'title'")
    raw_pages = data.get("pages")
    if not isinstance(raw_pages, list):
        raise StoryFormatError("Story manifest needs a 'pages' list")

    pages = []
    for i, raw in enumerate(raw_pages):
        if not isinstance(raw, dict) or not isinstance(raw.get("text"), str):
            raise StoryFormatError(f"Page {i + 1} needs a 'text' string")
        narration_ref = _resolve_ref(raw.get("narration"), base_dir)
        pages.append(Page(
            index=i,
            text=raw["text"],
            illustration=_resolve_ref(raw.get("image"), base_dir),
            narration=load_narration(narration_ref),
        ))

    return Story(title=title, pages=pages)


def load_story(path: str) -> Story:
    """Read a story manifest from disk."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise StoryFormatError(f"Invalid JSON in {path}: {e}") from e
    return parse_story(data, base_dir=os.path.dirname(os.path.abspath(path)))


def find_missing_narration(story: Story) -> list[int]:
    """Indices of pages that have no narration yet."""
    return [page.index for page in story.pages if page.narration is None]
