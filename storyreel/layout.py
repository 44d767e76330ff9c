"""Caption line breaking.

Wrapping is greedy and character-granular rather than word-granular, so
scripts without inter-word spacing (Korean captions are the default) wrap
without any language detection. A single character wider than the box
still gets a line of its own.
"""

from typing import Callable

from PIL import ImageFont


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Break text into lines no wider than max_width.

    Appends one character at a time and measures the accumulated line; when
    it overflows, the line closes before that character and the character
    starts the next line. Empty text yields a single empty line.
    """
    lines = []
    line = ""
    for char in text:
        candidate = line + char
        if line and measure(candidate) > max_width:
            lines.append(line)
            line = char
        else:
            line = candidate
    lines.append(line)
    return lines


def measure_with(font: ImageFont.ImageFont) -> Callable[[str], float]:
    """Return a measuring function backed by a Pillow font."""
    return font.getlength
