"""Paint title and page frames onto a reusable raster surface.

Every render call repaints the whole surface from (page, layout) alone, so
it can be called at any cadence without state leaking between frames.
"""

from functools import lru_cache

from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps

from storyreel.constants import (
    BACKGROUND_COLOR,
    BORDER_COLOR,
    BORDER_INSET,
    BORDER_WIDTH,
    TITLE_COLOR,
    SUBTITLE_COLOR,
    SUBTITLE_TEXT,
    CAPTION_COLOR,
    OUTLINE_COLOR,
    OUTLINE_WIDTH,
    TITLE_LINE_HEIGHT,
    TITLE_SIDE_MARGIN,
    CARD_MAT,
    SHADOW_RGBA,
    SHADOW_BLUR,
    SHADOW_OFFSET_Y,
    BACKDROP_BLUR,
    BACKDROP_OPACITY,
    SERIF_FONTS,
    SANS_FONTS,
)
from storyreel.errors import SurfaceError
from storyreel.layout import wrap_text, measure_with
from storyreel.models import Layout, Page


@lru_cache(maxsize=None)
def load_font(names: tuple[str, ...], size: int) -> ImageFont.ImageFont:
    """First truetype font from names that opens, else Pillow's default."""
    for name in names:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def create_surface(layout: Layout) -> Image.Image:
    """Allocate the RGB surface every frame of a run is painted into."""
    try:
        return Image.new("RGB", (layout.width, layout.height), BACKGROUND_COLOR)
    except (ValueError, MemoryError) as e:
        raise SurfaceError(f"Could not create {layout.width}x{layout.height} surface: {e}") from e


def _draw_lines(draw, lines, x, y, line_height, font, fill):
    """Outline pass then fill pass, lines stacked downward from y."""
    for i, line in enumerate(lines):
        pos = (x, y + i * line_height)
        draw.text(pos, line, font=font, fill=OUTLINE_COLOR, anchor="md",
                  stroke_width=OUTLINE_WIDTH, stroke_fill=OUTLINE_COLOR)
        draw.text(pos, line, font=font, fill=fill, anchor="md")


def render_title(surface: Image.Image, title: str, layout: Layout) -> Image.Image:
    """Bordered card with the wrapped story title and a subtitle line."""
    w, h = layout.width, layout.height
    surface.paste(BACKGROUND_COLOR, (0, 0, w, h))
    draw = ImageDraw.Draw(surface)

    draw.rectangle(
        (BORDER_INSET, BORDER_INSET, w - BORDER_INSET - 1, h - BORDER_INSET - 1),
        outline=BORDER_COLOR, width=BORDER_WIDTH,
    )

    title_font = load_font(tuple(SERIF_FONTS), layout.title_font_size)
    lines = wrap_text(title, w - TITLE_SIDE_MARGIN, measure_with(title_font))
    # Centre the block on the title anchor
    top = h // 2 - 50 - (len(lines) - 1) * TITLE_LINE_HEIGHT // 2
    _draw_lines(draw, lines, w // 2, top, TITLE_LINE_HEIGHT, title_font, TITLE_COLOR)

    subtitle_font = load_font(tuple(SANS_FONTS), layout.subtitle_font_size)
    draw.text((w // 2, h // 2 + 80), SUBTITLE_TEXT, font=subtitle_font,
              fill=SUBTITLE_COLOR, anchor="md")
    return surface


def _backdrop(illustration: Image.Image, layout: Layout) -> Image.Image:
    """Blurred, faded full-bleed copy scaled to cover the frame."""
    # Blur at quarter size; the result is too soft for the difference to show
    small = (max(1, layout.width // 4), max(1, layout.height // 4))
    cover = ImageOps.fit(illustration, small, Image.Resampling.BILINEAR)
    cover = cover.filter(ImageFilter.GaussianBlur(BACKDROP_BLUR / 4))
    cover = cover.resize((layout.width, layout.height), Image.Resampling.BILINEAR)
    base = Image.new("RGB", cover.size, BACKGROUND_COLOR)
    return Image.blend(base, cover, BACKDROP_OPACITY)


def _paint_card(surface: Image.Image, illustration: Image.Image, layout: Layout) -> None:
    size, x, y = layout.image_size, layout.image_x, layout.image_y
    mat = (x - CARD_MAT, y - CARD_MAT, x + size + CARD_MAT, y + size + CARD_MAT)

    shadow = Image.new("RGBA", surface.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).rectangle(
        (mat[0], mat[1] + SHADOW_OFFSET_Y, mat[2], mat[3] + SHADOW_OFFSET_Y),
        fill=SHADOW_RGBA,
    )
    shadow = shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR / 2))
    surface.paste(shadow, (0, 0), shadow)

    ImageDraw.Draw(surface).rectangle(mat, fill="white")
    picture = ImageOps.fit(illustration, (size, size), Image.Resampling.LANCZOS)
    surface.paste(picture, (x, y))


def render_page(
    surface: Image.Image,
    page: Page,
    layout: Layout,
    illustration: Image.Image | None = None,
) -> Image.Image:
    """Background, optional illustration card, then the outlined caption.

    With no illustration the image region is left as plain background.
    """
    surface.paste(BACKGROUND_COLOR, (0, 0, layout.width, layout.height))

    if illustration is not None:
        surface.paste(_backdrop(illustration, layout), (0, 0))
        _paint_card(surface, illustration, layout)

    font = load_font(tuple(SERIF_FONTS), layout.caption_font_size)
    lines = wrap_text(page.text, layout.caption_width, measure_with(font))
    _draw_lines(ImageDraw.Draw(surface), lines, layout.width // 2, layout.caption_y,
                layout.caption_line_height, font, CAPTION_COLOR)
    return surface
