"""Caption overlay for generated images."""

import io
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from media_engine.logging import get_logger

logger = get_logger(__name__)

# Width estimates in units of one "average" glyph
SPACE_UNITS = 0.38
UPPERCASE_UNITS = 0.9
NARROW_PUNCTUATION_UNITS = 0.28
OTHER_UNITS = 0.78

CHAR_PX_RATIO = 0.48
LINE_HEIGHT_RATIO = 1.5
SIDE_PADDING_RATIO = 0.18
BOTTOM_PADDING_LINES = 3

SHADOW_OFFSET = (0, 6)
SHADOW_BLUR = 10
SHADOW_ALPHA = 191

FALLBACK_FONTS = ("DejaVuSans-Bold.ttf", "DejaVuSans.ttf", "Arial.ttf")


def estimate_width_units(text: str) -> float:
    """Estimated rendered width of ``text`` in glyph units."""
    width = 0.0
    for ch in text:
        if ch == " ":
            width += SPACE_UNITS
        elif "A" <= ch <= "Z":
            width += UPPERCASE_UNITS
        elif ch in ".,":
            width += NARROW_PUNCTUATION_UNITS
        else:
            width += OTHER_UNITS
    return width


def wrap_text(text: str, max_width_px: float, font_size: int) -> list[str]:
    """Greedy word wrap using the per-character width heuristic.

    A single word wider than the line is kept on its own line rather than split.
    """
    max_units = max_width_px / (font_size * CHAR_PX_RATIO)
    lines: list[str] = []
    line = ""
    for word in text.split(" "):
        candidate = f"{line} {word}" if line else word
        if estimate_width_units(candidate) <= max_units:
            line = candidate
        else:
            if line:
                lines.append(line)
            line = word
    if line:
        lines.append(line)
    return lines


@dataclass(frozen=True)
class CaptionLayout:
    """Geometry of a caption block on an image."""

    font_size: int
    line_height: float
    lines: list[str]
    start_y: float
    center_x: float

    @classmethod
    def compute(cls, text: str, width: int, height: int) -> "CaptionLayout":
        font_size = max(1, width // 40)
        line_height = font_size * LINE_HEIGHT_RATIO
        side_padding = width * SIDE_PADDING_RATIO
        lines = wrap_text(text, width - side_padding * 2, font_size)
        block_height = line_height * (len(lines) - 1) if lines else 0
        start_y = height - font_size * BOTTOM_PADDING_LINES - block_height
        return cls(
            font_size=font_size,
            line_height=line_height,
            lines=lines,
            start_y=start_y,
            center_x=width / 2,
        )

    def baselines(self) -> list[float]:
        return [self.start_y + i * self.line_height for i in range(len(self.lines))]


def load_font(size: int, font_path: str | None = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    candidates = [font_path] if font_path else []
    candidates.extend(FALLBACK_FONTS)
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.debug("overlay_font_fallback", size=size)
    return ImageFont.load_default(size)


def render_caption(image_bytes: bytes, text: str, font_path: str | None = None) -> bytes:
    """Flatten centered, bottom-anchored white caption text onto an image.

    Args:
        image_bytes: Source image in any Pillow-readable format.
        text: Caption text.
        font_path: Optional TrueType font file.

    Returns:
        PNG bytes of the composited image.
    """
    with Image.open(io.BytesIO(image_bytes)) as source:
        base = source.convert("RGBA")

    width, height = base.size
    layout = CaptionLayout.compute(text, width, height)
    font = load_font(layout.font_size, font_path)

    shadow = Image.new("RGBA", base.size, (0, 0, 0, 0))
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    shadow_draw = ImageDraw.Draw(shadow)
    text_draw = ImageDraw.Draw(overlay)

    dx, dy = SHADOW_OFFSET
    for line, baseline in zip(layout.lines, layout.baselines(), strict=True):
        shadow_draw.text(
            (layout.center_x + dx, baseline + dy),
            line,
            font=font,
            fill=(0, 0, 0, SHADOW_ALPHA),
            anchor="ms",
        )
        text_draw.text(
            (layout.center_x, baseline),
            line,
            font=font,
            fill=(255, 255, 255, 255),
            anchor="ms",
        )

    shadow = shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR))
    composed = Image.alpha_composite(Image.alpha_composite(base, shadow), overlay)

    buffer = io.BytesIO()
    composed.save(buffer, format="PNG")
    logger.debug("caption_rendered", width=width, height=height, lines=len(layout.lines))
    return buffer.getvalue()
