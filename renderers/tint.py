from __future__ import annotations

from PIL import Image

ORIGINAL_WEIGHT = 0.2
TINT_WEIGHT = 0.8


def parse_hex_color(value: str) -> tuple[int, int, int]:
    s = str(value or "").strip().lstrip("#")
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if len(s) != 6:
        raise ValueError(f"invalid hex color: {value!r}")
    return int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)


def _clamp(v: float) -> int:
    return max(0, min(255, int(v)))


def tint_image(image: Image.Image, color: str) -> Image.Image:
    """Recolor white/grayscale art towards `color`, keeping its shading."""

    tr, tg, tb = parse_hex_color(color)
    out = image.convert("RGBA")
    px = out.load()
    w, h = out.size
    for y in range(h):
        for x in range(w):
            r, g, b, a = px[x, y]
            if a == 0:
                continue
            brightness = (r + g + b) / 3 / 255
            px[x, y] = (
                _clamp(r * ORIGINAL_WEIGHT + tr * brightness * TINT_WEIGHT),
                _clamp(g * ORIGINAL_WEIGHT + tg * brightness * TINT_WEIGHT),
                _clamp(b * ORIGINAL_WEIGHT + tb * brightness * TINT_WEIGHT),
                a,
            )
    return out


def shade_image(image: Image.Image, percentage: float) -> Image.Image:
    """Darken every channel by `percentage` (0~1); alpha is kept."""

    p = float(percentage)
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"shade percentage must lie within [0, 1], got {percentage!r}")

    src = image.convert("RGBA")
    r, g, b, a = src.split()
    lut = [max(0, int(v - v * p)) for v in range(256)]
    return Image.merge("RGBA", (r.point(lut), g.point(lut), b.point(lut), a))


def polarity_badge(
    glyph: Image.Image, color: str, *, size: tuple[int, int] | None = None
) -> Image.Image:
    """Flat single-color silhouette of `glyph` (source-in fill)."""

    src = glyph.convert("RGBA")
    if size and size != src.size:
        src = src.resize(size, Image.Resampling.LANCZOS)
    badge = Image.new("RGBA", src.size, (*parse_hex_color(color), 255))
    badge.putalpha(src.getchannel("A"))
    return badge
