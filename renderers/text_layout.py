from __future__ import annotations

from collections.abc import Callable, Sequence

from PIL import ImageDraw, ImageFont

Measure = Callable[[str], float]


def text_measure(
    draw: ImageDraw.ImageDraw, font: ImageFont.FreeTypeFont | ImageFont.ImageFont
) -> Measure:
    """Rendered width of a string in `font`."""

    def measure(text: str) -> float:
        return draw.textlength(text, font=font)

    return measure


def wrap_text(measure: Measure, text: str, max_width: float) -> list[str]:
    """Greedy word wrap.

    A word that does not fit on its own stays whole on its own line. Unlike a
    literal "push the current line on overflow" loop, no empty line is pushed
    ahead of an over-long first word. The last line is always emitted, so
    blank input yields `[""]`.
    """

    lines: list[str] = []
    current = ""
    for word in (text or "").split():
        candidate = f"{current} {word}" if current else word
        if measure(candidate) > max_width and current:
            lines.append(current)
            current = word
        else:
            current = candidate

    lines.append(current)
    return lines


def wrap_paragraphs(measure: Measure, text: str, max_width: float) -> list[str]:
    """Wrap each newline-separated paragraph on its own."""

    out: list[str] = []
    for paragraph in (text or "").split("\n"):
        out.extend(wrap_text(measure, paragraph, max_width))
    return out


def fit_text(measure: Measure, text: str, max_width: float) -> str:
    s = (text or "").strip()
    if not s or measure(s) <= max_width:
        return s

    t = s
    while len(t) > 1:
        t = t[:-1].rstrip()
        if measure(t + "…") <= max_width:
            return t + "…"
    return "…"


def mod_description(
    description: str | None,
    level_stats: Sequence[Sequence[str]] | None,
    rank: int,
) -> str | None:
    if description:
        return description

    if level_stats:
        idx = max(0, min(int(rank), len(level_stats) - 1))
        return "\n".join(level_stats[idx])

    return None
