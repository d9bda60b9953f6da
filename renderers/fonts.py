from __future__ import annotations

import os
from pathlib import Path

from PIL import ImageFont

from astrbot.api import logger

FONT_FAMILY = "Roboto"

# family -> weight -> font file. Filled once per process.
_registered_fonts: dict[str, dict[str, str]] = {}
_font_cache: dict[tuple[str, str, int], ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}

_BOLD_WEIGHTS = {"medium", "bold", "semibold"}


def _candidate_files(fonts_dir: Path | None) -> dict[str, list[str]]:
    """Font files per weight, plugin fonts first, then common system locations."""

    regular: list[str] = []
    medium: list[str] = []

    plugin_fonts = fonts_dir or Path(__file__).resolve().parent.parent / "fonts"
    if plugin_fonts.exists():
        medium.append(str(plugin_fonts / "Roboto-Medium.ttf"))
        regular.append(str(plugin_fonts / "Roboto-Regular.ttf"))
        # CJK names from PublicExport zh need a font that covers them.
        medium.append(str(plugin_fonts / "NotoSansHans-Medium.otf"))
        regular.append(str(plugin_fonts / "NotoSansHans-Regular.otf"))

    regular.extend(
        [
            "/usr/share/fonts/truetype/roboto/unhinted/RobotoTTF/Roboto-Regular.ttf",
            "/usr/share/fonts/truetype/roboto/hinted/Roboto-Regular.ttf",
            "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/System/Library/Fonts/PingFang.ttc",
        ]
    )
    medium.extend(
        [
            "/usr/share/fonts/truetype/roboto/unhinted/RobotoTTF/Roboto-Medium.ttf",
            "/usr/share/fonts/truetype/roboto/hinted/Roboto-Medium.ttf",
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        ]
    )

    windir = os.environ.get("WINDIR") or os.environ.get("SystemRoot")
    if windir:
        regular.extend(
            [
                os.path.join(windir, "Fonts", "msyh.ttc"),
                os.path.join(windir, "Fonts", "arial.ttf"),
            ]
        )
        medium.append(os.path.join(windir, "Fonts", "arialbd.ttf"))

    return {"regular": regular, "medium": medium}


def ensure_fonts_registered(fonts_dir: Path | None = None) -> bool:
    """Resolve the font files behind the `Roboto` alias once per process.

    Returns True only on the call that performed the registration.
    """

    if FONT_FAMILY in _registered_fonts:
        return False

    resolved: dict[str, str] = {}
    for weight, files in _candidate_files(fonts_dir).items():
        for p in files:
            if p and os.path.exists(p):
                resolved[weight] = p
                break

    _registered_fonts[FONT_FAMILY] = resolved
    if resolved:
        logger.debug(f"mod card fonts registered: {resolved}")
    else:
        logger.info("no TrueType font found for mod cards, using Pillow default font")
    return True


def load_font(
    size: int, *, weight: str = "regular"
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    ensure_fonts_registered()

    w = "medium" if weight.lower() in _BOLD_WEIGHTS else "regular"
    key = (FONT_FAMILY, w, int(size))
    cached = _font_cache.get(key)
    if cached is not None:
        return cached

    files = _registered_fonts.get(FONT_FAMILY, {})
    path = files.get(w) or files.get("regular")
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont | None = None
    if path:
        try:
            font = ImageFont.truetype(path, size=int(size))
        except OSError as exc:
            logger.warning(f"failed to load font {path}: {exc!s}")
    if font is None:
        font = ImageFont.load_default(size=int(size))

    _font_cache[key] = font
    return font
