from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Any

from PIL import Image

from astrbot.api import logger

from ..constants import OUTPUT_FORMAT_ALIASES
from ..errors import ExportError, QualityRangeError, UnsupportedFormatError

_PIL_FORMATS = {"png": "PNG", "webp": "WEBP", "jpeg": "JPEG", "avif": "AVIF"}


@dataclass(frozen=True, slots=True)
class AvifConfig:
    quality: int | None = None
    speed: int | None = None
    subsampling: str | None = None


@dataclass(frozen=True, slots=True)
class OutputConfig:
    format: str = "png"
    quality: int | None = None
    avif: AvifConfig | None = None

    @property
    def normalized_format(self) -> str:
        fmt = OUTPUT_FORMAT_ALIASES.get(str(self.format or "").strip().lower())
        if fmt is None:
            raise UnsupportedFormatError(self.format)
        return fmt

    @property
    def extension(self) -> str:
        return "jpg" if self.normalized_format == "jpeg" else self.normalized_format


def _check_quality(value: object, *, field: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise QualityRangeError(value, field=field)
    if not 0 <= value <= 100:
        raise QualityRangeError(value, field=field)


def validate_output(output: OutputConfig) -> str:
    """Check the config before any drawing work; returns the normalized format."""

    fmt = output.normalized_format
    _check_quality(output.quality, field="quality")
    if output.avif is not None:
        _check_quality(output.avif.quality, field="avif.quality")
    return fmt


def _save_kwargs(fmt: str, output: OutputConfig) -> dict[str, Any]:
    if fmt == "png":
        return {"optimize": False}
    if fmt == "avif":
        cfg = output.avif or AvifConfig(quality=output.quality)
        kw: dict[str, Any] = {}
        if cfg.quality is not None:
            kw["quality"] = int(cfg.quality)
        if cfg.speed is not None:
            kw["speed"] = int(cfg.speed)
        if cfg.subsampling:
            kw["subsampling"] = cfg.subsampling
        return kw
    if output.quality is not None:
        return {"quality": int(output.quality)}
    return {}


def export_image(image: Image.Image, output: OutputConfig | None = None) -> bytes:
    output = output or OutputConfig()
    fmt = validate_output(output)

    canvas = image
    if fmt == "jpeg":
        # JPEG has no alpha channel.
        canvas = Image.new("RGB", image.size, (0, 0, 0))
        canvas.paste(image, (0, 0), image.convert("RGBA"))

    buf = io.BytesIO()
    try:
        canvas.save(buf, format=_PIL_FORMATS[fmt], **_save_kwargs(fmt, output))
    except (OSError, ValueError, KeyError) as exc:
        logger.warning(f"mod card export as {fmt} failed: {exc!s}")
        raise ExportError(fmt) from exc
    return buf.getvalue()
