"""Shared fixtures: a fully populated on-disk asset cache built from synthetic PNGs."""

from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from astrbot_plugin_wf_modcard.clients import asset_client as asset_client_module
from astrbot_plugin_wf_modcard.clients.asset_client import ModAssetClient

SLOT_ACTIVE = (0, 255, 0, 255)
SLOT_EMPTY = (0, 0, 255, 255)
COMPLETE_LINE = (255, 0, 0, 255)
LOWER_TAB = (80, 60, 60, 255)

TIER_PREFIXES = ("Bronze", "Silver", "Gold", "Legendary", "Omega")
RIVEN_FRAME_WIDTH = 292


def _solid(path: Path, size: tuple[int, int], color: tuple[int, int, int, int]) -> None:
    Image.new("RGBA", size, color).save(path, "PNG")


def _outline(path: Path, size: tuple[int, int], color: tuple[int, int, int, int]) -> None:
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(img).rectangle((0, 0, size[0] - 1, size[1] - 1), outline=color, width=3)
    img.save(path, "PNG")


def write_asset_cache(cache_dir: Path) -> Path:
    cache_dir.mkdir(parents=True, exist_ok=True)
    for prefix in TIER_PREFIXES:
        frame_w = RIVEN_FRAME_WIDTH if prefix == "Omega" else 256
        _outline(cache_dir / f"{prefix}FrameTop.png", (frame_w, 60), (90, 80, 70, 255))
        _outline(cache_dir / f"{prefix}FrameBottom.png", (frame_w, 110), (70, 80, 90, 255))
        _solid(cache_dir / f"{prefix}SideLight.png", (16, 256), (200, 200, 40, 255))
        _solid(cache_dir / f"{prefix}CornerLights.png", (64, 64), (40, 200, 200, 255))
        if prefix == "Omega":
            # Rivens borrow the Legendary background set.
            continue
        _solid(cache_dir / f"{prefix}Background.png", (256, 512), (30, 30, 40, 255))
        _solid(cache_dir / f"{prefix}TopRightBacker.png", (48, 32), (60, 60, 60, 255))
        _solid(cache_dir / f"{prefix}LowerTab.png", (180, 24), LOWER_TAB)

    _solid(cache_dir / "RankSlotActive.png", (10, 10), SLOT_ACTIVE)
    _solid(cache_dir / "RankSlotEmpty.png", (10, 10), SLOT_EMPTY)
    _solid(cache_dir / "RankCompleteLine.png", (120, 4), COMPLETE_LINE)

    glyph = Image.new("RGBA", (32, 32), (0, 0, 0, 0))
    ImageDraw.Draw(glyph).ellipse((4, 4, 27, 27), fill=(255, 255, 255, 255))
    for name in ("Madurai", "Vazarin", "Zenurik"):
        glyph.save(cache_dir / f"{name}.png", "PNG")

    _solid(cache_dir / "AugurHeader.png", (120, 30), (128, 128, 128, 255))

    (cache_dir / "thumbnails").mkdir(exist_ok=True)
    _solid(cache_dir / "thumbnails" / "vitality.png", (64, 48), (150, 100, 50, 255))
    return cache_dir


@pytest.fixture
def no_network(monkeypatch):
    """Fail loudly if anything tries to download."""

    async def fake_fetch_bytes(*args, **kwargs):
        raise AssertionError(f"unexpected network access: {args!r}")

    monkeypatch.setattr(asset_client_module, "fetch_bytes", fake_fetch_bytes)


@pytest.fixture
def asset_cache(tmp_path: Path) -> Path:
    return write_asset_cache(tmp_path / "assets")


@pytest.fixture
def asset_client(asset_cache: Path, no_network) -> ModAssetClient:
    return ModAssetClient(cache_dir=asset_cache)


def color_counts(img: Image.Image) -> dict[tuple[int, ...], int]:
    rgba = img.convert("RGBA")
    colors = rgba.getcolors(maxcolors=rgba.width * rgba.height) or []
    return {color: count for count, color in colors}
