from __future__ import annotations

import asyncio
import io
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from astrbot.api import logger
from astrbot.core.utils.astrbot_path import get_astrbot_plugin_data_path

from ..constants import MOD_ASSETS_BASE_URL, MOD_THUMBNAIL_BASE_URL
from ..errors import AssetFetchError
from ..http_utils import fetch_bytes
from ..renderers.mod_layout import Tier

PLUGIN_NAME = "astrbot_plugin_wf_modcard"

RANK_SLOT_EMPTY = "RankSlotEmpty.png"
RANK_SLOT_ACTIVE = "RankSlotActive.png"
RANK_COMPLETE_LINE = "RankCompleteLine.png"


@dataclass(frozen=True, slots=True)
class FramePieces:
    top: Image.Image
    bottom: Image.Image
    side_lights: Image.Image
    corner_lights: Image.Image


@dataclass(frozen=True, slots=True)
class BackgroundPieces:
    background: Image.Image
    backer: Image.Image
    lower_tab: Image.Image


@dataclass(frozen=True, slots=True)
class RankSlotPieces:
    empty: Image.Image
    active: Image.Image
    complete: Image.Image


def polarity_asset_name(symbol: str) -> str:
    s = str(symbol or "").strip()
    return f"{s[:1].upper()}{s[1:].lower()}.png"


def mod_set_name(mod_set: str) -> str:
    """`/Lotus/Upgrades/Mods/Sets/Augur/AugurSetMod` -> `Augur`."""

    last = str(mod_set or "").rstrip("/").rsplit("/", 1)[-1]
    return re.sub(r"SetMod$", "", last) or last


def header_asset_name(mod_set: str) -> str:
    return f"{mod_set_name(mod_set)}Header.png"


class ModAssetClient:
    """Loads card fragments through a persistent on-disk cache.

    Lookup order is memory, disk, then the CDN. Downloads are written to the
    cache before they are decoded; bytes that fail to decode are evicted again.
    """

    def __init__(
        self,
        *,
        base_url: str = MOD_ASSETS_BASE_URL,
        thumbnail_base_url: str = MOD_THUMBNAIL_BASE_URL,
        cache_dir: Path | None = None,
        http_timeout_sec: float = 20.0,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._thumbnail_base_url = thumbnail_base_url.rstrip("/") + "/"
        self._cache_dir = cache_dir
        self._http_timeout_sec = float(http_timeout_sec)
        self._mem: dict[str, bytes] = {}

    @property
    def cache_dir(self) -> Path:
        if self._cache_dir is None:
            self._cache_dir = Path(get_astrbot_plugin_data_path()) / PLUGIN_NAME / "assets"
        return self._cache_dir

    def cache_path(self, name: str) -> Path:
        return self.cache_dir / name.lstrip("/")

    async def _load_bytes(self, name: str, url: str) -> bytes:
        cached = self._mem.get(name)
        if cached is not None:
            return cached

        path = self.cache_path(name)
        try:
            if path.exists():
                data = path.read_bytes()
                self._mem[name] = data
                logger.debug(f"mod asset cache hit: {name}")
                return data
        except OSError as exc:
            raise AssetFetchError(name, f"cache read failed: {exc!s}") from exc

        data = await fetch_bytes(
            url, timeout_sec=self._http_timeout_sec, accept="image/*,*/*;q=0.8"
        )
        if data is None:
            raise AssetFetchError(name, f"download failed ({url})")

        # Temp file + os.replace: readers only ever see complete files.
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise AssetFetchError(name, f"cache write failed: {exc!s}") from exc

        logger.info(f"mod asset downloaded: {name} ({len(data)} bytes)")
        self._mem[name] = data
        return data

    def _evict(self, name: str) -> None:
        self._mem.pop(name, None)
        try:
            self.cache_path(name).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(f"mod asset cache evict failed: {name}: {exc!s}")

    @staticmethod
    def _decode(name: str, data: bytes) -> Image.Image:
        try:
            with Image.open(io.BytesIO(data)) as img:
                return img.convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise AssetFetchError(name, f"decode failed: {exc!s}") from exc

    async def _load_image(self, name: str, url: str) -> Image.Image:
        """Load and decode; bytes that do not decode are dropped from both caches."""

        data = await self._load_bytes(name, url)
        try:
            return self._decode(name, data)
        except AssetFetchError:
            logger.warning(f"mod asset {name} is not a valid image, evicting it from the cache")
            self._evict(name)
            raise

    async def fetch_asset(self, name: str) -> Image.Image:
        return await self._load_image(name, self._base_url + name)

    async def get_frame(self, tier: Tier) -> FramePieces:
        p = tier.prefix
        top, bottom, side, corner = await asyncio.gather(
            self.fetch_asset(f"{p}FrameTop.png"),
            self.fetch_asset(f"{p}FrameBottom.png"),
            self.fetch_asset(f"{p}SideLight.png"),
            self.fetch_asset(f"{p}CornerLights.png"),
        )
        return FramePieces(top=top, bottom=bottom, side_lights=side, corner_lights=corner)

    async def get_background(self, tier: Tier) -> BackgroundPieces:
        p = tier.asset_prefix
        background, backer, lower_tab = await asyncio.gather(
            self.fetch_asset(f"{p}Background.png"),
            self.fetch_asset(f"{p}TopRightBacker.png"),
            self.fetch_asset(f"{p}LowerTab.png"),
        )
        return BackgroundPieces(background=background, backer=backer, lower_tab=lower_tab)

    async def get_rank_slots(self) -> RankSlotPieces:
        empty, active, complete = await asyncio.gather(
            self.fetch_asset(RANK_SLOT_EMPTY),
            self.fetch_asset(RANK_SLOT_ACTIVE),
            self.fetch_asset(RANK_COMPLETE_LINE),
        )
        return RankSlotPieces(empty=empty, active=active, complete=complete)

    async def fetch_polarity(self, symbol: str) -> Image.Image:
        return await self.fetch_asset(polarity_asset_name(symbol))

    async def fetch_header(self, mod_set: str) -> Image.Image:
        return await self.fetch_asset(header_asset_name(mod_set))

    async def fetch_thumbnail(self, image: str) -> Image.Image:
        """`image` is a warframestat image name or a full URL."""

        ref = str(image or "").strip()
        if not ref:
            raise AssetFetchError("thumbnail", "empty image reference")

        if ref.startswith(("http://", "https://")):
            url = ref
            file_name = re.sub(r"[^A-Za-z0-9._-]+", "_", ref.split("://", 1)[1])
        else:
            url = self._thumbnail_base_url + ref.lstrip("/")
            file_name = ref.lstrip("/").replace("/", "_")

        return await self._load_image(f"thumbnails/{file_name}", url)
