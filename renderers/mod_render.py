from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, ImageOps

from astrbot.api import logger
from astrbot.core.utils.astrbot_path import get_astrbot_temp_path

from ..clients.asset_client import (
    BackgroundPieces,
    FramePieces,
    ModAssetClient,
    RankSlotPieces,
)
from ..mappers.mod_mapping import Mod, mod_drain
from .exporter import OutputConfig, export_image, validate_output
from .fonts import ensure_fonts_registered, load_font
from .mod_layout import (
    RankSlotPlan,
    Tier,
    TierLayout,
    layout_for,
    overflow_x,
    rank_slot_plan,
    resolve_tier,
)
from .text_layout import fit_text, mod_description, text_measure, wrap_paragraphs
from .tint import parse_hex_color, polarity_badge, shade_image, tint_image

TEXT_COLOR = (255, 255, 255, 255)
COLLAPSED_THUMB_SHADE = 0.5
VEILED_DRAIN = "???"
UNIVERSAL_POLARITY_TEXT = "??"


@dataclass(frozen=True, slots=True)
class RenderedImage:
    path: str


@dataclass(frozen=True, slots=True)
class ModCardAssets:
    frame: FramePieces
    background: BackgroundPieces
    rank_slots: RankSlotPieces
    polarity: Image.Image | None = None
    header: Image.Image | None = None
    thumbnail: Image.Image | None = None


def _composite(dst: Image.Image, src: Image.Image, xy: tuple[float, float]) -> None:
    """alpha_composite that tolerates negative offsets and overflow."""

    x, y = int(xy[0]), int(xy[1])
    left = max(0, -x)
    top = max(0, -y)
    right = min(src.width, dst.width - x)
    bottom = min(src.height, dst.height - y)
    if left >= right or top >= bottom:
        return
    if (left, top, right, bottom) != (0, 0, src.width, src.height):
        src = src.crop((left, top, right, bottom))
    dst.alpha_composite(src, (x + left, y + top))


def _center_into(src: Image.Image, size: tuple[int, int]) -> Image.Image:
    out = Image.new("RGBA", size, (0, 0, 0, 0))
    _composite(out, src, ((size[0] - src.width) // 2, (size[1] - src.height) // 2))
    return out


def _resize_cover(img: Image.Image, *, size: tuple[int, int]) -> Image.Image:
    """Scale to cover `size` keeping the aspect ratio, then center-crop."""

    tw, th = size
    sw, sh = img.size
    if tw <= 0 or th <= 0 or sw <= 0 or sh <= 0:
        return img

    scale = max(tw / sw, th / sh)
    nw = max(tw, int(round(sw * scale)))
    nh = max(th, int(round(sh * scale)))
    resized = img.convert("RGBA").resize((nw, nh), Image.Resampling.LANCZOS)

    left = (nw - tw) // 2
    top = (nh - th) // 2
    return resized.crop((left, top, left + tw, top + th))


def _draw_centered(
    draw: ImageDraw.ImageDraw,
    text: str,
    *,
    cx: float,
    y: float,
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
) -> None:
    w = draw.textlength(text, font=font)
    draw.text((cx - w / 2, y), text, fill=TEXT_COLOR, font=font)


def _draw_boxed(
    draw: ImageDraw.ImageDraw,
    text: str,
    *,
    box: tuple[float, float, float, float],
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont,
) -> None:
    """Center `text` inside box (x, y, w, h) using its ink bounds."""

    x, y, w, h = box
    bbox = draw.textbbox((0, 0), text, font=font)
    tw = bbox[2] - bbox[0]
    th = bbox[3] - bbox[1]
    draw.text(
        (x + (w - tw) / 2 - bbox[0], y + (h - th) / 2 - bbox[1]),
        text,
        fill=TEXT_COLOR,
        font=font,
    )


def compose_backer(
    backer: Image.Image,
    *,
    mod: Mod,
    rank: int,
    tier: Tier,
    layout: TierLayout,
    polarity: Image.Image | None,
) -> Image.Image:
    """Drain cost on the left, polarity badge on the right."""

    out = backer.copy()
    d = ImageDraw.Draw(out)
    w, h = out.size
    font = load_font(layout.drain_font_size, weight="medium")

    drain = VEILED_DRAIN if mod.is_veiled else str(abs(mod_drain(mod.base_drain, rank)))
    _draw_boxed(d, drain, box=(0, 0, w * 0.55, h), font=font)

    badge = max(1, int(h * 0.55))
    bx = int(w * 0.58)
    by = (h - badge) // 2
    if mod.has_universal_polarity:
        _draw_boxed(d, UNIVERSAL_POLARITY_TEXT, box=(bx, by, badge, badge), font=font)
    elif polarity is not None and polarity.width > 0 and polarity.height > 0:
        # Fit inside the square slot, keeping the glyph's aspect ratio.
        scale = min(badge / polarity.width, badge / polarity.height)
        size = (max(1, round(polarity.width * scale)), max(1, round(polarity.height * scale)))
        icon = polarity_badge(polarity, tier.color, size=size)
        _composite(out, icon, (bx + (badge - icon.width) // 2, by + (badge - icon.height) // 2))
    return out


def compose_lower_tab(lower_tab: Image.Image, label: str, *, layout: TierLayout) -> Image.Image:
    out = lower_tab.copy()
    d = ImageDraw.Draw(out)
    font = load_font(layout.compat_font_size, weight="medium")
    text = fit_text(text_measure(d, font), label, max(1, out.width - 8))
    _draw_boxed(d, text, box=(0, 0, out.width, out.height), font=font)
    return out


def _draw_title_and_description(
    canvas: Image.Image,
    *,
    mod: Mod,
    rank: int,
    layout: TierLayout,
    origin: tuple[int, int],
    bg_size: tuple[int, int],
    max_y: int,
) -> None:
    d = ImageDraw.Draw(canvas)
    x0, y0 = origin
    bw, bh = bg_size
    cx = x0 + bw / 2
    max_w = bw * layout.text_width

    title_font = load_font(layout.title_font_size)
    title = fit_text(text_measure(d, title_font), mod.name, max_w)
    if title:
        _draw_centered(d, title, cx=cx, y=y0 + bh * layout.title_y, font=title_font)

    desc = mod_description(mod.description, mod.level_stats, rank)
    if not desc:
        return

    font = load_font(layout.description_font_size)
    y = y0 + bh * layout.description_y
    for line in wrap_paragraphs(text_measure(d, font), desc, max_w):
        if y + layout.line_height > max_y:
            break
        if line:
            _draw_centered(d, line, cx=cx, y=y, font=font)
        y += layout.line_height


def _draw_set_row(
    canvas: Image.Image,
    *,
    header: Image.Image | None,
    tier: Tier,
    layout: TierLayout,
    origin: tuple[int, int],
    bg_size: tuple[int, int],
    set_size: int,
    set_bonus: int,
) -> None:
    """Tinted set header followed by one pip per set member, `set_bonus` filled."""

    x0, y0 = origin
    bw, bh = bg_size
    hx = x0 + int(bw * layout.header_pos[0])
    row_y = y0 + int(bh * layout.header_pos[1])

    if header is not None:
        scaled = tint_image(header, tier.color).resize(
            (
                max(1, int(header.width * layout.header_scale)),
                max(1, int(header.height * layout.header_scale)),
            ),
            Image.Resampling.LANCZOS,
        )
        _composite(canvas, scaled, (hx, row_y))
        row_y += scaled.height

    if set_size <= 0:
        return

    filled = max(0, min(int(set_bonus), set_size))
    pw, ph = layout.pip_size
    gap = layout.pip_gap
    row_w = set_size * pw + (set_size - 1) * gap
    px = x0 + (bw - row_w) // 2
    py = row_y + 3
    color = (*parse_hex_color(tier.color), 255)

    d = ImageDraw.Draw(canvas)
    for i in range(set_size):
        left = px + i * (pw + gap)
        box = (left, py, left + pw - 1, py + ph - 1)
        if i < filled:
            d.rectangle(box, fill=color)
        else:
            d.rectangle(box, outline=color, width=1)


def draw_rank_slots(
    canvas: Image.Image,
    *,
    slots: RankSlotPieces,
    plan: RankSlotPlan,
    left: int,
    width: int,
    y: int,
    gap: int,
) -> None:
    n = len(plan.slots)
    if n == 0:
        return

    sw = max(slots.empty.width, slots.active.width)
    sh = max(slots.empty.height, slots.active.height)
    row_w = n * sw + (n - 1) * gap
    x = left + (width - row_w) // 2
    for i, active in enumerate(plan.slots):
        _composite(canvas, slots.active if active else slots.empty, (x + i * (sw + gap), y))

    if plan.complete:
        line = slots.complete.resize(
            (row_w, slots.complete.height), Image.Resampling.NEAREST
        )
        _composite(canvas, line, (x, y + (sh - line.height) // 2))


def _draw_top(
    canvas: Image.Image, *, top: Image.Image, origin_x: int, bg_width: int, y: int
) -> None:
    _composite(canvas, top, (overflow_x(origin_x, top.width, bg_width), y))


def _draw_bottom(
    canvas: Image.Image,
    *,
    frame: FramePieces,
    slots: RankSlotPieces,
    plan: RankSlotPlan,
    layout: TierLayout,
    origin_x: int,
    bg_width: int,
    y: int,
) -> None:
    bottom = frame.bottom
    bx = overflow_x(origin_x, bottom.width, bg_width)
    _composite(canvas, bottom, (bx, y))

    corner = frame.corner_lights
    cy = y + layout.corner_light_y
    _composite(
        canvas, corner, (origin_x + bg_width - corner.width - layout.corner_light_inset, cy)
    )
    _composite(canvas, ImageOps.mirror(corner), (origin_x + layout.corner_light_inset, cy))

    draw_rank_slots(
        canvas,
        slots=slots,
        plan=plan,
        left=bx,
        width=bottom.width,
        y=y + int(bottom.height * layout.rank_slot_y),
        gap=layout.rank_slot_gap,
    )


def compose_mod_card(
    mod: Mod,
    assets: ModCardAssets,
    *,
    tier: Tier,
    rank: int = 0,
    set_bonus: int | None = None,
) -> Image.Image:
    """Full card. Every offset comes from the tier's layout and the background size."""

    layout = layout_for(tier)
    canvas = Image.new("RGBA", (layout.canvas_width, layout.canvas_height), (0, 0, 0, 0))

    bg = assets.background.background
    bw, bh = bg.size
    x0 = (canvas.width - bw) // 2
    y0 = (canvas.height - bh) // 2
    _composite(canvas, bg, (x0, y0))

    if assets.thumbnail is not None:
        tx, ty, tw, th = layout.thumb_box
        thumb = _resize_cover(
            assets.thumbnail, size=(max(1, int(bw * tw)), max(1, int(bh * th)))
        )
        _composite(canvas, thumb, (x0 + int(bw * tx), y0 + int(bh * ty)))

    side = assets.frame.side_lights
    sy = y0 + int(bh * layout.side_light_y)
    _composite(canvas, side, (x0 + bw - side.width - layout.side_light_inset, sy))
    _composite(canvas, ImageOps.mirror(side), (x0 + layout.side_light_inset, sy))

    backer = compose_backer(
        assets.background.backer,
        mod=mod,
        rank=rank,
        tier=tier,
        layout=layout,
        polarity=assets.polarity,
    )
    _composite(
        canvas,
        backer,
        (x0 + int(bw * layout.backer_pos[0]), y0 + int(bh * layout.backer_pos[1])),
    )

    bottom_y = y0 + int(bh * layout.bottom_frame_y)
    text_limit = bottom_y + assets.frame.bottom.height - layout.lower_tab_padding
    if mod.compat_name:
        tab = compose_lower_tab(assets.background.lower_tab, mod.compat_name, layout=layout)
        tab_y = text_limit - tab.height
        _composite(canvas, tab, (x0 + (bw - tab.width) // 2, tab_y))
        text_limit = tab_y

    _draw_title_and_description(
        canvas,
        mod=mod,
        rank=rank,
        layout=layout,
        origin=(x0, y0),
        bg_size=(bw, bh),
        max_y=text_limit,
    )

    _draw_top(
        canvas,
        top=assets.frame.top,
        origin_x=x0,
        bg_width=bw,
        y=y0 + int(bh * layout.top_frame_y),
    )

    # The set row overlaps the top frame and sits above it.
    if mod.mod_set:
        _draw_set_row(
            canvas,
            header=assets.header,
            tier=tier,
            layout=layout,
            origin=(x0, y0),
            bg_size=(bw, bh),
            set_size=mod.mod_set_size,
            set_bonus=set_bonus or 0,
        )

    _draw_bottom(
        canvas,
        frame=assets.frame,
        slots=assets.rank_slots,
        plan=rank_slot_plan(mod.fusion_limit, rank),
        layout=layout,
        origin_x=x0,
        bg_width=bw,
        y=bottom_y,
    )

    return _center_into(canvas, (layout.canvas_width, layout.output_height))


def compose_collapsed_card(
    mod: Mod,
    assets: ModCardAssets,
    *,
    tier: Tier,
    rank: int = 0,
) -> Image.Image:
    """Compact card: title, backer and rank row over a darkened thumbnail band."""

    layout = layout_for(tier)
    canvas = Image.new("RGBA", (layout.canvas_width, layout.canvas_height), (0, 0, 0, 0))
    height = layout.collapsed_height

    bg = assets.background.background
    bw, bh = bg.size
    x0 = (canvas.width - bw) // 2
    y0 = (canvas.height - height) // 2

    band_top = int(bh * layout.top_frame_y)
    _composite(canvas, bg.crop((0, band_top, bw, band_top + height)), (x0, y0))

    if assets.thumbnail is not None:
        tx, _, tw, _ = layout.thumb_box
        thumb = _resize_cover(assets.thumbnail, size=(max(1, int(bw * tw)), height))
        _composite(canvas, shade_image(thumb, COLLAPSED_THUMB_SHADE), (x0 + int(bw * tx), y0))

    backer = compose_backer(
        assets.background.backer,
        mod=mod,
        rank=rank,
        tier=tier,
        layout=layout,
        polarity=assets.polarity,
    )
    backer_y = y0 + int(bh * (layout.backer_pos[1] - layout.top_frame_y))
    _composite(canvas, backer, (x0 + int(bw * layout.backer_pos[0]), backer_y))

    d = ImageDraw.Draw(canvas)
    title_font = load_font(layout.title_font_size)
    title = fit_text(text_measure(d, title_font), mod.name, bw * layout.text_width)
    if title:
        _draw_centered(
            d,
            title,
            cx=x0 + bw / 2,
            y=y0 + (height - layout.title_font_size) / 2,
            font=title_font,
        )

    _draw_top(canvas, top=assets.frame.top, origin_x=x0, bg_width=bw, y=y0)
    _draw_bottom(
        canvas,
        frame=assets.frame,
        slots=assets.rank_slots,
        plan=rank_slot_plan(mod.fusion_limit, rank),
        layout=layout,
        origin_x=x0,
        bg_width=bw,
        y=y0 + height - assets.frame.bottom.height,
    )

    return _center_into(canvas, (layout.canvas_width, height))


async def load_card_assets(
    mod: Mod,
    tier: Tier,
    *,
    assets: ModAssetClient,
    image: str | None = None,
    collapsed: bool = False,
) -> ModCardAssets:
    frame, background, rank_slots = await asyncio.gather(
        assets.get_frame(tier),
        assets.get_background(tier),
        assets.get_rank_slots(),
    )

    polarity = None
    if mod.polarity and not mod.has_universal_polarity:
        polarity = await assets.fetch_polarity(mod.polarity)

    header = None
    if mod.mod_set and not collapsed:
        header = await assets.fetch_header(mod.mod_set)

    thumb_ref = image or mod.image_name
    thumbnail = await assets.fetch_thumbnail(thumb_ref) if thumb_ref else None

    return ModCardAssets(
        frame=frame,
        background=background,
        rank_slots=rank_slots,
        polarity=polarity,
        header=header,
        thumbnail=thumbnail,
    )


async def render_mod_image(
    mod: Mod,
    *,
    assets: ModAssetClient,
    rank: int | None = None,
    set_bonus: int | None = None,
    image: str | None = None,
    output: OutputConfig | None = None,
    collapsed: bool = False,
) -> bytes:
    """Render `mod` as an encoded card image.

    Raises QualityRangeError/UnsupportedFormatError before any work,
    AssetFetchError when a fragment cannot be obtained and ExportError when
    encoding fails.
    """

    output = output or OutputConfig()
    validate_output(output)
    ensure_fonts_registered()

    tier = resolve_tier(mod)
    rank = max(0, int(rank or 0))
    loaded = await load_card_assets(
        mod, tier, assets=assets, image=image, collapsed=collapsed
    )

    if collapsed:
        canvas = compose_collapsed_card(mod, loaded, tier=tier, rank=rank)
    else:
        canvas = compose_mod_card(mod, loaded, tier=tier, rank=rank, set_bonus=set_bonus)

    logger.debug(
        f"mod card composed: {mod.name} tier={tier.value} rank={rank} size={canvas.size}"
    )
    return export_image(canvas, output)


async def render_mod_image_to_file(
    mod: Mod,
    *,
    assets: ModAssetClient,
    rank: int | None = None,
    set_bonus: int | None = None,
    image: str | None = None,
    output: OutputConfig | None = None,
    collapsed: bool = False,
) -> RenderedImage:
    """Render into the AstrBot temp dir and return the file path."""

    output = output or OutputConfig()
    data = await render_mod_image(
        mod,
        assets=assets,
        rank=rank,
        set_bonus=set_bonus,
        image=image,
        output=output,
        collapsed=collapsed,
    )

    out_dir = Path(get_astrbot_temp_path())
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"wf_modcard_{uuid.uuid4().hex}.{output.extension}"
    out_path.write_bytes(data)
    return RenderedImage(path=str(out_path))
