from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType

from ..constants import ARCHON_MARKER, MOD_RARITY_TIERS, RIVEN_MARKER, TIER_COLORS
from ..mappers.mod_mapping import Mod

MAX_RANK_SLOTS = 10


class Tier(Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    LEGENDARY = "Legendary"
    OMEGA = "Omega"

    @property
    def prefix(self) -> str:
        return self.value

    @property
    def color(self) -> str:
        return TIER_COLORS[self.value]

    @property
    def asset_prefix(self) -> str:
        """Prefix for background, backer and lower tab. Rivens reuse the Legendary set."""

        return Tier.LEGENDARY.value if self is Tier.OMEGA else self.value


def resolve_tier(mod: Mod) -> Tier:
    """riven type > Archon name > rarity lookup > Bronze."""

    if RIVEN_MARKER in (mod.type or "").lower():
        return Tier.OMEGA
    if ARCHON_MARKER in (mod.name or ""):
        return Tier.GOLD
    prefix = MOD_RARITY_TIERS.get((mod.rarity or "").strip().lower())
    return Tier(prefix) if prefix else Tier.BRONZE


@dataclass(frozen=True, slots=True)
class TierLayout:
    """Card geometry for one tier.

    Fractions are relative to the background piece, pixel values are absolute.
    """

    canvas_width: int = 256
    canvas_height: int = 512
    output_height: int = 380
    collapsed_height: int = 170

    # x, y, w, h
    thumb_box: tuple[float, float, float, float] = (0.04, 0.17, 0.93, 0.39)
    side_light_y: float = 0.234
    side_light_inset: int = 2
    backer_pos: tuple[float, float] = (0.8, 0.185)
    top_frame_y: float = 0.14
    bottom_frame_y: float = 0.65
    corner_light_y: int = 35
    corner_light_inset: int = -5
    lower_tab_padding: int = 6

    title_y: float = 0.575
    description_y: float = 0.615
    text_width: float = 0.78
    line_height: int = 15

    header_pos: tuple[float, float] = (0.3, 0.13)
    header_scale: float = 0.8
    pip_size: tuple[int, int] = (10, 4)
    pip_gap: int = 3

    rank_slot_y: float = 0.18
    rank_slot_gap: int = 2

    title_font_size: int = 20
    description_font_size: int = 12
    compat_font_size: int = 16
    drain_font_size: int = 14

    def __post_init__(self) -> None:
        sizes = (
            self.canvas_width,
            self.canvas_height,
            self.output_height,
            self.collapsed_height,
            self.line_height,
            self.title_font_size,
            self.description_font_size,
            self.compat_font_size,
            self.drain_font_size,
            *self.pip_size,
        )
        if any(v <= 0 for v in sizes):
            raise ValueError("layout sizes must be positive")
        if self.output_height > self.canvas_height:
            raise ValueError("output_height exceeds the working canvas")
        fractions = (
            *self.thumb_box,
            *self.backer_pos,
            *self.header_pos,
            self.side_light_y,
            self.top_frame_y,
            self.bottom_frame_y,
            self.title_y,
            self.description_y,
            self.text_width,
            self.header_scale,
            self.rank_slot_y,
        )
        if any(not 0.0 <= f <= 1.0 for f in fractions):
            raise ValueError("layout fractions must lie within [0, 1]")
        if self.lower_tab_padding < 0 or self.rank_slot_gap < 0 or self.pip_gap < 0:
            raise ValueError("layout paddings must not be negative")


_BASE_LAYOUT = TierLayout()

TIER_LAYOUTS = MappingProxyType(
    {
        Tier.BRONZE: _BASE_LAYOUT,
        Tier.SILVER: _BASE_LAYOUT,
        Tier.GOLD: _BASE_LAYOUT,
        Tier.LEGENDARY: replace(_BASE_LAYOUT, corner_light_y=40),
        Tier.OMEGA: replace(
            _BASE_LAYOUT,
            canvas_width=292,
            collapsed_height=180,
            corner_light_y=40,
            corner_light_inset=0,
            lower_tab_padding=14,
            line_height=18,
        ),
    }
)


def layout_for(tier: Tier) -> TierLayout:
    return TIER_LAYOUTS[tier]


@dataclass(frozen=True, slots=True)
class RankSlotPlan:
    slots: tuple[bool, ...]
    complete: bool

    @property
    def active_count(self) -> int:
        return sum(self.slots)


def rank_slot_plan(max_rank: int, rank: int) -> RankSlotPlan:
    """At most ten slots; the first `rank` are active, a full row is complete."""

    count = max(0, min(int(max_rank), MAX_RANK_SLOTS))
    current = max(0, min(int(rank), count))
    return RankSlotPlan(
        slots=tuple(i < current for i in range(count)),
        complete=count > 0 and current == count,
    )


def overflow_x(origin_x: int, piece_width: int, background_width: int) -> int:
    """Left edge of a frame piece. Wider pieces are centered on the background."""

    if piece_width > background_width:
        return origin_x - (piece_width - background_width) // 2
    return origin_x
