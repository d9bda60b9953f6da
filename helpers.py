from __future__ import annotations

import re
from dataclasses import dataclass

from .constants import COLLAPSED_ALIASES, OUTPUT_FORMAT_ALIASES


def split_tokens(text: str) -> list[str]:
    return [t for t in re.split(r"\s+", (text or "").strip()) if t]


@dataclass(frozen=True, slots=True)
class ModCardArgs:
    query: str
    rank: int | None = None
    format: str | None = None
    quality: int | None = None
    set_bonus: int | None = None
    collapsed: bool = False


def parse_modcard_args(text: str) -> ModCardArgs:
    """`<name...> [rank] [png|webp|jpeg|avif] [q=80] [set=3] [collapsed]`.

    A bare trailing integer is the rank; everything unrecognised is part of the
    mod name.
    """

    tokens = split_tokens(text)
    name_parts: list[str] = []
    rank: int | None = None
    fmt: str | None = None
    quality: int | None = None
    set_bonus: int | None = None
    collapsed = False

    for token in tokens:
        low = token.lower()
        m = re.fullmatch(r"(q|quality|质量)[=:](-?\d+)", low)
        if m:
            quality = int(m.group(2))
            continue
        m = re.fullmatch(r"(set|套装)[=:](\d+)", low)
        if m:
            set_bonus = int(m.group(2))
            continue
        m = re.fullmatch(r"(r|rank|等级)[=:](\d+)", low)
        if m:
            rank = int(m.group(2))
            continue
        if low in OUTPUT_FORMAT_ALIASES:
            fmt = OUTPUT_FORMAT_ALIASES[low]
            continue
        if low in COLLAPSED_ALIASES:
            collapsed = True
            continue
        name_parts.append(token)

    # Bare trailing number is a rank unless it is the whole query.
    if rank is None and len(name_parts) > 1 and name_parts[-1].isdigit():
        rank = int(name_parts.pop())

    return ModCardArgs(
        query=" ".join(name_parts),
        rank=rank,
        format=fmt,
        quality=quality,
        set_bonus=set_bonus,
        collapsed=collapsed,
    )
