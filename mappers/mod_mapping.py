from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..constants import POLARITY_ALIASES, RIVEN_MARKER, UNIVERSAL_POLARITY


def normalize_polarity(raw: object) -> str | None:
    """Map `AP_ATTACK` / `madurai` / `V` style tokens to a lowercase polarity name."""

    s = str(raw or "").strip().lower()
    if not s:
        return None
    return POLARITY_ALIASES.get(s, s)


def _as_int(value: object, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _as_text(value: object) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s or None
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value if isinstance(v, str) and v.strip()]
        return "\n".join(parts) or None
    return None


def _level_stats(raw: object) -> tuple[tuple[str, ...], ...]:
    if not isinstance(raw, list):
        return ()
    out: list[tuple[str, ...]] = []
    for entry in raw:
        stats = entry.get("stats") if isinstance(entry, Mapping) else None
        if not isinstance(stats, list):
            out.append(())
            continue
        out.append(tuple(str(s) for s in stats if isinstance(s, str)))
    return tuple(out)


@dataclass(frozen=True, slots=True)
class Mod:
    name: str
    rarity: str | None = None
    type: str | None = None
    base_drain: int = 0
    polarity: str | None = None
    fusion_limit: int = 0
    image_name: str | None = None
    description: str | None = None
    level_stats: tuple[tuple[str, ...], ...] = ()
    compat_name: str | None = None
    mod_set: str | None = None
    mod_set_size: int = 0
    unique_name: str | None = None

    @property
    def is_riven(self) -> bool:
        return RIVEN_MARKER in (self.type or "").lower()

    @property
    def is_veiled(self) -> bool:
        """Rivens are veiled until they carry rolled stats."""

        return self.is_riven and not self.description and not any(self.level_stats)

    @property
    def has_universal_polarity(self) -> bool:
        return self.polarity == UNIVERSAL_POLARITY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Mod:
        """Build a Mod from a warframe-items record or a PublicExport ExportUpgrades row."""

        unique_name = data.get("uniqueName")
        unique_name = unique_name if isinstance(unique_name, str) else None

        mod_type = _as_text(data.get("type"))
        if not mod_type and unique_name and "/Randomized/" in unique_name:
            mod_type = "Riven Mod"

        set_values = data.get("modSetValues")
        set_size = _as_int(data.get("numUpgradesInSet"))
        if not set_size and isinstance(set_values, list):
            set_size = len(set_values)

        rarity = data.get("rarity")
        compat = _as_text(data.get("compatName"))

        return cls(
            name=_as_text(data.get("name")) or "",
            rarity=rarity.strip().lower() if isinstance(rarity, str) else None,
            type=mod_type,
            base_drain=_as_int(data.get("baseDrain")),
            polarity=normalize_polarity(data.get("polarity")),
            fusion_limit=max(0, _as_int(data.get("fusionLimit"))),
            image_name=_as_text(data.get("imageName")),
            description=_as_text(data.get("description")),
            level_stats=_level_stats(data.get("levelStats")),
            compat_name=compat.upper() if compat else None,
            mod_set=_as_text(data.get("modSet")),
            mod_set_size=max(0, set_size),
            unique_name=unique_name,
        )


def mod_drain(base_drain: int, rank: int) -> int:
    """Capacity shown on the card. Aura mods (negative drain) grow in magnitude."""

    rank = max(0, int(rank))
    if base_drain < 0:
        return base_drain - rank
    return base_drain + rank
