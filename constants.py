from __future__ import annotations

from types import MappingProxyType

# Shared lookup tables. Wrapped in MappingProxyType so nothing mutates them at runtime.

MOD_ASSETS_BASE_URL = "https://cdn.warframestat.us/genesis/modFrames/"
MOD_THUMBNAIL_BASE_URL = "https://cdn.warframestat.us/img/"

RIVEN_MARKER = "riven"
ARCHON_MARKER = "Archon"

MOD_RARITY_TIERS = MappingProxyType(
    {
        "common": "Bronze",
        "uncommon": "Silver",
        "rare": "Gold",
        "legendary": "Legendary",
    }
)

TIER_COLORS = MappingProxyType(
    {
        "Bronze": "#CA9A87",
        "Silver": "#FFFFFF",
        "Gold": "#FAE7BE",
        "Legendary": "#DFDFDF",
        "Omega": "#AC83D5",
    }
)

# PublicExport uses AP_* tokens, warframe-items uses the polarity names.
POLARITY_ALIASES = MappingProxyType(
    {
        "ap_attack": "madurai",
        "ap_defense": "vazarin",
        "ap_tactic": "naramon",
        "ap_power": "zenurik",
        "ap_ward": "unairu",
        "ap_precept": "penjaga",
        "ap_umbra": "umbra",
        "ap_universal": "universal",
        "ap_any": "universal",
        "v": "madurai",
        "d": "vazarin",
        "-": "naramon",
        "r": "zenurik",
        "madurai": "madurai",
        "vazarin": "vazarin",
        "naramon": "naramon",
        "zenurik": "zenurik",
        "unairu": "unairu",
        "penjaga": "penjaga",
        "umbra": "umbra",
        "universal": "universal",
        "any": "universal",
        "aura": "aura",
    }
)

UNIVERSAL_POLARITY = "universal"

OUTPUT_FORMAT_ALIASES = MappingProxyType(
    {
        "png": "png",
        "webp": "webp",
        "jpeg": "jpeg",
        "jpg": "jpeg",
        "avif": "avif",
    }
)

COLLAPSED_ALIASES: frozenset[str] = frozenset({"collapsed", "compact", "折叠", "简洁"})
