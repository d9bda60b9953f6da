from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .constants import MOD_ASSETS_BASE_URL, OUTPUT_FORMAT_ALIASES


@dataclass(frozen=True, slots=True)
class ModCardSettings:
    proxy_url: str | None = None
    direct_domains: tuple[str, ...] = ()
    asset_base_url: str = MOD_ASSETS_BASE_URL
    language: str = "zh"
    default_format: str = "png"
    default_quality: int | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> ModCardSettings:
        """Normalise the AstrBot plugin config. Bad values fall back to defaults."""

        cfg = config or {}

        domains = cfg.get("direct_domains")
        if isinstance(domains, str):
            domains = [d for d in domains.replace(",", " ").split() if d]
        if not isinstance(domains, list):
            domains = []

        base_url = str(cfg.get("asset_base_url") or "").strip() or MOD_ASSETS_BASE_URL

        fmt = OUTPUT_FORMAT_ALIASES.get(str(cfg.get("default_format") or "").strip().lower())

        quality = cfg.get("default_quality")
        if isinstance(quality, bool) or not isinstance(quality, int):
            quality = None
        elif not 0 <= quality <= 100:
            quality = None

        proxy = str(cfg.get("proxy_url") or "").strip()

        return cls(
            proxy_url=proxy or None,
            direct_domains=tuple(str(d) for d in domains),
            asset_base_url=base_url,
            language=str(cfg.get("language") or "zh").strip().lower() or "zh",
            default_format=fmt or "png",
            default_quality=quality,
        )
