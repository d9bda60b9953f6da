from __future__ import annotations

import json
import lzma
import re
import struct
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from astrbot.api import logger
from astrbot.core.utils.astrbot_path import get_astrbot_plugin_data_path

from ..http_utils import fetch_bytes, fetch_json
from ..mappers.mod_mapping import Mod

PUBLIC_EXPORT_BASE = "https://content.warframe.com/PublicExport"

# Keys that only upgrade rows describing a mod carry.
_MOD_KEYS = ("fusionLimit", "levelStats", "baseDrain", "polarity")


def _normalize_query(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip().lower())


def _slug(s: str) -> str:
    return re.sub(r"[^a-z0-9\u4e00-\u9fff]+", "", _normalize_query(s))


def _lang(language: str | None) -> str:
    return (language or "zh").strip().lower() or "zh"


def _lzma_alone_decompress(data: bytes) -> bytes:
    """Decode the legacy LZMA-Alone container used by index_*.txt.lzma."""

    if len(data) < 13:
        raise ValueError("lzma-alone data too short")

    props = data[0]
    dict_size = struct.unpack("<I", data[1:5])[0]
    lc = props % 9
    lp = (props // 9) % 5
    pb = (props // 9) // 5

    filters = [
        {"id": lzma.FILTER_LZMA1, "dict_size": dict_size, "lc": lc, "lp": lp, "pb": pb}
    ]
    # 13 byte header, RAW LZMA1 afterwards.
    return lzma.decompress(data[13:], format=lzma.FORMAT_RAW, filters=filters)


def parse_index(text: str) -> dict[str, str]:
    """`ExportUpgrades_zh.json!<token>` lines -> {filename: token}."""

    out: dict[str, str] = {}
    for line in text.splitlines():
        filename, sep, token = line.strip().partition("!")
        if sep and filename.strip() and token.strip():
            out[filename.strip()] = token.strip()
    return out


def score_name_match(query: str, name: str, unique_name: str = "") -> int | None:
    """Lower is better; None means no match."""

    q = _normalize_query(query)
    q_slug = _slug(q)
    if not q:
        return None

    name_slug = _slug(name)
    if q_slug and name_slug == q_slug:
        return 0
    if _normalize_query(name) == q:
        return 1
    if q_slug and q_slug in name_slug:
        return 5
    if q in _normalize_query(name):
        return 8
    if q_slug and q_slug in _slug(unique_name):
        return 12
    return None


@dataclass(frozen=True, slots=True)
class PublicExportIndex:
    language: str
    fetched_at: float
    file_tokens: dict[str, str]


class PublicExportClient:
    """Mod lookup against DE's PublicExport manifests, cached in memory and on disk."""

    def __init__(
        self,
        *,
        cache_dir: Path | None = None,
        cache_ttl_sec: float = 6 * 60 * 60,
        http_timeout_sec: float = 30.0,
    ) -> None:
        self._cache_dir = cache_dir
        self._cache_ttl_sec = float(cache_ttl_sec)
        self._http_timeout_sec = float(http_timeout_sec)
        self._mem_index: dict[str, PublicExportIndex] = {}
        self._mem_exports: dict[str, Any] = {}

    def _base_dir(self) -> Path:
        if self._cache_dir is not None:
            return self._cache_dir
        base = Path(get_astrbot_plugin_data_path())
        return base / "astrbot_plugin_wf_modcard" / "public_export"

    def _index_cache_path(self, language: str) -> Path:
        return self._base_dir() / f"index_{_lang(language)}.json"

    def _export_cache_path(self, language: str, filename: str, token: str) -> Path:
        safe = filename.replace("/", "_")
        return self._base_dir() / "exports" / _lang(language) / f"{safe}!{token}.json"

    def _is_fresh(self, fetched_at: float) -> bool:
        return (time.time() - float(fetched_at)) <= self._cache_ttl_sec

    def _read_index_cache(self, lang: str) -> PublicExportIndex | None:
        path = self._index_cache_path(lang)
        try:
            if not path.exists():
                return None
            payload = json.loads(path.read_text("utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug(f"PublicExport index cache read failed: {exc!s}")
            return None

        if not (
            isinstance(payload, dict)
            and payload.get("language") == lang
            and isinstance(payload.get("fetched_at"), (int, float))
            and isinstance(payload.get("file_tokens"), dict)
            and self._is_fresh(float(payload["fetched_at"]))
        ):
            return None

        return PublicExportIndex(
            language=lang,
            fetched_at=float(payload["fetched_at"]),
            file_tokens={
                str(k): str(v)
                for k, v in payload["file_tokens"].items()
                if isinstance(k, str) and isinstance(v, str)
            },
        )

    async def get_index(self, *, language: str = "zh") -> PublicExportIndex | None:
        lang = _lang(language)
        cached = self._mem_index.get(lang)
        if cached and self._is_fresh(cached.fetched_at):
            return cached

        idx = self._read_index_cache(lang)
        if idx is not None:
            self._mem_index[lang] = idx
            return idx

        raw = await fetch_bytes(
            f"{PUBLIC_EXPORT_BASE}/index_{lang}.txt.lzma",
            timeout_sec=self._http_timeout_sec,
        )
        if raw is None:
            return None

        try:
            text = _lzma_alone_decompress(raw).decode("utf-8", "replace")
        except (ValueError, lzma.LZMAError) as exc:
            logger.warning(f"PublicExport index decompress failed: {exc!s}")
            return None

        idx = PublicExportIndex(
            language=lang, fetched_at=time.time(), file_tokens=parse_index(text)
        )
        self._mem_index[lang] = idx

        path = self._index_cache_path(lang)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(
                    {
                        "language": idx.language,
                        "fetched_at": idx.fetched_at,
                        "file_tokens": idx.file_tokens,
                    },
                    ensure_ascii=False,
                ),
                "utf-8",
            )
        except OSError as exc:
            logger.debug(f"PublicExport index cache write failed: {exc!s}")

        return idx

    async def fetch_export(self, filename: str, *, language: str = "zh") -> Any | None:
        lang = _lang(language)
        filename = (filename or "").strip()
        if not filename:
            return None

        index = await self.get_index(language=lang)
        if index is None:
            return None

        token = index.file_tokens.get(filename)
        if not token:
            logger.warning(f"PublicExport token not found: {filename} ({lang})")
            return None

        mem_key = f"{lang}:{filename}!{token}"
        if mem_key in self._mem_exports:
            return self._mem_exports[mem_key]

        path = self._export_cache_path(lang, filename, token)
        try:
            if path.exists():
                data = json.loads(path.read_text("utf-8"))
                self._mem_exports[mem_key] = data
                return data
        except (OSError, ValueError) as exc:
            logger.debug(f"PublicExport export cache read failed: {exc!s}")

        data = await fetch_json(
            f"{PUBLIC_EXPORT_BASE}/Manifest/{filename}!{token}",
            timeout_sec=self._http_timeout_sec,
        )
        if data is None:
            return None

        self._mem_exports[mem_key] = data
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
        except OSError as exc:
            logger.debug(f"PublicExport export cache write failed: {exc!s}")
        return data

    async def search_mod(
        self,
        query: str,
        *,
        language: str = "zh",
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """ExportUpgrades rows that look like mods, best name match first."""

        lang = _lang(language)
        data = await self.fetch_export(f"ExportUpgrades_{lang}.json", language=lang)
        rows = data.get("ExportUpgrades") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            return []

        scored: list[tuple[int, int, dict[str, Any]]] = []
        for pos, row in enumerate(rows):
            if not isinstance(row, dict) or not any(k in row for k in _MOD_KEYS):
                continue
            name = row.get("name")
            if not isinstance(name, str) or not name:
                continue
            uniq = row.get("uniqueName")
            score = score_name_match(query, name, uniq if isinstance(uniq, str) else "")
            if score is not None:
                scored.append((score, pos, row))

        scored.sort(key=lambda x: (x[0], x[1]))
        return [r for _, _, r in scored[: max(1, min(int(limit), 20))]]

    async def find_mod(self, query: str, *, language: str = "zh") -> Mod | None:
        rows = await self.search_mod(query, language=language, limit=1)
        return Mod.from_dict(rows[0]) if rows else None
