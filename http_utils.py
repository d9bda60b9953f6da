from __future__ import annotations

import json
from fnmatch import fnmatch
from typing import Any
from urllib.parse import urlsplit

import aiohttp

from astrbot.api import logger

USER_AGENT = "AstrBot/wf_modcard (+https://github.com/Soulter/AstrBot)"

_proxy_url: str | None = None
_direct_domains: list[str] = []


def set_proxy_url(proxy_url: str | None) -> None:
    """Force every request made through this module to use `proxy_url`.

    An empty value falls back to the environment proxy settings
    (aiohttp `trust_env=True`).
    """

    global _proxy_url
    p = str(proxy_url or "").strip()
    _proxy_url = p or None


def _normalize_domain(raw: object) -> str:
    s = str(raw or "").strip().lower()
    if "://" in s:
        s = (urlsplit(s).hostname or "").lower()
    s = s.split("/", 1)[0]
    return s.split(":", 1)[0].strip()


def set_direct_domains(domains: list[str] | None) -> None:
    """Hostnames (glob patterns such as `*.warframestat.us`) that skip the proxy."""

    global _direct_domains
    out: list[str] = []
    for d in domains or []:
        s = _normalize_domain(d)
        if s and s not in out:
            out.append(s)
    _direct_domains = out


def _should_bypass_proxy(url: str) -> bool:
    host = (urlsplit(str(url or "")).hostname or "").lower()
    if not host:
        return False
    return any(fnmatch(host, pattern) for pattern in _direct_domains)


def request_kwargs_for_url(url: str) -> dict[str, Any]:
    """Per-request aiohttp kwargs (proxy) for `url`."""

    kw: dict[str, Any] = {}
    if _proxy_url and not _should_bypass_proxy(url):
        kw["proxy"] = _proxy_url
    return kw


def _default_headers(accept: str) -> dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Accept": accept,
        "Accept-Language": "en-US,en;q=0.9,zh-CN;q=0.8",
    }


async def fetch_bytes(
    urls: str | list[str],
    *,
    timeout_sec: float = 20.0,
    accept: str = "*/*",
    headers: dict[str, str] | None = None,
) -> bytes | None:
    """GET the first url that answers 200. Logs and returns None when all fail."""

    url_list = [urls] if isinstance(urls, str) else [u for u in urls if u]
    if not url_list:
        return None

    req_headers = {**_default_headers(accept), **(headers or {})}
    timeout = aiohttp.ClientTimeout(total=float(timeout_sec))

    last_err: str | None = None
    async with aiohttp.ClientSession(timeout=timeout, trust_env=True) as session:
        for url in url_list:
            try:
                async with session.get(
                    url, headers=req_headers, **request_kwargs_for_url(url)
                ) as resp:
                    if resp.status != 200:
                        last_err = f"{resp.status} {url}"
                        continue
                    return await resp.read()
            except (aiohttp.ClientError, TimeoutError) as exc:
                last_err = f"{exc!s} ({url})"

    logger.warning(f"http fetch_bytes failed: {last_err}")
    return None


async def fetch_json(
    urls: str | list[str],
    *,
    timeout_sec: float = 20.0,
) -> Any | None:
    raw = await fetch_bytes(
        urls, timeout_sec=timeout_sec, accept="application/json, text/plain, */*"
    )
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8", "replace"))
    except ValueError as exc:
        logger.warning(f"http fetch_json decode failed: {exc!s}")
        return None
