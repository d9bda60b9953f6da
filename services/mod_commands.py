from __future__ import annotations

from astrbot.api import logger
from astrbot.api.event import AstrMessageEvent

from ..clients.asset_client import ModAssetClient
from ..clients.public_export_client import PublicExportClient
from ..errors import ModCardError
from ..helpers import parse_modcard_args
from ..renderers.exporter import OutputConfig
from ..renderers.mod_render import render_mod_image_to_file
from ..settings import ModCardSettings

USAGE = (
    "用法：/modcard <MOD名称> [等级] [png|webp|jpeg|avif] [q=0~100] [set=套装数] [折叠]\n"
    "例如：/modcard 过载 5 或 /modcard Vitality webp q=90"
)


async def cmd_modcard(
    *,
    event: AstrMessageEvent,
    raw_args: str,
    public_export_client: PublicExportClient,
    asset_client: ModAssetClient,
    settings: ModCardSettings,
):
    args = parse_modcard_args(raw_args)
    if not args.query:
        return event.plain_result(USAGE)

    mod = await public_export_client.find_mod(args.query, language=settings.language)
    if mod is None:
        return event.plain_result(f"未找到 MOD：{args.query}")

    output = OutputConfig(
        format=args.format or settings.default_format,
        quality=args.quality if args.quality is not None else settings.default_quality,
    )

    try:
        rendered = await render_mod_image_to_file(
            mod,
            assets=asset_client,
            rank=args.rank,
            set_bonus=args.set_bonus,
            output=output,
            collapsed=args.collapsed,
        )
    except ModCardError as exc:
        logger.warning(f"modcard render failed for {mod.name}: {exc!s}")
        return event.plain_result(f"MOD 卡片生成失败：{exc!s}")
    except OSError as exc:
        logger.warning(f"modcard save failed for {mod.name}: {exc!s}")
        return event.plain_result("MOD 卡片保存失败，请稍后重试。")

    return event.image_result(rendered.path)
