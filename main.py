from astrbot.api import logger
from astrbot.api.event import AstrMessageEvent, filter
from astrbot.api.star import Context, Star, register
from astrbot.core.star.filter.command import GreedyStr

from .clients.asset_client import ModAssetClient
from .clients.public_export_client import PublicExportClient
from .http_utils import set_direct_domains, set_proxy_url
from .renderers.fonts import ensure_fonts_registered
from .services import mod_commands
from .settings import ModCardSettings


@register("wf_modcard", "wf_modcard contributors", "Warframe MOD 卡片生成", "v0.1.0")
class WarframeModCardPlugin(Star):
    def __init__(self, context: Context, config=None):
        super().__init__(context, config)
        self.config = config
        self.settings = ModCardSettings.from_config(config)

        set_proxy_url(self.settings.proxy_url)
        set_direct_domains(list(self.settings.direct_domains))

        self.public_export_client = PublicExportClient()
        self.asset_client = ModAssetClient(base_url=self.settings.asset_base_url)

    async def initialize(self):
        """插件实例化后调用：注册字体（每个进程只做一次）。"""
        ensure_fonts_registered()
        logger.info(
            f"wf_modcard ready: assets={self.settings.asset_base_url} "
            f"lang={self.settings.language} format={self.settings.default_format}"
        )

    async def terminate(self):
        """插件卸载/停用时调用。"""

    @filter.command("modcard", alias={"模组卡", "modimg", "MOD卡"})
    async def wf_modcard(self, event: AstrMessageEvent, args: GreedyStr = GreedyStr()):
        """生成 MOD 卡片图片。用法：/modcard <名称> [等级] [png|webp|jpeg|avif] [q=80] [set=3] [折叠]"""

        event.should_call_llm(False)
        result = await mod_commands.cmd_modcard(
            event=event,
            raw_args=str(args),
            public_export_client=self.public_export_client,
            asset_client=self.asset_client,
            settings=self.settings,
        )
        yield result
