import io
from dataclasses import replace

import pytest
from PIL import Image, ImageChops

from astrbot_plugin_wf_modcard.clients import asset_client as asset_client_module
from astrbot_plugin_wf_modcard.clients.asset_client import ModAssetClient
from astrbot_plugin_wf_modcard.errors import AssetFetchError, QualityRangeError
from astrbot_plugin_wf_modcard.mappers.mod_mapping import Mod
from astrbot_plugin_wf_modcard.renderers import mod_render
from astrbot_plugin_wf_modcard.renderers.exporter import OutputConfig
from astrbot_plugin_wf_modcard.renderers.mod_render import (
    compose_backer,
    compose_mod_card,
    load_card_assets,
    render_mod_image,
    render_mod_image_to_file,
)
from astrbot_plugin_wf_modcard.renderers.mod_layout import Tier, layout_for
from astrbot_plugin_wf_modcard.renderers.tint import parse_hex_color

from conftest import COMPLETE_LINE, LOWER_TAB, SLOT_ACTIVE, SLOT_EMPTY, color_counts

VITALITY = Mod(
    name="Vitality",
    rarity="common",
    type="Warframe Mod",
    base_drain=2,
    polarity="vazarin",
    fusion_limit=5,
    image_name="vitality.png",
    description="+440% Health",
    compat_name="WARFRAME",
)

RIFLE_RIVEN = Mod(
    name="Rifle Riven Mod",
    rarity="rare",
    type="Riven Mod",
    base_drain=10,
    polarity="madurai",
    fusion_limit=8,
)

AUGUR_MESSAGE = Mod(
    name="Augur Message",
    rarity="rare",
    type="Warframe Mod",
    base_drain=4,
    fusion_limit=5,
    level_stats=(("+4% Ability Duration",),) * 6,
    compat_name="WARFRAME",
    mod_set="/Lotus/Upgrades/Mods/Sets/Augur/AugurSetMod",
    mod_set_size=6,
)


def decode(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        return img.convert("RGBA")


class TestRankSlots:
    @pytest.mark.asyncio
    async def test_partial_rank_slots(self, asset_client):
        img = decode(await render_mod_image(VITALITY, assets=asset_client, rank=3))
        counts = color_counts(img)
        assert counts.get(SLOT_ACTIVE, 0) == 3 * 100
        assert counts.get(SLOT_EMPTY, 0) == 2 * 100
        assert counts.get(COMPLETE_LINE, 0) == 0

    @pytest.mark.asyncio
    async def test_max_rank_draws_completion_line(self, asset_client):
        img = decode(await render_mod_image(VITALITY, assets=asset_client, rank=5))
        counts = color_counts(img)
        # 5 slots of 10px with 2px gaps; the 4px line covers the whole row.
        assert counts.get(COMPLETE_LINE, 0) == 58 * 4
        assert counts.get(SLOT_EMPTY, 0) == 0
        assert counts.get(SLOT_ACTIVE, 0) == 5 * 100 - 5 * 10 * 4

    @pytest.mark.asyncio
    async def test_slot_count_capped_at_ten(self, asset_client):
        mod = Mod(name="Legendary Core", rarity="legendary", fusion_limit=32756)
        img = decode(await render_mod_image(mod, assets=asset_client, rank=0))
        counts = color_counts(img)
        assert counts.get(SLOT_EMPTY, 0) == 10 * 100
        assert counts.get(COMPLETE_LINE, 0) == 0

    @pytest.mark.asyncio
    async def test_no_slots_no_line(self, asset_client):
        mod = Mod(name="Flawed Mod", rarity="common", fusion_limit=0)
        counts = color_counts(decode(await render_mod_image(mod, assets=asset_client)))
        assert SLOT_ACTIVE not in counts
        assert SLOT_EMPTY not in counts
        assert COMPLETE_LINE not in counts


class TestCardShape:
    @pytest.mark.asyncio
    async def test_regular_card_size(self, asset_client):
        img = decode(await render_mod_image(VITALITY, assets=asset_client))
        assert img.size == (256, 380)

    @pytest.mark.asyncio
    async def test_riven_card_is_wider(self, asset_client):
        img = decode(await render_mod_image(RIFLE_RIVEN, assets=asset_client, rank=8))
        assert img.size == (292, 380)
        assert color_counts(img).get(COMPLETE_LINE, 0) > 0

    @pytest.mark.asyncio
    async def test_collapsed_sizes(self, asset_client):
        regular = decode(await render_mod_image(VITALITY, assets=asset_client, collapsed=True))
        riven = decode(await render_mod_image(RIFLE_RIVEN, assets=asset_client, collapsed=True))
        assert regular.size == (256, 170)
        assert riven.size == (292, 180)

    @pytest.mark.asyncio
    async def test_collapsed_keeps_rank_row(self, asset_client):
        img = decode(
            await render_mod_image(VITALITY, assets=asset_client, rank=2, collapsed=True)
        )
        counts = color_counts(img)
        assert counts.get(SLOT_ACTIVE, 0) == 2 * 100
        assert counts.get(SLOT_EMPTY, 0) == 3 * 100

    @pytest.mark.asyncio
    async def test_identical_inputs_identical_bytes(self, asset_client):
        first = await render_mod_image(VITALITY, assets=asset_client, rank=4)
        second = await render_mod_image(VITALITY, assets=asset_client, rank=4)
        assert first == second

    @pytest.mark.asyncio
    async def test_universal_polarity_needs_no_glyph(self, asset_client):
        mod = Mod(name="Any Mod", rarity="uncommon", polarity="universal", fusion_limit=3)
        img = decode(await render_mod_image(mod, assets=asset_client))
        assert img.size == (256, 380)


class TestModSet:
    @pytest.mark.asyncio
    async def test_set_bonus_fills_pips(self, asset_client):
        gold = (*parse_hex_color(Tier.GOLD.color), 255)
        empty = color_counts(
            decode(await render_mod_image(AUGUR_MESSAGE, assets=asset_client, set_bonus=0))
        )
        two = color_counts(
            decode(await render_mod_image(AUGUR_MESSAGE, assets=asset_client, set_bonus=2))
        )
        # A filled 10x4 pip has 40 pixels, an outlined one 24.
        assert two.get(gold, 0) - empty.get(gold, 0) == 2 * (40 - 24)

    @pytest.mark.asyncio
    async def test_header_loaded_only_for_full_card(self, asset_client):
        full = await load_card_assets(AUGUR_MESSAGE, Tier.GOLD, assets=asset_client)
        compact = await load_card_assets(
            AUGUR_MESSAGE, Tier.GOLD, assets=asset_client, collapsed=True
        )
        assert full.header is not None
        assert compact.header is None


class TestComposeMisc:
    @pytest.mark.asyncio
    async def test_compose_returns_rgba(self, asset_client):
        loaded = await load_card_assets(VITALITY, Tier.BRONZE, assets=asset_client)
        card = compose_mod_card(VITALITY, loaded, tier=Tier.BRONZE, rank=1)
        assert card.mode == "RGBA"
        assert card.size == (256, 380)

    @pytest.mark.asyncio
    async def test_explicit_image_overrides_mod_image(self, asset_client):
        mod = Mod(name="Vitality", rarity="common", fusion_limit=5, image_name="missing.png")
        loaded = await load_card_assets(
            mod, Tier.BRONZE, assets=asset_client, image="vitality.png"
        )
        assert loaded.thumbnail is not None


class TestErrors:
    @pytest.mark.asyncio
    async def test_quality_checked_before_any_fetch(self, tmp_path, no_network):
        empty_client = ModAssetClient(cache_dir=tmp_path / "empty")
        with pytest.raises(QualityRangeError):
            await render_mod_image(
                VITALITY,
                assets=empty_client,
                output=OutputConfig(format="webp", quality=101),
            )

    @pytest.mark.asyncio
    async def test_missing_asset_raises(self, tmp_path, monkeypatch):
        async def unavailable(*args, **kwargs):
            return None

        monkeypatch.setattr(asset_client_module, "fetch_bytes", unavailable)
        with pytest.raises(AssetFetchError):
            await render_mod_image(VITALITY, assets=ModAssetClient(cache_dir=tmp_path))


class TestRenderToFile:
    @pytest.mark.asyncio
    async def test_writes_file_with_format_extension(self, asset_client, tmp_path, monkeypatch):
        out_dir = tmp_path / "out"
        monkeypatch.setattr(mod_render, "get_astrbot_temp_path", lambda: str(out_dir))

        rendered = await render_mod_image_to_file(
            VITALITY,
            assets=asset_client,
            rank=1,
            output=OutputConfig(format="jpeg", quality=90),
        )
        assert rendered.path.endswith(".jpg")
        assert rendered.path.startswith(str(out_dir))
        with Image.open(rendered.path) as img:
            assert img.format == "JPEG"
            assert img.size == (256, 380)


def changed_pixels(a: Image.Image, b: Image.Image) -> int:
    diff = ImageChops.difference(a.convert("RGBA"), b.convert("RGBA"))
    mask = diff.point(lambda v: 255 if v else 0).convert("RGB").convert("L")
    return a.width * a.height - mask.histogram()[0]


def first_row_with(img: Image.Image, color: tuple[int, ...]) -> int | None:
    for y in range(img.height):
        for x in range(img.width):
            if img.getpixel((x, y)) == color:
                return y
    return None


def horizontal_gradient(size: tuple[int, int]) -> Image.Image:
    w, h = size
    img = Image.new("RGBA", size)
    step = 255 // max(1, w - 1)
    for x in range(w):
        img.paste((x * step, 90, 255 - x * step, 255), (x, 0, x + 1, h))
    return img


@pytest.fixture
def drawn_text(monkeypatch):
    """Record every string the backer centers into a box."""

    texts: list[str] = []
    real = mod_render._draw_boxed

    def recording(draw, text, **kwargs):
        texts.append(text)
        return real(draw, text, **kwargs)

    monkeypatch.setattr(mod_render, "_draw_boxed", recording)
    return texts


class TestBacker:
    def _backer(self, mod, tier, *, polarity=None, rank=0):
        return compose_backer(
            Image.new("RGBA", (48, 32), (0, 0, 0, 0)),
            mod=mod,
            rank=rank,
            tier=tier,
            layout=layout_for(tier),
            polarity=polarity,
        )

    def test_veiled_riven_hides_drain(self, drawn_text):
        out = self._backer(RIFLE_RIVEN, Tier.OMEGA, rank=3)
        assert drawn_text == ["???"]
        assert out.getbbox() is not None

    def test_rolled_riven_shows_drain(self, drawn_text):
        rolled = replace(RIFLE_RIVEN, level_stats=(("+90% Critical Chance",),))
        self._backer(rolled, Tier.OMEGA, rank=3)
        assert drawn_text == ["13"]

    def test_universal_polarity_drawn_as_text(self, drawn_text):
        mod = Mod(name="Any Mod", rarity="uncommon", base_drain=3, polarity="universal")
        out = self._backer(mod, Tier.SILVER)
        assert drawn_text == ["3", "??"]
        # Text lands in the badge slot on the right.
        assert out.crop((int(48 * 0.58), 0, 48, 32)).getbbox() is not None

    def test_polarity_glyph_is_not_text(self, drawn_text):
        glyph = Image.new("RGBA", (32, 32), (255, 255, 255, 255))
        self._backer(VITALITY, Tier.BRONZE, polarity=glyph)
        assert drawn_text == ["2"]

    def test_polarity_glyph_keeps_aspect_ratio(self, monkeypatch):
        monkeypatch.setattr(mod_render, "_draw_boxed", lambda *args, **kwargs: None)
        wide_glyph = Image.new("RGBA", (40, 10), (255, 255, 255, 255))
        out = self._backer(VITALITY, Tier.BRONZE, polarity=wide_glyph)

        # Badge slot is int(32 * 0.55) = 17px square; a 4:1 glyph fits as 17x4.
        left, top, right, bottom = out.crop((int(48 * 0.58), 0, 48, 32)).getbbox()
        assert (right - left, bottom - top) == (17, 4)


class TestLayerOrder:
    @pytest.mark.asyncio
    async def test_set_header_drawn_over_top_frame(self, asset_client):
        loaded = await load_card_assets(AUGUR_MESSAGE, Tier.GOLD, assets=asset_client)
        opaque_top = Image.new("RGBA", (256, 60), (90, 80, 70, 255))
        frame = replace(loaded.frame, top=opaque_top)

        with_header = compose_mod_card(
            AUGUR_MESSAGE,
            replace(loaded, frame=frame, header=Image.new("RGBA", (120, 30), (255, 255, 255, 255))),
            tier=Tier.GOLD,
        )
        without_header = compose_mod_card(
            AUGUR_MESSAGE,
            replace(loaded, frame=frame, header=Image.new("RGBA", (120, 30), (0, 0, 0, 0))),
            tier=Tier.GOLD,
        )
        # The whole 96x24 scaled header stays visible.
        assert changed_pixels(with_header, without_header) == 96 * 24

    @pytest.mark.asyncio
    async def test_left_lights_mirror_right_lights(self, asset_cache, no_network):
        horizontal_gradient((16, 256)).save(asset_cache / "BronzeSideLight.png")
        horizontal_gradient((64, 64)).save(asset_cache / "BronzeCornerLights.png")
        client = ModAssetClient(cache_dir=asset_cache)

        bare = Mod(name="", rarity="common", fusion_limit=0)
        img = decode(await render_mod_image(bare, assets=client))

        # Output rows 134 and 314 cross the side lights and the corner lights.
        for y in (134, 314):
            row = [img.getpixel((x, y)) for x in range(img.width)]
            assert row == row[::-1]
        assert img.getpixel((2, 134)) != img.getpixel((17, 134))


class TestLowerTab:
    @pytest.mark.asyncio
    async def test_skipped_without_compat_name(self, asset_client):
        plain = replace(VITALITY, compat_name=None, image_name=None)
        with_tab = color_counts(decode(await render_mod_image(VITALITY, assets=asset_client)))
        without_tab = color_counts(decode(await render_mod_image(plain, assets=asset_client)))
        assert with_tab.get(LOWER_TAB, 0) > 0
        assert LOWER_TAB not in without_tab

    @pytest.mark.asyncio
    async def test_riven_tab_sits_higher(self, asset_client):
        riven = replace(RIFLE_RIVEN, compat_name="RIFLE")
        standard_img = decode(await render_mod_image(VITALITY, assets=asset_client))
        riven_img = decode(await render_mod_image(riven, assets=asset_client))

        standard_top = first_row_with(standard_img, LOWER_TAB)
        riven_top = first_row_with(riven_img, LOWER_TAB)
        assert standard_top is not None and riven_top is not None
        padding_gap = (
            layout_for(Tier.OMEGA).lower_tab_padding - layout_for(Tier.BRONZE).lower_tab_padding
        )
        assert standard_top - riven_top == padding_gap
