"""
test_renderer.py - PNG/SVG 렌더 테스트

검증 포인트:
1. 출력 크기 = 페이지 mm × dpi / 25.4
2. 같은 입력 → 같은 바이트 (PNG, SVG)
3. 입력 문서 불변
4. 이미지 로드 실패 → placeholder + 경고, 렌더는 계속
5. 예상 못한 예외 → RenderError(stage)
"""

import asyncio
import io
import xml.etree.ElementTree as ET
from unittest.mock import patch

import pytest
from PIL import Image

from qrstickers.core.document import parse_template
from qrstickers.core.units import sticker_size_px
from qrstickers.domain.errors import RenderError
from qrstickers.domain.schemas import Background, ExportFormat, RenderOptions
from qrstickers.render.renderer import StickerRenderer
from tests.factories import make_oversized_png_data_uri, make_png_data_uri, sticker_json

SVG_NS = {"svg": "http://www.w3.org/2000/svg"}


@pytest.fixture
def ctx() -> dict:
    return {"device": {"name": "Core Switch", "serial": "Q2XX-AAAA-0001", "qrcode": "https://q/1"}}


@pytest.fixture
def renderer() -> StickerRenderer:
    return StickerRenderer(image_timeout=2.0)


class TestPng:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("dpi", [96, 300])
    async def test_size_follows_dpi(self, renderer, basic_template_json, ctx, dpi):
        output = await renderer.render(parse_template(basic_template_json), ctx, RenderOptions(dpi=dpi))
        image = Image.open(io.BytesIO(output.data))

        assert output.mime_type == "image/png"
        assert image.size == sticker_size_px(100, 50, dpi / 96)
        assert (output.width_px, output.height_px) == image.size

    @pytest.mark.asyncio
    async def test_deterministic(self, renderer, basic_template_json, ctx):
        document = parse_template(basic_template_json)
        options = RenderOptions(dpi=300)

        first = await renderer.render(document, ctx, options)
        second = await renderer.render(document, ctx, options)

        assert first.data == second.data

    @pytest.mark.asyncio
    async def test_document_not_mutated(self, renderer, basic_template_json, ctx):
        document = parse_template(basic_template_json)
        before = document.clone()

        await renderer.render(document, ctx, RenderOptions())

        assert document == before

    @pytest.mark.asyncio
    async def test_white_background_is_opaque_rgb(self, renderer, ctx):
        output = await renderer.render(parse_template(sticker_json(objects=[])), ctx, RenderOptions())
        image = Image.open(io.BytesIO(output.data))

        assert image.mode == "RGB"
        assert image.getpixel((10, 10)) == (255, 255, 255)

    @pytest.mark.asyncio
    async def test_transparent_background(self, renderer, ctx):
        options = RenderOptions(background=Background.TRANSPARENT)

        output = await renderer.render(parse_template(sticker_json(objects=[])), ctx, options)
        image = Image.open(io.BytesIO(output.data))

        assert image.mode == "RGBA"
        assert image.getpixel((10, 10))[3] == 0

    @pytest.mark.asyncio
    async def test_qr_drawn_in_box(self, renderer, basic_template_json, ctx):
        output = await renderer.render(parse_template(basic_template_json), ctx, RenderOptions())
        image = Image.open(io.BytesIO(output.data)).convert("L")

        # QR 박스 (5mm, 5mm, 25mm) 안에 어두운 모듈이 있어야 함
        box = image.crop((19, 19, 113, 113))
        assert box.getextrema()[0] < 50

    @pytest.mark.asyncio
    async def test_missing_qr_leaves_placeholder(self, renderer, basic_template_json):
        ctx = {"device": {"name": "X", "serial": "S"}}

        output = await renderer.render(parse_template(basic_template_json), ctx, RenderOptions())
        image = Image.open(io.BytesIO(output.data))

        assert image.getpixel((60, 60)) == (224, 224, 224)  # PLACEHOLDER_FILL
        assert any("device.qrcode" in w for w in output.warnings)

    @pytest.mark.asyncio
    async def test_failed_image_degrades_to_placeholder(self, renderer, ctx):
        objects = [{"type": "image", "id": "logo", "left": 0, "top": 0, "width": 20, "height": 20,
                    "src": "data:image/png;base64,!!!"}]

        output = await renderer.render(parse_template(sticker_json(objects=objects)), ctx, RenderOptions())

        assert len(output.warnings) == 1
        assert "logo" in output.warnings[0]
        assert Image.open(io.BytesIO(output.data)).getpixel((30, 30)) == (224, 224, 224)

    @pytest.mark.asyncio
    async def test_oversized_image_degrades_to_placeholder(self, renderer, ctx):
        objects = [{"type": "image", "id": "logo", "left": 0, "top": 0, "width": 20, "height": 20,
                    "src": make_oversized_png_data_uri(15000, 15000)}]

        output = await renderer.render(parse_template(sticker_json(objects=objects)), ctx, RenderOptions())

        assert len(output.warnings) == 1
        assert "logo" in output.warnings[0]
        assert Image.open(io.BytesIO(output.data)).getpixel((30, 30)) == (224, 224, 224)

    @pytest.mark.asyncio
    async def test_custom_image_drawn(self, renderer):
        objects = [{"type": "image", "id": "logo", "left": 0, "top": 0, "width": 20, "height": 10,
                    "properties": {"customImageId": 12, "aspectRatio": "stretch"}}]
        ctx = {"customimage.image_12": make_png_data_uri((4, 2), "red")}

        output = await renderer.render(parse_template(sticker_json(objects=objects)), ctx, RenderOptions())

        assert Image.open(io.BytesIO(output.data)).getpixel((30, 15)) == (255, 0, 0)
        assert output.warnings == []

    @pytest.mark.asyncio
    async def test_rotated_and_grouped_elements(self, renderer, ctx):
        objects = [
            {"type": "rect", "left": 40, "top": 20, "width": 20, "height": 10, "angle": 45, "fill": "#000000"},
            {"type": "group", "left": 10, "top": 10, "width": 30, "height": 30, "objects": [
                {"type": "rect", "left": 0, "top": 0, "width": 5, "height": 5, "fill": "#ff0000"},
                {"type": "line", "x1": 0, "y1": 10, "x2": 20, "y2": 10, "strokeWidth": 0.5},
            ]},
        ]

        output = await renderer.render(parse_template(sticker_json(objects=objects)), ctx, RenderOptions())
        image = Image.open(io.BytesIO(output.data))

        # 그룹 자식 좌표는 그룹 기준 → (10mm, 10mm) 부근이 빨강
        assert image.getpixel((round(12 * 3.7795275591), round(12 * 3.7795275591))) == (255, 0, 0)

    def test_render_sync(self, renderer, basic_template_json, ctx):
        output = renderer.render_sync(parse_template(basic_template_json), ctx, RenderOptions())

        assert output.data.startswith(b"\x89PNG")


class TestSvg:
    @pytest.mark.asyncio
    async def test_structure(self, renderer, basic_template_json, ctx):
        output = await renderer.render(
            parse_template(basic_template_json), ctx, RenderOptions(), ExportFormat.SVG
        )
        root = ET.fromstring(output.data)

        assert output.mime_type == "image/svg+xml"
        assert root.get("width") == "378"
        assert root.get("viewBox") == "0 0 378 189"
        texts = ["".join(t.itertext()) for t in root.iter("{http://www.w3.org/2000/svg}text")]
        assert "Core Switch" in texts
        assert "SN: Q2XX-AAAA-0001" in texts
        assert root.find(".//svg:g[@shape-rendering='crispEdges']/svg:path", SVG_NS) is not None

    @pytest.mark.asyncio
    async def test_deterministic(self, renderer, basic_template_json, ctx):
        document = parse_template(basic_template_json)

        first = await renderer.render(document, ctx, RenderOptions(dpi=300), ExportFormat.SVG)
        second = await renderer.render(document, ctx, RenderOptions(dpi=300), ExportFormat.SVG)

        assert first.data == second.data

    @pytest.mark.asyncio
    async def test_transparent_has_no_background_rect(self, renderer, ctx):
        options = RenderOptions(background=Background.TRANSPARENT)

        output = await renderer.render(parse_template(sticker_json(objects=[])), ctx, options, ExportFormat.SVG)

        assert list(ET.fromstring(output.data)) == []

    @pytest.mark.asyncio
    async def test_rotation_about_center(self, renderer, ctx):
        objects = [{"type": "rect", "left": 0, "top": 0, "width": 25.4, "height": 25.4, "angle": 90}]

        output = await renderer.render(
            parse_template(sticker_json(objects=objects)), ctx, RenderOptions(), ExportFormat.SVG
        )
        group = ET.fromstring(output.data).find("svg:g", SVG_NS)

        assert group.get("transform") == "rotate(90 48 48)"

    @pytest.mark.asyncio
    async def test_wrapped_text_lines(self, renderer, ctx):
        objects = [{"type": "text", "text": "ABCDEFGH", "properties": {"maxLength": 3, "overflow": "wrap"}}]
        options = RenderOptions(background=Background.TRANSPARENT)

        output = await renderer.render(parse_template(sticker_json(objects=objects)), ctx, options, ExportFormat.SVG)
        spans = ET.fromstring(output.data).findall(".//svg:tspan", SVG_NS)

        assert [s.text for s in spans] == ["ABC", "DEF", "GH"]


class TestErrors:
    @pytest.mark.asyncio
    async def test_pdf_not_supported(self, renderer, basic_template_json, ctx):
        with pytest.raises(RenderError):
            await renderer.render(parse_template(basic_template_json), ctx, RenderOptions(), ExportFormat.PDF)

    @pytest.mark.asyncio
    async def test_draw_failure_wrapped(self, renderer, basic_template_json, ctx):
        with patch("qrstickers.render.raster.render_image", side_effect=ValueError("boom")):
            with pytest.raises(RenderError) as exc_info:
                await renderer.render(parse_template(basic_template_json), ctx, RenderOptions(), device_id=7)

        assert exc_info.value.context["stage"] == "draw"
        assert exc_info.value.context["device_id"] == 7
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_slow_image_times_out(self, basic_template_json, ctx):
        class SlowLoader:
            async def load(self, pending):
                await asyncio.sleep(5)

        renderer = StickerRenderer(image_loader=SlowLoader(), image_timeout=0.05)

        output = await renderer.render(parse_template(basic_template_json), ctx, RenderOptions())

        assert any("timed out" in w for w in output.warnings)
