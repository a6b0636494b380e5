"""
test_images.py - 동적 이미지 로드 테스트

검증 포인트:
1. data URI 디코딩, 깨진 URI → ImageLoadError
2. QR 값이 data URI가 아니면 qrcode로 모듈 행렬 생성
3. URL fetch 재시도 + 캐시 (httpx MockTransport)
"""

import httpx
import pytest
from PIL import Image

from qrstickers.core.binding import PendingImage
from qrstickers.core.document import ImageElement, QRCodeElement
from qrstickers.domain.errors import ImageLoadError
from qrstickers.render.images import (
    ImageLoader,
    decode_data_uri,
    fit_bitmap,
    modules_to_bitmap,
    open_bitmap,
    qr_modules,
)
from tests.factories import make_oversized_png_data_uri, make_png_data_uri


class TestDecode:
    def test_png_data_uri(self):
        data = decode_data_uri(make_png_data_uri())

        assert data.startswith(b"\x89PNG")

    @pytest.mark.parametrize("uri", ["data:image/png;base64", "data:image/png;base64,!!!", "http://x"])
    def test_invalid(self, uri):
        with pytest.raises(ImageLoadError):
            decode_data_uri(uri)

    def test_oversized_image_rejected(self):
        data = decode_data_uri(make_oversized_png_data_uri(15000, 15000))

        with pytest.raises(ImageLoadError) as exc_info:
            open_bitmap(data, "logo")

        assert exc_info.value.context["reason"] == "image too large"

    def test_garbage_bytes(self):
        with pytest.raises(ImageLoadError):
            open_bitmap(b"not an image", "logo")


class TestQrModules:
    def test_quiet_zone_included(self):
        modules = qr_modules("hello", "Q", quiet_zone=2)

        # version 1 = 21 모듈 + 양쪽 quiet zone
        assert len(modules) == 25
        assert not any(modules[0])
        assert modules[2][2]  # finder pattern 모서리

    def test_higher_ecc_needs_more_modules(self):
        text = "https://dashboard.example.com/device/Q2XX-AAAA-0001"

        assert len(qr_modules(text, "H", 0)) >= len(qr_modules(text, "L", 0))

    def test_overflow(self):
        with pytest.raises(ImageLoadError):
            qr_modules("x" * 5000, "H", 2)

    def test_modules_to_bitmap(self):
        bitmap = modules_to_bitmap([[True, False], [False, True]], 10, 10)

        assert bitmap.size == (10, 10)
        assert bitmap.getpixel((0, 0)) == (0, 0, 0, 255)
        assert bitmap.getpixel((9, 0)) == (255, 255, 255, 255)


class TestFitBitmap:
    def test_contain_centers(self):
        bitmap = Image.new("RGBA", (40, 20))

        placed, dx, dy = fit_bitmap(bitmap, 20, 20, "contain")

        assert placed.size == (20, 10)
        assert (dx, dy) == (0, 5)

    def test_cover_fills_box(self):
        placed, dx, dy = fit_bitmap(Image.new("RGBA", (40, 20)), 20, 20, "cover")

        assert placed.size == (20, 20)
        assert (dx, dy) == (0, 0)

    def test_stretch(self):
        placed, _, _ = fit_bitmap(Image.new("RGBA", (40, 20)), 15, 30, "stretch")

        assert placed.size == (15, 30)


class TestImageLoader:
    @pytest.mark.asyncio
    async def test_qr_text_becomes_modules(self):
        element = QRCodeElement(width=25, height=25)

        resolved = await ImageLoader().load(PendingImage(element, "device.qrcode", "https://q"))

        assert resolved.modules is not None
        assert resolved.bitmap is None

    @pytest.mark.asyncio
    async def test_qr_data_uri_used_as_bitmap(self):
        element = QRCodeElement(width=25, height=25)

        resolved = await ImageLoader().load(PendingImage(element, "device.qrcode", make_png_data_uri()))

        assert resolved.bitmap.size == (4, 2)

    @pytest.mark.asyncio
    async def test_unsupported_source(self):
        with pytest.raises(ImageLoadError):
            await ImageLoader().load(PendingImage(ImageElement(), "src", "ftp://nope"))

    @pytest.mark.asyncio
    async def test_fetch_retries_then_caches(self):
        calls = []
        png = decode_data_uri(make_png_data_uri())

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, content=png)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            loader = ImageLoader(retries=2, client=client)
            first = await loader.load_bitmap("https://example.com/logo.png")
            second = await loader.load_bitmap("https://example.com/logo.png")

        assert first.size == second.size == (4, 2)
        assert len(calls) == 2  # 503 1회 + 성공 1회, 두 번째 호출은 캐시

    @pytest.mark.asyncio
    async def test_fetch_failure_not_retried_on_404(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ImageLoadError) as exc_info:
                await ImageLoader(retries=2, client=client).fetch("https://example.com/missing.png")

        assert exc_info.value.context["reason"] == "fetch failed"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cache_is_bounded_lru(self):
        calls = []
        png = decode_data_uri(make_png_data_uri())

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(200, content=png)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            loader = ImageLoader(retries=0, client=client, cache_size=3)
            for i in range(500):
                await loader.fetch(f"https://example.com/logo-{i}.png")
            # 최근 사용 → 마지막까지 유지
            await loader.fetch("https://example.com/logo-497.png")
            await loader.fetch("https://example.com/logo-500.png")

        assert len(loader._cache) == 3
        assert list(loader._cache) == [
            "https://example.com/logo-499.png",
            "https://example.com/logo-497.png",
            "https://example.com/logo-500.png",
        ]
        assert len(calls) == 501
