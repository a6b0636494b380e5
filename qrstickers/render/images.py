"""
동적 이미지 해석: data URI, QR 생성, HTTP fetch.

규칙:
- QR 값이 data:image/... 이면 캐시된 비트맵 그대로 사용, 아니면 qrcode로 생성
- 생성 QR은 모듈 행렬로 보관 (PNG는 픽셀 정렬, SVG는 벡터 사각형)
- 로드 실패는 ImageLoadError → 렌더러가 해당 요소만 placeholder로 남김
"""

import base64
import binascii
import io
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass

import httpx
import qrcode
from PIL import Image, ImageDraw, UnidentifiedImageError
from qrcode.exceptions import DataOverflowError

from qrstickers.core.binding import PendingImage
from qrstickers.core.document import QRCodeElement
from qrstickers.domain.errors import ImageLoadError
from qrstickers.utils.retry import is_transient_http_error, retry_with_exponential_backoff

logger = logging.getLogger(__name__)

ECC_CONSTANTS = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}

DATA_URI_PREFIX = "data:"


@dataclass
class ResolvedImage:
    """요소에 들어갈 이미지. bitmap 또는 QR 모듈 행렬 중 하나."""
    bitmap: Image.Image | None = None
    modules: list[list[bool]] | None = None  # quiet zone 포함
    source: str = ""


# =============================================================================
# Decoding / Generation
# =============================================================================

def decode_data_uri(uri: str) -> bytes:
    """
    data URI → bytes.

    Raises:
        ImageLoadError: 형식 오류, base64 오류
    """
    if not uri.startswith(DATA_URI_PREFIX) or "," not in uri:
        raise ImageLoadError(reason="not a data uri", source=uri[:40])
    header, payload = uri.split(",", 1)
    try:
        if header.endswith(";base64"):
            return base64.b64decode(payload, validate=True)
        return payload.encode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise ImageLoadError(reason="invalid base64 payload", source=header) from e


def open_bitmap(data: bytes, source: str = "") -> Image.Image:
    """
    bytes → RGBA PIL 이미지.

    Pillow 픽셀 상한(MAX_IMAGE_PIXELS의 2배)을 넘는 이미지는 디코딩 전에 거부된다.

    Raises:
        ImageLoadError: Pillow가 읽을 수 없는 데이터, 너무 큰 이미지
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image.convert("RGBA")
    except Image.DecompressionBombError as e:
        raise ImageLoadError(reason="image too large", source=source[:40], detail=str(e)) from e
    # Pillow 플러그인은 손상된 데이터에 SyntaxError/ValueError도 던진다
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise ImageLoadError(reason="unreadable image", source=source[:40]) from e


def qr_modules(content: str, ecc_level: str = "Q", quiet_zone: int = 2) -> list[list[bool]]:
    """
    QR 모듈 행렬 생성.

    Raises:
        ImageLoadError: 데이터가 QR 용량 초과
    """
    qr = qrcode.QRCode(
        error_correction=ECC_CONSTANTS.get(ecc_level.upper(), qrcode.constants.ERROR_CORRECT_Q),
        box_size=1,
        border=max(0, quiet_zone),
    )
    qr.add_data(content)
    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        raise ImageLoadError(reason="qr data overflow", length=len(content)) from e
    return qr.get_matrix()


def modules_to_bitmap(modules: list[list[bool]], width: int, height: int) -> Image.Image:
    """
    QR 모듈 행렬 → 주어진 크기의 흑백 RGBA 비트맵.

    모듈 경계를 정수 픽셀로 맞춰 리샘플링 흐림이 없도록 그린다.
    """
    image = Image.new("RGBA", (max(1, width), max(1, height)), (255, 255, 255, 255))
    draw = ImageDraw.Draw(image)
    count = len(modules)
    if count == 0:
        return image
    cell_w = width / count
    cell_h = height / count
    for row, line in enumerate(modules):
        for col, dark in enumerate(line):
            if not dark:
                continue
            x0 = math.floor(col * cell_w)
            y0 = math.floor(row * cell_h)
            x1 = math.floor((col + 1) * cell_w) - 1
            y1 = math.floor((row + 1) * cell_h) - 1
            draw.rectangle([x0, y0, max(x0, x1), max(y0, y1)], fill=(0, 0, 0, 255))
    return image


def fit_bitmap(
    bitmap: Image.Image,
    width: int,
    height: int,
    mode: str,
) -> tuple[Image.Image, int, int]:
    """
    박스(width x height px)에 비트맵 배치.

    Args:
        mode: contain (비율 유지, 여백) | cover (비율 유지, 잘라냄) | stretch

    Returns:
        (리사이즈된 이미지, 박스 내 x offset, 박스 내 y offset)
    """
    width, height = max(1, width), max(1, height)
    src_w, src_h = bitmap.size
    if mode == "stretch" or src_w == 0 or src_h == 0:
        return bitmap.resize((width, height), Image.Resampling.LANCZOS), 0, 0

    if mode == "cover":
        ratio = max(width / src_w, height / src_h)
        scaled = bitmap.resize(
            (max(1, round(src_w * ratio)), max(1, round(src_h * ratio))),
            Image.Resampling.LANCZOS,
        )
        left = (scaled.width - width) // 2
        top = (scaled.height - height) // 2
        return scaled.crop((left, top, left + width, top + height)), 0, 0

    ratio = min(width / src_w, height / src_h)
    new_w = max(1, round(src_w * ratio))
    new_h = max(1, round(src_h * ratio))
    scaled = bitmap.resize((new_w, new_h), Image.Resampling.LANCZOS)
    return scaled, (width - new_w) // 2, (height - new_h) // 2


def encode_png(bitmap: Image.Image) -> bytes:
    buffer = io.BytesIO()
    bitmap.save(buffer, format="PNG")
    return buffer.getvalue()


# =============================================================================
# Loader
# =============================================================================

class ImageLoader:
    """
    PendingImage → ResolvedImage.

    URL 결과는 인스턴스 LRU 캐시에 보관 (같은 로고를 반복 fetch하지 않음).
    캐시는 최대 cache_size개 URL까지만 유지하고 가장 오래 안 쓴 항목부터 버린다.

    Usage:
        loader = ImageLoader(timeout=5.0, retries=2)
        resolved = await loader.load(pending)
    """

    def __init__(
        self,
        timeout: float = 5.0,
        retries: int = 2,
        client: httpx.AsyncClient | None = None,
        cache_size: int = 64,
    ):
        self.timeout = timeout
        self.retries = retries
        self.cache_size = max(0, cache_size)
        self._client = client
        self._cache: OrderedDict[str, bytes] = OrderedDict()

    async def load(self, pending: PendingImage) -> ResolvedImage:
        """
        Raises:
            ImageLoadError
        """
        value = pending.value.strip()
        element = pending.element

        if isinstance(element, QRCodeElement) and not value.startswith(DATA_URI_PREFIX):
            modules = qr_modules(value, element.ecc_level, element.quiet_zone)
            return ResolvedImage(modules=modules, source=pending.key)

        return ResolvedImage(bitmap=await self.load_bitmap(value), source=pending.key)

    async def load_bitmap(self, value: str) -> Image.Image:
        if value.startswith(DATA_URI_PREFIX):
            return open_bitmap(decode_data_uri(value), value)
        if value.startswith(("http://", "https://")):
            return open_bitmap(await self.fetch(value), value)
        raise ImageLoadError(reason="unsupported image source", source=value[:40])

    async def fetch(self, url: str) -> bytes:
        """
        URL 이미지 다운로드 (재시도 포함).

        Raises:
            ImageLoadError: 모든 시도 실패
        """
        cached = self._cache.get(url)
        if cached is not None:
            self._cache.move_to_end(url)
            return cached
        try:
            data = await retry_with_exponential_backoff(
                self._get,
                url,
                max_retries=self.retries,
                initial_delay=0.2,
                exceptions=(httpx.HTTPError,),
                should_retry=is_transient_http_error,
            )
        except httpx.HTTPError as e:
            raise ImageLoadError(reason="fetch failed", url=url, detail=str(e)) from e
        self._remember(url, data)
        return data

    def _remember(self, url: str, data: bytes) -> None:
        if self.cache_size == 0:
            return
        self._cache[url] = data
        self._cache.move_to_end(url)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def _get(self, url: str) -> bytes:
        if self._client is not None:
            response = await self._client.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.content
