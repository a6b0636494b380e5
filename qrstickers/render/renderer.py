"""
StickerRenderer: 바인딩 → 동적 이미지 대기 → PNG/SVG 인코딩.

단일 export와 배치 export가 같은 경로를 사용한다.

단계 (RenderError.stage):
- resolve: 템플릿 파싱 + 데이터 바인딩
- draw: 요소 그리기
- encode: PNG/SVG 바이트 생성
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from PIL import Image

from qrstickers.core.binding import BoundDocument, DataContext, PendingImage, bind_document
from qrstickers.core.document import TemplateDocument
from qrstickers.core.units import sticker_size_px
from qrstickers.domain.constants import get_mime_type
from qrstickers.domain.errors import ImageLoadError, RenderError, StickerExportError
from qrstickers.domain.schemas import ExportFormat, RenderOptions
from qrstickers.render import raster, vector
from qrstickers.render.images import ImageLoader, ResolvedImage

logger = logging.getLogger(__name__)


@dataclass
class RenderOutput:
    """렌더 결과."""
    data: bytes
    mime_type: str
    width_px: int
    height_px: int
    warnings: list[str] = field(default_factory=list)


class StickerRenderer:
    """
    스티커 렌더러.

    render()는 (document, context, options)의 순수 함수:
    입력 문서를 변경하지 않고, 같은 입력이면 같은 바이트를 만든다.

    Usage:
        renderer = StickerRenderer()
        output = await renderer.render(document, ctx, RenderOptions(dpi=300), ExportFormat.PNG)
    """

    def __init__(self, image_loader: ImageLoader | None = None, image_timeout: float = 5.0):
        self.image_loader = image_loader or ImageLoader(timeout=image_timeout)
        self.image_timeout = image_timeout

    async def render(
        self,
        document: TemplateDocument,
        ctx: DataContext,
        options: RenderOptions,
        fmt: ExportFormat = ExportFormat.PNG,
        device_id: Any = None,
    ) -> RenderOutput:
        """
        문서 렌더링.

        Args:
            document: 파싱된 템플릿 (변경되지 않음)
            ctx: DataContext
            options: dpi/background/scale
            fmt: PNG 또는 SVG
            device_id: 에러 컨텍스트용

        Returns:
            RenderOutput

        Raises:
            RenderError: 단계별 실패 (device_id, stage 포함)
        """
        if fmt == ExportFormat.PDF:
            raise RenderError(device_id=device_id, stage="encode", reason="use compose_pdf for pdf output")

        bound, images = await self.prepare(document, ctx, device_id)

        if fmt == ExportFormat.SVG:
            try:
                data = vector.render_svg(bound.document, images, options)
            except StickerExportError:
                raise
            except Exception as e:
                raise RenderError(device_id=device_id, stage="encode", detail=str(e)) from e
            width, height = sticker_size_px(
                bound.document.width_mm, bound.document.height_mm, options.effective_scale
            )
        else:
            surface = self.draw(bound, images, options, device_id)
            width, height = surface.size
            try:
                data = raster.encode_png(surface, options)
            except Exception as e:
                raise RenderError(device_id=device_id, stage="encode", detail=str(e)) from e

        return RenderOutput(
            data=data,
            mime_type=get_mime_type(fmt.value),
            width_px=width,
            height_px=height,
            warnings=list(bound.warnings),
        )

    async def render_image(
        self,
        document: TemplateDocument,
        ctx: DataContext,
        options: RenderOptions,
        device_id: Any = None,
    ) -> tuple[Image.Image, list[str]]:
        """PDF 합성용: 인코딩 전 RGBA 이미지."""
        bound, images = await self.prepare(document, ctx, device_id)
        return self.draw(bound, images, options, device_id), list(bound.warnings)

    def render_sync(
        self,
        document: TemplateDocument,
        ctx: DataContext,
        options: RenderOptions,
        fmt: ExportFormat = ExportFormat.PNG,
    ) -> RenderOutput:
        """이벤트 루프 밖(미리보기, 스크립트)에서 호출."""
        return asyncio.run(self.render(document, ctx, options, fmt))

    # =========================================================================
    # Stages
    # =========================================================================

    async def prepare(
        self,
        document: TemplateDocument,
        ctx: DataContext,
        device_id: Any = None,
    ) -> tuple[BoundDocument, dict[int, ResolvedImage]]:
        """resolve 단계: 바인딩 + 모든 동적 이미지 대기."""
        try:
            bound = bind_document(document, ctx)
        except StickerExportError:
            raise
        except Exception as e:
            raise RenderError(device_id=device_id, stage="resolve", detail=str(e)) from e

        images = await self.resolve_images(bound, device_id)
        return bound, images

    async def resolve_images(self, bound: BoundDocument, device_id: Any = None) -> dict[int, ResolvedImage]:
        """
        PendingImage 전부 동시 로드.

        실패/timeout 요소는 결과에서 빠지고 (placeholder 유지) 경고만 남는다.
        """
        if not bound.pending:
            return {}
        results = await asyncio.gather(*(self._load_one(p, bound, device_id) for p in bound.pending))
        return {
            id(pending.element): resolved
            for pending, resolved in zip(bound.pending, results)
            if resolved is not None
        }

    async def _load_one(
        self,
        pending: PendingImage,
        bound: BoundDocument,
        device_id: Any,
    ) -> ResolvedImage | None:
        try:
            return await asyncio.wait_for(self.image_loader.load(pending), timeout=self.image_timeout)
        except ImageLoadError as e:
            message = f"image '{pending.key}' on element '{pending.element.id}' failed: {e}"
        except TimeoutError:
            message = f"image '{pending.key}' on element '{pending.element.id}' timed out"
        logger.warning(f"Device {device_id}: {message}")
        bound.warnings.append(message)
        return None

    def draw(
        self,
        bound: BoundDocument,
        images: dict[int, ResolvedImage],
        options: RenderOptions,
        device_id: Any = None,
    ) -> Image.Image:
        try:
            return raster.render_image(bound.document, images, options)
        except StickerExportError:
            raise
        except Exception as e:
            raise RenderError(device_id=device_id, stage="draw", detail=str(e)) from e
