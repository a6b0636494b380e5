"""
PNG 렌더러: Pillow 기반.

좌표 변환: px = mm_to_px(mm) × scale
회전: 요소 박스 중심 기준, 별도 레이어에 그린 뒤 합성
"""

import io

from PIL import Image, ImageColor, ImageDraw

from qrstickers.core.document import (
    GroupElement,
    ImageElement,
    LineElement,
    QRCodeElement,
    RectElement,
    StickerElement,
    TemplateDocument,
    TextElement,
)
from qrstickers.core.units import mm_to_px, pt_to_px, sticker_size_px
from qrstickers.domain.constants import PLACEHOLDER_FILL, PLACEHOLDER_STROKE
from qrstickers.domain.schemas import Background, RenderOptions
from qrstickers.render.images import ResolvedImage, fit_bitmap, modules_to_bitmap
from qrstickers.render.text import LINE_HEIGHT, is_bold, layout_text, load_font

ResolvedImages = dict[int, ResolvedImage]  # id(element) → 이미지


def render_image(
    document: TemplateDocument,
    images: ResolvedImages,
    options: RenderOptions,
) -> Image.Image:
    """
    바인딩된 문서 → RGBA 이미지.

    Args:
        document: bind_document를 거친 문서 (복사본)
        images: 동적 이미지 (없는 요소는 placeholder)
        options: dpi/background/scale
    """
    scale = options.effective_scale
    size = sticker_size_px(document.width_mm, document.height_mm, scale)
    fill = (255, 255, 255, 255) if options.background == Background.WHITE else (0, 0, 0, 0)
    surface = Image.new("RGBA", size, fill)

    painter = _RasterPainter(scale, images)
    for element in document.elements:
        painter.draw(surface, element, 0.0, 0.0)
    return surface


def encode_png(surface: Image.Image, options: RenderOptions) -> bytes:
    """
    RGBA 이미지 → PNG bytes.

    흰 배경은 RGB로 저장. 메타데이터는 pHYs(DPI)만 기록.
    """
    image = surface.convert("RGB") if options.background == Background.WHITE else surface
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", dpi=(options.dpi, options.dpi))
    return buffer.getvalue()


def _rgba(color: str | None) -> tuple[int, int, int, int] | None:
    if not color or color == "transparent":
        return None
    try:
        rgba = ImageColor.getcolor(color, "RGBA")
    except ValueError:
        return None
    return rgba  # type: ignore[return-value]


class _RasterPainter:
    def __init__(self, scale: float, images: ResolvedImages):
        self.scale = scale
        self.images = images

    def px(self, mm: float) -> float:
        return mm_to_px(mm) * self.scale

    def draw(self, surface: Image.Image, element: StickerElement, ox: float, oy: float) -> None:
        """요소 그리기. ox/oy는 부모 그룹 offset (mm)."""
        if element.angle % 360:
            layer = Image.new("RGBA", surface.size, (0, 0, 0, 0))
            self._draw_plain(layer, element, ox, oy)
            cx = self.px(ox + element.left + element.scaled_width / 2)
            cy = self.px(oy + element.top + element.scaled_height / 2)
            rotated = layer.rotate(-element.angle, resample=Image.Resampling.BICUBIC, center=(cx, cy))
            surface.alpha_composite(rotated)
        else:
            self._draw_plain(surface, element, ox, oy)

    def _draw_plain(self, surface: Image.Image, element: StickerElement, ox: float, oy: float) -> None:
        x = self.px(ox + element.left)
        y = self.px(oy + element.top)
        w = self.px(element.scaled_width)
        h = self.px(element.scaled_height)

        if isinstance(element, RectElement):
            self._rect(surface, element, x, y, w, h)
        elif isinstance(element, LineElement):
            self._line(surface, element, ox, oy)
        elif isinstance(element, TextElement):
            self._text(surface, element, x, y)
        elif isinstance(element, (QRCodeElement, ImageElement)):
            self._bitmap(surface, element, x, y, w, h)
        elif isinstance(element, GroupElement):
            for child in element.children:
                self.draw(surface, child, ox + element.left, oy + element.top)
        else:
            raise TypeError(f"Unsupported element: {type(element).__name__}")

    def _rect(self, surface: Image.Image, element: RectElement, x: float, y: float, w: float, h: float) -> None:
        draw = ImageDraw.Draw(surface)
        stroke_px = round(self.px(element.stroke_width))
        x0, y0 = round(x), round(y)
        draw.rectangle(
            [x0, y0, max(x0, round(x + w) - 1), max(y0, round(y + h) - 1)],
            fill=_rgba(element.fill),
            outline=_rgba(element.stroke) if stroke_px > 0 else None,
            width=max(0, stroke_px),
        )

    def _line(self, surface: Image.Image, element: LineElement, ox: float, oy: float) -> None:
        color = _rgba(element.stroke)
        if color is None:
            return
        draw = ImageDraw.Draw(surface)
        draw.line(
            [
                (self.px(ox + element.x1), self.px(oy + element.y1)),
                (self.px(ox + element.x2), self.px(oy + element.y2)),
            ],
            fill=color,
            width=max(1, round(self.px(element.stroke_width))),
        )

    def _text(self, surface: Image.Image, element: TextElement, x: float, y: float) -> None:
        layout = layout_text(element.text, element.max_length, element.overflow)
        size_px = max(1, round(pt_to_px(element.font_size * element.scale_y * layout.font_scale, self.scale)))
        font = load_font(element.font_family, is_bold(element.font_weight), size_px)
        color = _rgba(element.fill) or (0, 0, 0, 255)
        draw = ImageDraw.Draw(surface)
        for index, line in enumerate(layout.lines):
            draw.text((x, y + index * size_px * LINE_HEIGHT), line, font=font, fill=color)

    def _bitmap(
        self,
        surface: Image.Image,
        element: QRCodeElement | ImageElement,
        x: float,
        y: float,
        w: float,
        h: float,
    ) -> None:
        box_w, box_h = max(1, round(w)), max(1, round(h))
        resolved = self.images.get(id(element))

        if resolved is None:
            draw = ImageDraw.Draw(surface)
            draw.rectangle(
                [round(x), round(y), round(x) + box_w - 1, round(y) + box_h - 1],
                fill=_rgba(PLACEHOLDER_FILL),
                outline=_rgba(PLACEHOLDER_STROKE),
                width=max(1, round(self.scale)),
            )
            return

        if resolved.modules is not None:
            surface.alpha_composite(modules_to_bitmap(resolved.modules, box_w, box_h), (round(x), round(y)))
            return

        if resolved.bitmap is None:
            return
        mode = element.aspect_ratio if isinstance(element, ImageElement) else "stretch"
        placed, dx, dy = fit_bitmap(resolved.bitmap, box_w, box_h, mode)
        surface.alpha_composite(placed.convert("RGBA"), (round(x) + dx, round(y) + dy))
