"""
SVG 렌더러: xml.etree 기반 마크업 생성.

PNG와 같은 좌표계(px = mm_to_px(mm) × scale)를 사용한다.
텍스트는 <text>로 유지 (아웃라인 변환 없음), 생성 QR은 벡터 path.
"""

import base64
import xml.etree.ElementTree as ET

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
from qrstickers.render.images import ResolvedImage, encode_png
from qrstickers.render.text import LINE_HEIGHT, is_bold, layout_text

SVG_NAMESPACE = "http://www.w3.org/2000/svg"

_PRESERVE_ASPECT = {
    "contain": "xMidYMid meet",
    "cover": "xMidYMid slice",
    "stretch": "none",
}


def _fmt(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def render_svg(
    document: TemplateDocument,
    images: dict[int, ResolvedImage],
    options: RenderOptions,
) -> bytes:
    """
    바인딩된 문서 → SVG (UTF-8 bytes).

    같은 입력이면 같은 바이트 (속성 순서/숫자 포맷 고정).
    """
    scale = options.effective_scale
    width, height = sticker_size_px(document.width_mm, document.height_mm, scale)

    root = ET.Element("svg", {
        "xmlns": SVG_NAMESPACE,
        "version": "1.1",
        "width": str(width),
        "height": str(height),
        "viewBox": f"0 0 {width} {height}",
    })
    if options.background == Background.WHITE:
        ET.SubElement(root, "rect", {
            "x": "0", "y": "0", "width": str(width), "height": str(height), "fill": "#ffffff",
        })

    writer = _SvgWriter(scale, images)
    for element in document.elements:
        writer.write(root, element, 0.0, 0.0)

    body = ET.tostring(root, encoding="unicode")
    return ('<?xml version="1.0" encoding="UTF-8"?>\n' + body).encode("utf-8")


class _SvgWriter:
    def __init__(self, scale: float, images: dict[int, ResolvedImage]):
        self.scale = scale
        self.images = images

    def px(self, mm: float) -> float:
        return mm_to_px(mm) * self.scale

    def write(self, parent: ET.Element, element: StickerElement, ox: float, oy: float) -> None:
        target = parent
        if element.angle % 360:
            cx = self.px(ox + element.left + element.scaled_width / 2)
            cy = self.px(oy + element.top + element.scaled_height / 2)
            target = ET.SubElement(parent, "g", {
                "transform": f"rotate({_fmt(element.angle)} {_fmt(cx)} {_fmt(cy)})",
            })

        x = self.px(ox + element.left)
        y = self.px(oy + element.top)
        w = self.px(element.scaled_width)
        h = self.px(element.scaled_height)

        if isinstance(element, RectElement):
            attrs = {"x": _fmt(x), "y": _fmt(y), "width": _fmt(w), "height": _fmt(h),
                     "fill": element.fill or "none"}
            if element.stroke and element.stroke_width > 0:
                attrs["stroke"] = element.stroke
                attrs["stroke-width"] = _fmt(self.px(element.stroke_width))
            ET.SubElement(target, "rect", attrs)

        elif isinstance(element, LineElement):
            ET.SubElement(target, "line", {
                "x1": _fmt(self.px(ox + element.x1)),
                "y1": _fmt(self.px(oy + element.y1)),
                "x2": _fmt(self.px(ox + element.x2)),
                "y2": _fmt(self.px(oy + element.y2)),
                "stroke": element.stroke,
                "stroke-width": _fmt(max(1.0, self.px(element.stroke_width))),
            })

        elif isinstance(element, TextElement):
            self._text(target, element, x, y)

        elif isinstance(element, (QRCodeElement, ImageElement)):
            self._image(target, element, x, y, w, h)

        elif isinstance(element, GroupElement):
            group = ET.SubElement(target, "g")
            if element.id:
                group.set("id", element.id)
            for child in element.children:
                self.write(group, child, ox + element.left, oy + element.top)

        else:
            raise TypeError(f"Unsupported element: {type(element).__name__}")

    def _text(self, parent: ET.Element, element: TextElement, x: float, y: float) -> None:
        layout = layout_text(element.text, element.max_length, element.overflow)
        size = pt_to_px(element.font_size * element.scale_y * layout.font_scale, self.scale)
        node = ET.SubElement(parent, "text", {
            "x": _fmt(x),
            "y": _fmt(y),
            "font-family": element.font_family,
            "font-size": _fmt(size),
            "font-weight": "bold" if is_bold(element.font_weight) else "normal",
            "fill": element.fill,
            "dominant-baseline": "hanging",
        })
        for index, line in enumerate(layout.lines):
            span = ET.SubElement(node, "tspan", {
                "x": _fmt(x),
                "y": _fmt(y + index * size * LINE_HEIGHT),
            })
            span.text = line

    def _image(
        self,
        parent: ET.Element,
        element: QRCodeElement | ImageElement,
        x: float,
        y: float,
        w: float,
        h: float,
    ) -> None:
        resolved = self.images.get(id(element))

        if resolved is None:
            ET.SubElement(parent, "rect", {
                "x": _fmt(x), "y": _fmt(y), "width": _fmt(w), "height": _fmt(h),
                "fill": PLACEHOLDER_FILL, "stroke": PLACEHOLDER_STROKE,
                "stroke-width": _fmt(max(1.0, self.scale)),
            })
            return

        if resolved.modules is not None:
            count = len(resolved.modules)
            if count == 0:
                return
            group = ET.SubElement(parent, "g", {
                "transform": f"translate({_fmt(x)} {_fmt(y)}) scale({_fmt(w / count)} {_fmt(h / count)})",
                "shape-rendering": "crispEdges",
            })
            ET.SubElement(group, "rect", {
                "width": str(count), "height": str(count), "fill": "#ffffff",
            })
            path = "".join(
                f"M{col} {row}h1v1h-1z"
                for row, line in enumerate(resolved.modules)
                for col, dark in enumerate(line)
                if dark
            )
            ET.SubElement(group, "path", {"d": path, "fill": "#000000"})
            return

        if resolved.bitmap is None:
            return
        mode = element.aspect_ratio if isinstance(element, ImageElement) else "stretch"
        payload = base64.b64encode(encode_png(resolved.bitmap)).decode("ascii")
        ET.SubElement(parent, "image", {
            "x": _fmt(x),
            "y": _fmt(y),
            "width": _fmt(w),
            "height": _fmt(h),
            "preserveAspectRatio": _PRESERVE_ASPECT.get(mode, "none"),
            "href": f"data:image/png;base64,{payload}",
        })
