"""
Template Document Model: 요소 tagged union + JSON codec.

템플릿 JSON 스키마:
    {
      "version": "1.0",
      "pageSize": {"width": 100, "height": 50, "unit": "mm"},
      "objects": [
        {"type": "qrcode", "id": "qr-1", "left": 5, "top": 5,
         "width": 25, "height": 25, "angle": 0, "scaleX": 1, "scaleY": 1,
         "properties": {"dataSource": "device.qrcode", "eccLevel": "Q"}},
        ...
      ]
    }

규칙:
- 모든 좌표/크기는 mm, angle은 도(degree)
- objects 순서 = z-order (뒤에 올수록 위)
- 기하값은 음수 불가 → TemplateParseError
- 알 수 없는 type은 무시하지 않고 TemplateParseError
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from qrstickers.domain.constants import (
    DEFAULT_FILL,
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE_PT,
    DEFAULT_QR_ECC_LEVEL,
    DEFAULT_QR_QUIET_ZONE,
    TEMPLATE_FORMAT_VERSION,
)
from qrstickers.domain.errors import TemplateParseError

logger = logging.getLogger(__name__)

ECC_LEVELS = ("L", "M", "Q", "H")
OVERFLOW_MODES = ("truncate", "wrap", "scale")
ASPECT_MODES = ("contain", "cover", "stretch")

# Fabric.js 텍스트 타입 별칭
_TEXT_TYPES = ("text", "i-text", "textbox")


# =============================================================================
# Elements
# =============================================================================

@dataclass
class Element:
    """공통 기하 속성. width/height는 디자인 시점 크기, scale은 그 배율."""
    id: str = ""
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0
    angle: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0

    @property
    def scaled_width(self) -> float:
        return self.width * self.scale_x

    @property
    def scaled_height(self) -> float:
        return self.height * self.scale_y


@dataclass
class QRCodeElement(Element):
    data_source: str | None = None
    ecc_level: str = DEFAULT_QR_ECC_LEVEL
    quiet_zone: int = DEFAULT_QR_QUIET_ZONE
    data: str | None = None  # 바인딩 결과 (QR 내용 또는 data URI)


@dataclass
class TextElement(Element):
    text: str = ""
    font_family: str = DEFAULT_FONT_FAMILY
    font_size: float = DEFAULT_FONT_SIZE_PT  # pt
    font_weight: str = "normal"
    fill: str = DEFAULT_FILL
    data_source: str | None = None
    max_length: int | None = None
    overflow: str = "truncate"


@dataclass
class ImageElement(Element):
    data_source: str | None = None
    src: str | None = None
    custom_image_id: int | None = None
    custom_image_name: str | None = None
    aspect_ratio: str = "contain"


@dataclass
class RectElement(Element):
    fill: str | None = "#ffffff"
    stroke: str | None = DEFAULT_FILL
    stroke_width: float = 0.0


@dataclass
class LineElement(Element):
    """선분. 끝점은 스티커 기준 mm."""
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    stroke: str = DEFAULT_FILL
    stroke_width: float = 0.5


@dataclass
class GroupElement(Element):
    """중첩 그룹. 자식 좌표는 그룹 좌상단 기준 mm."""
    children: list["StickerElement"] = field(default_factory=list)


StickerElement = Union[
    QRCodeElement, TextElement, ImageElement, RectElement, LineElement, GroupElement
]


@dataclass
class TemplateDocument:
    """파싱된 템플릿. 렌더러는 항상 deep copy로 작업한다."""
    width_mm: float
    height_mm: float
    elements: list[StickerElement] = field(default_factory=list)
    format_version: str = TEMPLATE_FORMAT_VERSION

    def clone(self) -> "TemplateDocument":
        return copy.deepcopy(self)

    def iter_elements(self):
        """그룹을 펼친 전체 요소 순회 (z-order 순)."""
        yield from _walk(self.elements)

    def find(self, element_id: str) -> StickerElement | None:
        for element in self.iter_elements():
            if element.id == element_id:
                return element
        return None


def _walk(elements: list[StickerElement]):
    for element in elements:
        yield element
        if isinstance(element, GroupElement):
            yield from _walk(element.children)


# =============================================================================
# Parsing
# =============================================================================

def parse_template(
    template_json: str | dict[str, Any],
    default_width_mm: float | None = None,
    default_height_mm: float | None = None,
) -> TemplateDocument:
    """
    템플릿 JSON → TemplateDocument.

    요소 목록은 Fabric 형식의 "objects" 키, 없으면 "elements" 키에서 읽는다.

    Args:
        template_json: JSON 문자열 또는 이미 로드된 dict
        default_width_mm: pageSize가 없을 때 사용할 폭 (템플릿 레코드 값)
        default_height_mm: pageSize가 없을 때 사용할 높이

    Returns:
        TemplateDocument

    Raises:
        TemplateParseError: JSON 오류, 음수 기하, 알 수 없는 요소 타입
    """
    if isinstance(template_json, str):
        try:
            data = json.loads(template_json)
        except json.JSONDecodeError as e:
            raise TemplateParseError(reason="invalid json", detail=str(e)) from e
    else:
        data = template_json

    if not isinstance(data, dict):
        raise TemplateParseError(reason="template root must be an object")

    page = data.get("pageSize") or {}
    width = page.get("width", default_width_mm)
    height = page.get("height", default_height_mm)
    if width is None or height is None:
        raise TemplateParseError(reason="page size missing")

    unit = page.get("unit", "mm")
    if unit != "mm":
        raise TemplateParseError(reason="unsupported unit", unit=unit)

    width = _number(width, "pageSize.width")
    height = _number(height, "pageSize.height")
    if width <= 0 or height <= 0:
        raise TemplateParseError(reason="page size must be positive", width=width, height=height)

    key = "objects" if "objects" in data else "elements"
    objects = data.get(key) or []
    if not isinstance(objects, list):
        raise TemplateParseError(reason=f"{key} must be a list")

    elements = [_parse_object(obj, f"{key}[{i}]") for i, obj in enumerate(objects)]

    return TemplateDocument(
        width_mm=width,
        height_mm=height,
        elements=elements,
        format_version=str(data.get("version", TEMPLATE_FORMAT_VERSION)),
    )


def _number(value: Any, path: str, allow_negative: bool = False) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise TemplateParseError(reason="not a number", path=path, value=value) from e
    if not allow_negative and number < 0:
        raise TemplateParseError(reason="negative geometry", path=path, value=number)
    return number


def _optional_int(value: Any, path: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TemplateParseError(reason="not an integer", path=path, value=value) from e


def _parse_object(obj: Any, path: str) -> StickerElement:
    if not isinstance(obj, dict):
        raise TemplateParseError(reason="object must be a mapping", path=path)

    kind = str(obj.get("type", "")).lower()
    props = obj.get("properties") or {}

    base = {
        "id": str(obj.get("id", "")),
        "left": _number(obj.get("left", 0), f"{path}.left"),
        "top": _number(obj.get("top", 0), f"{path}.top"),
        "width": _number(obj.get("width", 0), f"{path}.width"),
        "height": _number(obj.get("height", 0), f"{path}.height"),
        "angle": _number(obj.get("angle", 0), f"{path}.angle", allow_negative=True),
        "scale_x": _number(obj.get("scaleX", 1), f"{path}.scaleX"),
        "scale_y": _number(obj.get("scaleY", 1), f"{path}.scaleY"),
    }

    if kind == "qrcode":
        ecc = str(props.get("eccLevel", DEFAULT_QR_ECC_LEVEL)).upper()
        if ecc not in ECC_LEVELS:
            raise TemplateParseError(reason="invalid eccLevel", path=path, value=ecc)
        return QRCodeElement(
            **base,
            data_source=props.get("dataSource"),
            ecc_level=ecc,
            quiet_zone=int(_number(props.get("quietZone", DEFAULT_QR_QUIET_ZONE), f"{path}.quietZone")),
            data=props.get("data"),
        )

    if kind in _TEXT_TYPES:
        overflow = props.get("overflow", "truncate")
        if overflow not in OVERFLOW_MODES:
            raise TemplateParseError(reason="invalid overflow", path=path, value=overflow)
        return TextElement(
            **base,
            text=str(obj.get("text", "")),
            font_family=obj.get("fontFamily") or DEFAULT_FONT_FAMILY,
            font_size=_number(obj.get("fontSize", DEFAULT_FONT_SIZE_PT), f"{path}.fontSize"),
            font_weight=str(obj.get("fontWeight", "normal")),
            fill=obj.get("fill") or DEFAULT_FILL,
            data_source=props.get("dataSource") or obj.get("dataBinding"),
            max_length=_optional_int(props.get("maxLength"), f"{path}.maxLength") or None,
            overflow=overflow,
        )

    if kind == "image":
        aspect = props.get("aspectRatio", "contain")
        if aspect not in ASPECT_MODES:
            raise TemplateParseError(reason="invalid aspectRatio", path=path, value=aspect)
        return ImageElement(
            **base,
            data_source=props.get("dataSource"),
            src=obj.get("src") or None,
            custom_image_id=_optional_int(props.get("customImageId"), f"{path}.customImageId"),
            custom_image_name=props.get("customImageName"),
            aspect_ratio=aspect,
        )

    if kind in ("rect", "rectangle"):
        return RectElement(
            **base,
            fill=obj.get("fill", "#ffffff"),
            stroke=obj.get("stroke", DEFAULT_FILL),
            stroke_width=_number(obj.get("strokeWidth", 0), f"{path}.strokeWidth"),
        )

    if kind == "line":
        # 끝점이 없으면 박스 대각선으로 간주
        x1 = obj.get("x1", base["left"])
        y1 = obj.get("y1", base["top"])
        x2 = obj.get("x2", base["left"] + base["width"])
        y2 = obj.get("y2", base["top"] + base["height"])
        return LineElement(
            **base,
            x1=_number(x1, f"{path}.x1"),
            y1=_number(y1, f"{path}.y1"),
            x2=_number(x2, f"{path}.x2"),
            y2=_number(y2, f"{path}.y2"),
            stroke=obj.get("stroke") or DEFAULT_FILL,
            stroke_width=_number(obj.get("strokeWidth", 0.5), f"{path}.strokeWidth"),
        )

    if kind == "group":
        children = obj.get("objects", [])
        if not isinstance(children, list):
            raise TemplateParseError(reason="group objects must be a list", path=path)
        return GroupElement(
            **base,
            children=[_parse_object(child, f"{path}.objects[{i}]") for i, child in enumerate(children)],
        )

    raise TemplateParseError(reason="unknown element type", path=path, type=kind)


# =============================================================================
# Serialization
# =============================================================================

def serialize_template(document: TemplateDocument) -> str:
    """
    TemplateDocument → JSON 문자열.

    키 순서 고정 (sort_keys) → 같은 문서는 같은 문자열.
    """
    return json.dumps(document_to_dict(document), sort_keys=True, ensure_ascii=False)


def document_to_dict(document: TemplateDocument) -> dict[str, Any]:
    return {
        "version": document.format_version,
        "pageSize": {
            "width": document.width_mm,
            "height": document.height_mm,
            "unit": "mm",
        },
        "objects": [element_to_dict(e) for e in document.elements],
    }


def element_to_dict(element: StickerElement) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": element.id,
        "left": element.left,
        "top": element.top,
        "width": element.width,
        "height": element.height,
        "angle": element.angle,
        "scaleX": element.scale_x,
        "scaleY": element.scale_y,
    }

    if isinstance(element, QRCodeElement):
        data["type"] = "qrcode"
        data["properties"] = _compact({
            "dataSource": element.data_source,
            "eccLevel": element.ecc_level,
            "quietZone": element.quiet_zone,
            "data": element.data,
        })
    elif isinstance(element, TextElement):
        data.update({
            "type": "text",
            "text": element.text,
            "fontFamily": element.font_family,
            "fontSize": element.font_size,
            "fontWeight": element.font_weight,
            "fill": element.fill,
        })
        data["properties"] = _compact({
            "dataSource": element.data_source,
            "maxLength": element.max_length,
            "overflow": element.overflow,
        })
    elif isinstance(element, ImageElement):
        data["type"] = "image"
        if element.src:
            data["src"] = element.src
        data["properties"] = _compact({
            "dataSource": element.data_source,
            "customImageId": element.custom_image_id,
            "customImageName": element.custom_image_name,
            "aspectRatio": element.aspect_ratio,
        })
    elif isinstance(element, RectElement):
        data.update({
            "type": "rect",
            "fill": element.fill,
            "stroke": element.stroke,
            "strokeWidth": element.stroke_width,
        })
    elif isinstance(element, LineElement):
        data.update({
            "type": "line",
            "x1": element.x1,
            "y1": element.y1,
            "x2": element.x2,
            "y2": element.y2,
            "stroke": element.stroke,
            "strokeWidth": element.stroke_width,
        })
    elif isinstance(element, GroupElement):
        data["type"] = "group"
        data["objects"] = [element_to_dict(child) for child in element.children]
    else:
        raise TypeError(f"Unsupported element: {type(element).__name__}")

    return data


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}
