"""
Data-Binding Resolver: dataSource / {{entity.field}} 해석.

DataContext 구조:
    {
      "device": {"name": "SW-01", "serial": "Q2XX-...", ...},
      "network": {...} | None,
      "organization": {...} | None,
      "connection": {...},
      "global": {"supportPhone": "..."},
      "customimage.image_12": "data:image/png;base64,...",   # 루트 키
    }

규칙:
- 조회 순서: 정확한 대소문자 → 소문자 (먼저 찾은 값 사용)
- customimage.image_<id>는 중첩이 아닌 루트 키로 조회
- resolve / replace_inline은 절대 예외를 던지지 않음 (미해결 토큰은 그대로)
- bind_document는 입력 문서를 변경하지 않음 (deep copy)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from qrstickers.core.document import (
    GroupElement,
    ImageElement,
    QRCodeElement,
    StickerElement,
    TemplateDocument,
    TextElement,
)
from qrstickers.domain.errors import BindingError

logger = logging.getLogger(__name__)

DataContext = dict[str, Any]

INLINE_TOKEN_PATTERN = re.compile(r"\{\{(\w+)\.(\w+)\}\}")
CUSTOM_IMAGE_PATTERN = re.compile(r"customImage\.Image_(\d+)", re.IGNORECASE)

CUSTOM_IMAGE_ENTITY = "customimage"


# =============================================================================
# Token Parsing
# =============================================================================

def parse_data_source(data_source: str | None, strict: bool = False) -> tuple[str, str] | None:
    """
    "entity.field" → (entity, field).

    Args:
        data_source: 바인딩 문자열
        strict: True면 형식 오류 시 BindingError

    Returns:
        (entity, field) 또는 None (형식 오류, strict=False)

    Raises:
        BindingError: strict=True이고 정확히 두 토큰이 아닐 때
    """
    parts = data_source.split(".") if isinstance(data_source, str) else []
    if len(parts) != 2 or not parts[0] or not parts[1]:
        if strict:
            raise BindingError(data_source=data_source, reason="expected entity.field")
        return None
    return parts[0], parts[1]


# =============================================================================
# Resolution
# =============================================================================

def resolve(data_source: str | None, ctx: DataContext) -> Any | None:
    """
    바인딩 값 조회.

    순서: 루트 키 customimage.image_<id> → 정확한 대소문자 → 대소문자 무시.

    Returns:
        값 또는 None (형식 오류, 엔티티 없음, 필드 없음)
    """
    parsed = parse_data_source(data_source)
    if parsed is None:
        return None
    entity, field_name = parsed

    if entity.lower() == CUSTOM_IMAGE_ENTITY:
        value = _get_ignore_case(ctx, f"{entity}.{field_name}")
        if value is not None:
            return value

    namespace = ctx.get(entity)
    if isinstance(namespace, dict):
        value = namespace.get(field_name)
        if value is not None:
            return value

    namespace = _get_ignore_case(ctx, entity)
    if not isinstance(namespace, dict):
        return None
    return _get_ignore_case(namespace, field_name)


def _get_ignore_case(mapping: dict[str, Any], key: str) -> Any | None:
    """소문자 키 우선, 없으면 대소문자 무시 비교로 첫 번째 값."""
    lowered = key.lower()
    value = mapping.get(lowered)
    if value is not None:
        return value
    return next(
        (v for k, v in mapping.items() if k.lower() == lowered and v is not None),
        None,
    )


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(v) for v in value)
    return str(value)


def replace_inline(text: str, ctx: DataContext) -> str:
    """
    텍스트 안의 {{entity.field}} 토큰 치환.

    미해결 토큰은 원문 그대로 남긴다.

    Usage:
        replace_inline("Hello {{device.name}}", {"device": {"name": "X1"}})
        # "Hello X1"
    """
    if not text or "{{" not in text:
        return text

    def _substitute(match: re.Match[str]) -> str:
        value = resolve(f"{match.group(1)}.{match.group(2)}", ctx)
        if value is None:
            return match.group(0)
        return stringify(value)

    return INLINE_TOKEN_PATTERN.sub(_substitute, text)


def extract_custom_image_ids(template_json: str) -> list[int]:
    """템플릿 JSON에서 참조하는 커스텀 이미지 ID (중복 제거, 정렬)."""
    if not template_json:
        return []
    return sorted({int(m) for m in CUSTOM_IMAGE_PATTERN.findall(template_json)})


# =============================================================================
# Document Binding
# =============================================================================

@dataclass
class PendingImage:
    """
    렌더 전에 비트맵으로 치환해야 할 요소.

    element는 바인딩된 복사본 안의 요소를 가리킨다.
    value는 data URI, URL, 또는 QR로 인코딩할 문자열.
    """
    element: QRCodeElement | ImageElement
    key: str
    value: str


@dataclass
class BoundDocument:
    """bind_document 결과."""
    document: TemplateDocument
    pending: list[PendingImage] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def bind_document(document: TemplateDocument, ctx: DataContext) -> BoundDocument:
    """
    문서 전체 바인딩.

    1. deep copy (입력 문서 불변)
    2. 텍스트 치환 (dataSource + {{...}} 인라인)
    3. QR/이미지 요소는 PendingImage로 수집 (fetch는 렌더러 담당)

    Args:
        document: 파싱된 템플릿
        ctx: DataContext

    Returns:
        BoundDocument
    """
    bound = BoundDocument(document=document.clone())
    for element in bound.document.elements:
        _bind_element(element, ctx, bound)
    return bound


def _bind_element(element: StickerElement, ctx: DataContext, bound: BoundDocument) -> None:
    if isinstance(element, TextElement):
        if element.data_source:
            value = resolve(element.data_source, ctx)
            if value is not None:
                element.text = stringify(value)
            else:
                _warn(bound, element, element.data_source)
        element.text = replace_inline(element.text, ctx)

    elif isinstance(element, QRCodeElement):
        if element.data_source:
            value = resolve(element.data_source, ctx)
            if value is None:
                _warn(bound, element, element.data_source)
                return
            element.data = stringify(value)
        if element.data:
            key = element.data_source or "static"
            bound.pending.append(PendingImage(element=element, key=key, value=element.data))

    elif isinstance(element, ImageElement):
        key = element.data_source
        if not key and element.custom_image_id is not None:
            key = f"customImage.Image_{element.custom_image_id}"
        value = resolve(key, ctx) if key else None
        if value is not None:
            bound.pending.append(PendingImage(element=element, key=key or "", value=stringify(value)))
        elif element.src:
            bound.pending.append(PendingImage(element=element, key="src", value=element.src))
        elif key:
            _warn(bound, element, key)

    elif isinstance(element, GroupElement):
        for child in element.children:
            _bind_element(child, ctx, bound)


def _warn(bound: BoundDocument, element: StickerElement, data_source: str) -> None:
    message = f"unresolved binding '{data_source}' on element '{element.id or type(element).__name__}'"
    logger.warning(message)
    bound.warnings.append(message)
