"""
Error definitions for the export engine.

규칙:
- 조용한 실패 금지 → 코드가 붙은 StickerExportError 계열로 명시적 실패
- 바인딩/이미지 실패는 요소 단위로 복구 (placeholder 유지)
- 페이지 맞춤 실패는 렌더링 전에 전체 job reject
"""

from typing import Any


class StickerExportError(Exception):
    """
    엔진 전반에서 발생하는 에러의 기반 클래스.

    Usage:
        raise StickerExportError("RENDER_FAILED", device_id=42, stage="draw")

    하위 클래스는 default_code를 고정하고 context만 받는다:
        raise PageFitError(device_id=42, shortfall_mm=10.0)
    """

    default_code = "STICKER_EXPORT_ERROR"

    def __init__(self, code: str | None = None, **context: Any) -> None:
        self.code = code or self.default_code
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {ctx_str}" if ctx_str else f"[{self.code}]"

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            **self.context,
        }


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수. HTTP 상태 매핑은 app.errors 참조."""

    # === Binding ===
    BINDING_INVALID = "BINDING_INVALID"  # 로컬 복구, placeholder 유지

    # === Template ===
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    NO_COMPATIBLE_TEMPLATE = "NO_COMPATIBLE_TEMPLATE"
    TEMPLATE_PARSE_FAILED = "TEMPLATE_PARSE_FAILED"
    TEMPLATE_STORE_ERROR = "TEMPLATE_STORE_ERROR"

    # === Inventory ===
    DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"

    # === Render ===
    IMAGE_LOAD_FAILED = "IMAGE_LOAD_FAILED"  # warning, 요소만 degrade
    RENDER_FAILED = "RENDER_FAILED"
    INVALID_EXPORT_OPTIONS = "INVALID_EXPORT_OPTIONS"

    # === PDF ===
    PAGE_FIT_FAILED = "PAGE_FIT_FAILED"

    # === Batch ===
    PARTIAL_BATCH_FAILURE = "PARTIAL_BATCH_FAILURE"
    BATCH_CANCELLED = "BATCH_CANCELLED"


# =============================================================================
# Typed Errors
# =============================================================================

class BindingError(StickerExportError):
    """dataSource 토큰 형식 오류 (entity.field 아님)."""

    default_code = ErrorCodes.BINDING_INVALID


class TemplateNotFoundError(StickerExportError):
    """요청한 템플릿이 없음. 사용자가 직접 선택하도록 안내."""

    default_code = ErrorCodes.TEMPLATE_NOT_FOUND


class NoCompatibleTemplateError(StickerExportError):
    """매칭 가능한 템플릿이 하나도 없음."""

    default_code = ErrorCodes.NO_COMPATIBLE_TEMPLATE


class TemplateParseError(StickerExportError):
    """템플릿 JSON 파싱/검증 실패."""

    default_code = ErrorCodes.TEMPLATE_PARSE_FAILED


class TemplateStoreError(StickerExportError):
    """템플릿 저장소 에러 (이름 규칙 위반, 중복, 락 timeout)."""

    default_code = ErrorCodes.TEMPLATE_STORE_ERROR


class DeviceNotFoundError(StickerExportError):
    """인벤토리에 디바이스가 없음."""

    default_code = ErrorCodes.DEVICE_NOT_FOUND


class ImageLoadError(StickerExportError):
    """동적 이미지 로드 실패. 해당 요소만 placeholder로 남는다."""

    default_code = ErrorCodes.IMAGE_LOAD_FAILED


class RenderError(StickerExportError):
    """
    렌더링 실패.

    context 필수 키: device_id, stage (resolve | draw | encode)
    """

    default_code = ErrorCodes.RENDER_FAILED


class InvalidExportOptionsError(StickerExportError):
    """DPI, 페이지 크기, 포맷 등 옵션 오류."""

    default_code = ErrorCodes.INVALID_EXPORT_OPTIONS


class PageFitError(StickerExportError):
    """
    스티커가 페이지 가용 영역에 어느 방향으로도 들어가지 않음.

    context: device_id, sticker_width_mm, sticker_height_mm,
             usable_width_mm, usable_height_mm, shortfall_mm
    """

    default_code = ErrorCodes.PAGE_FIT_FAILED


class PartialBatchFailure(StickerExportError):
    """배치에서 성공한 디바이스가 하나도 없음."""

    default_code = ErrorCodes.PARTIAL_BATCH_FAILURE
