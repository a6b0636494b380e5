"""
Data schemas for the export engine.

규칙:
- 인벤토리 레코드는 읽기 전용으로 취급 (렌더 중 변경 금지)
- 좌표/크기는 항상 mm
- to_dict()는 JSON 응답/로그용 (camelCase 키는 클라이언트 계약 그대로)
"""

import io
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from qrstickers.domain import constants
from qrstickers.domain.errors import PartialBatchFailure

# =============================================================================
# Enums
# =============================================================================

class MatchReason(str, Enum):
    """템플릿 매칭 사유 (우선순위 순)."""
    MODEL_MATCH = "model_match"
    TYPE_MATCH = "type_match"
    USER_DEFAULT = "user_default"
    SYSTEM_DEFAULT = "system_default"
    FALLBACK = "fallback"


# 매칭 사유별 confidence
MATCH_CONFIDENCE: dict[MatchReason, float] = {
    MatchReason.MODEL_MATCH: 1.0,
    MatchReason.TYPE_MATCH: 0.8,
    MatchReason.USER_DEFAULT: 0.5,
    MatchReason.SYSTEM_DEFAULT: 0.3,
    MatchReason.FALLBACK: 0.1,
}


class TemplateCategory(str, Enum):
    """대체 템플릿 분류."""
    RECOMMENDED = "recommended"
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"


class ExportFormat(str, Enum):
    """출력 포맷."""
    PNG = "png"
    SVG = "svg"
    PDF = "pdf"


class PdfLayout(str, Enum):
    """PDF 배치 전략."""
    AUTO_FIT = "auto-fit"          # 페이지당 최대 개수 grid
    ONE_PER_PAGE = "one-per-page"  # 페이지 중앙에 1개


class Background(str, Enum):
    """배경 채우기."""
    WHITE = "white"
    TRANSPARENT = "transparent"


# =============================================================================
# Inventory Records (외부 인벤토리 캐시에서 제공)
# =============================================================================

@dataclass
class Device:
    """디바이스 레코드."""
    id: int
    connection_id: int
    serial: str = ""
    name: str = ""
    mac: str = ""
    model: str = ""
    product_type: str | None = None
    status: str = ""
    firmware: str = ""
    tags: list[str] = field(default_factory=list)
    network_id: str | None = None
    qr_code: str | None = None  # 캐시된 QR data URI

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "connectionId": self.connection_id,
            "serial": self.serial,
            "name": self.name,
            "mac": self.mac,
            "model": self.model,
            "productType": self.product_type,
            "status": self.status,
            "firmware": self.firmware,
            "tags": list(self.tags),
            "networkId": self.network_id,
            "qrCode": self.qr_code,
        }


@dataclass
class Network:
    """네트워크 레코드. network_id는 외부 API의 문자열 ID."""
    id: int
    network_id: str
    connection_id: int
    organization_id: str | None = None
    name: str = ""
    qr_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "networkId": self.network_id,
            "organizationId": self.organization_id,
            "name": self.name,
            "qrCode": self.qr_code,
        }


@dataclass
class Organization:
    """조직 레코드."""
    id: int
    organization_id: str
    connection_id: int
    name: str = ""
    url: str = ""
    qr_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "name": self.name,
            "url": self.url,
            "qrCode": self.qr_code,
        }


@dataclass
class Connection:
    """연결(테넌트) 레코드."""
    id: int
    display_name: str = ""
    type: str = ""
    company_logo_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "type": self.type,
            "companyLogoUrl": self.company_logo_url,
        }


@dataclass
class CustomImage:
    """업로드된 커스텀 이미지."""
    id: int
    connection_id: int
    name: str
    data_uri: str
    width_px: int = 0
    height_px: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "dataUri": self.data_uri,
            "widthPx": self.width_px,
            "heightPx": self.height_px,
        }


# =============================================================================
# Template Record
# =============================================================================

@dataclass
class StickerTemplate:
    """
    스티커 템플릿 레코드.

    connection_id가 None이면 모든 연결이 공유하는 시스템 템플릿.
    template_json은 불투명 문자열로 저장되고 렌더할 때마다 새로 파싱한다.
    """
    id: int
    name: str
    template_json: str
    page_width_mm: float = 100.0
    page_height_mm: float = 50.0
    connection_id: int | None = None
    is_system_template: bool = False
    is_default: bool = False
    description: str = ""
    # None/빈 리스트 = 모든 ProductType과 호환
    compatible_product_types: list[str] | None = None
    # 정확히 일치하는 디바이스 모델 (예: "MS225-48FP")
    device_models: list[str] = field(default_factory=list)

    def is_compatible_with(self, product_type: str | None) -> bool:
        """ProductType 호환 여부 (대소문자 무시)."""
        if not self.compatible_product_types:
            return True
        if not product_type:
            return False
        wanted = product_type.lower()
        return any(t.lower() == wanted for t in self.compatible_product_types)

    def matches_model(self, model: str | None) -> bool:
        """디바이스 모델 정확 일치 여부."""
        if not model:
            return False
        return any(m.upper() == model.upper() for m in self.device_models)

    def to_dict(self, include_json: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "connectionId": self.connection_id,
            "isSystemTemplate": self.is_system_template,
            "isDefault": self.is_default,
            "pageWidth": self.page_width_mm,
            "pageHeight": self.page_height_mm,
            "compatibleProductTypes": self.compatible_product_types,
            "deviceModels": list(self.device_models),
        }
        if include_json:
            data["templateJson"] = self.template_json
        return data


# =============================================================================
# Matching Results
# =============================================================================

@dataclass
class TemplateMatch:
    """디바이스에 대한 템플릿 매칭 결과."""
    template: StickerTemplate
    confidence: float
    match_reason: MatchReason
    matched_by: str = ""  # 모델명, ProductType, "fallback" 등

    def to_dict(self) -> dict[str, Any]:
        return {
            "template": self.template.to_dict(),
            "confidence": self.confidence,
            "matchReason": self.match_reason.value,
            "matchedBy": self.matched_by,
        }


@dataclass
class TemplateOption:
    """대체 템플릿 선택지 (export UI 드롭다운용)."""
    template: StickerTemplate
    category: TemplateCategory
    note: str = ""

    @property
    def is_recommended(self) -> bool:
        return self.category == TemplateCategory.RECOMMENDED

    @property
    def is_compatible(self) -> bool:
        return self.category != TemplateCategory.INCOMPATIBLE

    def to_dict(self, template_ref: str | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "category": self.category.value,
            "isRecommended": self.is_recommended,
            "isCompatible": self.is_compatible,
            "compatibilityNote": self.note,
        }
        if template_ref is not None:
            data["templateRef"] = template_ref
        else:
            data["template"] = self.template.to_dict(include_json=False)
        return data


# =============================================================================
# Render / Export Options
# =============================================================================

@dataclass
class RenderOptions:
    """
    단일 렌더 옵션.

    scale이 None이면 dpi에서 유도 (dpi / 96). 마지막 인터랙티브 zoom과 무관.
    """
    dpi: int = constants.CSS_DPI
    background: Background = Background.WHITE
    scale: float | None = None

    @property
    def effective_scale(self) -> float:
        if self.scale is not None:
            return self.scale
        return self.dpi / constants.CSS_DPI


@dataclass
class ExportJob:
    """배치 export 요청."""
    device_ids: list[int]
    format: ExportFormat = ExportFormat.PNG
    dpi: int = constants.DEFAULT_DPI
    background: Background = Background.WHITE
    layout: PdfLayout = PdfLayout.AUTO_FIT
    page_size: str = constants.DEFAULT_PAGE_SIZE
    connection_id: int | None = None
    template_id: int | None = None  # 지정 시 매칭 대신 강제 사용

    def render_options(self) -> RenderOptions:
        return RenderOptions(dpi=self.dpi, background=self.background)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceIds": list(self.device_ids),
            "format": self.format.value,
            "dpi": self.dpi,
            "background": self.background.value,
            "layout": self.layout.value,
            "pageSize": self.page_size,
            "connectionId": self.connection_id,
            "templateId": self.template_id,
        }


@dataclass
class DeviceExport:
    """디바이스 1개의 export 성공 결과."""
    device_id: int
    data: bytes
    mime_type: str
    filename: str
    width_mm: float = 0.0
    height_mm: float = 0.0
    device_name: str = ""
    template_id: int | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class DeviceFailure:
    """디바이스 1개의 export 실패."""
    device_id: int
    error: str
    code: str = ""
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "error": self.error,
            "code": self.code,
            "context": self.context,
        }


@dataclass
class ExportResult:
    """
    배치 export 결과.

    실패는 수집만 하고 배치를 중단하지 않는다.
    PDF 배치는 document에 합성된 PDF가 들어간다.
    """
    succeeded: list[DeviceExport] = field(default_factory=list)
    failed: list[DeviceFailure] = field(default_factory=list)
    cancelled: bool = False
    document: bytes | None = None
    run_id: str | None = None

    @property
    def summary(self) -> str:
        """사용자용 요약 문자열."""
        if not self.succeeded and self.failed:
            return "failed"
        if self.failed:
            return f"completed with {len(self.failed)} failures"
        if self.cancelled:
            return "cancelled"
        return "completed"

    def raise_for_status(self) -> None:
        """
        성공이 0건이고 실패가 있으면 PartialBatchFailure.

        Raises:
            PartialBatchFailure
        """
        if not self.succeeded and self.failed:
            raise PartialBatchFailure(
                failed=len(self.failed),
                failures=[f.to_dict() for f in self.failed],
            )

    def to_zip(self) -> bytes:
        """
        성공 결과를 ZIP으로 묶기.

        타임스탬프를 고정하여 동일 입력 → 동일 바이트.
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            seen: set[str] = set()
            for item in self.succeeded:
                name = item.filename
                if name in seen:
                    stem, dot, ext = name.rpartition(".")
                    name = f"{stem}-{item.device_id}{dot}{ext}"
                seen.add(name)
                info = zipfile.ZipInfo(name, date_time=(1980, 1, 1, 0, 0, 0))
                info.compress_type = zipfile.ZIP_DEFLATED
                zf.writestr(info, item.data)
        return buffer.getvalue()

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "summary": self.summary,
            "cancelled": self.cancelled,
            "succeeded": [
                {
                    "deviceId": s.device_id,
                    "filename": s.filename,
                    "mimeType": s.mime_type,
                    "size": len(s.data),
                    "warnings": list(s.warnings),
                }
                for s in self.succeeded
            ],
            "failed": [f.to_dict() for f in self.failed],
        }


# =============================================================================
# Settings (default.yaml)
# =============================================================================

@dataclass
class ExportSettings:
    """export: 섹션."""
    default_dpi: int = constants.DEFAULT_DPI
    min_dpi: int = constants.MIN_DPI
    max_dpi: int = constants.MAX_DPI
    default_background: str = Background.WHITE.value
    max_devices_per_request: int = constants.MAX_DEVICES_PER_REQUEST
    concurrency: int = 1  # 1 = 순차 처리
    image_fetch_timeout: float = 5.0
    image_fetch_retries: int = 2
    image_cache_size: int = 64  # ImageLoader URL LRU 항목 수

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "ExportSettings":
        section = config.get("export", {}) or {}
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class PdfSettings:
    """pdf: 섹션."""
    horizontal_margin_mm: float = constants.PDF_HORIZONTAL_MARGIN_MM
    vertical_margin_mm: float = constants.PDF_VERTICAL_MARGIN_MM
    fit_tolerance_mm: float = constants.PDF_FIT_TOLERANCE_MM
    default_page_size: str = constants.DEFAULT_PAGE_SIZE

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "PdfSettings":
        section = config.get("pdf", {}) or {}
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class DesignerSettings:
    """designer: 섹션."""
    history_capacity: int = constants.HISTORY_CAPACITY

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "DesignerSettings":
        section = config.get("designer", {}) or {}
        known = {k: v for k, v in section.items() if k in cls.__dataclass_fields__}
        return cls(**known)


# =============================================================================
# Run Log
# =============================================================================

@dataclass
class WarningLog:
    """경고 이벤트 (요소 degrade, fallback 매칭 등)."""
    code: str
    message: str
    device_id: int | None = None
    element_id: str | None = None
    level: str = "warning"

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "device_id": self.device_id,
            "element_id": self.element_id,
        }


@dataclass
class ExportRunLog:
    """배치 1회 실행 로그."""
    run_id: str
    started_at: str
    format: str
    device_count: int
    finished_at: str | None = None
    result: str = "pending"  # pending | completed | partial | failed | cancelled
    succeeded: int = 0
    warnings: list[WarningLog] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "format": self.format,
            "device_count": self.device_count,
            "result": self.result,
            "succeeded": self.succeeded,
            "warnings": [w.to_dict() for w in self.warnings],
            "failures": list(self.failures),
        }
