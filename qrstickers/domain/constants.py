"""
Domain Constants: 엔진 전역 상수.

단위 변환 상수, 페이지 크기, PDF 여백, 참조 ID 규칙 등.
"""

# =============================================================================
# Units (단위 변환)
# =============================================================================
# 96 dpi 기준: 1mm = 96 / 25.4 px
# 인터랙티브 캔버스와 export가 같은 상수를 공유해야 함

CSS_DPI = 96
MM_PER_INCH = 25.4
MM_TO_PX = 3.7795275591
PT_PER_INCH = 72

# =============================================================================
# Page Sizes (mm)
# =============================================================================

PAGE_SIZES_MM: dict[str, tuple[float, float]] = {
    "a4": (210.0, 297.0),
    "a5": (148.0, 210.0),
    "a6": (105.0, 148.0),
    "4x6": (101.6, 152.4),
    "letter": (215.9, 279.4),
    "legal": (215.9, 355.6),
}

DEFAULT_PAGE_SIZE = "A4"

# =============================================================================
# PDF Layout (PDF 여백 정책)
# =============================================================================
# 좌우 여백 없음, 상하 2mm, 맞춤 판정에 2mm 허용 오차

PDF_HORIZONTAL_MARGIN_MM = 0.0
PDF_VERTICAL_MARGIN_MM = 2.0
PDF_FIT_TOLERANCE_MM = 2.0

# =============================================================================
# Render Defaults
# =============================================================================

DEFAULT_DPI = 300
MIN_DPI = 72
MAX_DPI = 1200

DEFAULT_FONT_FAMILY = "Arial"
DEFAULT_FONT_SIZE_PT = 16.0
DEFAULT_FILL = "#000000"
DEFAULT_QR_ECC_LEVEL = "Q"
DEFAULT_QR_QUIET_ZONE = 2

PLACEHOLDER_FILL = "#e0e0e0"
PLACEHOLDER_STROKE = "#999999"

# =============================================================================
# Template Document
# =============================================================================

TEMPLATE_FORMAT_VERSION = "1.0"
TEMPLATE_NAME_MAX_LENGTH = 200

# =============================================================================
# Bulk Export
# =============================================================================

MAX_DEVICES_PER_REQUEST = 100

# 중복 제거 참조 ID 접두사: tpl_12, net_3 ...
TEMPLATE_REF_PREFIX = "tpl_"
NETWORK_REF_PREFIX = "net_"
ORGANIZATION_REF_PREFIX = "org_"
IMAGE_REF_PREFIX = "img_"

# =============================================================================
# Designer
# =============================================================================

HISTORY_CAPACITY = 50
MIN_ZOOM = 0.1
MAX_ZOOM = 10.0

# 요소 종류별 기본 크기 (mm, width x height)
DEFAULT_ELEMENT_SIZES_MM: dict[str, tuple[float, float]] = {
    "qrcode": (25.0, 25.0),
    "text": (50.0, 10.0),
    "image": (30.0, 30.0),
    "rect": (50.0, 30.0),
    "line": (50.0, 0.0),
}

# =============================================================================
# MIME Types
# =============================================================================

MIME_TYPES = {
    "png": "image/png",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "zip": "application/zip",
}


def get_mime_type(fmt: str) -> str:
    """포맷 이름 → MIME 타입 (알 수 없으면 octet-stream)."""
    return MIME_TYPES.get(fmt.lower(), "application/octet-stream")
