"""
ID 생성: run_id, 참조 ID, export 파일명

규칙:
- 참조 ID는 결정론적: 같은 엔티티 → 같은 ref (tpl_12)
- run_id만 매번 새로 발급
- 로그에 들어가는 외부 문자열은 sanitize_for_log 통과
"""

import re
import uuid
from datetime import UTC, datetime

from qrstickers.domain.constants import (
    IMAGE_REF_PREFIX,
    NETWORK_REF_PREFIX,
    ORGANIZATION_REF_PREFIX,
    TEMPLATE_REF_PREFIX,
)

_SLUG_PATTERN = re.compile(r"[^a-z0-9]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

LOG_VALUE_MAX_LENGTH = 200


def generate_run_id() -> str:
    """
    Run ID 생성.

    포맷: RUN-{timestamp}-{uuid[:8]}
    """
    now = datetime.now(UTC)
    timestamp = now.strftime("%Y%m%d%H%M%S")
    unique = uuid.uuid4().hex[:8]

    return f"RUN-{timestamp}-{unique}"


# =============================================================================
# Reference IDs (bulk 응답 중복 제거용)
# =============================================================================

def template_ref(template_id: int) -> str:
    return f"{TEMPLATE_REF_PREFIX}{template_id}"


def network_ref(network_id: int) -> str:
    return f"{NETWORK_REF_PREFIX}{network_id}"


def organization_ref(organization_id: int) -> str:
    return f"{ORGANIZATION_REF_PREFIX}{organization_id}"


def image_ref(image_id: int) -> str:
    return f"{IMAGE_REF_PREFIX}{image_id}"


# =============================================================================
# Filenames
# =============================================================================

def slugify(value: str) -> str:
    """파일명용 slug: 소문자, [a-z0-9] 외 문자는 '-'."""
    return _SLUG_PATTERN.sub("-", (value or "").lower()) or "device"


def export_filename(serial: str, fmt: str, dpi: int | None = None) -> str:
    """
    스티커 파일명.

    - png: sticker-<slug>-<dpi>dpi.png
    - 그 외: sticker-<slug>.<fmt>
    """
    slug = slugify(serial)
    if fmt == "png" and dpi is not None:
        return f"sticker-{slug}-{dpi}dpi.png"
    return f"sticker-{slug}.{fmt}"


def zip_filename(count: int) -> str:
    return f"device-stickers-{count}-devices.zip"


def pdf_filename(count: int) -> str:
    return f"device-stickers-{count}-devices.pdf"


# =============================================================================
# Log Sanitizing
# =============================================================================

def sanitize_for_log(value: object) -> str:
    """
    로그 인젝션 방지.

    - CR/LF 및 제어문자 제거
    - 최대 200자 (초과 시 '...')
    """
    if value is None:
        return ""
    text = _CONTROL_CHARS.sub("", str(value))
    if len(text) > LOG_VALUE_MAX_LENGTH:
        return text[:LOG_VALUE_MAX_LENGTH] + "..."
    return text
