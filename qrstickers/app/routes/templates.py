"""
Template Routes: 디바이스별 템플릿 매칭 조회.

- GET /api/templates/match/{device_id} → 매칭 결과 (reason, confidence)
- GET /api/templates/alternates/{device_id} → 선택 가능한 다른 템플릿
"""

from typing import Any

from fastapi import APIRouter, Request

from qrstickers.app.errors import to_http_exception
from qrstickers.domain.errors import StickerExportError
from qrstickers.export.bulk import BatchExporter
from qrstickers.export.context import load_export_context

api_router = APIRouter()


@api_router.get("/match/{device_id}")
async def match_template(
    request: Request, device_id: int, connection_id: int | None = None
) -> dict[str, Any]:
    """
    디바이스에 매칭되는 템플릿.

    Raises:
        HTTPException: 404 (디바이스 없음), 422 (호환 템플릿 없음)
    """
    exporter: BatchExporter = request.app.state.exporter
    try:
        context = load_export_context(exporter.inventory, device_id, connection_id)
        match = exporter.matcher.match(context.device, connection_id)
    except StickerExportError as e:
        raise to_http_exception(e) from e
    return match.to_dict()


@api_router.get("/alternates/{device_id}")
async def list_alternates(
    request: Request,
    device_id: int,
    connection_id: int | None = None,
    exclude_id: int | None = None,
) -> list[dict[str, Any]]:
    """대체 템플릿 목록 (Recommended → Compatible → Incompatible)."""
    exporter: BatchExporter = request.app.state.exporter
    try:
        context = load_export_context(exporter.inventory, device_id, connection_id)
    except StickerExportError as e:
        raise to_http_exception(e) from e
    options = exporter.matcher.list_alternates(context.device, connection_id, exclude_id)
    return [option.to_dict() for option in options]
