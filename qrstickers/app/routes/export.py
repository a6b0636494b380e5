"""
Export Routes: 스티커 파일 다운로드.

- POST /api/export/device/{device_id} → PNG/SVG 1개
- POST /api/export/bulk-devices → 클라이언트 렌더용 참조 기반 데이터
- POST /api/export/batch → ZIP (PNG/SVG) 또는 PDF 1개
"""

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from qrstickers.app.errors import to_http_exception
from qrstickers.core.ids import pdf_filename, zip_filename
from qrstickers.domain.constants import DEFAULT_DPI, DEFAULT_PAGE_SIZE, get_mime_type
from qrstickers.domain.errors import StickerExportError
from qrstickers.domain.schemas import Background, ExportFormat, ExportJob, PdfLayout
from qrstickers.export.bulk import BatchExporter

logger = logging.getLogger(__name__)

api_router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class DeviceExportRequest(BaseModel):
    format: ExportFormat = ExportFormat.PNG
    dpi: int = DEFAULT_DPI
    background: Background = Background.WHITE
    template_id: int | None = None
    connection_id: int | None = None


class BulkDevicesRequest(BaseModel):
    device_ids: list[int] = Field(default_factory=list)
    connection_id: int


class BatchExportRequest(BaseModel):
    device_ids: list[int] = Field(default_factory=list)
    format: ExportFormat = ExportFormat.PNG
    dpi: int = DEFAULT_DPI
    background: Background = Background.WHITE
    layout: PdfLayout = PdfLayout.AUTO_FIT
    page_size: str = DEFAULT_PAGE_SIZE
    connection_id: int | None = None
    template_id: int | None = None

    def to_job(self) -> ExportJob:
        return ExportJob(
            device_ids=list(self.device_ids),
            format=self.format,
            dpi=self.dpi,
            background=self.background,
            layout=self.layout,
            page_size=self.page_size,
            connection_id=self.connection_id,
            template_id=self.template_id,
        )


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


# =============================================================================
# API Endpoints
# =============================================================================

@api_router.post("/device/{device_id}")
async def export_device(request: Request, device_id: int, body: DeviceExportRequest) -> Response:
    """
    디바이스 1개 스티커 다운로드.

    Raises:
        HTTPException: 404 (디바이스/템플릿 없음), 422 (옵션/매칭 실패)
    """
    exporter: BatchExporter = request.app.state.exporter
    try:
        export = await exporter.export_device(
            device_id,
            fmt=body.format,
            dpi=body.dpi,
            background=body.background,
            template_id=body.template_id,
            connection_id=body.connection_id,
        )
    except StickerExportError as e:
        raise to_http_exception(e) from e

    headers = _attachment(export.filename)
    if export.warnings:
        headers["X-Export-Warnings"] = str(len(export.warnings))
    return Response(content=export.data, media_type=export.mime_type, headers=headers)


@api_router.post("/bulk-devices")
async def bulk_devices(request: Request, body: BulkDevicesRequest) -> dict[str, Any]:
    """여러 디바이스의 export context (공유 엔티티는 ref로 중복 제거)."""
    exporter: BatchExporter = request.app.state.exporter
    try:
        return exporter.build_bulk_response(body.device_ids, body.connection_id)
    except StickerExportError as e:
        raise to_http_exception(e) from e


@api_router.post("/batch")
async def export_batch(request: Request, body: BatchExportRequest) -> Response:
    """
    배치 export.

    일부 디바이스 실패는 X-Export-Summary 헤더로 알리고 성공분만 반환.
    전부 실패하면 422 (PARTIAL_BATCH_FAILURE).
    """
    exporter: BatchExporter = request.app.state.exporter
    job = body.to_job()
    try:
        result = await exporter.run_batch(job)
        result.raise_for_status()
    except StickerExportError as e:
        raise to_http_exception(e) from e

    count = len(result.succeeded)
    if job.format == ExportFormat.PDF:
        content = result.document or b""
        media_type = get_mime_type("pdf")
        filename = pdf_filename(count)
    else:
        content = result.to_zip()
        media_type = get_mime_type("zip")
        filename = zip_filename(count)

    headers = _attachment(filename)
    headers["X-Export-Summary"] = result.summary
    if result.run_id:
        headers["X-Export-Run-Id"] = result.run_id
    if result.failed:
        headers["X-Export-Failed"] = ",".join(str(f.device_id) for f in result.failed)
    logger.info(f"Batch download {filename}: {result.summary}")
    return Response(content=content, media_type=media_type, headers=headers)
