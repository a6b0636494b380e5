"""
Bulk Export Orchestrator.

흐름 (run_batch):
1. 옵션 검증 (디바이스 수, DPI, 페이지 크기)
2. export context 조회 (없는 디바이스는 실패로 기록)
3. 템플릿 매칭 (ProductType 그룹당 1회)
4. PDF면 렌더링 전에 페이지 맞춤 검사 → 실패 시 전체 reject
5. 디바이스별 렌더 (순차 또는 제한된 동시성), 실패는 기록 후 계속
6. PDF 합성 / 결과 집계 / 실행 로그

규칙:
- 디바이스 1개의 실패가 배치를 중단하지 않음
- 취소는 디바이스 사이에서만 확인 (진행 중인 디바이스는 끝까지)
- 결과 순서는 요청한 device_ids 순서
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from qrstickers.core.binding import extract_custom_image_ids
from qrstickers.core.document import parse_template
from qrstickers.core.ids import (
    export_filename,
    image_ref,
    network_ref,
    organization_ref,
    sanitize_for_log,
    template_ref,
)
from qrstickers.core.logging import (
    complete_export_log,
    create_export_log,
    emit_warning,
    record_failure,
    save_export_log,
)
from qrstickers.domain.constants import PAGE_SIZES_MM, get_mime_type
from qrstickers.domain.errors import (
    ErrorCodes,
    InvalidExportOptionsError,
    StickerExportError,
    TemplateNotFoundError,
)
from qrstickers.domain.schemas import (
    Background,
    DeviceExport,
    DeviceFailure,
    ExportFormat,
    ExportJob,
    ExportResult,
    ExportRunLog,
    ExportSettings,
    PdfSettings,
    RenderOptions,
    StickerTemplate,
    TemplateMatch,
)
from qrstickers.export.context import (
    UNNAMED_DEVICE,
    DeviceExportContext,
    InventoryRepository,
    load_export_context,
)
from qrstickers.render.images import ImageLoader
from qrstickers.render.pdf import PdfSticker, StickerSize, check_page_fit, compose_pdf
from qrstickers.render.renderer import StickerRenderer
from qrstickers.templates.matcher import TemplateMatcher
from qrstickers.templates.store import TemplateRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Progress
# =============================================================================

@dataclass
class ExportProgress:
    """
    배치 진행 상태 + 취소 플래그.

    단일 이벤트 루프에서만 갱신되므로 별도 락이 필요 없다.
    """
    total: int = 0
    completed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return round(100.0 * self.completed / self.total, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "percent": self.percent,
        }


ProgressCallback = Callable[[ExportProgress], None]


# =============================================================================
# Batch Exporter
# =============================================================================

class BatchExporter:
    """
    여러 디바이스 스티커 export.

    Usage:
        exporter = BatchExporter(inventory, store)
        result = await exporter.run_batch(ExportJob(device_ids=[1, 2, 3]))
        result.raise_for_status()
        archive = result.to_zip()
    """

    def __init__(
        self,
        inventory: InventoryRepository,
        templates: TemplateRepository,
        renderer: StickerRenderer | None = None,
        settings: ExportSettings | None = None,
        pdf_settings: PdfSettings | None = None,
        logs_dir: Path | None = None,
    ):
        self.inventory = inventory
        self.templates = templates
        self.settings = settings or ExportSettings()
        self.pdf_settings = pdf_settings or PdfSettings()
        self.renderer = renderer or StickerRenderer(
            image_loader=ImageLoader(
                timeout=self.settings.image_fetch_timeout,
                retries=self.settings.image_fetch_retries,
                cache_size=self.settings.image_cache_size,
            ),
            image_timeout=self.settings.image_fetch_timeout,
        )
        self.matcher = TemplateMatcher(templates)
        self.logs_dir = logs_dir

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_job(self, job: ExportJob) -> None:
        """
        Raises:
            InvalidExportOptionsError
        """
        if not job.device_ids:
            raise InvalidExportOptionsError(reason="no devices selected")
        if len(job.device_ids) > self.settings.max_devices_per_request:
            raise InvalidExportOptionsError(
                reason="too many devices",
                count=len(job.device_ids),
                max_devices=self.settings.max_devices_per_request,
            )
        self.validate_dpi(job.dpi)
        if job.format == ExportFormat.PDF and job.page_size.lower() not in PAGE_SIZES_MM:
            raise InvalidExportOptionsError(reason="unknown page size", page_size=job.page_size)

    def validate_dpi(self, dpi: int) -> None:
        if not self.settings.min_dpi <= dpi <= self.settings.max_dpi:
            raise InvalidExportOptionsError(
                reason="dpi out of range",
                dpi=dpi,
                min_dpi=self.settings.min_dpi,
                max_dpi=self.settings.max_dpi,
            )

    # =========================================================================
    # Single Device
    # =========================================================================

    async def export_device(
        self,
        device_id: int,
        fmt: ExportFormat = ExportFormat.PNG,
        dpi: int | None = None,
        background: Background = Background.WHITE,
        template_id: int | None = None,
        connection_id: int | None = None,
    ) -> DeviceExport:
        """
        디바이스 1개 export (PNG/SVG). 에러는 그대로 전파.

        Raises:
            DeviceNotFoundError, TemplateNotFoundError, NoCompatibleTemplateError,
            InvalidExportOptionsError, RenderError
        """
        if fmt == ExportFormat.PDF:
            raise InvalidExportOptionsError(reason="single device export supports png and svg only")
        dpi = dpi or self.settings.default_dpi
        self.validate_dpi(dpi)

        context = load_export_context(self.inventory, device_id, connection_id)
        if template_id is not None:
            template = self._require_template(template_id)
        else:
            template = self.matcher.match(context.device, connection_id).template
        return await self._render_device(context, template, fmt, RenderOptions(dpi=dpi, background=background))

    def _require_template(self, template_id: int) -> StickerTemplate:
        template = self.templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id=template_id, hint="select a template manually")
        return template

    async def _render_device(
        self,
        context: DeviceExportContext,
        template: StickerTemplate,
        fmt: ExportFormat,
        options: RenderOptions,
    ) -> DeviceExport:
        device = context.device
        document = parse_template(template.template_json, template.page_width_mm, template.page_height_mm)
        output = await self.renderer.render(
            document, context.to_data_context(), options, fmt, device_id=device.id
        )
        return DeviceExport(
            device_id=device.id,
            data=output.data,
            mime_type=output.mime_type,
            filename=export_filename(device.serial or str(device.id), fmt.value, options.dpi),
            width_mm=document.width_mm,
            height_mm=document.height_mm,
            device_name=device.name,
            template_id=template.id,
            warnings=output.warnings,
        )

    # =========================================================================
    # Batch
    # =========================================================================

    async def run_batch(
        self,
        job: ExportJob,
        progress: ExportProgress | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ExportResult:
        """
        배치 export.

        Args:
            job: ExportJob
            progress: 외부에서 취소/조회할 진행 상태 (없으면 새로 생성)
            on_progress: 디바이스 1개 끝날 때마다 호출

        Returns:
            ExportResult (실패는 failed에 수집)

        Raises:
            InvalidExportOptionsError: 옵션 오류 (렌더 전)
            TemplateNotFoundError: job.template_id가 없음 (렌더 전)
            PageFitError: PDF 페이지에 안 맞는 스티커 (렌더 전)
        """
        self.validate_job(job)
        progress = progress or ExportProgress()
        progress.total = len(job.device_ids)
        run_log = create_export_log(job)
        result = ExportResult(run_id=run_log.run_id)
        failures: dict[int, DeviceFailure] = {}

        forced_template = self._require_template(job.template_id) if job.template_id is not None else None

        # 2. context
        contexts: dict[int, DeviceExportContext] = {}
        for device_id in job.device_ids:
            try:
                contexts[device_id] = load_export_context(self.inventory, device_id, job.connection_id)
            except StickerExportError as e:
                failures[device_id] = _failure(device_id, e)

        # 3. matching
        templates: dict[int, StickerTemplate] = {}
        if forced_template is not None:
            templates = {device_id: forced_template for device_id in contexts}
        else:
            batch = self.matcher.match_batch([ctx.device for ctx in contexts.values()], job.connection_id)
            for device_id, match in batch.matches.items():
                templates[device_id] = match.template
                _log_match(run_log, device_id, match)
            for device_id, error in batch.errors.items():
                failures[device_id] = _failure(device_id, error)

        # 4. page fit (fail fast)
        if job.format == ExportFormat.PDF:
            check_page_fit(
                [
                    StickerSize(
                        device_id=device_id,
                        device_name=contexts[device_id].device.name,
                        width_mm=templates[device_id].page_width_mm,
                        height_mm=templates[device_id].page_height_mm,
                    )
                    for device_id in job.device_ids
                    if device_id in templates
                ],
                job.page_size,
                self.pdf_settings,
            )

        for device_id in failures:
            progress.completed += 1
            progress.failed += 1
        if failures and on_progress:
            on_progress(progress)

        # 5. render
        outputs = await self._render_all(job, contexts, templates, progress, on_progress, failures)

        # 6. aggregate (요청 순서)
        stickers: list[PdfSticker] = []
        for device_id in job.device_ids:
            if device_id in failures:
                failure = failures[device_id]
                result.failed.append(failure)
                record_failure(run_log, device_id, {"code": failure.code, **failure.context})
                continue
            output = outputs.get(device_id)
            if output is None:
                continue  # 취소로 건너뜀
            if isinstance(output, PdfSticker):
                stickers.append(output)
                result.succeeded.append(
                    DeviceExport(
                        device_id=device_id,
                        data=b"",
                        mime_type=get_mime_type("pdf"),
                        filename="",
                        width_mm=output.width_mm,
                        height_mm=output.height_mm,
                        device_name=contexts[device_id].device.name,
                        template_id=templates[device_id].id,
                        warnings=output.warnings,
                    )
                )
            else:
                result.succeeded.append(output)
            for warning in output.warnings:
                emit_warning(run_log, ErrorCodes.IMAGE_LOAD_FAILED, warning, device_id=device_id)

        result.cancelled = progress.cancelled
        if job.format == ExportFormat.PDF and stickers:
            result.document = compose_pdf(stickers, job.page_size, job.layout, self.pdf_settings)

        complete_export_log(run_log, succeeded=len(result.succeeded), cancelled=result.cancelled)
        if self.logs_dir is not None:
            save_export_log(run_log, self.logs_dir)

        logger.info(
            f"Batch {run_log.run_id} {result.summary}: "
            f"{len(result.succeeded)} succeeded, {len(result.failed)} failed, {progress.skipped} skipped"
        )
        return result

    async def _render_all(
        self,
        job: ExportJob,
        contexts: dict[int, DeviceExportContext],
        templates: dict[int, StickerTemplate],
        progress: ExportProgress,
        on_progress: ProgressCallback | None,
        failures: dict[int, DeviceFailure],
    ) -> dict[int, DeviceExport | PdfSticker]:
        semaphore = asyncio.Semaphore(max(1, self.settings.concurrency))
        options = job.render_options()
        outputs: dict[int, DeviceExport | PdfSticker] = {}

        async def _one(device_id: int) -> None:
            async with semaphore:
                if progress.cancelled:
                    progress.skipped += 1
                    return
                context = contexts[device_id]
                template = templates[device_id]
                try:
                    if job.format == ExportFormat.PDF:
                        outputs[device_id] = await self._render_pdf_sticker(context, template, options)
                    else:
                        outputs[device_id] = await self._render_device(context, template, job.format, options)
                    progress.succeeded += 1
                except StickerExportError as e:
                    logger.error(
                        f"Export failed for device {device_id} "
                        f"({sanitize_for_log(context.device.name)}): {e}"
                    )
                    failures[device_id] = _failure(device_id, e)
                    progress.failed += 1
                except Exception as e:
                    logger.error(f"Unexpected export failure for device {device_id}: {e}", exc_info=True)
                    failures[device_id] = DeviceFailure(
                        device_id=device_id,
                        error=str(e),
                        code=ErrorCodes.RENDER_FAILED,
                        context={"device_id": device_id, "stage": "unknown"},
                    )
                    progress.failed += 1
                progress.completed += 1
                if on_progress:
                    on_progress(progress)

        pending = [device_id for device_id in job.device_ids if device_id in templates]
        await asyncio.gather(*(_one(device_id) for device_id in pending))
        return outputs

    async def _render_pdf_sticker(
        self,
        context: DeviceExportContext,
        template: StickerTemplate,
        options: RenderOptions,
    ) -> PdfSticker:
        document = parse_template(template.template_json, template.page_width_mm, template.page_height_mm)
        image, warnings = await self.renderer.render_image(
            document, context.to_data_context(), options, device_id=context.device.id
        )
        return PdfSticker(
            device_id=context.device.id,
            width_mm=template.page_width_mm,
            height_mm=template.page_height_mm,
            image=image,
            warnings=warnings,
        )

    # =========================================================================
    # Bulk Response (클라이언트 렌더용, 참조 중복 제거)
    # =========================================================================

    def build_bulk_response(self, device_ids: list[int], connection_id: int) -> dict[str, Any]:
        """
        여러 디바이스의 export context를 참조 기반으로 묶은 응답.

        공유 엔티티(템플릿/네트워크/조직/이미지)는 side table에 한 번만 넣고
        디바이스 레코드는 ref(tpl_12, net_3 ...)만 가진다.

        Raises:
            InvalidExportOptionsError: 빈 목록, 최대 개수 초과
            DeviceNotFoundError: 연결 자체가 없음
        """
        if not device_ids:
            raise InvalidExportOptionsError(reason="no devices selected")
        if len(device_ids) > self.settings.max_devices_per_request:
            raise InvalidExportOptionsError(
                reason="too many devices",
                count=len(device_ids),
                max_devices=self.settings.max_devices_per_request,
            )

        connection = self.inventory.get_connection(connection_id)
        if connection is None:
            raise InvalidExportOptionsError(reason="unknown connection", connection_id=connection_id)

        devices: dict[str, Any] = {}
        template_table: dict[str, Any] = {}
        network_table: dict[str, Any] = {}
        organization_table: dict[str, Any] = {}
        missing: list[int] = []
        contexts: list[DeviceExportContext] = []

        for device_id in device_ids:
            try:
                contexts.append(load_export_context(self.inventory, device_id, connection_id))
            except StickerExportError:
                missing.append(device_id)

        batch = self.matcher.match_batch([c.device for c in contexts], connection_id)

        # ProductType별 대체 템플릿 (그룹당 1회)
        options_by_type: dict[str, list[dict[str, Any]]] = {}
        for context in contexts:
            type_key = (context.device.product_type or "").lower()
            if type_key in options_by_type:
                continue
            options = self.matcher.list_alternates(context.device, connection_id, exclude_matched=False)
            for option in options:
                template_table.setdefault(
                    template_ref(option.template.id), option.template.to_dict()
                )
            options_by_type[type_key] = [
                option.to_dict(template_ref=template_ref(option.template.id)) for option in options
            ]

        for context in contexts:
            device = context.device
            record: dict[str, Any] = device.to_dict()
            record["name"] = device.name or UNNAMED_DEVICE

            record["networkRef"] = None
            if context.network is not None:
                ref = network_ref(context.network.id)
                network_table.setdefault(ref, context.network.to_dict())
                record["networkRef"] = ref

            record["organizationRef"] = None
            if context.organization is not None:
                ref = organization_ref(context.organization.id)
                organization_table.setdefault(ref, context.organization.to_dict())
                record["organizationRef"] = ref

            match = batch.matches.get(device.id)
            if match is not None:
                ref = template_ref(match.template.id)
                template_table.setdefault(ref, match.template.to_dict())
                record["matchedTemplateRef"] = ref
                record["matchReason"] = match.match_reason.value
                record["confidence"] = match.confidence
            else:
                record["matchedTemplateRef"] = None
                record["matchReason"] = None
                record["confidence"] = 0.0
                error = batch.errors.get(device.id)
                if error is not None:
                    record["matchError"] = error.to_dict()

            type_key = (device.product_type or "").lower()
            record["alternateTemplateRefs"] = [
                option["templateRef"]
                for option in options_by_type.get(type_key, [])
                if option["templateRef"] != record["matchedTemplateRef"]
            ]
            devices[str(device.id)] = record

        # 포함된 템플릿이 참조하는 커스텀 이미지만
        used_image_ids: set[int] = set()
        for template in template_table.values():
            used_image_ids.update(extract_custom_image_ids(template.get("templateJson", "")))
        uploaded_images = {
            image_ref(image.id): image.to_dict()
            for image in self.inventory.list_custom_images(connection_id)
            if image.id in used_image_ids
        }

        logger.info(
            f"Bulk export data for {len(devices)} devices: {len(template_table)} templates, "
            f"{len(network_table)} networks, {len(organization_table)} organizations, "
            f"{len(uploaded_images)} images"
        )

        return {
            "devices": devices,
            "templates": template_table,
            "networks": network_table,
            "organizations": organization_table,
            "uploadedImages": uploaded_images,
            "connection": connection.to_dict(),
            "globalVariables": self.inventory.get_global_variables(connection_id),
            "templateOptionsByProductType": options_by_type,
            "missingDeviceIds": missing,
        }


def _failure(device_id: int, error: StickerExportError) -> DeviceFailure:
    return DeviceFailure(
        device_id=device_id,
        error=str(error),
        code=error.code,
        context=dict(error.context),
    )


def _log_match(run_log: ExportRunLog, device_id: int, match: TemplateMatch) -> None:
    if match.confidence < 0.5:
        emit_warning(
            run_log,
            "LOW_CONFIDENCE_MATCH",
            f"template {match.template.id} matched by {match.match_reason.value}",
            device_id=device_id,
        )
