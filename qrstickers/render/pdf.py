"""
PDF Page Compositor: reportlab 기반.

여백 정책 (PdfSettings):
- 좌우 0mm, 상하 2mm
- 맞춤 판정에 2mm 허용 오차
- 스티커는 0° 또는 90° 중 하나로라도 들어가야 함, 아니면 렌더링 전에 PageFitError

레이아웃:
- auto-fit: 두 방향 중 페이지당 더 많이 들어가는 grid, 남는 공간은 균등 분배
- one-per-page: 페이지 중앙에 1개
"""

import io
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from PIL import Image
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as pdf_canvas

from qrstickers.core.ids import sanitize_for_log
from qrstickers.domain.constants import PAGE_SIZES_MM
from qrstickers.domain.errors import InvalidExportOptionsError, PageFitError
from qrstickers.domain.schemas import PdfLayout, PdfSettings

logger = logging.getLogger(__name__)


@dataclass
class StickerSize:
    """페이지 맞춤 검사 입력 (렌더 전)."""
    device_id: Any
    device_name: str
    width_mm: float
    height_mm: float


@dataclass
class PdfSticker:
    """합성 입력: 렌더된 스티커 이미지 + 물리 크기."""
    device_id: Any
    width_mm: float
    height_mm: float
    image: Image.Image
    warnings: list[str] = field(default_factory=list)  # degrade된 요소 경고


@dataclass
class GridLayout:
    """auto-fit grid 계산 결과."""
    columns: int
    rows: int
    rotated: bool
    cell_width_mm: float   # 페이지 위 점유 폭 (회전 반영)
    cell_height_mm: float
    spacing_x_mm: float
    spacing_y_mm: float

    @property
    def per_page(self) -> int:
        return self.columns * self.rows


# =============================================================================
# Page Geometry
# =============================================================================

def get_page_size(name: str) -> tuple[float, float]:
    """
    페이지 이름 → (width_mm, height_mm). 대소문자 무시.

    Raises:
        InvalidExportOptionsError: 알 수 없는 페이지 크기
    """
    size = PAGE_SIZES_MM.get((name or "").lower())
    if size is None:
        raise InvalidExportOptionsError(
            reason="unknown page size",
            page_size=name,
            supported=sorted(PAGE_SIZES_MM),
        )
    return size


def usable_area(page_mm: tuple[float, float], settings: PdfSettings | None = None) -> tuple[float, float]:
    settings = settings or PdfSettings()
    return (
        page_mm[0] - 2 * settings.horizontal_margin_mm,
        page_mm[1] - 2 * settings.vertical_margin_mm,
    )


def fits_page(
    width_mm: float,
    height_mm: float,
    page_mm: tuple[float, float],
    settings: PdfSettings | None = None,
) -> tuple[bool, bool]:
    """(0°로 들어가는지, 90°로 들어가는지)."""
    settings = settings or PdfSettings()
    usable_w, usable_h = usable_area(page_mm, settings)
    tol = settings.fit_tolerance_mm
    native = width_mm <= usable_w + tol and height_mm <= usable_h + tol
    rotated = height_mm <= usable_w + tol and width_mm <= usable_h + tol
    return native, rotated


def _shortfall(width_mm: float, height_mm: float, usable_w: float, usable_h: float, tol: float) -> float:
    """가장 덜 넘치는 방향 기준, 초과하는 최대 mm."""
    native = max(width_mm - (usable_w + tol), height_mm - (usable_h + tol), 0.0)
    rotated = max(height_mm - (usable_w + tol), width_mm - (usable_h + tol), 0.0)
    return round(min(native, rotated), 2)


def check_page_fit(
    stickers: list[StickerSize],
    page_size: str,
    settings: PdfSettings | None = None,
) -> None:
    """
    렌더링 전 페이지 맞춤 검사. 첫 번째로 안 맞는 스티커에서 실패.

    Raises:
        InvalidExportOptionsError: 알 수 없는 페이지 크기
        PageFitError: device_id, device_name, 스티커/가용 크기, shortfall_mm 포함
    """
    settings = settings or PdfSettings()
    page_mm = get_page_size(page_size)
    usable_w, usable_h = usable_area(page_mm, settings)

    for sticker in stickers:
        native, rotated = fits_page(sticker.width_mm, sticker.height_mm, page_mm, settings)
        if native or rotated:
            continue
        shortfall = _shortfall(
            sticker.width_mm, sticker.height_mm, usable_w, usable_h, settings.fit_tolerance_mm
        )
        logger.warning(
            f"Sticker for device {sticker.device_id} ({sanitize_for_log(sticker.device_name)}) "
            f"{sticker.width_mm}x{sticker.height_mm}mm does not fit {page_size} "
            f"(usable {usable_w}x{usable_h}mm, short by {shortfall}mm)"
        )
        raise PageFitError(
            device_id=sticker.device_id,
            device_name=sticker.device_name,
            page_size=page_size,
            sticker_width_mm=sticker.width_mm,
            sticker_height_mm=sticker.height_mm,
            usable_width_mm=usable_w,
            usable_height_mm=usable_h,
            shortfall_mm=shortfall,
        )


# =============================================================================
# Layout
# =============================================================================

def compute_grid(
    width_mm: float,
    height_mm: float,
    page_mm: tuple[float, float],
    settings: PdfSettings | None = None,
) -> GridLayout:
    """
    auto-fit grid. 0°/90° 중 페이지당 개수가 많은 쪽 (같으면 0°).

    허용 오차 안에서만 맞는 경우에도 최소 1개는 배치한다.
    """
    settings = settings or PdfSettings()
    usable_w, usable_h = usable_area(page_mm, settings)
    native_fits, rotated_fits = fits_page(width_mm, height_mm, page_mm, settings)

    def _grid(cell_w: float, cell_h: float, rotated: bool) -> GridLayout:
        columns = max(1, math.floor(usable_w / cell_w)) if cell_w > 0 else 1
        rows = max(1, math.floor(usable_h / cell_h)) if cell_h > 0 else 1
        return GridLayout(
            columns=columns,
            rows=rows,
            rotated=rotated,
            cell_width_mm=cell_w,
            cell_height_mm=cell_h,
            spacing_x_mm=max(0.0, (usable_w - columns * cell_w) / (columns + 1)),
            spacing_y_mm=max(0.0, (usable_h - rows * cell_h) / (rows + 1)),
        )

    candidates: list[GridLayout] = []
    if native_fits:
        candidates.append(_grid(width_mm, height_mm, False))
    if rotated_fits:
        candidates.append(_grid(height_mm, width_mm, True))
    if not candidates:
        candidates.append(_grid(width_mm, height_mm, False))

    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.per_page > best.per_page:
            best = candidate
    return best


def stickers_per_page(
    width_mm: float,
    height_mm: float,
    page_size: str,
    layout: PdfLayout,
    settings: PdfSettings | None = None,
) -> int:
    if layout == PdfLayout.ONE_PER_PAGE:
        return 1
    return compute_grid(width_mm, height_mm, get_page_size(page_size), settings).per_page


# =============================================================================
# Composition
# =============================================================================

def compose_pdf(
    stickers: list[PdfSticker],
    page_size: str,
    layout: PdfLayout = PdfLayout.AUTO_FIT,
    settings: PdfSettings | None = None,
) -> bytes:
    """
    렌더된 스티커들을 PDF 페이지에 배치.

    크기가 다른 스티커가 이어지면 새 페이지에서 새 grid를 시작한다.
    invariant 모드 → 같은 입력이면 같은 바이트.

    Args:
        stickers: 렌더 순서대로의 스티커
        page_size: A4, A5, A6, 4x6, Letter, Legal
        layout: auto-fit | one-per-page
        settings: 여백/허용 오차

    Returns:
        PDF bytes

    Raises:
        PageFitError, InvalidExportOptionsError
    """
    settings = settings or PdfSettings()
    page_mm = get_page_size(page_size)
    check_page_fit(
        [StickerSize(s.device_id, "", s.width_mm, s.height_mm) for s in stickers],
        page_size,
        settings,
    )

    buffer = io.BytesIO()
    pdf = pdf_canvas.Canvas(buffer, pagesize=(page_mm[0] * mm, page_mm[1] * mm), invariant=1)
    pdf.setTitle("Device stickers")
    pdf.setCreator("qrstickers")

    if layout == PdfLayout.ONE_PER_PAGE:
        pages = _one_per_page(pdf, stickers, page_mm, settings)
    else:
        pages = _auto_fit(pdf, stickers, page_mm, settings)

    if pages == 0:
        pdf.showPage()  # 빈 문서도 유효한 PDF
    pdf.save()
    logger.info(f"Composed {len(stickers)} stickers onto {max(pages, 1)} {page_size} pages ({layout.value})")
    return buffer.getvalue()


def _one_per_page(
    pdf: pdf_canvas.Canvas,
    stickers: list[PdfSticker],
    page_mm: tuple[float, float],
    settings: PdfSettings,
) -> int:
    page_w, page_h = page_mm
    for sticker in stickers:
        native, _ = fits_page(sticker.width_mm, sticker.height_mm, page_mm, settings)
        rotated = not native
        box_w, box_h = (sticker.height_mm, sticker.width_mm) if rotated else (sticker.width_mm, sticker.height_mm)
        _draw(pdf, sticker, (page_w - box_w) / 2, (page_h - box_h) / 2, page_h, rotated)
        pdf.showPage()
    return len(stickers)


def _auto_fit(
    pdf: pdf_canvas.Canvas,
    stickers: list[PdfSticker],
    page_mm: tuple[float, float],
    settings: PdfSettings,
) -> int:
    pages = 0
    slot = 0
    current_size: tuple[float, float] | None = None
    grid: GridLayout | None = None

    for sticker in stickers:
        size = (sticker.width_mm, sticker.height_mm)
        if size != current_size or grid is None or slot >= grid.per_page:
            if slot > 0:
                pdf.showPage()
            if size != current_size or grid is None:
                grid = compute_grid(sticker.width_mm, sticker.height_mm, page_mm, settings)
                current_size = size
            pages += 1
            slot = 0

        column = slot % grid.columns
        row = slot // grid.columns
        x = settings.horizontal_margin_mm + grid.spacing_x_mm + column * (grid.cell_width_mm + grid.spacing_x_mm)
        y = settings.vertical_margin_mm + grid.spacing_y_mm + row * (grid.cell_height_mm + grid.spacing_y_mm)
        _draw(pdf, sticker, x, y, page_mm[1], grid.rotated)
        slot += 1

    if slot > 0:
        pdf.showPage()
    return pages


def _draw(
    pdf: pdf_canvas.Canvas,
    sticker: PdfSticker,
    x_mm: float,
    y_mm: float,
    page_h_mm: float,
    rotated: bool,
) -> None:
    """
    (x_mm, y_mm) = 페이지 좌상단 기준 박스 위치.

    reportlab 좌표는 좌하단 원점 → y 반전.
    rotated면 박스 크기는 (height, width)이고 이미지를 90° 회전해 그린다.
    """
    reader = ImageReader(sticker.image)
    w, h = sticker.width_mm, sticker.height_mm
    if not rotated:
        pdf.drawImage(reader, x_mm * mm, (page_h_mm - y_mm - h) * mm, width=w * mm, height=h * mm, mask="auto")
        return

    bottom = page_h_mm - y_mm - w
    pdf.saveState()
    pdf.translate((x_mm + h) * mm, bottom * mm)
    pdf.rotate(90)
    pdf.drawImage(reader, 0, 0, width=w * mm, height=h * mm, mask="auto")
    pdf.restoreState()
