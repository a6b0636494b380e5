"""
Geometry & Units: mm ↔ px 변환과 스티커 경계 좌표계.

규칙:
- 저장되는 좌표는 항상 mm (zoom과 무관)
- 변환 상수는 MM_TO_PX 하나만 사용 (캔버스/export 공통)
- export 배율은 DPI에서만 유도 (dpi / 96)
"""

from dataclasses import dataclass

from qrstickers.domain.constants import (
    CSS_DPI,
    MAX_ZOOM,
    MIN_ZOOM,
    MM_TO_PX,
    PT_PER_INCH,
)
from qrstickers.domain.errors import InvalidExportOptionsError


def mm_to_px(mm: float) -> float:
    """mm → 96dpi 기준 px."""
    return mm * MM_TO_PX


def px_to_mm(px: float) -> float:
    """96dpi 기준 px → mm."""
    return px / MM_TO_PX


def export_scale(dpi: int | float) -> float:
    """
    목표 DPI에 대한 렌더 배율.

    Raises:
        InvalidExportOptionsError: dpi <= 0
    """
    if dpi <= 0:
        raise InvalidExportOptionsError(dpi=dpi, reason="dpi must be positive")
    return dpi / CSS_DPI


def pt_to_px(pt: float, scale: float = 1.0) -> float:
    """폰트 pt → px (96dpi 기준) × scale."""
    return pt * CSS_DPI / PT_PER_INCH * scale


def clamp_zoom(zoom: float) -> float:
    return max(MIN_ZOOM, min(MAX_ZOOM, zoom))


def sticker_size_px(width_mm: float, height_mm: float, scale: float) -> tuple[int, int]:
    """페이지 크기(mm)를 주어진 배율의 정수 픽셀 크기로. 최소 1px."""
    width = max(1, round(mm_to_px(width_mm) * scale))
    height = max(1, round(mm_to_px(height_mm) * scale))
    return width, height


# =============================================================================
# Boundary Frame
# =============================================================================

@dataclass
class BoundaryFrame:
    """
    캔버스 px 공간 ↔ 스티커 기준 mm 공간.

    캔버스는 여백(margin)을 포함하고 zoom의 영향을 받는다.
    boundary offset은 zoom 적용 후의 스티커 좌상단 px 위치.

    Usage:
        frame = BoundaryFrame(width_mm=100, height_mm=50, margin_px=20)
        frame.set_zoom(2.0)
        x_mm, y_mm = frame.to_sticker(frame.to_canvas(10.0, 5.0))
    """
    width_mm: float
    height_mm: float
    margin_px: float = 20.0
    zoom: float = 1.0

    @property
    def offset_px(self) -> tuple[float, float]:
        return (self.margin_px * self.zoom, self.margin_px * self.zoom)

    @property
    def canvas_size_px(self) -> tuple[float, float]:
        """여백 포함 캔버스 크기."""
        return (
            mm_to_px(self.width_mm) * self.zoom + 2 * self.margin_px * self.zoom,
            mm_to_px(self.height_mm) * self.zoom + 2 * self.margin_px * self.zoom,
        )

    def set_zoom(self, zoom: float) -> float:
        """zoom 변경. 캔버스 크기/offset만 바뀌고 mm 좌표는 그대로."""
        self.zoom = clamp_zoom(zoom)
        return self.zoom

    def to_sticker(self, canvas_px: tuple[float, float]) -> tuple[float, float]:
        """캔버스 px → 스티커 기준 mm."""
        ox, oy = self.offset_px
        return (
            px_to_mm((canvas_px[0] - ox) / self.zoom),
            px_to_mm((canvas_px[1] - oy) / self.zoom),
        )

    def to_canvas(self, x_mm: float, y_mm: float) -> tuple[float, float]:
        """스티커 기준 mm → 캔버스 px."""
        ox, oy = self.offset_px
        return (
            mm_to_px(x_mm) * self.zoom + ox,
            mm_to_px(y_mm) * self.zoom + oy,
        )

    def contains(self, x_mm: float, y_mm: float) -> bool:
        return 0 <= x_mm <= self.width_mm and 0 <= y_mm <= self.height_mm
