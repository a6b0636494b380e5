"""
test_units.py - 좌표계 테스트

검증 포인트:
1. mm ↔ px 왕복 오차 1e-9 이하
2. zoom 변경은 mm 좌표를 바꾸지 않음
3. export 배율은 DPI에서만 유도
"""

import pytest

from qrstickers.core.units import (
    BoundaryFrame,
    clamp_zoom,
    export_scale,
    mm_to_px,
    pt_to_px,
    px_to_mm,
    sticker_size_px,
)
from qrstickers.domain.errors import InvalidExportOptionsError


class TestConversion:
    @pytest.mark.parametrize("mm", [0.0, 0.1, 1.0, 25.4, 100.0, 297.0, 1234.5678])
    def test_round_trip(self, mm):
        assert abs(px_to_mm(mm_to_px(mm)) - mm) <= 1e-9

    def test_inch_is_96px(self):
        assert mm_to_px(25.4) == pytest.approx(96.0, abs=1e-6)

    def test_pt_to_px(self):
        assert pt_to_px(72) == pytest.approx(96.0)
        assert pt_to_px(12, scale=2.0) == pytest.approx(32.0)

    def test_sticker_size_px(self):
        assert sticker_size_px(100, 50, 1.0) == (378, 189)
        assert sticker_size_px(0, 0, 1.0) == (1, 1)


class TestExportScale:
    def test_scale_from_dpi(self):
        assert export_scale(96) == 1.0
        assert export_scale(300) == pytest.approx(3.125)

    @pytest.mark.parametrize("dpi", [0, -300])
    def test_non_positive_dpi_rejected(self, dpi):
        with pytest.raises(InvalidExportOptionsError):
            export_scale(dpi)


class TestBoundaryFrame:
    def test_offset_scales_with_zoom(self):
        frame = BoundaryFrame(width_mm=100, height_mm=50, margin_px=20)
        frame.set_zoom(2.0)

        assert frame.offset_px == (40.0, 40.0)

    @pytest.mark.parametrize("zoom", [0.1, 0.5, 1.0, 2.5, 10.0])
    def test_round_trip_at_any_zoom(self, zoom):
        frame = BoundaryFrame(width_mm=100, height_mm=50)
        frame.set_zoom(zoom)

        x_mm, y_mm = frame.to_sticker(frame.to_canvas(12.5, 33.3))

        assert x_mm == pytest.approx(12.5, abs=1e-9)
        assert y_mm == pytest.approx(33.3, abs=1e-9)

    def test_boundary_origin_maps_to_zero(self):
        frame = BoundaryFrame(width_mm=100, height_mm=50, margin_px=20)

        assert frame.to_sticker((20.0, 20.0)) == pytest.approx((0.0, 0.0))

    def test_zoom_does_not_move_stored_coordinates(self):
        frame = BoundaryFrame(width_mm=100, height_mm=50)
        canvas_before = frame.to_canvas(10, 10)
        frame.set_zoom(3.0)

        # 같은 mm 위치가 새 zoom의 캔버스 위치로 이동할 뿐
        assert frame.to_sticker(frame.to_canvas(10, 10)) == pytest.approx((10, 10))
        assert frame.to_canvas(10, 10) != canvas_before

    def test_canvas_size_includes_margin(self):
        frame = BoundaryFrame(width_mm=25.4, height_mm=25.4, margin_px=10)

        assert frame.canvas_size_px == pytest.approx((116.0, 116.0))

    def test_zoom_clamped(self):
        assert clamp_zoom(0.01) == 0.1
        assert clamp_zoom(50) == 10.0
        assert BoundaryFrame(10, 10).set_zoom(100) == 10.0

    def test_contains(self):
        frame = BoundaryFrame(width_mm=100, height_mm=50)

        assert frame.contains(0, 0)
        assert frame.contains(100, 50)
        assert not frame.contains(100.1, 10)
