"""
test_text.py - 텍스트 overflow 레이아웃 테스트
"""

import pytest

from qrstickers.render.text import is_bold, layout_text, load_font


class TestLayoutText:
    def test_no_limit(self):
        assert layout_text("a\nb", None, "truncate").lines == ["a", "b"]

    def test_truncate(self):
        assert layout_text("ABCDEFGH", 5, "truncate").lines == ["ABCDE"]

    def test_wrap(self):
        assert layout_text("ABCDEFGH", 3, "wrap").lines == ["ABC", "DEF", "GH"]

    def test_wrap_keeps_blank_lines(self):
        assert layout_text("AB\n\nCD", 5, "wrap").lines == ["AB", "", "CD"]

    def test_scale(self):
        layout = layout_text("ABCDEFGHIJ", 5, "scale")

        assert layout.lines == ["ABCDEFGHIJ"]
        assert layout.font_scale == pytest.approx(0.5)

    def test_scale_short_text_unchanged(self):
        assert layout_text("ABC", 5, "scale").font_scale == 1.0


class TestFonts:
    @pytest.mark.parametrize("weight, bold", [("bold", True), ("700", True), ("normal", False), ("400", False)])
    def test_is_bold(self, weight, bold):
        assert is_bold(weight) is bold

    def test_load_font_always_returns_font(self):
        font = load_font("No Such Family", False, 24)

        assert font.getbbox("X") is not None
