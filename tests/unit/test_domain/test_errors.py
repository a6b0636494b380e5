"""
test_errors.py - 에러 계층 테스트

검증 포인트:
1. code + context → "[CODE] k=v" 메시지
2. 하위 클래스의 고정 코드
3. to_dict()는 JSON 응답/로그용 평탄 dict
"""

import pytest

from qrstickers.domain.errors import (
    ErrorCodes,
    NoCompatibleTemplateError,
    PageFitError,
    RenderError,
    StickerExportError,
    TemplateNotFoundError,
)


class TestStickerExportError:
    def test_message_includes_code_and_context(self):
        error = StickerExportError("CUSTOM", device_id=42, stage="draw")

        assert error.code == "CUSTOM"
        assert str(error) == "[CUSTOM] device_id=42, stage='draw'"

    def test_message_without_context(self):
        assert str(StickerExportError("CUSTOM")) == "[CUSTOM]"

    def test_default_code(self):
        assert StickerExportError().code == "STICKER_EXPORT_ERROR"

    def test_to_dict_flattens_context(self):
        error = PageFitError(device_id=7, shortfall_mm=12.5)

        assert error.to_dict() == {
            "code": ErrorCodes.PAGE_FIT_FAILED,
            "device_id": 7,
            "shortfall_mm": 12.5,
        }


class TestTypedErrors:
    @pytest.mark.parametrize(
        "cls, code",
        [
            (TemplateNotFoundError, ErrorCodes.TEMPLATE_NOT_FOUND),
            (NoCompatibleTemplateError, ErrorCodes.NO_COMPATIBLE_TEMPLATE),
            (RenderError, ErrorCodes.RENDER_FAILED),
            (PageFitError, ErrorCodes.PAGE_FIT_FAILED),
        ],
    )
    def test_fixed_codes(self, cls, code):
        error = cls(device_id=1)

        assert error.code == code
        assert isinstance(error, StickerExportError)

    def test_catchable_as_base(self):
        with pytest.raises(StickerExportError) as exc_info:
            raise RenderError(device_id=3, stage="encode")

        assert exc_info.value.context["stage"] == "encode"
