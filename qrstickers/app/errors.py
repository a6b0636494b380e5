"""StickerExportError → HTTPException 변환."""

from fastapi import HTTPException

from qrstickers.domain.errors import ErrorCodes, StickerExportError

ERROR_STATUS: dict[str, int] = {
    ErrorCodes.DEVICE_NOT_FOUND: 404,
    ErrorCodes.TEMPLATE_NOT_FOUND: 404,
    ErrorCodes.NO_COMPATIBLE_TEMPLATE: 422,
    ErrorCodes.TEMPLATE_PARSE_FAILED: 422,
    ErrorCodes.INVALID_EXPORT_OPTIONS: 422,
    ErrorCodes.PAGE_FIT_FAILED: 422,
    ErrorCodes.PARTIAL_BATCH_FAILURE: 422,
    ErrorCodes.BINDING_INVALID: 422,
    ErrorCodes.TEMPLATE_STORE_ERROR: 409,
    ErrorCodes.IMAGE_LOAD_FAILED: 502,
    ErrorCodes.RENDER_FAILED: 500,
}


def to_http_exception(error: StickerExportError) -> HTTPException:
    """에러 코드 → HTTP 상태. detail은 error.to_dict()."""
    return HTTPException(status_code=ERROR_STATUS.get(error.code, 500), detail=error.to_dict())
