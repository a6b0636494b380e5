"""
Templates layer: 템플릿 저장소와 매칭.

역할:
- 템플릿 조회/복제/기본값 매핑 (store.py)
- 디바이스 → 템플릿 매칭, 대체 템플릿 분류 (matcher.py)

주의: 폴더 구분
- qrstickers/templates/ → 코드 (이 모듈)
- templates/ (루트) → FileTemplateStore 데이터 저장소
"""

from .matcher import BatchMatch, TemplateMatcher, derive_device_type
from .store import (
    FileTemplateStore,
    InMemoryTemplateStore,
    TemplateRepository,
    validate_template_name,
)

__all__ = [
    # store
    "TemplateRepository",
    "InMemoryTemplateStore",
    "FileTemplateStore",
    "validate_template_name",
    # matcher
    "TemplateMatcher",
    "BatchMatch",
    "derive_device_type",
]
