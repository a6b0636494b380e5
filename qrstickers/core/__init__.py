"""
Core layer: 좌표계, 문서 모델, 바인딩, 히스토리.

렌더러/매처/배치가 모두 이 모듈에 의존 → 변경 시 가장 보수적으로

역할:
- mm 좌표계 (units), 템플릿 문서 (document), 데이터 바인딩 (binding)
- 디자이너 undo/redo (history), ID/파일명 (ids), 실행 로그 (logging)
"""

from .binding import bind_document, replace_inline, resolve
from .document import TemplateDocument, parse_template, serialize_template
from .history import DesignerSession, UndoHistory
from .ids import export_filename, generate_run_id, sanitize_for_log
from .logging import create_export_log, emit_warning, save_export_log
from .units import BoundaryFrame, export_scale, mm_to_px, px_to_mm

__all__ = [
    # units
    "mm_to_px",
    "px_to_mm",
    "export_scale",
    "BoundaryFrame",
    # document
    "TemplateDocument",
    "parse_template",
    "serialize_template",
    # binding
    "resolve",
    "replace_inline",
    "bind_document",
    # history
    "UndoHistory",
    "DesignerSession",
    # ids
    "generate_run_id",
    "export_filename",
    "sanitize_for_log",
    # logging
    "create_export_log",
    "emit_warning",
    "save_export_log",
]
