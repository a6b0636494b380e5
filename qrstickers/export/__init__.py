"""
Export layer: export context 조회 + 배치 오케스트레이션.

역할:
- 디바이스/네트워크/조직/연결 → DataContext (context.py)
- 배치 렌더, 진행/취소, 참조 중복 제거 응답 (bulk.py)
"""

from .bulk import BatchExporter, ExportProgress
from .context import (
    DeviceExportContext,
    InMemoryInventory,
    InventoryRepository,
    load_export_context,
)

__all__ = [
    "BatchExporter",
    "ExportProgress",
    "DeviceExportContext",
    "InventoryRepository",
    "InMemoryInventory",
    "load_export_context",
]
