"""
템플릿 저장소: 조회 프로토콜 + 메모리/파일 구현.

규칙:
- 템플릿 이름: ^[a-zA-Z0-9\\s\\-_.()]+$, 최대 200자
- 시스템 템플릿(connection_id=None)은 모든 연결에서 보임
- 복제본은 항상 non-system, 기본 이름 "<name> (Copy)"
- 파일 저장소는 템플릿별 FileLock으로 동시 수정 방지
"""

import copy
import json
import logging
import re
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

import yaml
from filelock import FileLock, Timeout

from qrstickers.core.logging import atomic_write_json
from qrstickers.domain.constants import TEMPLATE_NAME_MAX_LENGTH
from qrstickers.domain.errors import TemplateNotFoundError, TemplateStoreError
from qrstickers.domain.schemas import StickerTemplate

logger = logging.getLogger(__name__)

TEMPLATE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_.()]+$")


# =============================================================================
# Validation
# =============================================================================

def validate_template_name(name: str) -> None:
    """
    템플릿 이름 검증.

    Raises:
        TemplateStoreError: 빈 이름, 200자 초과, 허용되지 않은 문자
    """
    if not name or not name.strip():
        raise TemplateStoreError(reason="template name cannot be empty")

    if len(name) > TEMPLATE_NAME_MAX_LENGTH:
        raise TemplateStoreError(
            reason=f"template name exceeds {TEMPLATE_NAME_MAX_LENGTH} characters",
            length=len(name),
        )

    if not TEMPLATE_NAME_PATTERN.match(name):
        raise TemplateStoreError(
            reason="template name contains invalid characters",
            name=name,
            pattern=TEMPLATE_NAME_PATTERN.pattern,
        )


# =============================================================================
# Repository Protocol
# =============================================================================

class TemplateRepository(Protocol):
    """매처/배치가 사용하는 조회 인터페이스."""

    def get(self, template_id: int) -> StickerTemplate | None: ...

    def list_for_connection(self, connection_id: int) -> list[StickerTemplate]: ...

    def get_connection_default(
        self, connection_id: int, product_type: str | None
    ) -> StickerTemplate | None: ...

    def get_system_default(self, product_type: str | None) -> StickerTemplate | None: ...


# =============================================================================
# In-Memory Store
# =============================================================================

class InMemoryTemplateStore:
    """
    메모리 템플릿 저장소.

    기본 저장소이자 테스트용. connection_defaults 키는 (connection_id, 소문자 product_type).
    """

    def __init__(self, templates: list[StickerTemplate] | None = None):
        self._templates: dict[int, StickerTemplate] = {}
        self._connection_defaults: dict[tuple[int, str], int] = {}
        for template in templates or []:
            self._templates[template.id] = template

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    def get(self, template_id: int) -> StickerTemplate | None:
        return self._templates.get(template_id)

    def require(self, template_id: int) -> StickerTemplate:
        """
        Raises:
            TemplateNotFoundError
        """
        template = self.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id=template_id)
        return template

    def list_all(self) -> list[StickerTemplate]:
        return sorted(self._templates.values(), key=lambda t: t.id)

    def list_for_connection(self, connection_id: int) -> list[StickerTemplate]:
        """연결 소유 템플릿 먼저, 이어서 시스템 템플릿 (각각 id 순)."""
        own = [t for t in self.list_all() if t.connection_id == connection_id]
        system = [t for t in self.list_all() if t.connection_id is None]
        return own + system

    def get_connection_default(
        self, connection_id: int, product_type: str | None
    ) -> StickerTemplate | None:
        if not product_type:
            return None
        template_id = self._connection_defaults.get((connection_id, product_type.lower()))
        return self.get(template_id) if template_id is not None else None

    def get_system_default(self, product_type: str | None) -> StickerTemplate | None:
        """is_default 시스템 템플릿 중 해당 타입과 호환되는 첫 번째."""
        for template in self.list_all():
            if (
                template.is_system_template
                and template.is_default
                and template.is_compatible_with(product_type)
            ):
                return template
        return None

    def connection_defaults(self, connection_id: int) -> dict[str, int]:
        """product_type → template_id 매핑."""
        return {
            product_type: template_id
            for (conn_id, product_type), template_id in sorted(self._connection_defaults.items())
            if conn_id == connection_id
        }

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def add(self, template: StickerTemplate) -> StickerTemplate:
        """
        Raises:
            TemplateStoreError: 이름 규칙 위반, 중복 ID
        """
        validate_template_name(template.name)
        if template.id in self._templates:
            raise TemplateStoreError(reason="template already exists", template_id=template.id)
        self._templates[template.id] = template
        return template

    def next_id(self) -> int:
        return max(self._templates, default=0) + 1

    def set_connection_default(self, connection_id: int, product_type: str, template_id: int) -> None:
        self.require(template_id)
        self._connection_defaults[(connection_id, product_type.lower())] = template_id

    def delete(self, template_id: int) -> None:
        self.require(template_id)
        del self._templates[template_id]
        self._connection_defaults = {
            key: value for key, value in self._connection_defaults.items() if value != template_id
        }

    def clone(
        self,
        template_id: int,
        target_connection_id: int,
        new_name: str | None = None,
    ) -> StickerTemplate:
        """
        템플릿 복제.

        레이아웃, 페이지 크기, 호환 목록을 복사하고 항상 non-system으로 만든다.

        Raises:
            TemplateNotFoundError: 원본 없음
            TemplateStoreError: 이름 규칙 위반
        """
        source = self.require(template_id)
        name = new_name or f"{source.name} (Copy)"
        validate_template_name(name)

        cloned = StickerTemplate(
            id=self.next_id(),
            name=name,
            template_json=source.template_json,
            page_width_mm=source.page_width_mm,
            page_height_mm=source.page_height_mm,
            connection_id=target_connection_id,
            is_system_template=False,
            is_default=False,
            description=source.description,
            compatible_product_types=copy.copy(source.compatible_product_types),
            device_models=list(source.device_models),
        )
        logger.info(f"Cloned template {template_id} -> {cloned.id} for connection {target_connection_id}")
        return self.add(cloned)


# =============================================================================
# File Store
# =============================================================================

class FileTemplateStore(InMemoryTemplateStore):
    """
    파일 기반 템플릿 저장소.

    구조:
    templates/
    ├── <template_id>.json   # StickerTemplate 레코드
    ├── defaults.yaml        # 연결별 기본 템플릿 매핑
    └── .locks/
    """

    LOCK_TIMEOUT = 10.0

    def __init__(self, templates_root: Path, lock_timeout: float | None = None):
        super().__init__()
        self.templates_root = templates_root
        self._locks_dir = templates_root / ".locks"
        if lock_timeout is not None:
            self.LOCK_TIMEOUT = lock_timeout
        self._load()

    @contextmanager
    def _template_lock(self, name: str) -> Generator[None, None, None]:
        """
        Raises:
            TemplateStoreError: 락 timeout
        """
        self._locks_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self._locks_dir / f"{name}.lock", timeout=self.LOCK_TIMEOUT)
        try:
            lock.acquire()
        except Timeout as e:
            raise TemplateStoreError(
                reason="lock timeout",
                lock=name,
                timeout=self.LOCK_TIMEOUT,
            ) from e
        try:
            yield
        finally:
            lock.release()

    def _load(self) -> None:
        if not self.templates_root.exists():
            return
        for path in sorted(self.templates_root.glob("*.json")):
            data = json.loads(path.read_text(encoding="utf-8"))
            template = _template_from_dict(data)
            self._templates[template.id] = template

        defaults_path = self.templates_root / "defaults.yaml"
        if defaults_path.exists():
            raw = yaml.safe_load(defaults_path.read_text(encoding="utf-8")) or {}
            for connection_id, mapping in raw.items():
                for product_type, template_id in (mapping or {}).items():
                    self._connection_defaults[(int(connection_id), str(product_type).lower())] = int(template_id)
        logger.info(f"Loaded {len(self._templates)} templates from {self.templates_root}")

    def _write_template(self, template: StickerTemplate) -> None:
        atomic_write_json(self.templates_root / f"{template.id}.json", template.to_dict())

    def _write_defaults(self) -> None:
        mapping: dict[int, dict[str, int]] = {}
        for (connection_id, product_type), template_id in sorted(self._connection_defaults.items()):
            mapping.setdefault(connection_id, {})[product_type] = template_id
        self.templates_root.mkdir(parents=True, exist_ok=True)
        with open(self.templates_root / "defaults.yaml", "w", encoding="utf-8") as f:
            yaml.safe_dump(mapping, f, default_flow_style=False, allow_unicode=True)

    def add(self, template: StickerTemplate) -> StickerTemplate:
        with self._template_lock(str(template.id)):
            super().add(template)
            self._write_template(template)
        return template

    def clone(
        self,
        template_id: int,
        target_connection_id: int,
        new_name: str | None = None,
    ) -> StickerTemplate:
        with self._template_lock("clone"):
            return super().clone(template_id, target_connection_id, new_name)

    def set_connection_default(self, connection_id: int, product_type: str, template_id: int) -> None:
        with self._template_lock("defaults"):
            super().set_connection_default(connection_id, product_type, template_id)
            self._write_defaults()

    def delete(self, template_id: int) -> None:
        with self._template_lock(str(template_id)):
            super().delete(template_id)
            path = self.templates_root / f"{template_id}.json"
            if path.exists():
                path.unlink()
        with self._template_lock("defaults"):
            self._write_defaults()


def _template_from_dict(data: dict[str, Any]) -> StickerTemplate:
    return StickerTemplate(
        id=int(data["id"]),
        name=data["name"],
        template_json=data.get("templateJson", ""),
        page_width_mm=float(data.get("pageWidth", 100.0)),
        page_height_mm=float(data.get("pageHeight", 50.0)),
        connection_id=data.get("connectionId"),
        is_system_template=bool(data.get("isSystemTemplate", False)),
        is_default=bool(data.get("isDefault", False)),
        description=data.get("description", ""),
        compatible_product_types=data.get("compatibleProductTypes"),
        device_models=list(data.get("deviceModels") or []),
    )
