"""
Undo/Redo History + DesignerSession (디자이너 전용).

규칙:
- 스냅샷 = 직렬화된 TemplateDocument 문자열
- 구조 변경 전 상태를 undo 스택에 push, redo 스택은 비움
- 복원 적용 중(restoring)에는 스냅샷 기록 금지
- 세션 상태는 전역이 아닌 DesignerSession 인스턴스에 보관
"""

import logging
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from qrstickers.core.document import (
    Element,
    ImageElement,
    LineElement,
    QRCodeElement,
    RectElement,
    StickerElement,
    TemplateDocument,
    TextElement,
    parse_template,
    serialize_template,
)
from qrstickers.core.units import BoundaryFrame
from qrstickers.domain.constants import DEFAULT_ELEMENT_SIZES_MM, HISTORY_CAPACITY
from qrstickers.domain.errors import TemplateParseError
from qrstickers.domain.schemas import DesignerSettings

logger = logging.getLogger(__name__)


class UndoHistory:
    """
    용량 제한 스냅샷 스택.

    Usage:
        history = UndoHistory(capacity=50)
        history.record(before)          # 변경 직전 상태
        previous = history.undo(current)
    """

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        self.capacity = capacity
        self._undo: deque[str] = deque(maxlen=capacity)
        self._redo: deque[str] = deque(maxlen=capacity)
        self._restoring = False

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    def record(self, snapshot: str) -> bool:
        """변경 전 스냅샷 기록. 복원 중이면 무시하고 False."""
        if self._restoring:
            return False
        self._undo.append(snapshot)  # maxlen 초과 시 가장 오래된 것 제거
        self._redo.clear()
        return True

    def undo(self, current: str) -> str | None:
        if not self._undo:
            return None
        self._redo.append(current)
        return self._undo.pop()

    def redo(self, current: str) -> str | None:
        if not self._redo:
            return None
        self._undo.append(current)
        return self._redo.pop()

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    @contextmanager
    def restoring(self) -> Iterator[None]:
        """복원 상태 적용 구간. 이 안의 record()는 무시된다."""
        self._restoring = True
        try:
            yield
        finally:
            self._restoring = False


# =============================================================================
# Designer Session
# =============================================================================

_ELEMENT_FACTORIES: dict[str, type[Element]] = {
    "qrcode": QRCodeElement,
    "text": TextElement,
    "image": ImageElement,
    "rect": RectElement,
    "line": LineElement,
}

_GEOMETRY_FIELDS = ("left", "top", "width", "height", "scale_x", "scale_y", "x1", "y1", "x2", "y2")


class DesignerSession:
    """
    디자이너 편집 세션.

    현재 문서, zoom/경계 프레임, undo/redo 스택을 한 객체로 묶는다.
    세션끼리 상태를 공유하지 않으므로 여러 편집기를 동시에 열 수 있다.
    """

    def __init__(
        self,
        document: TemplateDocument | None = None,
        history_capacity: int = HISTORY_CAPACITY,
        margin_px: float = 20.0,
    ):
        self.document = document or TemplateDocument(width_mm=100.0, height_mm=50.0)
        self.history = UndoHistory(capacity=history_capacity)
        self.frame = BoundaryFrame(
            width_mm=self.document.width_mm,
            height_mm=self.document.height_mm,
            margin_px=margin_px,
        )
        self._counter = 0

    @classmethod
    def from_config(
        cls, config: dict[str, Any], document: TemplateDocument | None = None
    ) -> "DesignerSession":
        """config의 designer: 섹션(history_capacity)으로 세션 생성."""
        settings = DesignerSettings.from_config(config)
        return cls(document, history_capacity=settings.history_capacity)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def zoom(self) -> float:
        return self.frame.zoom

    def snapshot(self) -> str:
        return serialize_template(self.document)

    def _checkpoint(self) -> None:
        self.history.record(self.snapshot())

    def _next_id(self, kind: str) -> str:
        while True:
            self._counter += 1
            candidate = f"{kind}-{self._counter}"
            if self.document.find(candidate) is None:
                return candidate

    # -------------------------------------------------------------------------
    # Mutations (undo 기록 대상)
    # -------------------------------------------------------------------------

    def add_element(self, kind: str, x_mm: float = 0.0, y_mm: float = 0.0, **props: Any) -> StickerElement:
        """
        요소 추가. 종류별 기본 크기 사용.

        Args:
            kind: qrcode | text | image | rect | line
            x_mm, y_mm: 좌상단 위치 (스티커 기준 mm)
            **props: 요소 필드 덮어쓰기 (예: data_source="device.serial")

        Raises:
            TemplateParseError: 알 수 없는 kind 또는 필드
        """
        factory = _ELEMENT_FACTORIES.get(kind)
        if factory is None:
            raise TemplateParseError(reason="unknown element type", type=kind)

        width, height = DEFAULT_ELEMENT_SIZES_MM[kind]
        x_mm, y_mm = float(x_mm), float(y_mm)
        element = factory(id=self._next_id(kind), left=x_mm, top=y_mm, width=width, height=height)
        if isinstance(element, LineElement):
            element.x1, element.y1 = x_mm, y_mm
            element.x2, element.y2 = x_mm + width, y_mm + height
        _apply_changes(element, props)

        self._checkpoint()
        self.document.elements.append(element)  # type: ignore[arg-type]
        logger.debug(f"Added element: {element.id}")
        return element  # type: ignore[return-value]

    def remove_element(self, element_id: str) -> bool:
        """최상위 요소 삭제. 없으면 False (기록 없음)."""
        for index, element in enumerate(self.document.elements):
            if element.id == element_id:
                self._checkpoint()
                del self.document.elements[index]
                return True
        return False

    def update_element(self, element_id: str, **changes: Any) -> StickerElement:
        """
        요소 필드 변경.

        Raises:
            KeyError: 요소 없음
            TemplateParseError: 알 수 없는 필드 또는 음수 기하
        """
        element = self.document.find(element_id)
        if element is None:
            raise KeyError(element_id)

        # 검증을 먼저 끝내야 실패한 변경이 기록되지 않음
        _validate_changes(element, changes)
        self._checkpoint()
        _apply_changes(element, changes)
        return element

    def clear(self) -> None:
        """모든 요소 삭제."""
        if not self.document.elements:
            return
        self._checkpoint()
        self.document.elements = []

    # -------------------------------------------------------------------------
    # Load / Save / Zoom
    # -------------------------------------------------------------------------

    def load_template(self, template_json: str) -> TemplateDocument:
        """템플릿 로드. 기존 history는 비운다."""
        self.document = parse_template(template_json)
        self.frame.width_mm = self.document.width_mm
        self.frame.height_mm = self.document.height_mm
        self.history.clear()
        self._counter = 0
        return self.document

    def save_template(self) -> str:
        return self.snapshot()

    def set_zoom(self, zoom: float) -> float:
        """zoom 변경 (0.1 ~ 10으로 clamp). mm 좌표는 바뀌지 않는다."""
        return self.frame.set_zoom(zoom)

    # -------------------------------------------------------------------------
    # Undo / Redo
    # -------------------------------------------------------------------------

    def undo(self) -> bool:
        previous = self.history.undo(self.snapshot())
        if previous is None:
            return False
        self._restore(previous)
        return True

    def redo(self) -> bool:
        following = self.history.redo(self.snapshot())
        if following is None:
            return False
        self._restore(following)
        return True

    def _restore(self, snapshot: str) -> None:
        with self.history.restoring():
            self.document = parse_template(snapshot)
            self.frame.width_mm = self.document.width_mm
            self.frame.height_mm = self.document.height_mm


def _validate_changes(element: StickerElement, changes: dict[str, Any]) -> None:
    for name, value in changes.items():
        if name == "id" or not hasattr(element, name):
            raise TemplateParseError(reason="unknown property", element_id=element.id, property=name)
        if name in _GEOMETRY_FIELDS and value < 0:
            raise TemplateParseError(reason="negative geometry", element_id=element.id, property=name)


def _apply_changes(element: Element, changes: dict[str, Any]) -> None:
    _validate_changes(element, changes)  # type: ignore[arg-type]
    for name, value in changes.items():
        setattr(element, name, value)
