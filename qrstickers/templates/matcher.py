"""
Template Matching & Compatibility Ranker.

매칭 순서 (먼저 성공한 것 사용):
1. ModelMatch (1.0)     - device_models에 디바이스 모델이 있는 템플릿
2. TypeMatch (0.8)      - compatible_product_types에 ProductType을 명시한 템플릿
3. UserDefault (0.5)    - 연결의 ProductType별 기본 템플릿
4. SystemDefault (0.3)  - 시스템 기본 템플릿
5. Fallback (0.1)       - 호환되는 아무 템플릿 (범용 포함)

호환 템플릿이 하나도 없으면 NoCompatibleTemplateError.
"""

import logging
from dataclasses import dataclass, field

from qrstickers.core.ids import sanitize_for_log
from qrstickers.domain.errors import NoCompatibleTemplateError
from qrstickers.domain.schemas import (
    MATCH_CONFIDENCE,
    Device,
    MatchReason,
    StickerTemplate,
    TemplateCategory,
    TemplateMatch,
    TemplateOption,
)
from qrstickers.templates.store import TemplateRepository

logger = logging.getLogger(__name__)

# 모델 접두사 → 디바이스 타입
_MODEL_PREFIXES: list[tuple[str, str]] = [
    ("MS", "switch"),
    ("C9", "switch"),
    ("MR", "ap"),
    ("MX", "gateway"),
    ("Z", "appliance"),
    ("MV", "camera"),
    ("MT", "sensor"),
    ("MC", "cellular"),
]


def derive_device_type(model: str | None) -> str:
    """
    모델명에서 디바이스 타입 유도.

    Usage:
        derive_device_type("MS225-48FP")  # "switch"
        derive_device_type("Z3")          # "appliance"
    """
    if not model:
        return "unknown"
    upper = model.upper()
    for prefix, device_type in _MODEL_PREFIXES:
        if upper.startswith(prefix) or (device_type == "appliance" and "CAPTIVE" in upper):
            return device_type
    return "unknown"


@dataclass
class BatchMatch:
    """match_batch 결과. 디바이스 id 기준."""
    matches: dict[int, TemplateMatch] = field(default_factory=dict)
    errors: dict[int, NoCompatibleTemplateError] = field(default_factory=dict)
    groups_evaluated: int = 0


class TemplateMatcher:
    """
    디바이스 → 템플릿 매칭.

    Usage:
        matcher = TemplateMatcher(store)
        match = matcher.match(device)
        options = matcher.list_alternates(device, exclude_id=match.template.id)
    """

    def __init__(self, repository: TemplateRepository):
        self.repository = repository

    # =========================================================================
    # Single Device
    # =========================================================================

    def match(self, device: Device, connection_id: int | None = None) -> TemplateMatch:
        """
        디바이스에 가장 적합한 템플릿 선택.

        Args:
            device: 디바이스 레코드
            connection_id: 조회할 연결 (기본: device.connection_id)

        Returns:
            TemplateMatch

        Raises:
            NoCompatibleTemplateError: 호환 템플릿 없음
        """
        connection_id = device.connection_id if connection_id is None else connection_id
        candidates = self.repository.list_for_connection(connection_id)
        result = self._match(device.model, device.product_type, connection_id, candidates)
        if result is None:
            raise NoCompatibleTemplateError(
                device_id=device.id,
                model=device.model,
                product_type=device.product_type,
                connection_id=connection_id,
                hint="select a template manually",
            )
        logger.info(
            f"Matched device {device.id} ({sanitize_for_log(device.name)}) -> "
            f"template {result.template.id} [{result.match_reason.value}, {result.confidence}]"
        )
        return result

    def _match(
        self,
        model: str | None,
        product_type: str | None,
        connection_id: int,
        candidates: list[StickerTemplate],
    ) -> TemplateMatch | None:
        for template in candidates:
            if template.matches_model(model):
                return _result(template, MatchReason.MODEL_MATCH, model or "")

        if product_type:
            for template in candidates:
                if template.compatible_product_types and template.is_compatible_with(product_type):
                    return _result(template, MatchReason.TYPE_MATCH, product_type)

        user_default = self.repository.get_connection_default(connection_id, product_type)
        if user_default is not None:
            return _result(user_default, MatchReason.USER_DEFAULT, product_type or "")

        system_default = self.repository.get_system_default(product_type)
        if system_default is not None:
            return _result(system_default, MatchReason.SYSTEM_DEFAULT, product_type or "")

        for template in candidates:
            if template.is_compatible_with(product_type):
                logger.warning(f"Fallback template {template.id} for product type {product_type!r}")
                return _result(template, MatchReason.FALLBACK, "fallback")

        return None

    # =========================================================================
    # Alternates
    # =========================================================================

    def list_alternates(
        self,
        device: Device,
        connection_id: int | None = None,
        exclude_id: int | None = None,
        exclude_matched: bool = True,
    ) -> list[TemplateOption]:
        """
        선택 가능한 다른 템플릿 분류.

        순서: Recommended → Compatible → Incompatible (각 그룹은 이름순).
        exclude_id는 결과에 포함하지 않는다. 생략하면 디바이스에 매칭되는
        템플릿을 제외한다 (exclude_matched=False면 전체 목록).
        """
        connection_id = device.connection_id if connection_id is None else connection_id
        if exclude_id is None and exclude_matched:
            matched = self._match(
                device.model,
                device.product_type,
                connection_id,
                self.repository.list_for_connection(connection_id),
            )
            exclude_id = matched.template.id if matched is not None else None
        product_type = device.product_type
        label = product_type or "unknown"

        recommended = self.repository.get_connection_default(connection_id, product_type)
        if recommended is not None and recommended.id == exclude_id:
            recommended = None

        options: list[TemplateOption] = []
        if recommended is not None:
            options.append(
                TemplateOption(
                    template=recommended,
                    category=TemplateCategory.RECOMMENDED,
                    note=f"Recommended default for {label} devices",
                )
            )

        compatible: list[TemplateOption] = []
        incompatible: list[TemplateOption] = []
        for template in sorted(self.repository.list_for_connection(connection_id), key=lambda t: t.name):
            if template.id == exclude_id or (recommended is not None and template.id == recommended.id):
                continue
            if template.is_compatible_with(product_type):
                note = (
                    "Universal template"
                    if not template.compatible_product_types
                    else f"Compatible with {label} devices"
                )
                compatible.append(TemplateOption(template, TemplateCategory.COMPATIBLE, note))
            else:
                supported = ", ".join(template.compatible_product_types or [])
                incompatible.append(
                    TemplateOption(
                        template,
                        TemplateCategory.INCOMPATIBLE,
                        f"Designed for {supported}; may not suit {label} devices",
                    )
                )

        return options + compatible + incompatible

    # =========================================================================
    # Batch
    # =========================================================================

    def match_batch(self, devices: list[Device], connection_id: int | None = None) -> BatchMatch:
        """
        여러 디바이스 매칭.

        (연결, ProductType, 모델 매칭 여부) 그룹당 한 번만 평가한다.
        모델 전용 템플릿이 없는 모델은 같은 ProductType 그룹으로 합쳐진다.
        """
        batch = BatchMatch()
        candidates_by_connection: dict[int, list[StickerTemplate]] = {}
        group_results: dict[tuple[int, str, str], TemplateMatch | None] = {}

        for device in devices:
            conn_id = device.connection_id if connection_id is None else connection_id
            candidates = candidates_by_connection.get(conn_id)
            if candidates is None:
                candidates = self.repository.list_for_connection(conn_id)
                candidates_by_connection[conn_id] = candidates

            model_key = ""
            if any(t.matches_model(device.model) for t in candidates):
                model_key = (device.model or "").upper()
            key = (conn_id, (device.product_type or "").lower(), model_key)

            if key not in group_results:
                group_results[key] = self._match(device.model, device.product_type, conn_id, candidates)
                batch.groups_evaluated += 1

            result = group_results[key]
            if result is None:
                batch.errors[device.id] = NoCompatibleTemplateError(
                    device_id=device.id,
                    model=device.model,
                    product_type=device.product_type,
                    connection_id=conn_id,
                    hint="select a template manually",
                )
            else:
                batch.matches[device.id] = result

        logger.info(
            f"Batch matched {len(devices)} devices in {batch.groups_evaluated} groups "
            f"({len(batch.errors)} without template)"
        )
        return batch


def _result(template: StickerTemplate, reason: MatchReason, matched_by: str) -> TemplateMatch:
    return TemplateMatch(
        template=template,
        confidence=MATCH_CONFIDENCE[reason],
        match_reason=reason,
        matched_by=matched_by,
    )
