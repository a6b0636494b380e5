"""
test_matcher.py - 템플릿 매칭 테스트

검증 포인트:
1. ModelMatch(1.0) > TypeMatch(0.8) > UserDefault(0.5) > SystemDefault(0.3) > Fallback(0.1)
2. 호환 템플릿 없음 → NoCompatibleTemplateError
3. 대체 목록에 매칭된 템플릿 제외, Recommended → Compatible → Incompatible
4. 배치는 ProductType 그룹당 1회 평가
"""

import pytest

from qrstickers.domain.errors import NoCompatibleTemplateError
from qrstickers.domain.schemas import Device, MatchReason, StickerTemplate, TemplateCategory
from qrstickers.templates.matcher import TemplateMatcher, derive_device_type
from qrstickers.templates.store import InMemoryTemplateStore


def _device(**kwargs) -> Device:
    defaults = {"id": 1, "connection_id": 1, "model": "MS120-8", "product_type": "switch"}
    defaults.update(kwargs)
    return Device(**defaults)


def _template(id: int, **kwargs) -> StickerTemplate:
    return StickerTemplate(id=id, name=kwargs.pop("name", f"Template {id}"), template_json="{}", **kwargs)


class TestDeriveDeviceType:
    @pytest.mark.parametrize(
        "model, device_type",
        [
            ("MS225-48FP", "switch"),
            ("C9300-48P", "switch"),
            ("MR46", "ap"),
            ("MX67", "gateway"),
            ("Z3", "appliance"),
            ("captive-portal", "appliance"),
            ("MV12", "camera"),
            ("MT10", "sensor"),
            ("MC74", "cellular"),
            ("XYZ", "unknown"),
            (None, "unknown"),
        ],
    )
    def test_prefixes(self, model, device_type):
        assert derive_device_type(model) == device_type


class TestMatch:
    def test_model_match(self, template_store):
        matcher = TemplateMatcher(template_store)

        match = matcher.match(_device(model="MS225-48FP"))

        assert match.template.id == 1
        assert match.match_reason == MatchReason.MODEL_MATCH
        assert match.confidence == 1.0

    def test_type_match(self, template_store):
        match = TemplateMatcher(template_store).match(_device(model="MR46", product_type="Wireless"))

        assert match.template.id == 3
        assert match.match_reason == MatchReason.TYPE_MATCH
        assert match.confidence == 0.8

    def test_user_default(self):
        store = InMemoryTemplateStore([_template(1, connection_id=1)])
        store.set_connection_default(1, "switch", 1)

        match = TemplateMatcher(store).match(_device())

        assert match.match_reason == MatchReason.USER_DEFAULT
        assert match.confidence == 0.5

    def test_system_default(self):
        store = InMemoryTemplateStore([_template(1, is_system_template=True, is_default=True)])

        match = TemplateMatcher(store).match(_device())

        assert match.match_reason == MatchReason.SYSTEM_DEFAULT
        assert match.confidence == 0.3

    def test_fallback(self):
        store = InMemoryTemplateStore([_template(1, connection_id=1)])

        match = TemplateMatcher(store).match(_device())

        assert match.match_reason == MatchReason.FALLBACK
        assert match.confidence == 0.1

    def test_universal_template_is_not_type_match(self):
        store = InMemoryTemplateStore([_template(1, connection_id=1, compatible_product_types=[])])

        assert TemplateMatcher(store).match(_device()).match_reason == MatchReason.FALLBACK

    def test_no_compatible_template(self, template_store):
        with pytest.raises(NoCompatibleTemplateError) as exc_info:
            TemplateMatcher(template_store).match(_device(id=9, model="MT10", product_type="sensor"))

        assert exc_info.value.context["device_id"] == 9
        assert "hint" in exc_info.value.context

    def test_other_connection_templates_invisible(self):
        store = InMemoryTemplateStore([_template(1, connection_id=2, compatible_product_types=["switch"])])

        with pytest.raises(NoCompatibleTemplateError):
            TemplateMatcher(store).match(_device())

    def test_model_match_beats_type_match(self):
        store = InMemoryTemplateStore([
            _template(1, connection_id=1, compatible_product_types=["switch"]),
            _template(2, connection_id=1, device_models=["MS120-8"]),
        ])

        assert TemplateMatcher(store).match(_device()).template.id == 2


class TestListAlternates:
    def test_excludes_matched_template(self, template_store):
        matcher = TemplateMatcher(template_store)
        device = _device(model="MS225-48FP")
        match = matcher.match(device)

        options = matcher.list_alternates(device, exclude_id=match.template.id)

        assert match.template.id not in [o.template.id for o in options]

    def test_ordering(self):
        store = InMemoryTemplateStore([
            _template(1, name="Zeta", connection_id=1, compatible_product_types=["switch"]),
            _template(2, name="Alpha", connection_id=1),
            _template(3, name="Beta", connection_id=1, compatible_product_types=["wireless"]),
            _template(4, name="Default", connection_id=1, compatible_product_types=["switch"]),
        ])
        store.set_connection_default(1, "switch", 4)

        options = TemplateMatcher(store).list_alternates(_device(), exclude_matched=False)

        assert [o.template.id for o in options] == [4, 2, 1, 3]
        assert [o.category for o in options] == [
            TemplateCategory.RECOMMENDED,
            TemplateCategory.COMPATIBLE,
            TemplateCategory.COMPATIBLE,
            TemplateCategory.INCOMPATIBLE,
        ]
        assert options[1].note == "Universal template"
        assert options[2].note == "Compatible with switch devices"
        assert "wireless" in options[3].note

    def test_recommended_dropped_when_excluded(self):
        store = InMemoryTemplateStore([_template(1, connection_id=1)])
        store.set_connection_default(1, "switch", 1)

        assert TemplateMatcher(store).list_alternates(_device(), exclude_id=1) == []

    def test_matched_excluded_by_default(self, template_store):
        options = TemplateMatcher(template_store).list_alternates(_device(model="MS225-48FP"))

        ids = [o.template.id for o in options]
        assert 1 not in ids
        assert sorted(ids) == [2, 3, 4]

    def test_unmatched_device_lists_everything(self, template_store):
        options = TemplateMatcher(template_store).list_alternates(_device(model="MT10", product_type="sensor"))

        assert sorted(o.template.id for o in options) == [1, 2, 3, 4]


class TestMatchBatch:
    def test_groups_by_product_type(self, template_store):
        devices = [
            _device(id=1, model="MR46", product_type="wireless"),
            _device(id=2, model="MR56", product_type="wireless"),
            _device(id=3, model="MR36", product_type="Wireless"),
        ]

        batch = TemplateMatcher(template_store).match_batch(devices)

        assert batch.groups_evaluated == 1
        assert {m.template.id for m in batch.matches.values()} == {3}

    def test_model_specific_group(self, template_store):
        devices = [
            _device(id=1, model="MS225-48FP"),
            _device(id=2, model="MS120-8"),
        ]

        batch = TemplateMatcher(template_store).match_batch(devices)

        assert batch.groups_evaluated == 2
        assert batch.matches[1].template.id == 1
        assert batch.matches[1].match_reason == MatchReason.MODEL_MATCH
        assert batch.matches[2].match_reason == MatchReason.TYPE_MATCH

    def test_errors_collected(self, template_store):
        devices = [_device(id=1), _device(id=2, model="MT10", product_type="sensor")]

        batch = TemplateMatcher(template_store).match_batch(devices)

        assert set(batch.matches) == {1}
        assert isinstance(batch.errors[2], NoCompatibleTemplateError)
