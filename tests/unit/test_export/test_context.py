"""
test_context.py - export context 조회 테스트
"""

import pytest

from qrstickers.core.binding import replace_inline, resolve
from qrstickers.domain.errors import DeviceNotFoundError
from qrstickers.export.context import load_export_context


class TestLoadExportContext:
    def test_full_context(self, inventory):
        context = load_export_context(inventory, 101)

        assert context.device.serial == "Q2XX-AAAA-0001"
        assert context.network.name == "HQ Network"
        assert context.organization.name == "Acme Org"
        assert context.global_variables == {"supportPhone": "555-0100"}
        assert [i.id for i in context.uploaded_images] == [12]

    def test_device_without_network(self, inventory):
        context = load_export_context(inventory, 103)

        assert context.network is None
        assert context.organization is None

    def test_missing_device(self, inventory):
        with pytest.raises(DeviceNotFoundError):
            load_export_context(inventory, 999)

    def test_wrong_connection(self, inventory):
        with pytest.raises(DeviceNotFoundError):
            load_export_context(inventory, 101, connection_id=2)


class TestToDataContext:
    def test_device_fields(self, inventory):
        ctx = load_export_context(inventory, 101).to_data_context()

        assert ctx["device"]["type"] == "switch"
        assert ctx["device"]["tags_str"] == "core, floor1"
        assert resolve("device.producttype", ctx) == "switch"
        assert resolve("device.productType", ctx) == "switch"

    def test_unnamed_device(self, inventory):
        ctx = load_export_context(inventory, 104).to_data_context()

        assert ctx["device"]["name"] == "Unnamed Device"

    def test_related_entities(self, inventory):
        ctx = load_export_context(inventory, 101).to_data_context()

        text = "{{network.name}} / {{organization.name}} / {{connection.displayName}} / {{global.supportPhone}}"
        assert replace_inline(text, ctx) == "HQ Network / Acme Org / Acme Corp / 555-0100"

    def test_missing_network_is_none(self, inventory):
        ctx = load_export_context(inventory, 103).to_data_context()

        assert ctx["network"] is None
        assert replace_inline("{{network.name}}", ctx) == "{{network.name}}"

    def test_custom_images_at_root(self, inventory, png_data_uri):
        ctx = load_export_context(inventory, 101).to_data_context()

        assert ctx["customimage.image_12"] == png_data_uri
        assert resolve("customImage.Image_12", ctx) == png_data_uri

    @pytest.mark.parametrize(
        "source,expected",
        [
            ("Connection.DisplayName", "Acme Corp"),
            ("connection.displayname", "Acme Corp"),
            ("device.networkid", "N_1"),
            ("Device.ConnectionId", 1),
            ("network.organizationid", "O_1"),
            ("organization.OrganizationId", "O_1"),
        ],
    )
    def test_camel_case_fields_any_case(self, inventory, source, expected):
        ctx = load_export_context(inventory, 101).to_data_context()

        assert resolve(source, ctx) == expected
        assert "producttype" not in ctx["device"]
