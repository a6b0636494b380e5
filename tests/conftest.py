"""
Pytest fixtures for the sticker export tests.

테스트 구성:
- 인벤토리: 연결 1개, 네트워크/조직 1개, 디바이스 5개 (switch, wireless, appliance, camera, sensor)
- 템플릿: sensor와 호환되는 템플릿은 없음 → 배치에서 1건 실패
"""

from pathlib import Path

import pytest
import yaml

from qrstickers.domain.schemas import (
    Connection,
    CustomImage,
    Device,
    Network,
    Organization,
    StickerTemplate,
)
from qrstickers.export.bulk import BatchExporter
from qrstickers.export.context import InMemoryInventory
from qrstickers.templates.store import InMemoryTemplateStore
from tests.factories import make_png_data_uri, sticker_json

# =============================================================================
# Config Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config(project_root: Path) -> dict:
    """기본 설정 로드."""
    with open(project_root / "default.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def test_config() -> dict:
    """테스트용 설정 (파일 경로 없음, 순차 처리)."""
    return {
        "export": {
            "default_dpi": 300,
            "min_dpi": 72,
            "max_dpi": 1200,
            "max_devices_per_request": 100,
            "concurrency": 1,
            "image_fetch_timeout": 2.0,
            "image_fetch_retries": 0,
        },
        "pdf": {
            "horizontal_margin_mm": 0,
            "vertical_margin_mm": 2,
            "fit_tolerance_mm": 2,
            "default_page_size": "A4",
        },
    }


# =============================================================================
# Image Fixtures
# =============================================================================

@pytest.fixture
def png_data_uri() -> str:
    return make_png_data_uri()


# =============================================================================
# Template Fixtures
# =============================================================================

@pytest.fixture
def basic_template_json() -> str:
    """QR + 이름 + 인라인 시리얼 + 테두리 (100x50mm)."""
    return sticker_json()


@pytest.fixture
def sample_templates(basic_template_json: str) -> list[StickerTemplate]:
    """
    템플릿 4개.

    - 1: MS225-48FP 모델 전용 (연결 1)
    - 2: switch 시스템 기본
    - 3: wireless 시스템 기본
    - 4: appliance/camera (연결 1)
    """
    return [
        StickerTemplate(
            id=1,
            name="Switch MS225",
            template_json=basic_template_json,
            connection_id=1,
            compatible_product_types=["switch"],
            device_models=["MS225-48FP"],
        ),
        StickerTemplate(
            id=2,
            name="Switch Standard",
            template_json=basic_template_json,
            is_system_template=True,
            is_default=True,
            compatible_product_types=["switch"],
        ),
        StickerTemplate(
            id=3,
            name="Wireless Standard",
            template_json=basic_template_json,
            is_system_template=True,
            is_default=True,
            compatible_product_types=["wireless"],
        ),
        StickerTemplate(
            id=4,
            name="Appliance and Camera",
            template_json=basic_template_json,
            connection_id=1,
            compatible_product_types=["appliance", "camera"],
        ),
    ]


@pytest.fixture
def template_store(sample_templates: list[StickerTemplate]) -> InMemoryTemplateStore:
    return InMemoryTemplateStore(sample_templates)


# =============================================================================
# Inventory Fixtures
# =============================================================================

@pytest.fixture
def sample_devices() -> list[Device]:
    """디바이스 5개 (id 101~105). 105(sensor)는 호환 템플릿 없음."""
    return [
        Device(
            id=101, connection_id=1, serial="Q2XX-AAAA-0001", name="Core Switch",
            mac="aa:bb:cc:00:00:01", model="MS225-48FP", product_type="switch",
            network_id="N_1", qr_code="https://dashboard.example.com/d/Q2XX-AAAA-0001",
            tags=["core", "floor1"],
        ),
        Device(
            id=102, connection_id=1, serial="Q2XX-AAAA-0002", name="Lobby AP",
            model="MR46", product_type="wireless", network_id="N_1",
            qr_code="https://dashboard.example.com/d/Q2XX-AAAA-0002",
        ),
        Device(
            id=103, connection_id=1, serial="Q2XX-AAAA-0003", name="Edge Gateway",
            model="MX67", product_type="appliance",
            qr_code="https://dashboard.example.com/d/Q2XX-AAAA-0003",
        ),
        Device(
            id=104, connection_id=1, serial="Q2XX-AAAA-0004", name="",
            model="MV12", product_type="camera", network_id="N_1",
            qr_code="https://dashboard.example.com/d/Q2XX-AAAA-0004",
        ),
        Device(
            id=105, connection_id=1, serial="Q2XX-AAAA-0005", name="Temp Sensor",
            model="MT10", product_type="sensor", network_id="N_1",
        ),
    ]


@pytest.fixture
def inventory(sample_devices: list[Device], png_data_uri: str) -> InMemoryInventory:
    inv = InMemoryInventory()
    inv.add_connection(Connection(id=1, display_name="Acme Corp", type="meraki"))
    inv.add_network(
        Network(id=7, network_id="N_1", connection_id=1, organization_id="O_1", name="HQ Network")
    )
    inv.add_organization(
        Organization(id=9, organization_id="O_1", connection_id=1, name="Acme Org", url="https://acme.example")
    )
    for device in sample_devices:
        inv.add_device(device)
    inv.set_global_variable(1, "supportPhone", "555-0100")
    inv.add_custom_image(CustomImage(id=12, connection_id=1, name="Logo", data_uri=png_data_uri))
    return inv


@pytest.fixture
def exporter(inventory: InMemoryInventory, template_store: InMemoryTemplateStore) -> BatchExporter:
    return BatchExporter(inventory, template_store)
