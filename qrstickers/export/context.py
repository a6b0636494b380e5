"""
Export Context: 디바이스 1개를 렌더하는 데 필요한 모든 데이터.

인벤토리 동기화/캐시는 외부 책임. 이 모듈은 InventoryRepository로 읽기만 한다.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from qrstickers.core.binding import DataContext
from qrstickers.domain.errors import DeviceNotFoundError
from qrstickers.domain.schemas import (
    Connection,
    CustomImage,
    Device,
    Network,
    Organization,
    StickerTemplate,
)
from qrstickers.templates.matcher import derive_device_type

logger = logging.getLogger(__name__)

UNNAMED_DEVICE = "Unnamed Device"


# =============================================================================
# Inventory Repository
# =============================================================================

class InventoryRepository(Protocol):
    """인벤토리 캐시 조회 인터페이스."""

    def get_device(self, device_id: int) -> Device | None: ...

    def get_connection(self, connection_id: int) -> Connection | None: ...

    def get_network(self, connection_id: int, network_id: str) -> Network | None: ...

    def get_organization(self, connection_id: int, organization_id: str) -> Organization | None: ...

    def get_global_variables(self, connection_id: int) -> dict[str, str]: ...

    def list_custom_images(self, connection_id: int) -> list[CustomImage]: ...


class InMemoryInventory:
    """메모리 인벤토리 (기본값/테스트용)."""

    def __init__(self) -> None:
        self.devices: dict[int, Device] = {}
        self.connections: dict[int, Connection] = {}
        self.networks: dict[tuple[int, str], Network] = {}
        self.organizations: dict[tuple[int, str], Organization] = {}
        self.global_variables: dict[int, dict[str, str]] = {}
        self.custom_images: dict[int, list[CustomImage]] = {}

    def add_device(self, device: Device) -> Device:
        self.devices[device.id] = device
        return device

    def add_connection(self, connection: Connection) -> Connection:
        self.connections[connection.id] = connection
        return connection

    def add_network(self, network: Network) -> Network:
        self.networks[(network.connection_id, network.network_id)] = network
        return network

    def add_organization(self, organization: Organization) -> Organization:
        self.organizations[(organization.connection_id, organization.organization_id)] = organization
        return organization

    def add_custom_image(self, image: CustomImage) -> CustomImage:
        self.custom_images.setdefault(image.connection_id, []).append(image)
        return image

    def set_global_variable(self, connection_id: int, name: str, value: str) -> None:
        self.global_variables.setdefault(connection_id, {})[name] = value

    def get_device(self, device_id: int) -> Device | None:
        return self.devices.get(device_id)

    def get_connection(self, connection_id: int) -> Connection | None:
        return self.connections.get(connection_id)

    def get_network(self, connection_id: int, network_id: str) -> Network | None:
        return self.networks.get((connection_id, network_id))

    def get_organization(self, connection_id: int, organization_id: str) -> Organization | None:
        return self.organizations.get((connection_id, organization_id))

    def get_global_variables(self, connection_id: int) -> dict[str, str]:
        return dict(self.global_variables.get(connection_id, {}))

    def list_custom_images(self, connection_id: int) -> list[CustomImage]:
        return sorted(self.custom_images.get(connection_id, []), key=lambda i: i.id)


# =============================================================================
# Export Context
# =============================================================================

@dataclass
class DeviceExportContext:
    """디바이스 스티커 렌더에 필요한 데이터 묶음."""
    device: Device
    connection: Connection
    network: Network | None = None
    organization: Organization | None = None
    global_variables: dict[str, str] = field(default_factory=dict)
    uploaded_images: list[CustomImage] = field(default_factory=list)
    matched_template: StickerTemplate | None = None

    def to_data_context(self) -> DataContext:
        """
        바인딩용 DataContext 생성.

        - 키는 camelCase 그대로 (조회는 resolve가 대소문자 무시)
        - 커스텀 이미지는 루트 키 customimage.image_<id>
        """
        device = self.device
        ctx: dict[str, Any] = {
            "device": {
                "id": device.id,
                "serial": device.serial or "",
                "name": device.name or UNNAMED_DEVICE,
                "mac": device.mac or "",
                "model": device.model or "",
                "type": derive_device_type(device.model),
                "productType": device.product_type or "",
                "status": device.status or "",
                "firmware": device.firmware or "",
                "tags": list(device.tags),
                "tags_str": ", ".join(device.tags),
                "networkId": device.network_id or "",
                "connectionId": device.connection_id,
                "qrcode": device.qr_code,
            },
            "network": None,
            "organization": None,
            "connection": {
                "id": self.connection.id,
                "displayName": self.connection.display_name or "",
                "type": self.connection.type or "",
                "companyLogoUrl": self.connection.company_logo_url or "",
            },
            "global": dict(self.global_variables),
        }

        if self.network is not None:
            ctx["network"] = {
                "id": self.network.network_id,
                "name": self.network.name or "",
                "organizationId": self.network.organization_id or "",
                "qrcode": self.network.qr_code,
            }

        if self.organization is not None:
            ctx["organization"] = {
                "id": self.organization.organization_id,
                "organizationId": self.organization.organization_id,
                "name": self.organization.name or "",
                "url": self.organization.url or "",
                "qrcode": self.organization.qr_code,
            }

        for image in self.uploaded_images:
            ctx[f"customimage.image_{image.id}"] = image.data_uri

        return ctx


def load_export_context(
    inventory: InventoryRepository,
    device_id: int,
    connection_id: int | None = None,
) -> DeviceExportContext:
    """
    디바이스 1개의 export context 조회.

    Args:
        inventory: 인벤토리 저장소
        device_id: 디바이스 ID
        connection_id: 지정 시 디바이스가 이 연결 소속인지 확인

    Raises:
        DeviceNotFoundError: 디바이스/연결 없음, 다른 연결 소속
    """
    device = inventory.get_device(device_id)
    if device is None or (connection_id is not None and device.connection_id != connection_id):
        raise DeviceNotFoundError(device_id=device_id, connection_id=connection_id)

    connection = inventory.get_connection(device.connection_id)
    if connection is None:
        raise DeviceNotFoundError(device_id=device_id, connection_id=device.connection_id, reason="connection missing")

    network = None
    organization = None
    if device.network_id:
        network = inventory.get_network(device.connection_id, device.network_id)
        if network is not None and network.organization_id:
            organization = inventory.get_organization(device.connection_id, network.organization_id)

    return DeviceExportContext(
        device=device,
        connection=connection,
        network=network,
        organization=organization,
        global_variables=inventory.get_global_variables(device.connection_id),
        uploaded_images=inventory.list_custom_images(device.connection_id),
    )
