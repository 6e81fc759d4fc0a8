from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from src.devicemonitoring.domain.model import device_catalog
from src.shared.infrastructure.bluetooth import BluetoothDevice


def normalize_battery(level) -> Optional[int]:
    """Battery as 0-100, or None when unknown or out of range"""
    if level is None or isinstance(level, bool):
        return None

    try:
        value = int(level)
    except (TypeError, ValueError):
        return None

    if not (0 <= value <= 100):
        return None

    return value


@dataclass
class Device:
    """
    Device Aggregate - Bluetooth vital-sign monitor known to this edge

    Created on discovery, mutated by battery and connection callbacks.
    The connection manager is its sole mutator.
    """

    device_id: str
    name: str = ''
    model: Optional[str] = None
    is_connected: bool = False
    battery: Optional[int] = None
    capabilities: List[str] = field(default_factory=list)
    last_seen: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validations after initialization"""
        if not self.device_id:
            raise ValueError("device_id cannot be empty")

        self.battery = normalize_battery(self.battery)

        if not self.model:
            self.model = device_catalog.resolve_model_from_name(self.name)

        if not self.capabilities:
            self.capabilities = device_catalog.get_capabilities(self.model)

    @staticmethod
    def from_bluetooth_device(bt_device: BluetoothDevice) -> 'Device':
        """
        Factory method: Creates Device from a bridge discovery record

        Model and capabilities are resolved from the catalog when the
        bridge does not supply them.
        """
        return Device(
            device_id=bt_device.device_id,
            name=bt_device.name,
            model=bt_device.model,
            battery=bt_device.battery,
            capabilities=list(bt_device.capabilities)
        )

    def update_from(self, other: 'Device'):
        """Merge a fresh discovery of the same device, keeping connection flag"""
        self.name = other.name or self.name
        self.model = other.model or self.model
        self.capabilities = other.capabilities or self.capabilities
        if other.battery is not None:
            self.battery = other.battery
        self.last_seen = datetime.now()

    def set_battery(self, level):
        self.battery = normalize_battery(level)
        self.last_seen = datetime.now()

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    def to_dict(self) -> dict:
        """Serialize for the REST API"""
        return {
            'id': self.device_id,
            'name': self.name,
            'model': self.model,
            'connected': self.is_connected,
            'battery': self.battery,
            'capabilities': list(self.capabilities),
            'lastSeen': self.last_seen.isoformat()
        }

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"Device(device_id='{self.device_id}', name={self.name!r}, {status})"
