from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from src.devicemonitoring.domain.model import device_catalog


@dataclass
class RegisteredDevice:
    """
    Registered Device Aggregate - vendor device enrolled on this Edge

    Holds the data a client supplies at registration time plus the
    per-device configuration, which starts from the model's defaults.
    """

    device_id: str
    model: str
    name: str = ''
    mac_address: Optional[str] = None
    firmware: str = '1.0.0'
    config: Dict = field(default_factory=dict)
    registered_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Validations after initialization"""
        if not self.device_id:
            raise ValueError("device_id cannot be empty")

        if device_catalog.get_model(self.model) is None:
            raise ValueError(f"Unsupported device model: {self.model!r}")

        if not self.name:
            self.name = device_catalog.get_model(self.model).name

    @staticmethod
    def register(device_id: str, payload: dict) -> 'RegisteredDevice':
        """
        Factory method: Creates RegisteredDevice from a registration request

        Raises:
            ValueError: If the model is not in the catalog
        """
        model = payload.get('model')

        return RegisteredDevice(
            device_id=device_id,
            model=model,
            name=payload.get('name') or '',
            mac_address=payload.get('macAddress'),
            firmware=payload.get('firmware') or '1.0.0',
            config=device_catalog.get_default_config(model)
        )

    @property
    def device_type(self) -> str:
        return device_catalog.get_model(self.model).type

    @property
    def capabilities(self):
        return device_catalog.get_capabilities(self.model)

    def update_config(self, updates: Dict):
        """Shallow merge, like the vendor app does"""
        self.config = {**self.config, **updates}

    def to_dict(self) -> dict:
        catalog_entry = device_catalog.get_model(self.model)
        return {
            'id': self.device_id,
            'name': self.name,
            'model': self.model,
            'macAddress': self.mac_address,
            'type': catalog_entry.type,
            'serviceUUID': catalog_entry.service_uuid,
            'firmware': self.firmware,
            'manufacturer': device_catalog.MANUFACTURER,
            'capabilities': self.capabilities,
            'config': self.config,
            'registeredAt': self.registered_at.isoformat()
        }

    def __repr__(self) -> str:
        return f"RegisteredDevice(device_id='{self.device_id}', model='{self.model}')"
