import logging
from typing import Dict, Optional

from src.devicemonitoring.domain.model import device_catalog
from src.devicemonitoring.domain.model.aggregates import Device, RegisteredDevice
from src.devicemonitoring.infrastructure.persistence import DeviceRegistryRepository
from .device_connection_manager import DeviceConnectionManager

logger = logging.getLogger(__name__)


class DeviceRegistryService:
    """
    Application Service for vendor device registration

    Responsibilities:
    - Enroll vendor devices (model must be in the catalog)
    - Make registered devices visible in the connection manager's known set
    - Keep per-device configuration, seeded with the model defaults
    """

    def __init__(
            self,
            registry_repository: DeviceRegistryRepository,
            connection_manager: DeviceConnectionManager
    ):
        self.registry_repository = registry_repository
        self.connection_manager = connection_manager

    def register_device(self, device_id: str, payload: dict) -> RegisteredDevice:
        """
        Register a vendor device

        Raises:
            ValueError: Unsupported model or missing id
        """
        registered = RegisteredDevice.register(device_id, payload)
        self.registry_repository.save(registered)

        self.connection_manager.register_device(Device(
            device_id=registered.device_id,
            name=registered.name,
            model=registered.model,
            battery=payload.get('battery'),
            capabilities=registered.capabilities
        ))

        logger.info(f"Registered {registered!r}")
        return registered

    def get_registered_device(self, device_id: str) -> Optional[RegisteredDevice]:
        return self.registry_repository.find_by_id(device_id)

    def restore_known_devices(self) -> int:
        """Load registered devices into the known set (startup)"""
        count = 0
        for registered in self.registry_repository.find_all():
            self.connection_manager.register_device(Device(
                device_id=registered.device_id,
                name=registered.name,
                model=registered.model,
                capabilities=registered.capabilities
            ))
            count += 1

        if count:
            logger.info(f"Restored {count} registered devices")
        return count

    def get_config(self, device_id: str) -> Optional[Dict]:
        """
        Configuration of a known device

        Registered devices return their stored config; other known
        devices return their model's defaults. None if unknown.
        """
        registered = self.registry_repository.find_by_id(device_id)
        if registered is not None:
            return registered.config

        device = self.connection_manager.get_device(device_id)
        if device is None:
            return None

        return device_catalog.get_default_config(device.model)

    def update_config(self, device_id: str, updates: Dict) -> Optional[Dict]:
        """
        Merge updates into the device configuration

        Devices known only through discovery are registered on first update.

        Returns:
            The new configuration, or None if the device is unknown

        Raises:
            ValueError: The device's model is not in the catalog
        """
        registered = self.registry_repository.find_by_id(device_id)

        if registered is None:
            device = self.connection_manager.get_device(device_id)
            if device is None:
                return None
            registered = RegisteredDevice.register(
                device_id, {'model': device.model, 'name': device.name}
            )
            registered.update_config(updates)
            self.registry_repository.save(registered)
            return registered.config

        registered.update_config(updates)
        self.registry_repository.update_config(registered)
        return registered.config
