from .device_connection_manager import DeviceConnectionManager
from .measurement_service import MeasurementService
from .device_registry_service import DeviceRegistryService

__all__ = [
    'DeviceConnectionManager',
    'MeasurementService',
    'DeviceRegistryService'
]
