from .measurement_repository import MeasurementRepository
from .device_registry_repository import DeviceRegistryRepository
from .key_value_repository import KeyValueRepository

__all__ = [
    'MeasurementRepository',
    'DeviceRegistryRepository',
    'KeyValueRepository'
]
