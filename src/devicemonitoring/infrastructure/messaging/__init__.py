from .device_status_publisher import DeviceStatusPublisher
from .measurement_publisher import MeasurementPublisher

__all__ = [
    'MeasurementPublisher',
    'DeviceStatusPublisher'
]
