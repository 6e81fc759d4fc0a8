from .device import Device
from .measurement import Measurement, MeasurementType
from .connection_session import ConnectionSnapshot, ConnectionState
from .registered_device import RegisteredDevice

__all__ = [
    'Device',
    'Measurement',
    'MeasurementType',
    'ConnectionSnapshot',
    'ConnectionState',
    'RegisteredDevice'
]
