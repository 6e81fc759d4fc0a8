from .device_connected_event import DeviceConnectedEvent
from .device_disconnected_event import DeviceDisconnectedEvent, DisconnectReason

__all__ = [
    'DeviceConnectedEvent',
    'DeviceDisconnectedEvent',
    'DisconnectReason'
]
