from .bluetooth_device import BluetoothDevice
from .bridge import BridgeCallbacks, DeviceBridge
from .errors import (
    BridgeError,
    ConnectionLost,
    DeviceManagerError,
    NoDeviceConnected,
    PermissionDenied,
    SdkUnavailable
)
from .message_router import BluetoothMessageRouter
from .serial_bridge import SerialBridge
from .serial_client import SerialClient

__all__ = [
    'BluetoothDevice',
    'BridgeCallbacks',
    'DeviceBridge',
    'SerialBridge',
    'SerialClient',
    'BluetoothMessageRouter',
    'DeviceManagerError',
    'SdkUnavailable',
    'PermissionDenied',
    'NoDeviceConnected',
    'ConnectionLost',
    'BridgeError'
]
