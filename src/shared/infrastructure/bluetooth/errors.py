class DeviceManagerError(Exception):
    """Base class for Bluetooth device lifecycle errors"""


class SdkUnavailable(DeviceManagerError):
    """The native SDK bridge is not present on this platform"""


class PermissionDenied(DeviceManagerError):
    """The Bluetooth radio permission was refused"""


class NoDeviceConnected(DeviceManagerError):
    """The operation requires an active device session"""

    def __init__(self, message: str = 'No device connected'):
        super().__init__(message)


class ConnectionLost(DeviceManagerError):
    """The health check detected a silent drop of the connected device"""


class BridgeError(DeviceManagerError):
    """Opaque failure surfaced from the external SDK"""

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.details = details
