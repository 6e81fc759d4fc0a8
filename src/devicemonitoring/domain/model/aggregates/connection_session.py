from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .device import Device


class ConnectionState(Enum):
    """
    Session state machine

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED
    CONNECTING -> DISCONNECTED on connect failure.
    Reconnection starts from DISCONNECTED through CONNECTING.
    """
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Point-in-time copy of the connection manager's observable state"""

    devices: List[Device]
    connected_device: Optional[Device]
    state: ConnectionState
    is_scanning: bool
    is_connecting: bool
    is_initialized: bool
    bluetooth_enabled: bool
    last_error: Optional[str]
    last_error_kind: Optional[str]
    health_check_active: bool

    def get_device(self, device_id: str) -> Optional[Device]:
        for device in self.devices:
            if device.device_id == device_id:
                return device
        return None

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'devices': [d.to_dict() for d in self.devices],
            'connectedDevice': (
                self.connected_device.to_dict() if self.connected_device else None
            ),
            'isScanning': self.is_scanning,
            'isConnecting': self.is_connecting,
            'isInitialized': self.is_initialized,
            'bluetoothEnabled': self.bluetooth_enabled,
            'lastError': self.last_error,
            'lastErrorKind': self.last_error_kind,
            'healthCheckActive': self.health_check_active
        }
