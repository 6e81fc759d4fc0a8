from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .bluetooth_device import BluetoothDevice


@dataclass
class BridgeCallbacks:
    """
    Event handlers registered with the SDK bridge

    Callbacks for a single device arrive in the order the bridge issues
    them. Ordering across devices is unspecified.
    """

    on_device_found: Callable[[BluetoothDevice], None]
    on_device_connected: Callable[[BluetoothDevice], None]
    on_device_disconnected: Callable[[str], None]
    on_battery_update: Callable[[str, Optional[int]], None]
    on_radio_status_changed: Callable[[bool], None]
    on_error: Callable[[str, Any], None]
    on_measurement: Optional[Callable[[str, str, dict], None]] = None


class DeviceBridge(ABC):
    """
    Contract of the native Bluetooth SDK bridge

    Every call is blocking I/O and may fail with BridgeError.
    connect() returns once the link is established.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """True when the native bridge exists on this platform"""

    @abstractmethod
    def initialize(self, callbacks: BridgeCallbacks) -> None:
        """Register event callbacks; may raise PermissionDenied"""

    @abstractmethod
    def start_scan(self) -> None:
        pass

    @abstractmethod
    def stop_scan(self) -> None:
        pass

    @abstractmethod
    def connect(self, device_id: str) -> None:
        pass

    @abstractmethod
    def disconnect(self, device_id: str) -> None:
        pass

    @abstractmethod
    def get_connected_devices(self) -> List[BluetoothDevice]:
        pass

    @abstractmethod
    def get_battery_level(self, device_id: str) -> Optional[int]:
        pass

    @abstractmethod
    def start_bp_measurement(self, device_id: str) -> None:
        pass

    @abstractmethod
    def start_ecg_measurement(self, device_id: str) -> None:
        pass

    @abstractmethod
    def stop_live(self, device_id: str) -> None:
        pass

    def close(self) -> None:
        """Release bridge resources"""
