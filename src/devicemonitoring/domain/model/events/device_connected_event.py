from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class DeviceConnectedEvent:
    """
    Domain Event: Device connected

    Published when a Bluetooth session is established, either by an
    explicit connect or by startup auto-reconnect.

    MQTT Topic: vitals/devices/events/connected

    Payload structure to Backend:
    {
        "eventType": "DEVICE_CONNECTED",
        "deviceId": "C4:2A:11:90:0B:3E",
        "deviceName": "BP2 0B3E",
        "model": "BP2",
        "battery": 87,
        "occurredAt": "2025-11-29T23:45:00"
    }
    """

    device_id: str
    device_name: str
    occurred_at: datetime
    model: Optional[str] = None
    battery: Optional[int] = None

    def __post_init__(self):
        if not self.device_id:
            raise ValueError("device_id cannot be empty")

    def to_mqtt_payload(self) -> dict:
        return {
            "eventType": "DEVICE_CONNECTED",
            "deviceId": self.device_id,
            "deviceName": self.device_name,
            "model": self.model,
            "battery": self.battery,
            "occurredAt": self.occurred_at.isoformat()
        }

    def __repr__(self) -> str:
        return f"DeviceConnectedEvent(device_id='{self.device_id}')"
