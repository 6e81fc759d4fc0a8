from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DisconnectReason(Enum):
    USER_REQUEST = "USER_REQUEST"
    CONNECTION_LOST = "CONNECTION_LOST"
    BRIDGE_REPORTED = "BRIDGE_REPORTED"
    BLUETOOTH_DISABLED = "BLUETOOTH_DISABLED"


@dataclass
class DeviceDisconnectedEvent:
    """
    Domain Event: Device session ended

    Published on every teardown path of the connection session.

    MQTT Topic: vitals/devices/events/disconnected

    Payload structure to Backend:
    {
        "eventType": "DEVICE_DISCONNECTED",
        "deviceId": "C4:2A:11:90:0B:3E",
        "occurredAt": "2025-11-29T23:45:00",
        "reason": "CONNECTION_LOST"
    }
    """

    device_id: str
    occurred_at: datetime
    reason: DisconnectReason = DisconnectReason.USER_REQUEST

    def __post_init__(self):
        if not self.device_id:
            raise ValueError("device_id cannot be empty")

    def to_mqtt_payload(self) -> dict:
        return {
            "eventType": "DEVICE_DISCONNECTED",
            "deviceId": self.device_id,
            "occurredAt": self.occurred_at.isoformat(),
            "reason": self.reason.value
        }

    def __repr__(self) -> str:
        return (
            f"DeviceDisconnectedEvent(device_id='{self.device_id}', "
            f"reason='{self.reason.value}')"
        )
