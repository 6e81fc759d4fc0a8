from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class BluetoothDevice:
    """
    Device as reported by the SDK bridge

    Plain transport record; the device monitoring domain turns it
    into its own Device aggregate.
    """

    device_id: str
    name: str = ''
    model: Optional[str] = None
    battery: Optional[int] = None
    capabilities: List[str] = field(default_factory=list)

    @staticmethod
    def from_payload(payload: dict) -> 'BluetoothDevice':
        """
        Build from a bridge message payload

        Payload structure:
        {
            "id": "C4:2A:11:90:0B:3E",
            "name": "BP2 0B3E",
            "model": "BP2",
            "battery": 87,
            "capabilities": ["blood_pressure"]
        }

        Raises:
            ValueError: If the id is missing
        """
        device_id = payload.get('id') or payload.get('deviceId')
        if not device_id:
            raise ValueError(f"Device payload without id: {payload}")

        return BluetoothDevice(
            device_id=str(device_id),
            name=payload.get('name') or '',
            model=payload.get('model'),
            battery=payload.get('battery'),
            capabilities=list(payload.get('capabilities') or [])
        )

    def __repr__(self) -> str:
        return f"BluetoothDevice({self.device_id}, {self.name!r})"
