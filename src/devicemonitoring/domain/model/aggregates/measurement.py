import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

GLUCOSE_UNIT_MG_DL = 'mg/dL'
GLUCOSE_UNIT_MMOL_L = 'mmol/L'

# Upper bounds (exclusive) of Low / Normal / High; anything above is Very High
GLUCOSE_THRESHOLDS = {
    GLUCOSE_UNIT_MG_DL: (70, 140, 200),
    GLUCOSE_UNIT_MMOL_L: (3.9, 7.8, 11.1),
}


class MeasurementType(Enum):
    BLOOD_PRESSURE = "blood_pressure"
    ECG = "ecg"
    OXIMETER = "oximeter"
    GLUCOSE = "glucose"

    @staticmethod
    def parse(value) -> 'MeasurementType':
        """
        Raises:
            ValueError: If value is not a supported measurement type
        """
        if isinstance(value, MeasurementType):
            return value
        try:
            return MeasurementType(str(value).lower())
        except ValueError:
            supported = [t.value for t in MeasurementType]
            raise ValueError(
                f"Unsupported measurement type {value!r}, expected one of {supported}"
            )


def classify_glucose(value: float, unit: str) -> str:
    thresholds = GLUCOSE_THRESHOLDS.get(unit)
    if thresholds is None:
        return 'Unknown'

    low, normal, high = thresholds
    if value < low:
        return 'Low'
    if value < normal:
        return 'Normal'
    if value < high:
        return 'High'
    return 'Very High'


def _number(payload: dict, key: str, cast=float, required: bool = False, default=None):
    raw = payload.get(key)

    if raw is None or raw == '':
        if required:
            raise ValueError(f"{key} is required")
        return default

    if isinstance(raw, bool):
        raise ValueError(f"{key} must be a number, got {raw!r}")

    try:
        # int("120.0") fails, int(float("120.0")) does not
        return cast(float(raw))
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {raw!r}")


def _parse_timestamp(raw) -> datetime:
    if not raw:
        return datetime.now()

    if isinstance(raw, datetime):
        parsed = raw
    else:
        try:
            parsed = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
        except ValueError:
            raise ValueError(f"Invalid timestamp format: {raw!r}")

    # Stored as naive local time, like received_at
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)

    return parsed


def _blood_pressure_values(payload: dict) -> Dict[str, Any]:
    systolic = _number(payload, 'systolic', int, required=True)
    diastolic = _number(payload, 'diastolic', int, required=True)

    if systolic <= 0 or diastolic <= 0:
        raise ValueError("systolic and diastolic must be positive")

    mean = _number(payload, 'mean', int)
    if not mean:
        mean = (systolic + 2 * diastolic) // 3

    return {
        'systolic': systolic,
        'diastolic': diastolic,
        'mean': mean,
        'pulseRate': _number(payload, 'pulseRate', int),
        'unit': payload.get('unit') or 'mmHg'
    }


def _ecg_values(payload: dict) -> Dict[str, Any]:
    waveform = payload.get('waveformData')
    if not isinstance(waveform, list):
        waveform = []

    try:
        samples = [float(sample) for sample in waveform]
    except (TypeError, ValueError):
        raise ValueError("waveformData must contain only numbers")

    return {
        'heartRate': _number(payload, 'heartRate', int, required=True),
        'waveformData': samples,
        'samplingRate': _number(payload, 'samplingRate', int, default=125),
        'duration': _number(payload, 'duration', int),
        'leadOff': bool(payload.get('leadOff', False))
    }


def _oximeter_values(payload: dict) -> Dict[str, Any]:
    spo2 = _number(payload, 'spo2', int, required=True)

    if not (0 <= spo2 <= 100):
        raise ValueError(f"spo2 must be between 0 and 100, got {spo2}")

    return {
        'spo2': spo2,
        'pulseRate': _number(payload, 'pulseRate', int),
        'pi': _number(payload, 'pi', float),
        'probeOff': bool(payload.get('probeOff', False)),
        'pulseSearching': bool(payload.get('pulseSearching', False))
    }


def _glucose_values(payload: dict) -> Dict[str, Any]:
    value = _number(payload, 'value', float, required=True)
    unit = payload.get('unit') or GLUCOSE_UNIT_MG_DL

    if unit not in GLUCOSE_THRESHOLDS:
        raise ValueError(
            f"Unsupported glucose unit {unit!r}, expected "
            f"{GLUCOSE_UNIT_MG_DL} or {GLUCOSE_UNIT_MMOL_L}"
        )

    if value < 0:
        raise ValueError(f"glucose value cannot be negative, got {value}")

    return {
        'value': value,
        'unit': unit,
        'result': payload.get('result') or classify_glucose(value, unit),
        'testType': payload.get('testType') or 'random'
    }


_VALUE_PARSERS = {
    MeasurementType.BLOOD_PRESSURE: _blood_pressure_values,
    MeasurementType.ECG: _ecg_values,
    MeasurementType.OXIMETER: _oximeter_values,
    MeasurementType.GLUCOSE: _glucose_values,
}


@dataclass
class Measurement:
    """
    Measurement Aggregate - one vital-sign reading from a device

    Per-type fields live in `values` with the camelCase names the
    backend expects (systolic, heartRate, spo2, value, ...).
    """

    device_id: str
    measurement_type: MeasurementType
    values: Dict[str, Any]
    recorded_at: datetime
    received_at: datetime
    synced_to_backend: bool = False
    synced_at: Optional[datetime] = None
    source: str = 'bluetooth'
    device_model: Optional[str] = None
    measurement_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    id: Optional[int] = None

    def __post_init__(self):
        """Validations after initialization"""
        if not self.device_id:
            raise ValueError("device_id cannot be empty")

        if not isinstance(self.measurement_type, MeasurementType):
            self.measurement_type = MeasurementType.parse(self.measurement_type)

        if self.synced_to_backend and self.synced_at is None:
            self.synced_at = datetime.now()

    @staticmethod
    def from_payload(
            device_id: str,
            measurement_type,
            payload: dict,
            source: str = 'bluetooth',
            device_model: Optional[str] = None
    ) -> 'Measurement':
        """
        Factory method: validate a raw payload and build a Measurement

        Args:
            device_id: Device that produced the reading
            measurement_type: MeasurementType or its string value
            payload: camelCase fields as sent by the device bridge or REST client
            source: Origin of the reading (bluetooth, LepuDemo, api)
            device_model: Vendor model code, if known

        Raises:
            ValueError: On missing or invalid fields
        """
        if not isinstance(payload, dict):
            raise ValueError("Measurement payload must be a JSON object")

        parsed_type = MeasurementType.parse(measurement_type)
        values = _VALUE_PARSERS[parsed_type](payload)

        return Measurement(
            device_id=device_id,
            measurement_type=parsed_type,
            values=values,
            recorded_at=_parse_timestamp(payload.get('timestamp')),
            received_at=datetime.now(),
            source=payload.get('source') or source,
            device_model=payload.get('deviceModel') or device_model
        )

    def mark_as_synced(self):
        """Mark this measurement as synchronized with the backend"""
        self.synced_to_backend = True
        self.synced_at = datetime.now()

    def to_mqtt_payload(self) -> dict:
        """Serialize to send to the backend via MQTT"""
        return {
            'measurementId': self.measurement_id,
            'deviceId': self.device_id,
            'type': self.measurement_type.value,
            **self.values,
            'timestamp': self.recorded_at.isoformat(),
            'receivedAt': self.received_at.isoformat(),
            'source': self.source,
            'deviceModel': self.device_model
        }

    def to_dict(self) -> dict:
        """Serialize for the REST API"""
        payload = self.to_mqtt_payload()
        payload['id'] = self.id
        payload['syncedToBackend'] = self.synced_to_backend
        payload['syncedAt'] = self.synced_at.isoformat() if self.synced_at else None
        return payload

    def __repr__(self) -> str:
        return (
            f"Measurement(type={self.measurement_type.value}, "
            f"device={self.device_id!r}, id={self.id})"
        )
