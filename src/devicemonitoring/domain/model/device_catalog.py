from dataclasses import dataclass, field
from typing import Dict, List, Optional

CAPABILITY_BLOOD_PRESSURE = 'blood_pressure'
CAPABILITY_ECG = 'ecg'
CAPABILITY_SPO2 = 'spo2'
CAPABILITY_GLUCOSE = 'glucose'

DEFAULT_SERVICE_UUID = '0000FFE0-0000-1000-8000-00805F9B34FB'
MANUFACTURER = 'LepuDemo'


@dataclass(frozen=True)
class DeviceModel:
    """Vendor model entry of the catalog"""

    code: str
    type: str
    name: str
    capabilities: List[str]
    service_uuid: str = DEFAULT_SERVICE_UUID
    default_config: Dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'name': self.name,
            'serviceUUID': self.service_uuid,
            'capabilities': list(self.capabilities)
        }


_BP2_CONFIG = {
    'measurementMode': 'auto',
    'unit': 'mmHg',
    'alarmEnabled': True,
    'alarmThresholds': {
        'systolicHigh': 140,
        'systolicLow': 90,
        'diastolicHigh': 90,
        'diastolicLow': 60
    }
}

_PC80B_CONFIG = {
    'recordingDuration': 30,
    'samplingRate': 125,
    'leadConfiguration': '3-lead',
    'filterEnabled': True
}

_PC60FW_CONFIG = {
    'alarmEnabled': True,
    'alarmThresholds': {
        'spo2Low': 90,
        'pulseRateHigh': 100,
        'pulseRateLow': 60
    },
    'averagingTime': 8
}

_BIOLAND_CONFIG = {
    'unit': 'mg/dL',
    'alarmEnabled': True,
    'alarmThresholds': {
        'high': 140,
        'low': 70
    }
}


DEVICE_MODELS: Dict[str, DeviceModel] = {
    model.code: model for model in [
        # Blood pressure monitors
        DeviceModel('BP2', 'BP', 'BP2 Blood Pressure Monitor',
                    ['blood_pressure', 'pulse_rate'], default_config=_BP2_CONFIG),
        DeviceModel('BP3', 'BP', 'BP3 Blood Pressure Monitor',
                    ['blood_pressure', 'pulse_rate', 'irregular_heartbeat']),
        DeviceModel('AirBP', 'BP', 'AirBP Blood Pressure Monitor',
                    ['blood_pressure', 'pulse_rate', 'mean_pressure']),
        DeviceModel('BPM-188', 'BP', 'BPM-188 Blood Pressure Monitor',
                    ['blood_pressure', 'pulse_rate', 'mean_pressure']),

        # ECG recorders
        DeviceModel('ER1', 'ECG', 'ER1 ECG Device',
                    ['ecg', 'heart_rate', 'rhythm_analysis']),
        DeviceModel('ER2', 'ECG', 'ER2 ECG Device',
                    ['ecg', 'heart_rate', 'rhythm_analysis', 'st_segment']),
        DeviceModel('ER3', 'ECG', 'ER3 ECG Device',
                    ['ecg', 'heart_rate', 'rhythm_analysis', 'st_segment', 'qt_interval']),
        DeviceModel('PC-80B', 'ECG', 'PC-80B ECG Device',
                    ['ecg', 'heart_rate', 'rhythm_analysis'], default_config=_PC80B_CONFIG),
        DeviceModel('PC-300', 'ECG', 'PC-300 ECG Device',
                    ['ecg', 'heart_rate', 'rhythm_analysis', 'st_segment']),

        # Pulse oximeters
        DeviceModel('PC-60FW', 'OXIMETER', 'PC-60FW Pulse Oximeter',
                    ['spo2', 'pulse_rate', 'pi'], default_config=_PC60FW_CONFIG),
        DeviceModel('O2Ring', 'OXIMETER', 'O2Ring Pulse Oximeter',
                    ['spo2', 'pulse_rate', 'pi', 'continuous_monitoring']),
        DeviceModel('SP20', 'OXIMETER', 'SP20 Pulse Oximeter',
                    ['spo2', 'pulse_rate', 'pi']),
        DeviceModel('PF-10AW', 'OXIMETER', 'PF-10AW Pulse Oximeter',
                    ['spo2', 'pulse_rate', 'pi', 'alarm']),

        # Blood glucose meters
        DeviceModel('Bioland-BGM', 'GLUCOSE', 'Bioland Blood Glucose Meter',
                    ['glucose', 'trend_analysis'], default_config=_BIOLAND_CONFIG),
        DeviceModel('LPM311', 'GLUCOSE', 'LPM311 Blood Glucose Meter',
                    ['glucose', 'trend_analysis', 'data_export']),
    ]
}


def get_model(code: Optional[str]) -> Optional[DeviceModel]:
    if not code:
        return None
    return DEVICE_MODELS.get(code)


def get_capabilities(code: Optional[str]) -> List[str]:
    model = get_model(code)
    return list(model.capabilities) if model else []


def get_default_config(code: Optional[str]) -> Dict:
    """Deep-enough copy so callers can merge updates safely"""
    model = get_model(code)
    if not model:
        return {}
    return {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in model.default_config.items()
    }


def resolve_model_from_name(name: Optional[str]) -> Optional[str]:
    """
    Guess the vendor model from an advertised device name

    Advertised names start with the model code, e.g. "BP2 0B3E" or
    "PC-60FW 1234". Longest code wins so "ER2" never matches as "ER".
    """
    if not name:
        return None

    normalized = name.strip().upper()

    for code in sorted(DEVICE_MODELS, key=len, reverse=True):
        if normalized.startswith(code.upper()):
            return code

    return None


def models_to_dict() -> Dict[str, dict]:
    return {code: model.to_dict() for code, model in DEVICE_MODELS.items()}
