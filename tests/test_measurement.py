from datetime import datetime

import pytest

from src.devicemonitoring.domain.model.aggregates import Measurement, MeasurementType
from src.devicemonitoring.domain.model.aggregates.measurement import classify_glucose


def test_blood_pressure_mean_defaults_from_systolic_and_diastolic():
    measurement = Measurement.from_payload(
        'dev1', 'blood_pressure', {'systolic': 120, 'diastolic': 80, 'pulseRate': 70}
    )

    assert measurement.measurement_type == MeasurementType.BLOOD_PRESSURE
    assert measurement.values['mean'] == 93
    assert measurement.values['unit'] == 'mmHg'
    assert measurement.values['pulseRate'] == 70


def test_blood_pressure_accepts_numeric_strings():
    measurement = Measurement.from_payload(
        'dev1', MeasurementType.BLOOD_PRESSURE, {'systolic': '131', 'diastolic': '85.0'}
    )

    assert measurement.values['systolic'] == 131
    assert measurement.values['diastolic'] == 85


@pytest.mark.parametrize('payload', [
    {'systolic': 120},
    {'systolic': 0, 'diastolic': 80},
    {'systolic': 'high', 'diastolic': 80},
    {'systolic': True, 'diastolic': 80},
])
def test_invalid_blood_pressure_is_rejected(payload):
    with pytest.raises(ValueError):
        Measurement.from_payload('dev1', 'blood_pressure', payload)


def test_ecg_waveform_and_defaults():
    measurement = Measurement.from_payload(
        'dev1', 'ecg', {'heartRate': 72, 'waveformData': [0.1, '0.25', -0.3]}
    )

    assert measurement.values['waveformData'] == [0.1, 0.25, -0.3]
    assert measurement.values['samplingRate'] == 125
    assert measurement.values['leadOff'] is False


def test_ecg_requires_heart_rate():
    with pytest.raises(ValueError, match='heartRate'):
        Measurement.from_payload('dev1', 'ecg', {'waveformData': []})


def test_oximeter_spo2_range():
    measurement = Measurement.from_payload('dev1', 'oximeter', {'spo2': 97, 'pi': 3.2})
    assert measurement.values['spo2'] == 97
    assert measurement.values['pi'] == 3.2

    with pytest.raises(ValueError):
        Measurement.from_payload('dev1', 'oximeter', {'spo2': 101})


@pytest.mark.parametrize('value,unit,expected', [
    (65, 'mg/dL', 'Low'),
    (70, 'mg/dL', 'Normal'),
    (139, 'mg/dL', 'Normal'),
    (140, 'mg/dL', 'High'),
    (250, 'mg/dL', 'Very High'),
    (3.5, 'mmol/L', 'Low'),
    (5.4, 'mmol/L', 'Normal'),
    (9.0, 'mmol/L', 'High'),
    (12.0, 'mmol/L', 'Very High'),
])
def test_glucose_classification(value, unit, expected):
    assert classify_glucose(value, unit) == expected


def test_glucose_result_is_classified_when_missing():
    measurement = Measurement.from_payload('dev1', 'glucose', {'value': 112})

    assert measurement.values['unit'] == 'mg/dL'
    assert measurement.values['result'] == 'Normal'
    assert measurement.values['testType'] == 'random'


def test_glucose_rejects_unknown_unit_and_negative_values():
    with pytest.raises(ValueError, match='unit'):
        Measurement.from_payload('dev1', 'glucose', {'value': 5, 'unit': 'g/L'})

    with pytest.raises(ValueError):
        Measurement.from_payload('dev1', 'glucose', {'value': -1})


def test_unsupported_type_is_rejected():
    with pytest.raises(ValueError, match='Unsupported measurement type'):
        Measurement.from_payload('dev1', 'temperature', {'value': 36.6})


def test_timezone_timestamps_are_stored_as_local_time():
    measurement = Measurement.from_payload(
        'dev1', 'oximeter', {'spo2': 98, 'timestamp': '2025-01-15T10:30:00Z'}
    )

    assert measurement.recorded_at.tzinfo is None


def test_invalid_timestamp_is_rejected():
    with pytest.raises(ValueError, match='timestamp'):
        Measurement.from_payload('dev1', 'oximeter', {'spo2': 98, 'timestamp': 'yesterday'})


def test_mqtt_payload_flattens_values():
    measurement = Measurement.from_payload(
        'dev1',
        'blood_pressure',
        {'systolic': 121, 'diastolic': 79, 'timestamp': '2025-01-15T10:30:00'},
        source='LepuDemo',
        device_model='BP2'
    )

    payload = measurement.to_mqtt_payload()

    assert payload['deviceId'] == 'dev1'
    assert payload['type'] == 'blood_pressure'
    assert payload['systolic'] == 121
    assert payload['timestamp'] == '2025-01-15T10:30:00'
    assert payload['source'] == 'LepuDemo'
    assert payload['deviceModel'] == 'BP2'
    assert 'syncedToBackend' not in payload


def test_mark_as_synced():
    measurement = Measurement.from_payload('dev1', 'oximeter', {'spo2': 95})
    assert measurement.synced_at is None

    measurement.mark_as_synced()

    assert measurement.synced_to_backend
    assert isinstance(measurement.synced_at, datetime)
    assert measurement.to_dict()['syncedToBackend'] is True
