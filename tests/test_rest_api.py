import pytest

from app import create_flask_app
from src.container import Container
from src.shared.infrastructure.bluetooth import BluetoothDevice
from src.shared.infrastructure.storage import InMemoryKeyValueStore
from tests.fakes import FakeBridge, FakeMqttManager

BP_MONITOR = BluetoothDevice('dev1', name='BP2 0B3E')
OXIMETER = BluetoothDevice('dev2', name='PC-60FW 7781')


@pytest.fixture
def fake_bridge():
    bridge = FakeBridge()
    bridge.discoverable = [BP_MONITOR, OXIMETER]
    return bridge


@pytest.fixture
def container(fake_bridge):
    container = Container(
        bridge=fake_bridge,
        hint_store=InMemoryKeyValueStore(),
        mqtt_manager=FakeMqttManager()
    )
    yield container
    container.connection_manager.shutdown()


@pytest.fixture
def client(container):
    app = create_flask_app(container)
    app.config['TESTING'] = True
    return app.test_client()


# ==================== Health ====================

def test_health_is_degraded_without_sync_worker(client):
    response = client.get('/health')

    assert response.status_code == 503
    body = response.get_json()
    assert body['status'] == 'degraded'
    assert body['mqtt_connected'] is True
    assert body['bluetooth']['state'] == 'DISCONNECTED'
    assert body['pending_sync_count'] == 0


def test_info(client):
    body = client.get('/info').get_json()

    assert body['name'] == 'Edge Service - Medical Device Monitoring'
    assert body['bluetooth']['known_devices'] == 0


# ==================== Devices ====================

def test_scan_then_list_devices(client):
    assert client.post('/api/devices/scan/start').status_code == 200

    body = client.get('/api/devices').get_json()

    assert body['success'] is True
    assert body['count'] == 2
    assert [d['id'] for d in body['devices']] == ['dev1', 'dev2']
    assert body['connectedDevice'] is None

    assert client.post('/api/devices/scan/stop').status_code == 200
    assert client.get('/api/devices/session').get_json()['session']['isScanning'] is False


def test_connect_and_disconnect(client, container):
    response = client.post('/api/devices/dev1/connect')

    assert response.status_code == 200
    assert response.get_json()['device']['connected'] is True

    session = client.get('/api/devices/session').get_json()['session']
    assert session['state'] == 'CONNECTED'
    assert session['connectedDevice']['id'] == 'dev1'
    assert container.mqtt_manager.topics()[-1] == 'vitals/devices/events/connected'

    assert client.delete('/api/devices/dev2/connect').status_code == 404
    assert client.delete('/api/devices/dev1/connect').status_code == 200
    assert client.delete('/api/devices/dev1/connect').status_code == 404
    assert container.mqtt_manager.topics()[-1] == 'vitals/devices/events/disconnected'


def test_connect_failure_is_500(client, fake_bridge):
    fake_bridge.fail('connect', RuntimeError('GATT 133'))

    response = client.post('/api/devices/dev1/connect')

    assert response.status_code == 500
    assert response.get_json()['success'] is False
    assert 'GATT 133' in response.get_json()['error']


def test_device_status_and_battery(client, fake_bridge):
    assert client.get('/api/devices/dev1/status').status_code == 404
    assert client.post('/api/devices/dev1/battery').status_code == 404

    client.post('/api/devices/dev1/connect')
    fake_bridge.battery['dev1'] = 73

    assert client.post('/api/devices/dev1/battery').get_json()['battery'] == 73

    status = client.get('/api/devices/dev1/status').get_json()
    assert status['connected'] is True
    assert status['status']['battery'] == 73


def test_initialize_without_sdk_is_500(client, fake_bridge):
    fake_bridge.available = False

    response = client.post('/api/devices/initialize')

    assert response.status_code == 500
    assert response.get_json()['errorKind'] == 'SdkUnavailable'


def test_reconnect_without_previous_device_is_404(client, container):
    container.connection_manager._sleep = lambda seconds: None

    assert client.post('/api/devices/reconnect').status_code == 404


# ==================== Blood pressure / ECG ====================

def test_start_bp_requires_connected_device(client, fake_bridge):
    response = client.post('/api/bp/dev1/start-measurement')

    assert response.status_code == 404
    assert 'start_bp_measurement' not in fake_bridge.call_names()


def test_start_bp_on_oximeter_is_rejected(client):
    client.post('/api/devices/scan/start')
    client.post('/api/devices/dev2/connect')

    response = client.post('/api/bp/dev2/start-measurement')

    assert response.status_code == 400
    assert 'does not support' in response.get_json()['error']


def test_start_and_stop_bp_measurement(client, fake_bridge):
    client.post('/api/devices/scan/start')
    client.post('/api/devices/dev1/connect')

    assert client.post('/api/bp/dev1/start-measurement').status_code == 200
    assert client.post('/api/bp/dev1/stop-measurement').status_code == 200
    assert ('start_bp_measurement', 'dev1') in fake_bridge.calls
    assert ('stop_live', 'dev1') in fake_bridge.calls


def test_session_lost_after_route_check_is_404(client, container, fake_bridge, monkeypatch):
    client.post('/api/devices/scan/start')
    client.post('/api/devices/dev1/connect')
    manager = container.connection_manager
    seen_by_route = manager.get_connected_device()

    fake_bridge.callbacks.on_device_disconnected('dev1')
    monkeypatch.setattr(manager, 'get_connected_device', lambda: seen_by_route)

    assert client.post('/api/bp/dev1/start-measurement').status_code == 404
    assert client.post('/api/bp/dev1/stop-measurement').status_code == 404
    assert client.post('/api/ecg/dev1/stop-recording').status_code == 404
    assert client.delete('/api/devices/dev1/connect').status_code == 404
    assert 'start_bp_measurement' not in fake_bridge.call_names()
    assert 'disconnect' not in fake_bridge.call_names()


def test_start_ecg_on_bp_monitor_is_rejected(client):
    client.post('/api/devices/scan/start')
    client.post('/api/devices/dev1/connect')

    assert client.post('/api/ecg/dev1/start-recording').status_code == 400


def test_store_bp_measurement_and_history(client, container):
    response = client.post('/api/bp/dev1/measurement', json={'systolic': 120, 'diastolic': 80})

    assert response.status_code == 201
    measurement = response.get_json()['measurement']
    assert measurement['mean'] == 93
    assert measurement['syncedToBackend'] is True
    assert 'vitals/measurements/blood_pressure' in container.mqtt_manager.topics()

    history = client.get('/api/bp/dev1/history').get_json()
    assert history['count'] == 1


def test_invalid_measurements_are_400(client):
    assert client.post('/api/bp/dev1/measurement', json={'systolic': 120}).status_code == 400
    assert client.post('/api/ecg/dev1/data', json={'waveformData': [1, 2]}).status_code == 400
    assert client.post('/api/oximeter/dev1/measurement', json={'spo2': 120}).status_code == 400
    assert client.post('/api/glucose/dev1/measurement', data='[1, 2]',
                       content_type='application/json').status_code == 400


def test_history_limit_is_validated(client):
    assert client.get('/api/oximeter/dev1/history?limit=0').status_code == 400
    assert client.get('/api/oximeter/dev1/history?limit=5000').status_code == 400
    assert client.get('/api/oximeter/dev1/history?limit=10').status_code == 200


# ==================== Glucose ====================

def test_glucose_latest(client):
    assert client.get('/api/glucose/dev3/latest').status_code == 404

    client.post('/api/glucose/dev3/measurement', json={'value': 6.1, 'unit': 'mmol/L'})

    body = client.get('/api/glucose/dev3/latest').get_json()
    assert body['measurement']['result'] == 'Normal'
    assert body['measurement']['unit'] == 'mmol/L'


# ==================== Vendor (LepuDemo) ====================

def test_lepu_models(client):
    body = client.get('/api/lepu/models').get_json()

    assert body['count'] == 15
    assert body['models']['Bioland-BGM']['type'] == 'GLUCOSE'


def test_lepu_register_device(client, container):
    response = client.post('/api/lepu/devices/dev5/register', json={'model': 'XYZ-1'})
    assert response.status_code == 400

    response = client.post(
        '/api/lepu/devices/dev5/register',
        json={'model': 'BP2', 'macAddress': 'C4:2A:11:90:0B:3E'}
    )
    assert response.status_code == 200
    device = response.get_json()['device']
    assert device['model'] == 'BP2'
    assert device['connected'] is False
    assert device['config']['unit'] == 'mmHg'

    status = client.get('/api/lepu/devices/dev5/status').get_json()
    assert status['status']['capabilities'] == ['blood_pressure', 'pulse_rate']
    assert container.connection_manager.get_device('dev5') is not None


def test_lepu_status_of_unknown_device_is_404(client):
    assert client.get('/api/lepu/devices/nope/status').status_code == 404
    assert client.get('/api/lepu/devices/nope/config').status_code == 404
    assert client.post('/api/lepu/devices/nope/config', json={'unit': 'kPa'}).status_code == 404


def test_lepu_config_update(client):
    client.post('/api/lepu/devices/dev5/register', json={'model': 'PC-60FW'})

    response = client.post('/api/lepu/devices/dev5/config', json={'averagingTime': 4})
    assert response.status_code == 200

    config = client.get('/api/lepu/devices/dev5/config').get_json()['config']
    assert config['averagingTime'] == 4
    assert config['alarmEnabled'] is True


def test_lepu_measurements_are_tagged_with_vendor_source(client):
    response = client.post('/api/lepu/bp/dev7/measurement', json={'systolic': 130, 'diastolic': 85})
    assert response.status_code == 201
    measurement = response.get_json()['measurement']
    assert measurement['source'] == 'LepuDemo'
    assert measurement['deviceModel'] == 'BP2'

    client.post('/api/lepu/oximeter/dev7/measurement', json={'spo2': 96})
    client.post('/api/lepu/glucose/dev7/measurement', json={'value': 180})
    client.post('/api/lepu/ecg/dev7/data', json={'heartRate': 70})

    history = client.get('/api/lepu/devices/dev7/history?type=glucose').get_json()
    assert history['count'] == 1
    assert history['total'] == 4
    assert history['measurements'][0]['result'] == 'High'
    assert history['measurements'][0]['deviceModel'] == 'Bioland-BGM'

    assert client.get('/api/lepu/devices/dev7/history?type=weight').status_code == 400


def test_lepu_measurement_uses_known_device_model(client):
    client.post('/api/lepu/devices/dev8/register', json={'model': 'BP3'})

    response = client.post('/api/lepu/bp/dev8/measurement', json={'systolic': 110, 'diastolic': 70})

    assert response.get_json()['measurement']['deviceModel'] == 'BP3'
