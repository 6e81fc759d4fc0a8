import threading
import time

import pytest

from config.bluetooth_config import BluetoothConfig
from src.devicemonitoring.application.services import DeviceConnectionManager
from src.devicemonitoring.application.services.device_connection_manager import (
    BLUETOOTH_DISABLED_MESSAGE,
    CONNECTION_LOST_MESSAGE,
    DEVICE_DISCONNECTED_MESSAGE,
    PERMISSION_DENIED_MESSAGE
)
from src.devicemonitoring.application.workers.connection_health_worker import ConnectionHealthWorker
from src.devicemonitoring.domain.model.aggregates import ConnectionState, Device
from src.devicemonitoring.domain.model.events import DisconnectReason
from src.shared.infrastructure.bluetooth import (
    BluetoothDevice,
    BridgeError,
    NoDeviceConnected,
    PermissionDenied,
    SdkUnavailable
)
from src.shared.infrastructure.storage import InMemoryKeyValueStore
from tests.fakes import FakeBridge

HINT_KEY = BluetoothConfig.RECONNECT_HINT_KEY

BP_MONITOR = BluetoothDevice('dev1', name='BP2 0B3E')
OXIMETER = BluetoothDevice('dev2', name='PC-60FW 7781')


def connected_flags(manager):
    return [d.device_id for d in manager.get_devices() if d.is_connected]


# ==================== Initialization ====================

def test_initialize_registers_callbacks_once(manager, bridge):
    manager.initialize()
    manager.initialize()

    assert bridge.call_names().count('initialize') == 1
    assert bridge.callbacks is not None
    assert manager.get_state().is_initialized


def test_initialize_without_sdk_raises(manager, bridge):
    bridge.available = False

    with pytest.raises(SdkUnavailable):
        manager.initialize()

    state = manager.get_state()
    assert not state.is_initialized
    assert state.last_error_kind == 'SdkUnavailable'


def test_initialize_permission_refused_surfaces_user_message(manager, bridge):
    bridge.fail('initialize', PermissionDenied('BLUETOOTH_CONNECT denied'))

    with pytest.raises(PermissionDenied) as excinfo:
        manager.initialize()

    assert str(excinfo.value) == PERMISSION_DENIED_MESSAGE
    assert manager.get_state().last_error == PERMISSION_DENIED_MESSAGE


def test_initialize_wraps_unknown_bridge_failures(manager, bridge):
    bridge.fail('initialize', OSError('adapter busy'))

    with pytest.raises(BridgeError):
        manager.initialize()


# ==================== Scanning ====================

def test_scan_discoveries_are_deduplicated(manager, bridge):
    bridge.discoverable = [
        BP_MONITOR,
        OXIMETER,
        BluetoothDevice('dev1', name='BP2 0B3E', battery=80),
    ]

    assert manager.start_scan() is True

    state = manager.get_state()
    assert [d.device_id for d in state.devices] == ['dev1', 'dev2']
    assert state.get_device('dev1').battery == 80
    assert state.get_device('dev1').model == 'BP2'
    assert state.get_device('dev2').model == 'PC-60FW'
    assert state.is_scanning


def test_start_scan_failure_leaves_scanning_off(manager, bridge):
    bridge.fail('start_scan')

    assert manager.start_scan() is False

    state = manager.get_state()
    assert not state.is_scanning
    assert state.last_error_kind == 'BridgeError'


def test_stop_scan_always_clears_scanning(manager, bridge):
    manager.start_scan()
    bridge.fail('stop_scan')

    assert manager.stop_scan() is False
    assert not manager.get_state().is_scanning


def test_new_scan_keeps_connected_device(manager, bridge):
    bridge.discoverable = [BP_MONITOR, OXIMETER]
    manager.start_scan()
    manager.connect('dev1')

    bridge.discoverable = []
    manager.start_scan()

    assert [d.device_id for d in manager.get_devices()] == ['dev1']
    assert connected_flags(manager) == ['dev1']


def test_concurrent_discoveries_never_duplicate(manager, bridge):
    manager.initialize()

    def discover():
        for i in range(50):
            bridge.callbacks.on_device_found(BluetoothDevice(f'dev{i % 5}', name='ER1'))

    threads = [threading.Thread(target=discover) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    ids = [d.device_id for d in manager.get_devices()]
    assert sorted(ids) == ['dev0', 'dev1', 'dev2', 'dev3', 'dev4']


# ==================== Connect / disconnect ====================

def test_connect_starts_session_and_persists_hint(
        manager, bridge, hint_store, status_publisher, health_workers
):
    bridge.discoverable = [BP_MONITOR]
    manager.start_scan()

    device = manager.connect('dev1')

    assert device.is_connected
    state = manager.get_state()
    assert state.state == ConnectionState.CONNECTED
    assert state.connected_device.device_id == 'dev1'
    assert not state.is_scanning
    assert not state.is_connecting
    assert state.health_check_active
    assert connected_flags(manager) == ['dev1']
    assert hint_store.get(HINT_KEY) == 'dev1'
    assert len(health_workers) == 1 and health_workers[0].started
    assert status_publisher.events == [('connected', 'dev1')]


def test_connect_unknown_device_is_a_direct_connect(manager):
    device = manager.connect('AA:BB:CC:DD:EE:FF')

    assert device.device_id == 'AA:BB:CC:DD:EE:FF'
    assert manager.get_device('AA:BB:CC:DD:EE:FF').is_connected


def test_connect_same_device_twice_is_a_no_op(manager, bridge, health_workers):
    manager.connect('dev1')
    manager.connect('dev1')

    assert bridge.call_names().count('connect') == 1
    assert len(health_workers) == 1


def test_connected_callback_during_connect_commits_once(
        manager, bridge, status_publisher, health_workers
):
    def fire_connected(device_id):
        bridge.callbacks.on_device_connected(BluetoothDevice(device_id, name='BP2 0B3E'))

    bridge.connect_hook = fire_connected

    device = manager.connect('dev1')

    assert device.name == 'BP2 0B3E'
    assert len(health_workers) == 1
    assert status_publisher.events == [('connected', 'dev1')]
    assert manager.get_state().connected_device.device_id == 'dev1'


def test_connect_failure_leaves_current_session(manager, bridge, hint_store):
    manager.connect('dev1')
    bridge.fail('connect', RuntimeError('GATT 133'))

    with pytest.raises(BridgeError):
        manager.connect('dev2')

    state = manager.get_state()
    assert state.connected_device.device_id == 'dev1'
    assert not state.is_connecting
    assert state.last_error_kind == 'BridgeError'
    assert hint_store.get(HINT_KEY) == 'dev1'


def test_connect_failure_without_session_goes_back_to_disconnected(manager, bridge):
    bridge.fail('connect')

    with pytest.raises(BridgeError):
        manager.connect('dev1')

    state = manager.get_state()
    assert state.state == ConnectionState.DISCONNECTED
    assert state.connected_device is None


def test_connecting_another_device_replaces_the_session(
        manager, hint_store, status_publisher, health_workers
):
    manager.connect('dev1')
    manager.connect('dev2')

    assert connected_flags(manager) == ['dev2']
    assert not manager.get_device('dev1').is_connected
    assert health_workers[0].stopped
    assert health_workers[1].started and not health_workers[1].stopped
    assert hint_store.get(HINT_KEY) == 'dev2'
    assert ('disconnected', 'dev1', DisconnectReason.USER_REQUEST) in status_publisher.events


def test_disconnect_clears_session_and_hint(
        manager, hint_store, status_publisher, health_workers
):
    manager.connect('dev1')

    assert manager.disconnect() is True

    state = manager.get_state()
    assert state.connected_device is None
    assert state.state == ConnectionState.DISCONNECTED
    assert state.last_error is None
    assert not state.health_check_active
    assert not manager.get_device('dev1').is_connected
    assert hint_store.get(HINT_KEY) is None
    assert health_workers[0].stopped
    assert status_publisher.events[-1] == ('disconnected', 'dev1', DisconnectReason.USER_REQUEST)


class LockCheckingStore(InMemoryKeyValueStore):
    """Records whether the manager stays usable from another thread during each write"""

    def __init__(self):
        super().__init__()
        self.manager = None
        self.writes = []

    def _manager_reachable(self) -> bool:
        probe = threading.Thread(target=self.manager.get_state, daemon=True)
        probe.start()
        probe.join(timeout=1)
        return not probe.is_alive()

    def set(self, key, value):
        self.writes.append(('set', self._manager_reachable()))
        super().set(key, value)

    def delete(self, key):
        self.writes.append(('delete', self._manager_reachable()))
        super().delete(key)


def test_hint_is_written_outside_the_manager_lock(bridge):
    store = LockCheckingStore()
    manager = DeviceConnectionManager(bridge, store, sleep=lambda seconds: None)
    store.manager = manager

    manager.connect('dev1')
    manager.disconnect()
    manager.connect('dev2')
    bridge.callbacks.on_radio_status_changed(False)
    manager.shutdown()

    assert store.writes == [
        ('set', True), ('delete', True), ('set', True), ('delete', True)
    ]
    assert store.get(HINT_KEY) is None


def test_disconnect_without_session_returns_false(manager, bridge):
    assert manager.disconnect() is False
    assert 'disconnect' not in bridge.call_names()


def test_disconnect_failure_keeps_session(manager, bridge, hint_store):
    manager.connect('dev1')
    bridge.fail('disconnect')

    with pytest.raises(BridgeError):
        manager.disconnect()

    assert manager.get_connected_device().device_id == 'dev1'
    assert hint_store.get(HINT_KEY) == 'dev1'


def test_disconnected_callback_during_user_disconnect_is_not_an_error(
        manager, bridge, status_publisher
):
    manager.connect('dev1')
    bridge.disconnect_hook = bridge.callbacks.on_device_disconnected

    manager.disconnect()

    disconnects = [e for e in status_publisher.events if e[0] == 'disconnected']
    assert disconnects == [('disconnected', 'dev1', DisconnectReason.USER_REQUEST)]
    assert manager.get_state().last_error is None


def test_bridge_reported_disconnect_ends_session(
        manager, bridge, hint_store, status_publisher, health_workers
):
    manager.connect('dev1')

    bridge.callbacks.on_device_disconnected('dev1')

    state = manager.get_state()
    assert state.connected_device is None
    assert state.last_error == DEVICE_DISCONNECTED_MESSAGE
    assert hint_store.get(HINT_KEY) is None
    assert health_workers[0].stopped
    assert not health_workers[0].joined
    assert status_publisher.events[-1] == ('disconnected', 'dev1', DisconnectReason.BRIDGE_REPORTED)


def test_disconnect_callback_for_other_device_is_ignored(manager, bridge):
    manager.connect('dev1')

    bridge.callbacks.on_device_disconnected('dev9')

    assert manager.get_connected_device().device_id == 'dev1'
    assert manager.get_state().last_error is None


def test_disconnect_of_another_device_keeps_session(manager, bridge, hint_store):
    manager.connect('dev2')

    assert manager.disconnect('dev1') is False

    assert manager.get_connected_device().device_id == 'dev2'
    assert 'disconnect' not in bridge.call_names()
    assert hint_store.get(HINT_KEY) == 'dev2'


class ProbeWaitingBridge(FakeBridge):
    """The connected-devices query waits for a reply that only the reader delivers"""

    def __init__(self):
        super().__init__()
        self.query_started = threading.Event()
        self.reply = threading.Event()

    def get_connected_devices(self):
        self.query_started.set()
        self.reply.wait(timeout=10)
        return super().get_connected_devices()


def test_teardown_callback_does_not_wait_for_health_check_in_flight(hint_store):
    bridge = ProbeWaitingBridge()
    workers = []

    def worker_factory(connection_manager, generation):
        worker = ConnectionHealthWorker(connection_manager, generation, interval_seconds=0.01)
        workers.append(worker)
        return worker

    manager = DeviceConnectionManager(
        bridge,
        hint_store,
        health_worker_factory=worker_factory,
        sleep=lambda seconds: None
    )
    manager.connect('dev1')
    assert bridge.query_started.wait(timeout=2)

    started = time.monotonic()
    bridge.callbacks.on_device_disconnected('dev1')
    elapsed = time.monotonic() - started

    bridge.reply.set()
    workers[0].thread.join(timeout=2)

    assert elapsed < 1.0
    assert not workers[0].thread.is_alive()
    state = manager.get_state()
    assert state.connected_device is None
    assert state.last_error == DEVICE_DISCONNECTED_MESSAGE


# ==================== Health check ====================

def test_health_check_detects_silent_drop(
        manager, bridge, hint_store, status_publisher, health_workers
):
    manager.connect('dev1')
    bridge.connected = []

    assert manager.check_connection_health() is False

    state = manager.get_state()
    assert state.connected_device is None
    assert state.last_error == 'Device connection lost'
    assert state.last_error_kind == 'ConnectionLost'
    assert hint_store.get(HINT_KEY) is None
    assert health_workers[0].stopped
    assert status_publisher.events[-1] == ('disconnected', 'dev1', DisconnectReason.CONNECTION_LOST)


def test_health_check_refreshes_battery(manager, bridge):
    manager.connect('dev1')
    bridge.battery['dev1'] = 55

    assert manager.check_connection_health() is True
    assert manager.get_connected_device().battery == 55


def test_health_check_failing_battery_probe_ends_session(manager, bridge):
    manager.connect('dev1')
    bridge.fail('get_battery_level')

    assert manager.check_connection_health() is False
    assert manager.get_connected_device() is None
    assert manager.get_state().last_error == CONNECTION_LOST_MESSAGE


def test_health_check_without_session_does_nothing(manager, bridge):
    assert manager.check_connection_health() is False
    assert 'get_connected_devices' not in bridge.call_names()


def test_stale_health_tick_is_ignored(manager, bridge, health_workers):
    manager.connect('dev1')
    stale_generation = health_workers[0].generation
    manager.disconnect()
    manager.connect('dev1')
    bridge.calls.clear()
    bridge.connected = []

    assert manager.check_connection_health(stale_generation) is False

    assert manager.get_connected_device().device_id == 'dev1'
    assert 'get_connected_devices' not in bridge.call_names()


# ==================== Measurements ====================

def test_start_bp_without_session_changes_nothing(manager, bridge):
    before = manager.get_state()

    with pytest.raises(NoDeviceConnected):
        manager.start_bp_measurement()

    assert manager.get_state() == before
    assert 'start_bp_measurement' not in bridge.call_names()


def test_measurement_commands_target_connected_device(manager, bridge):
    manager.connect('dev1')

    assert manager.start_bp_measurement() == 'dev1'
    assert manager.start_ecg_measurement() == 'dev1'
    assert manager.stop_measurement() == 'dev1'

    assert ('start_bp_measurement', 'dev1') in bridge.calls
    assert ('start_ecg_measurement', 'dev1') in bridge.calls
    assert ('stop_live', 'dev1') in bridge.calls


def test_measurement_commands_for_another_device_are_refused(manager, bridge):
    manager.connect('dev2')

    with pytest.raises(NoDeviceConnected):
        manager.start_bp_measurement('dev1')
    with pytest.raises(NoDeviceConnected):
        manager.stop_measurement('dev1')

    assert manager.start_ecg_measurement('dev2') == 'dev2'
    assert 'start_bp_measurement' not in bridge.call_names()
    assert 'stop_live' not in bridge.call_names()


def test_measurement_command_failure_is_recorded(manager, bridge):
    manager.connect('dev1')
    bridge.fail('start_ecg_measurement')

    with pytest.raises(BridgeError):
        manager.start_ecg_measurement()

    state = manager.get_state()
    assert state.last_error_kind == 'BridgeError'
    assert state.connected_device.device_id == 'dev1'


def test_measurement_events_are_forwarded(bridge, hint_store):
    from src.devicemonitoring.application.services import DeviceConnectionManager

    received = []

    class MeasurementSink:
        def record_from_bridge(self, device_id, measurement_type, payload):
            received.append((device_id, measurement_type, payload))

    manager = DeviceConnectionManager(bridge, hint_store, measurement_service=MeasurementSink())
    manager.initialize()

    bridge.callbacks.on_measurement('dev1', 'glucose', {'value': 98})

    assert received == [('dev1', 'glucose', {'value': 98})]


# ==================== Radio / errors / battery ====================

def test_radio_off_clears_known_devices_and_session(
        manager, bridge, hint_store, status_publisher
):
    bridge.discoverable = [BP_MONITOR, OXIMETER]
    manager.start_scan()
    manager.connect('dev1')

    bridge.callbacks.on_radio_status_changed(False)

    state = manager.get_state()
    assert state.devices == []
    assert state.connected_device is None
    assert not state.bluetooth_enabled
    assert not state.is_scanning
    assert state.last_error == BLUETOOTH_DISABLED_MESSAGE
    assert hint_store.get(HINT_KEY) is None
    assert status_publisher.events[-1] == (
        'disconnected', 'dev1', DisconnectReason.BLUETOOTH_DISABLED
    )

    bridge.callbacks.on_radio_status_changed(True)

    state = manager.get_state()
    assert state.bluetooth_enabled
    assert state.last_error is None


def test_error_callback_is_recorded(manager, bridge):
    manager.initialize()

    bridge.callbacks.on_error('Scan throttled', {'code': 6})

    state = manager.get_state()
    assert state.last_error == 'Scan throttled'
    assert state.last_error_kind == 'BridgeError'


def test_battery_update_is_normalized(manager, bridge):
    manager.connect('dev1')

    bridge.callbacks.on_battery_update('dev1', 140)
    assert manager.get_device('dev1').battery is None

    bridge.callbacks.on_battery_update('dev1', 42)
    assert manager.get_device('dev1').battery == 42


def test_refresh_battery(manager, bridge):
    assert manager.refresh_battery() is None

    manager.connect('dev1')
    bridge.battery['dev1'] = 77

    assert manager.refresh_battery() == 77


def test_register_device_does_not_touch_session(manager):
    manager.connect('dev1')

    manager.register_device(Device(device_id='dev1', name='BP2 0B3E'))
    manager.register_device(Device(device_id='dev3', model='ER1'))

    assert connected_flags(manager) == ['dev1']
    assert manager.get_device('dev1').model == 'BP2'
    assert manager.get_device('dev3').capabilities[0] == 'ecg'


# ==================== Auto-reconnect ====================

def test_auto_reconnect_adopts_device_still_connected(manager, bridge, hint_store):
    hint_store.set(HINT_KEY, 'dev1')
    bridge.connected = [OXIMETER, BP_MONITOR]

    device = manager.auto_reconnect()

    assert device.device_id == 'dev1'
    assert 'connect' not in bridge.call_names()
    assert manager.get_connected_device().device_id == 'dev1'


def test_auto_reconnect_scans_then_connects_to_hint(manager, bridge, hint_store):
    hint_store.set(HINT_KEY, 'dev1')
    bridge.discoverable = [BP_MONITOR]

    device = manager.auto_reconnect()

    assert device.device_id == 'dev1'
    names = bridge.call_names()
    assert names.index('start_scan') < names.index('stop_scan') < names.index('connect')
    assert not manager.get_state().is_scanning


def test_auto_reconnect_tries_direct_connect_when_hint_not_found(manager, bridge, hint_store):
    hint_store.set(HINT_KEY, 'dev1')

    device = manager.auto_reconnect()

    assert device.device_id == 'dev1'
    assert ('connect', 'dev1') in bridge.calls


def test_auto_reconnect_without_hint_only_discovers(manager, bridge):
    bridge.discoverable = [OXIMETER]

    assert manager.auto_reconnect() is None

    assert 'connect' not in bridge.call_names()
    assert [d.device_id for d in manager.get_devices()] == ['dev2']
    assert not manager.get_state().is_scanning


def test_auto_reconnect_failure_is_swallowed_and_hint_kept(manager, bridge, hint_store):
    hint_store.set(HINT_KEY, 'dev1')
    bridge.fail('connect')

    assert manager.auto_reconnect() is None
    assert hint_store.get(HINT_KEY) == 'dev1'


def test_auto_reconnect_without_sdk_returns_none(manager, bridge):
    bridge.available = False

    assert manager.auto_reconnect() is None
    assert bridge.calls == []


# ==================== Shutdown ====================

def test_shutdown_stops_health_check_and_closes_bridge(
        manager, bridge, hint_store, health_workers
):
    manager.connect('dev1')

    manager.shutdown()

    assert health_workers[0].stopped
    assert health_workers[0].joined
    assert bridge.closed
    assert hint_store.get(HINT_KEY) == 'dev1'
