import dataclasses
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from config.bluetooth_config import BluetoothConfig
from src.devicemonitoring.domain.model.aggregates import (
    ConnectionSnapshot,
    ConnectionState,
    Device
)
from src.devicemonitoring.application.workers.connection_health_worker import ConnectionHealthWorker
from src.devicemonitoring.domain.model.events import DisconnectReason
from src.shared.infrastructure.bluetooth import (
    BluetoothDevice,
    BridgeCallbacks,
    BridgeError,
    ConnectionLost,
    DeviceBridge,
    DeviceManagerError,
    NoDeviceConnected,
    PermissionDenied,
    SdkUnavailable
)
from src.shared.infrastructure.storage import KeyValueStore

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = 'Please grant Bluetooth permissions when prompted to use this app'
SDK_UNAVAILABLE_MESSAGE = 'Bluetooth SDK is not available on this platform'
DEVICE_DISCONNECTED_MESSAGE = 'Device disconnected'
CONNECTION_LOST_MESSAGE = 'Device connection lost'
BLUETOOTH_DISABLED_MESSAGE = 'Bluetooth is disabled'


def _copy_device(device: Device) -> Device:
    return dataclasses.replace(device, capabilities=list(device.capabilities))


class DeviceConnectionManager:
    """
    Single authority for the Bluetooth device lifecycle

    Owns the known-device set, the (at most one) connection session and
    the persisted reconnection hint. Every mutation, whether it comes from
    a caller, a bridge callback or the health check, is serialized on one
    lock. Bridge calls and hint store writes are never made while holding
    it, so callbacks fired from inside a bridge call cannot deadlock.

    Invariant: the connected device, if any, is in the known set with
    is_connected=True, and is the only entry flagged connected.
    """

    def __init__(
            self,
            bridge: DeviceBridge,
            hint_store: KeyValueStore,
            status_publisher=None,
            measurement_service=None,
            health_check_interval: Optional[float] = None,
            health_worker_factory: Optional[Callable] = None,
            sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            bridge: Native SDK bridge
            hint_store: Persistent store of the last connected device id
            status_publisher: Optional DeviceStatusPublisher for backend events
            measurement_service: Optional MeasurementService fed by the bridge
            health_check_interval: Seconds between health checks
            health_worker_factory: Builds the per-session health worker,
                signature factory(manager, generation)
            sleep: Used for the bounded reconnection scans
        """
        self.bridge = bridge
        self.hint_store = hint_store
        self.status_publisher = status_publisher
        self.measurement_service = measurement_service
        self.health_check_interval = health_check_interval or BluetoothConfig.HEALTH_CHECK_INTERVAL
        self._health_worker_factory = health_worker_factory or self._default_health_worker
        self._sleep = sleep

        self._lock = threading.RLock()
        self._init_lock = threading.Lock()
        # Orders hint writes, which happen outside _lock
        self._hint_lock = threading.Lock()

        self._devices: Dict[str, Device] = OrderedDict()
        self._connected_id: Optional[str] = None
        self._connecting_id: Optional[str] = None
        self._disconnect_requested_id: Optional[str] = None
        self._is_scanning = False
        self._is_initialized = False
        self._bluetooth_enabled = True
        self._last_error: Optional[DeviceManagerError] = None

        # Bumped on every session start/end; stale health ticks compare it
        self._generation = 0
        self._health_worker = None

    def _default_health_worker(self, manager, generation: int):
        return ConnectionHealthWorker(manager, generation, self.health_check_interval)

    # ==================== Initialization ====================

    def initialize(self):
        """
        Register callbacks with the bridge (idempotent)

        Raises:
            SdkUnavailable: No native bridge on this platform
            PermissionDenied: Bluetooth permission refused
            BridgeError: Any other bridge failure
        """
        with self._init_lock:
            if self._is_initialized:
                return

            if not self.bridge.is_available():
                error = SdkUnavailable(SDK_UNAVAILABLE_MESSAGE)
                self._record_error(error)
                raise error

            try:
                self.bridge.initialize(self._build_callbacks())
            except PermissionDenied as e:
                logger.error(f"Bluetooth permission denied: {e}")
                error = PermissionDenied(PERMISSION_DENIED_MESSAGE)
                self._record_error(error)
                raise error from e
            except Exception as e:
                error = self._as_bridge_error(e, "Failed to initialize Bluetooth")
                self._record_error(error)
                raise error from e

            with self._lock:
                self._is_initialized = True

            logger.info("Device connection manager initialized")

    def _ensure_initialized(self):
        if not self._is_initialized:
            self.initialize()

    def _build_callbacks(self) -> BridgeCallbacks:
        return BridgeCallbacks(
            on_device_found=self._on_device_found,
            on_device_connected=self._on_device_connected,
            on_device_disconnected=self._on_device_disconnected,
            on_battery_update=self._on_battery_update,
            on_radio_status_changed=self._on_radio_status_changed,
            on_error=self._on_error,
            on_measurement=self._on_measurement
        )

    # ==================== Scanning ====================

    def start_scan(self) -> bool:
        """
        Start a discovery scan

        A fresh scan drops stale discoveries; the connected device stays.
        Failures are recorded in last_error and leave scanning off.

        Returns:
            True if the bridge started scanning
        """
        try:
            self._ensure_initialized()
        except DeviceManagerError:
            with self._lock:
                self._is_scanning = False
            return False

        with self._lock:
            connected = self._devices.get(self._connected_id) if self._connected_id else None
            self._devices = OrderedDict()
            if connected is not None:
                self._devices[connected.device_id] = connected
            self._last_error = None

        try:
            self.bridge.start_scan()
        except Exception as e:
            error = self._as_bridge_error(e, "Failed to start scan")
            logger.error(str(error))
            with self._lock:
                self._is_scanning = False
                self._last_error = error
            return False

        with self._lock:
            self._is_scanning = True

        logger.info("Bluetooth scan started")
        return True

    def stop_scan(self) -> bool:
        """Stop scanning; scanning is off afterwards whatever the outcome"""
        try:
            self._ensure_initialized()
            self.bridge.stop_scan()
            logger.info("Bluetooth scan stopped")
            return True
        except DeviceManagerError as e:
            self._record_error(e)
            return False
        except Exception as e:
            self._record_error(self._as_bridge_error(e, "Failed to stop scan"))
            return False
        finally:
            with self._lock:
                self._is_scanning = False

    # ==================== Connection ====================

    def connect(self, device_id: str) -> Device:
        """
        Connect to a device and start its session

        The session is committed when the bridge call returns or the
        device-connected callback arrives, whichever comes first.

        Raises:
            BridgeError: Connection failed; the connected device is untouched
        """
        if not device_id:
            raise ValueError("device_id cannot be empty")

        self._ensure_initialized()

        with self._lock:
            if self._connected_id == device_id:
                logger.info(f"Device {device_id} is already connected")
                return _copy_device(self._devices[device_id])

            self._connecting_id = device_id
            self._last_error = None

        logger.info(f"Connecting to device {device_id}...")

        try:
            self.bridge.connect(device_id)
        except Exception as e:
            error = self._as_bridge_error(e, f"Failed to connect to {device_id}")
            logger.error(str(error))
            with self._lock:
                if self._connecting_id == device_id:
                    self._connecting_id = None
                self._last_error = error
            raise error from e

        return self._commit_connected(device_id)

    def _commit_connected(self, device_id: str, bt_device: Optional[BluetoothDevice] = None) -> Device:
        """Start the session for device_id; no-op if it is already the session"""
        previous_id = None
        previous_worker = None

        with self._lock:
            existing = self._devices.get(device_id)

            if bt_device is not None:
                incoming = Device.from_bluetooth_device(bt_device)
                if existing is None:
                    existing = incoming
                else:
                    existing.update_from(incoming)

            if self._connected_id == device_id:
                if self._connecting_id == device_id:
                    self._connecting_id = None
                return _copy_device(existing)

            if self._connected_id is not None:
                previous_id = self._connected_id
                previous_worker = self._end_session_locked()

            device = existing or Device(device_id=device_id)
            device.is_connected = True
            self._devices[device_id] = device
            self._connected_id = device_id

            if self._connecting_id == device_id:
                self._connecting_id = None
            self._is_scanning = False
            self._last_error = None

            self._generation += 1
            generation = self._generation
            self._health_worker = self._health_worker_factory(self, generation)
            self._health_worker.start()

            connected = _copy_device(device)

        self._write_hint(device_id, generation)

        if previous_worker is not None:
            previous_worker.stop(join=False)
        if previous_id is not None:
            logger.info(f"Session of {previous_id} replaced by {device_id}")
            self._publish_disconnected(previous_id, DisconnectReason.USER_REQUEST)

        logger.info(f"Connected to {connected!r}")
        self._publish_connected(connected)

        return connected

    def disconnect(self, device_id: Optional[str] = None) -> bool:
        """
        End the session on user request

        Args:
            device_id: When given, only that device's session is ended

        Returns:
            False if nothing (or another device) was connected

        Raises:
            BridgeError: The bridge refused; the session is kept
        """
        with self._lock:
            connected_id = self._connected_id
            if connected_id is None or device_id not in (None, connected_id):
                return False
            device_id = connected_id
            self._disconnect_requested_id = device_id

        try:
            self.bridge.disconnect(device_id)
        except Exception as e:
            error = self._as_bridge_error(e, f"Failed to disconnect {device_id}")
            logger.error(str(error))
            with self._lock:
                self._disconnect_requested_id = None
                self._last_error = error
            raise error from e

        try:
            self._teardown(device_id, DisconnectReason.USER_REQUEST, error=None)
        finally:
            with self._lock:
                self._disconnect_requested_id = None

        return True

    def _teardown(
            self,
            device_id: str,
            reason: DisconnectReason,
            error: Optional[DeviceManagerError],
            expected_generation: Optional[int] = None
    ) -> bool:
        """
        End the session of device_id

        Ignored when device_id is not the session, or when
        expected_generation belongs to an older session.
        """
        with self._lock:
            if self._connected_id is None or self._connected_id != device_id:
                return False

            if expected_generation is not None and expected_generation != self._generation:
                return False

            worker = self._end_session_locked()
            generation = self._generation
            self._last_error = error

        self._write_hint(None, generation)

        if worker is not None:
            worker.stop(join=False)

        if error is not None:
            logger.warning(f"Session of {device_id} ended: {error}")
        else:
            logger.info(f"Disconnected from {device_id}")

        self._publish_disconnected(device_id, reason)
        return True

    def _end_session_locked(self):
        """
        Clear the session; caller holds the lock

        The returned worker must be stopped after releasing the lock, without
        joining: teardowns run on the bridge reader thread, which a health
        probe in flight may be waiting on.
        """
        device = self._devices.get(self._connected_id)
        if device is not None:
            device.is_connected = False

        self._connected_id = None
        self._generation += 1

        worker = self._health_worker
        self._health_worker = None
        return worker

    # ==================== Health check ====================

    def check_connection_health(self, generation: Optional[int] = None) -> bool:
        """
        Detect silent drops the bridge did not report

        The session is torn down with 'Device connection lost' when the
        device is missing from the bridge's connected list or the battery
        probe fails.

        Args:
            generation: Session the caller belongs to; a stale value is a no-op

        Returns:
            True if the session is healthy
        """
        with self._lock:
            device_id = self._connected_id
            if device_id is None:
                return False
            if generation is not None and generation != self._generation:
                return False
            current_generation = self._generation

        battery = None
        try:
            connected_ids = [d.device_id for d in self.bridge.get_connected_devices()]
            healthy = device_id in connected_ids
            if healthy:
                battery = self.bridge.get_battery_level(device_id)
        except Exception as e:
            logger.warning(f"Health check probe failed for {device_id}: {e}")
            healthy = False

        if not healthy:
            self._teardown(
                device_id,
                DisconnectReason.CONNECTION_LOST,
                error=ConnectionLost(CONNECTION_LOST_MESSAGE),
                expected_generation=current_generation
            )
            return False

        with self._lock:
            if self._generation == current_generation and battery is not None:
                self._devices[device_id].set_battery(battery)

        logger.debug(f"Health check OK for {device_id}")
        return True

    # ==================== Auto-reconnect ====================

    def auto_reconnect(
            self,
            scan_timeout: Optional[float] = None,
            discovery_timeout: Optional[float] = None
    ) -> Optional[Device]:
        """
        Best-effort startup reconnection

        1. Adopt a device the bridge still reports as connected
        2. With a reconnection hint: bounded scan, then one connect attempt
        3. Without a hint: bounded discovery scan only

        Never raises. Discoveries arriving after the scan window closes
        are not waited for.

        Returns:
            The connected device, or None
        """
        scan_timeout = scan_timeout if scan_timeout is not None else BluetoothConfig.RECONNECT_SCAN_TIMEOUT
        discovery_timeout = (
            discovery_timeout if discovery_timeout is not None
            else BluetoothConfig.DISCOVERY_SCAN_TIMEOUT
        )

        try:
            self._ensure_initialized()
        except DeviceManagerError as e:
            logger.warning(f"Auto-reconnect skipped: {e}")
            return None

        hint = self._read_hint()

        try:
            already_connected = self.bridge.get_connected_devices()
        except Exception as e:
            logger.warning(f"Could not query connected devices: {e}")
            already_connected = []

        if already_connected:
            chosen = next(
                (d for d in already_connected if d.device_id == hint),
                already_connected[0]
            )
            logger.info(f"Adopting already connected device {chosen.device_id}")
            return self._commit_connected(chosen.device_id, chosen)

        if not hint:
            logger.info("No previous device, running discovery scan")
            self._bounded_scan(discovery_timeout)
            return None

        logger.info(f"Looking for previous device {hint} ({scan_timeout}s)")
        self._bounded_scan(scan_timeout)

        with self._lock:
            found = hint in self._devices

        if found:
            logger.info(f"Previous device {hint} found, reconnecting")
        else:
            logger.info(f"Previous device {hint} not found, trying direct connect")

        try:
            return self.connect(hint)
        except (DeviceManagerError, ValueError) as e:
            logger.warning(f"Auto-reconnect to {hint} failed: {e}")
            return None

    def _bounded_scan(self, timeout: float):
        if not self.start_scan():
            return
        try:
            self._sleep(timeout)
        finally:
            self.stop_scan()

    # ==================== Measurements ====================

    def start_bp_measurement(self, device_id: Optional[str] = None) -> str:
        """
        Args:
            device_id: When given, must be the connected device

        Raises:
            NoDeviceConnected: No session, or device_id is not the session
                (state unchanged)
            DeviceManagerError: The bridge failed
        """
        device_id = self._require_connected(device_id)
        self._call_bridge(self.bridge.start_bp_measurement, device_id, "start BP measurement")
        logger.info(f"BP measurement started on {device_id}")
        return device_id

    def start_ecg_measurement(self, device_id: Optional[str] = None) -> str:
        device_id = self._require_connected(device_id)
        self._call_bridge(self.bridge.start_ecg_measurement, device_id, "start ECG measurement")
        logger.info(f"ECG measurement started on {device_id}")
        return device_id

    def stop_measurement(self, device_id: Optional[str] = None) -> str:
        device_id = self._require_connected(device_id)
        self._call_bridge(self.bridge.stop_live, device_id, "stop measurement")
        logger.info(f"Measurement stopped on {device_id}")
        return device_id

    def refresh_battery(self) -> Optional[int]:
        """Probe the connected device's battery; failures are logged only"""
        with self._lock:
            device_id = self._connected_id
        if device_id is None:
            return None

        try:
            level = self.bridge.get_battery_level(device_id)
        except Exception as e:
            logger.warning(f"Battery probe failed for {device_id}: {e}")
            return None

        with self._lock:
            device = self._devices.get(device_id)
            if device is None or self._connected_id != device_id:
                return None
            device.set_battery(level)
            return device.battery

    def _require_connected(self, device_id: Optional[str] = None) -> str:
        with self._lock:
            if self._connected_id is None:
                raise NoDeviceConnected()
            if device_id is not None and device_id != self._connected_id:
                raise NoDeviceConnected(f"Device {device_id} is not connected")
            return self._connected_id

    def _call_bridge(self, operation, device_id: str, description: str):
        try:
            operation(device_id)
        except Exception as e:
            error = self._as_bridge_error(e, f"Failed to {description} on {device_id}")
            logger.error(str(error))
            self._record_error(error)
            raise error from e

    # ==================== Registration & queries ====================

    def register_device(self, device: Device) -> Device:
        """Add or refresh a known device without touching the session"""
        with self._lock:
            existing = self._devices.get(device.device_id)
            if existing is None:
                device.is_connected = device.device_id == self._connected_id
                self._devices[device.device_id] = device
                existing = device
            else:
                existing.update_from(device)
            return _copy_device(existing)

    def get_device(self, device_id: str) -> Optional[Device]:
        with self._lock:
            device = self._devices.get(device_id)
            return _copy_device(device) if device else None

    def get_devices(self) -> List[Device]:
        with self._lock:
            return [_copy_device(d) for d in self._devices.values()]

    def get_connected_device(self) -> Optional[Device]:
        with self._lock:
            if self._connected_id is None:
                return None
            return _copy_device(self._devices[self._connected_id])

    def get_state(self) -> ConnectionSnapshot:
        with self._lock:
            if self._connected_id is not None:
                state = ConnectionState.CONNECTED
            elif self._connecting_id is not None:
                state = ConnectionState.CONNECTING
            else:
                state = ConnectionState.DISCONNECTED

            return ConnectionSnapshot(
                devices=[_copy_device(d) for d in self._devices.values()],
                connected_device=(
                    _copy_device(self._devices[self._connected_id])
                    if self._connected_id else None
                ),
                state=state,
                is_scanning=self._is_scanning,
                is_connecting=self._connecting_id is not None,
                is_initialized=self._is_initialized,
                bluetooth_enabled=self._bluetooth_enabled,
                last_error=str(self._last_error) if self._last_error else None,
                last_error_kind=type(self._last_error).__name__ if self._last_error else None,
                health_check_active=self._health_worker is not None
            )

    def shutdown(self):
        """Stop the health check and release the bridge; the hint is kept"""
        with self._lock:
            worker = self._health_worker
            self._health_worker = None
            self._generation += 1

        if worker is not None:
            worker.stop()

        try:
            self.bridge.close()
        except Exception as e:
            logger.error(f"Error closing Bluetooth bridge: {e}", exc_info=True)

        logger.info("Device connection manager shut down")

    # ==================== Bridge callbacks ====================

    def _on_device_found(self, bt_device: BluetoothDevice):
        incoming = Device.from_bluetooth_device(bt_device)

        with self._lock:
            existing = self._devices.get(incoming.device_id)
            if existing is None:
                self._devices[incoming.device_id] = incoming
            else:
                existing.update_from(incoming)

        logger.debug(f"Device found: {incoming!r}")

    def _on_device_connected(self, bt_device: BluetoothDevice):
        self._commit_connected(bt_device.device_id, bt_device)

    def _on_device_disconnected(self, device_id: str):
        with self._lock:
            requested = self._disconnect_requested_id == device_id

        if requested:
            self._teardown(device_id, DisconnectReason.USER_REQUEST, error=None)
        else:
            self._teardown(
                device_id,
                DisconnectReason.BRIDGE_REPORTED,
                error=ConnectionLost(DEVICE_DISCONNECTED_MESSAGE)
            )

    def _on_battery_update(self, device_id: str, level):
        with self._lock:
            device = self._devices.get(device_id)
            if device is not None:
                device.set_battery(level)

    def _on_radio_status_changed(self, enabled: bool):
        if enabled:
            with self._lock:
                self._bluetooth_enabled = True
                if str(self._last_error) == BLUETOOTH_DISABLED_MESSAGE:
                    self._last_error = None
            logger.info("Bluetooth enabled")
            return

        with self._lock:
            self._bluetooth_enabled = False
            device_id = self._connected_id
            worker = None
            if device_id is not None:
                worker = self._end_session_locked()
            generation = self._generation
            self._devices = OrderedDict()
            self._is_scanning = False
            self._connecting_id = None
            self._last_error = DeviceManagerError(BLUETOOTH_DISABLED_MESSAGE)

        if device_id is not None:
            self._write_hint(None, generation)

        if worker is not None:
            worker.stop(join=False)

        logger.warning("Bluetooth disabled, known devices cleared")

        if device_id is not None:
            self._publish_disconnected(device_id, DisconnectReason.BLUETOOTH_DISABLED)

    def _on_error(self, message: str, details=None):
        logger.error(f"Bluetooth error: {message} ({details})")
        self._record_error(BridgeError(message, details=details))

    def _on_measurement(self, device_id: str, measurement_type: str, payload: dict):
        if self.measurement_service is None:
            logger.debug(f"Measurement from {device_id} dropped: no measurement service")
            return
        self.measurement_service.record_from_bridge(device_id, measurement_type, payload)

    # ==================== Helpers ====================

    def _record_error(self, error: DeviceManagerError):
        with self._lock:
            self._last_error = error

    @staticmethod
    def _as_bridge_error(error: Exception, context: str) -> DeviceManagerError:
        if isinstance(error, DeviceManagerError):
            return error
        return BridgeError(f"{context}: {error}", details=repr(error))

    def _read_hint(self) -> Optional[str]:
        try:
            return self.hint_store.get(BluetoothConfig.RECONNECT_HINT_KEY)
        except Exception as e:
            logger.error(f"Could not read reconnection hint: {e}", exc_info=True)
            return None

    def _write_hint(self, device_id: Optional[str], generation: int):
        """
        Persist device_id as the reconnection hint, or clear it when None

        Called after releasing the lock. Skipped once a newer session
        start or end has bumped the generation, so the store always ends
        up reflecting the latest session change.
        """
        with self._hint_lock:
            with self._lock:
                if generation != self._generation:
                    return

            try:
                if device_id is None:
                    self.hint_store.delete(BluetoothConfig.RECONNECT_HINT_KEY)
                else:
                    self.hint_store.set(BluetoothConfig.RECONNECT_HINT_KEY, device_id)
            except Exception as e:
                logger.error(f"Could not update reconnection hint: {e}", exc_info=True)

    def _publish_connected(self, device: Device):
        if self.status_publisher is not None:
            self.status_publisher.publish_device_connected(device)

    def _publish_disconnected(self, device_id: str, reason: DisconnectReason):
        if self.status_publisher is not None:
            self.status_publisher.publish_device_disconnected(device_id, reason)
