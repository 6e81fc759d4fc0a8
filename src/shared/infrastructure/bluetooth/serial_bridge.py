import logging
import os
import threading
import uuid
from typing import Dict, List, Optional

from serial.tools import list_ports

from config.bluetooth_config import BluetoothConfig
from .bluetooth_device import BluetoothDevice
from .bridge import BridgeCallbacks, DeviceBridge
from .errors import BridgeError, PermissionDenied, SdkUnavailable
from .message_router import BluetoothMessageRouter
from .serial_client import SerialClient

logger = logging.getLogger(__name__)


class _PendingRequest:
    """Slot filled by the reader thread when the matching response arrives"""

    def __init__(self, topic: str):
        self.topic = topic
        self.done = threading.Event()
        self.response: Optional[Dict] = None


class SerialBridge(DeviceBridge):
    """
    DeviceBridge backed by the SDK bridge process on a serial port

    Protocol (one JSON object per line):
        Edge → Bridge: {"topic": "request/connect", "requestId": "...", "data": {...}}
        Bridge → Edge: {"topic": "response", "requestId": "...", "ok": true, "data": {...}}
        Bridge → Edge: {"topic": "event/device/found", "data": {...}}

    A single reader thread owns every read. Requests block the caller until
    the response with the same requestId arrives or the timeout expires.
    """

    def __init__(
            self,
            port: Optional[str] = None,
            request_timeout: Optional[float] = None,
            serial_client: Optional[SerialClient] = None
    ):
        self.port = port or BluetoothConfig.BRIDGE_PORT
        self.request_timeout = request_timeout or BluetoothConfig.BRIDGE_REQUEST_TIMEOUT
        self.serial_client = serial_client or SerialClient(self.port)
        self.router = BluetoothMessageRouter()

        self._callbacks: Optional[BridgeCallbacks] = None
        self._pending: Dict[str, _PendingRequest] = {}
        self._pending_lock = threading.Lock()
        self._reader: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self._register_handlers()

    # ==================== Lifecycle ====================

    def is_available(self) -> bool:
        ports = [p.device for p in list_ports.comports()]
        return self.port in ports or os.path.exists(self.port)

    def initialize(self, callbacks: BridgeCallbacks) -> None:
        if not self.is_available():
            raise SdkUnavailable(f"Bluetooth bridge not found on {self.port}")

        self._callbacks = callbacks

        if not self.serial_client.is_connected:
            # PermissionDenied from the OS propagates as is
            if not self.serial_client.connect():
                raise BridgeError(f"Could not open bridge port {self.port}")

        self._start_reader()

        data = self._request(BluetoothConfig.TOPIC_REQUEST_INITIALIZE)

        if data and 'bluetoothEnabled' in data:
            callbacks.on_radio_status_changed(bool(data['bluetoothEnabled']))

        logger.info(f"Bluetooth bridge initialized on {self.port}")

    def close(self) -> None:
        self._stop_event.set()

        if self._reader and self._reader.is_alive():
            self._reader.join(timeout=self.serial_client.read_timeout + 1)
        self._reader = None

        self.serial_client.disconnect()
        self._fail_pending("Bridge closed")

    # ==================== Requests ====================

    def start_scan(self) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_START_SCAN)

    def stop_scan(self) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_STOP_SCAN)

    def connect(self, device_id: str) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_CONNECT, {'deviceId': device_id})

    def disconnect(self, device_id: str) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_DISCONNECT, {'deviceId': device_id})

    def get_connected_devices(self) -> List[BluetoothDevice]:
        data = self._request(BluetoothConfig.TOPIC_REQUEST_CONNECTED_DEVICES) or {}
        return [BluetoothDevice.from_payload(d) for d in data.get('devices', [])]

    def get_battery_level(self, device_id: str) -> Optional[int]:
        data = self._request(
            BluetoothConfig.TOPIC_REQUEST_BATTERY,
            {'deviceId': device_id}
        ) or {}
        return data.get('battery')

    def start_bp_measurement(self, device_id: str) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_START_BP, {'deviceId': device_id})

    def start_ecg_measurement(self, device_id: str) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_START_ECG, {'deviceId': device_id})

    def stop_live(self, device_id: str) -> None:
        self._request(BluetoothConfig.TOPIC_REQUEST_STOP_LIVE, {'deviceId': device_id})

    def _request(self, topic: str, data: Optional[Dict] = None) -> Optional[Dict]:
        """
        Send a request and block until its response

        Returns:
            The response 'data' payload

        Raises:
            PermissionDenied: Bridge reported a permission refusal
            BridgeError: Send failure, error response or timeout
        """
        request_id = uuid.uuid4().hex
        pending = _PendingRequest(topic)

        with self._pending_lock:
            self._pending[request_id] = pending

        try:
            message = {'topic': topic, 'requestId': request_id, 'data': data or {}}

            if not self.serial_client.send_message(message):
                raise BridgeError(f"Failed to send {topic} to bridge")

            if not pending.done.wait(self.request_timeout):
                raise BridgeError(
                    f"Bridge timeout after {self.request_timeout}s on {topic}"
                )
        finally:
            with self._pending_lock:
                self._pending.pop(request_id, None)

        response = pending.response or {}

        if not response.get('ok', False):
            error = response.get('error') or f"Bridge rejected {topic}"
            if 'permission' in str(error).lower():
                raise PermissionDenied(str(error))
            raise BridgeError(str(error), details=response.get('details'))

        return response.get('data')

    def _resolve(self, data: Dict, message: Dict):
        request_id = message.get('requestId')

        with self._pending_lock:
            pending = self._pending.get(request_id)

        if pending is None:
            logger.debug(f"Discarding response for unknown request {request_id}")
            return

        pending.response = message
        pending.done.set()

    def _fail_pending(self, reason: str):
        with self._pending_lock:
            pending_requests = list(self._pending.values())

        for pending in pending_requests:
            pending.response = {'ok': False, 'error': reason}
            pending.done.set()

    # ==================== Reader ====================

    def _start_reader(self):
        if self._reader and self._reader.is_alive():
            return

        self._stop_event = threading.Event()
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(self._stop_event,),
            daemon=True,
            name="BluetoothBridgeReader"
        )
        self._reader.start()

    def _read_loop(self, stop_event: threading.Event):
        logger.debug(f"Bridge reader started on {self.port}")

        while not stop_event.is_set():
            if not self.serial_client.is_connected:
                stop_event.wait(self.serial_client.read_timeout)
                continue

            message = self.serial_client.read_message()
            if message is not None:
                self.router.route_message(message)

        logger.debug(f"Bridge reader stopped on {self.port}")

    # ==================== Event handlers ====================

    def _register_handlers(self):
        self.router.register_handler(BluetoothConfig.TOPIC_RESPONSE, self._resolve)
        self.router.register_handler(
            BluetoothConfig.TOPIC_EVENT_DEVICE_FOUND, self._on_device_found
        )
        self.router.register_handler(
            BluetoothConfig.TOPIC_EVENT_DEVICE_CONNECTED, self._on_device_connected
        )
        self.router.register_handler(
            BluetoothConfig.TOPIC_EVENT_DEVICE_DISCONNECTED, self._on_device_disconnected
        )
        self.router.register_handler(BluetoothConfig.TOPIC_EVENT_BATTERY, self._on_battery)
        self.router.register_handler(
            BluetoothConfig.TOPIC_EVENT_BLUETOOTH_STATUS, self._on_bluetooth_status
        )
        self.router.register_handler(BluetoothConfig.TOPIC_EVENT_ERROR, self._on_error)
        self.router.register_handler(
            BluetoothConfig.TOPIC_EVENT_MEASUREMENT, self._on_measurement
        )

    def _on_device_found(self, data: Dict, message: Dict):
        if self._callbacks:
            self._callbacks.on_device_found(BluetoothDevice.from_payload(data))

    def _on_device_connected(self, data: Dict, message: Dict):
        if self._callbacks:
            self._callbacks.on_device_connected(BluetoothDevice.from_payload(data))

    def _on_device_disconnected(self, data: Dict, message: Dict):
        device_id = data.get('id') or data.get('deviceId')
        if self._callbacks and device_id:
            self._callbacks.on_device_disconnected(str(device_id))

    def _on_battery(self, data: Dict, message: Dict):
        device_id = data.get('id') or data.get('deviceId')
        if self._callbacks and device_id:
            self._callbacks.on_battery_update(str(device_id), data.get('battery'))

    def _on_bluetooth_status(self, data: Dict, message: Dict):
        if self._callbacks:
            self._callbacks.on_radio_status_changed(bool(data.get('enabled')))

    def _on_error(self, data: Dict, message: Dict):
        if self._callbacks:
            self._callbacks.on_error(
                data.get('message') or 'Bluetooth error',
                data.get('details')
            )

    def _on_measurement(self, data: Dict, message: Dict):
        if not self._callbacks or not self._callbacks.on_measurement:
            return

        device_id = data.get('deviceId')
        measurement_type = data.get('type')

        if not device_id or not measurement_type:
            logger.warning(f"Measurement event without deviceId/type: {data}")
            return

        self._callbacks.on_measurement(
            str(device_id),
            measurement_type,
            data.get('payload') or {}
        )

    def __repr__(self) -> str:
        return f"SerialBridge({self.port}, {self.serial_client!r})"
