import os

from dotenv import load_dotenv

load_dotenv()


class BluetoothConfig:
    """
    Bluetooth-specific configuration

    Centralizes the settings for the serial link to the native SDK bridge
    and the connection lifecycle timings
    """

    # Serial link to the SDK bridge process
    BRIDGE_PORT = os.getenv('BLUETOOTH_BRIDGE_PORT', '/dev/rfcomm0')
    BAUD_RATE = int(os.getenv('BLUETOOTH_BAUD_RATE', 115200))
    TIMEOUT = int(os.getenv('BLUETOOTH_TIMEOUT', 5))
    WRITE_TIMEOUT = 2
    BRIDGE_REQUEST_TIMEOUT = float(os.getenv('BLUETOOTH_BRIDGE_REQUEST_TIMEOUT', 15))

    # Retry logic (serial port open)
    MAX_RETRIES = int(os.getenv('BLUETOOTH_MAX_RETRIES', 3))
    RETRY_DELAY = int(os.getenv('BLUETOOTH_RETRY_DELAY', 2))

    # Connection lifecycle
    HEALTH_CHECK_INTERVAL = int(os.getenv('BLUETOOTH_HEALTH_CHECK_INTERVAL', 10))
    RECONNECT_SCAN_TIMEOUT = float(os.getenv('BLUETOOTH_RECONNECT_SCAN_TIMEOUT', 3))
    DISCOVERY_SCAN_TIMEOUT = float(os.getenv('BLUETOOTH_DISCOVERY_SCAN_TIMEOUT', 5))
    AUTO_RECONNECT_ON_STARTUP = os.getenv(
        'BLUETOOTH_AUTO_RECONNECT', 'True'
    ).lower() == 'true'

    # Key of the persisted reconnection hint
    RECONNECT_HINT_KEY = 'lastConnectedDevice'

    # Protocol topics
    # Edge → Bridge (requests, answered on TOPIC_RESPONSE)
    TOPIC_REQUEST_INITIALIZE = 'request/initialize'
    TOPIC_REQUEST_START_SCAN = 'request/scan/start'
    TOPIC_REQUEST_STOP_SCAN = 'request/scan/stop'
    TOPIC_REQUEST_CONNECT = 'request/connect'
    TOPIC_REQUEST_DISCONNECT = 'request/disconnect'
    TOPIC_REQUEST_CONNECTED_DEVICES = 'request/connected_devices'
    TOPIC_REQUEST_BATTERY = 'request/battery'
    TOPIC_REQUEST_START_BP = 'request/measurement/bp/start'
    TOPIC_REQUEST_START_ECG = 'request/measurement/ecg/start'
    TOPIC_REQUEST_STOP_LIVE = 'request/measurement/stop'

    # Bridge → Edge
    TOPIC_RESPONSE = 'response'
    TOPIC_EVENT_DEVICE_FOUND = 'event/device/found'
    TOPIC_EVENT_DEVICE_CONNECTED = 'event/device/connected'
    TOPIC_EVENT_DEVICE_DISCONNECTED = 'event/device/disconnected'
    TOPIC_EVENT_BATTERY = 'event/battery'
    TOPIC_EVENT_BLUETOOTH_STATUS = 'event/bluetooth/status'
    TOPIC_EVENT_ERROR = 'event/error'
    TOPIC_EVENT_MEASUREMENT = 'event/measurement'
