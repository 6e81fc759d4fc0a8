import os
from dotenv import load_dotenv

load_dotenv()


class MqttConfig:
    """
    Configuration MQTT to set connection Edge ↔ Cloud backend

    Topics Structure:
    - vitals/measurements/{type}               → Edge publish a single measurement
    - vitals/measurements/batch                → Edge publish pending measurements
    - vitals/devices/events/connected          → Edge publish device session started
    - vitals/devices/events/disconnected       → Edge publish device session ended
    - vitals/edge/{client_id}/status           → Edge online/offline (retained, last will)
    """

    # ========================================
    # Broker Configuration
    # ========================================
    BROKER_HOST = os.getenv('MQTT_BROKER_HOST', 'localhost')
    BROKER_PORT = int(os.getenv('MQTT_BROKER_PORT', 1883))

    # Client ID (unique per Edge instance)
    CLIENT_ID = os.getenv('MQTT_CLIENT_ID', 'vitals-edge-001')

    # Authentication (empty for no auth)
    USERNAME = os.getenv('MQTT_USERNAME', '')
    PASSWORD = os.getenv('MQTT_PASSWORD', '')

    # ========================================
    # Topics - PUBLISH (Edge send)
    # ========================================
    TOPIC_MEASUREMENT = 'vitals/measurements/{measurement_type}'
    TOPIC_MEASUREMENT_BATCH = 'vitals/measurements/batch'
    TOPIC_DEVICE_CONNECTED = 'vitals/devices/events/connected'
    TOPIC_DEVICE_DISCONNECTED = 'vitals/devices/events/disconnected'
    TOPIC_EDGE_STATUS = 'vitals/edge/{client_id}/status'  # Retained, doubles as last will

    # ========================================
    # QoS Levels
    # ========================================
    QOS_PUBLISH = 1  # At least once

    # ========================================
    # Connection Settings
    # ========================================
    KEEP_ALIVE = 60  # Seconds
    RECONNECT_DELAY = 5  # First retry after this many seconds
    RECONNECT_MAX_DELAY = 60  # Backoff ceiling
    CONNECT_WAIT = 2  # Seconds to wait for the first CONNACK

    # Re-publish of measurements that failed to sync
    SYNC_INTERVAL = int(os.getenv('MQTT_SYNC_INTERVAL', 300))
    SYNC_BATCH_LIMIT = 500

    @classmethod
    def has_authentication(cls) -> bool:
        """Check if MQTT authentication is configured."""
        return bool(cls.USERNAME and cls.PASSWORD)
