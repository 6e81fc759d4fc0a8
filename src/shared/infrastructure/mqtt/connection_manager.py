import json
import logging
import threading
from datetime import datetime
from typing import Optional

import paho.mqtt.client as mqtt

from config.app_config import AppConfig
from config.mqtt_config import MqttConfig

logger = logging.getLogger(__name__)

STATUS_ONLINE = 'online'
STATUS_OFFLINE = 'offline'


class MqttConnectionManager:
    """
    MQTT link between the Edge and the cloud backend (publish only)

    paho's network loop owns reconnection: connect() returns at once and
    the loop keeps retrying with a backoff between RECONNECT_DELAY and
    RECONNECT_MAX_DELAY, for the first attempt as well as after a drop.

    A retained message on the Edge status topic tells the backend whether
    this Edge is online. The broker publishes the offline one (last will)
    when the Edge disappears without saying goodbye.
    """

    def __init__(self, client_id: Optional[str] = None):
        self.client_id = client_id or MqttConfig.CLIENT_ID
        self.status_topic = MqttConfig.TOPIC_EDGE_STATUS.format(client_id=self.client_id)

        # Persistent session so QoS 1 messages survive a reconnect
        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=False
        )

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.reconnect_delay_set(
            min_delay=MqttConfig.RECONNECT_DELAY,
            max_delay=MqttConfig.RECONNECT_MAX_DELAY
        )
        self.client.will_set(
            self.status_topic,
            json.dumps(self._status_payload(STATUS_OFFLINE)),
            qos=MqttConfig.QOS_PUBLISH,
            retain=True
        )

        if MqttConfig.has_authentication():
            self.client.username_pw_set(MqttConfig.USERNAME, MqttConfig.PASSWORD)

        self._connected = threading.Event()
        self._loop_running = False

        logger.info(f"MQTT Connection Manager initialized (client_id={self.client_id})")

    def connect(self):
        """Start the network loop; the connection is established in background"""
        if self._loop_running:
            logger.debug("MQTT network loop already running")
            return

        logger.info(
            f"Connecting to MQTT broker: {MqttConfig.BROKER_HOST}:{MqttConfig.BROKER_PORT}"
        )

        self.client.connect_async(
            MqttConfig.BROKER_HOST,
            MqttConfig.BROKER_PORT,
            MqttConfig.KEEP_ALIVE
        )
        self.client.loop_start()
        self._loop_running = True

    def wait_until_connected(self, timeout: float) -> bool:
        return self._connected.wait(timeout)

    def disconnect(self):
        """Announce offline status and stop the network loop"""
        if not self._loop_running:
            return

        logger.info("Disconnecting from MQTT broker...")

        if self.is_connected():
            self._publish_status(STATUS_OFFLINE)

        self.client.disconnect()
        self.client.loop_stop()
        self._loop_running = False
        self._connected.clear()

        logger.info("Disconnected from MQTT broker")

    def publish(self, topic: str, payload: dict, retain: bool = False) -> bool:
        """
        Publish a JSON message

        Args:
            topic: Destination MQTT topic
            payload: Message payload as a dictionary
            retain: If True, the broker keeps it as the topic's last message

        Returns:
            True if handed to the client, False when offline or on error
        """
        if not self.is_connected():
            logger.warning(f"Cannot publish to {topic}: not connected to broker")
            return False

        try:
            payload_str = json.dumps(payload, default=str)

            result = self.client.publish(
                topic,
                payload_str,
                qos=MqttConfig.QOS_PUBLISH,
                retain=retain
            )

            if result.rc != mqtt.MQTT_ERR_SUCCESS:
                logger.error(f"Failed to publish to {topic}: {mqtt.error_string(result.rc)}")
                return False

            logger.info(f"Published to {topic}")
            logger.debug(f"   Payload: {payload_str[:200]}")
            return True

        except (ValueError, TypeError) as e:
            logger.error(f"Error publishing to {topic}: {e}", exc_info=True)
            return False

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"MQTT connection refused: {reason_code}, retrying")
            return

        self._connected.set()
        logger.info("MQTT connection successful")
        self._publish_status(STATUS_ONLINE)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self._connected.clear()

        if reason_code.is_failure:
            logger.warning(f"Unexpected MQTT disconnect ({reason_code}), paho will reconnect")
        else:
            logger.info("MQTT disconnected normally")

    def _publish_status(self, status: str):
        self.client.publish(
            self.status_topic,
            json.dumps(self._status_payload(status)),
            qos=MqttConfig.QOS_PUBLISH,
            retain=True
        )

    def _status_payload(self, status: str) -> dict:
        return {
            'clientId': self.client_id,
            'service': AppConfig.SERVICE_NAME,
            'version': AppConfig.SERVICE_VERSION,
            'status': status,
            'timestamp': datetime.now().isoformat()
        }
