import logging
from datetime import datetime

from config.mqtt_config import MqttConfig
from src.devicemonitoring.domain.model.aggregates import Device
from src.devicemonitoring.domain.model.events import (
    DeviceConnectedEvent,
    DeviceDisconnectedEvent,
    DisconnectReason
)
from src.shared.infrastructure.mqtt import MqttConnectionManager

logger = logging.getLogger(__name__)


class DeviceStatusPublisher:
    """
    Publishes device session events to Backend via MQTT

    Topics:
    - vitals/devices/events/connected - Session established
    - vitals/devices/events/disconnected - Session ended (with reason)

    Publish failures are logged and reported as False, never raised:
    the connection manager calls this after committing state.
    """

    def __init__(self, mqtt_manager: MqttConnectionManager):
        self.mqtt_manager = mqtt_manager

    def publish_device_connected(self, device: Device) -> bool:
        try:
            event = DeviceConnectedEvent(
                device_id=device.device_id,
                device_name=device.name,
                model=device.model,
                battery=device.battery,
                occurred_at=datetime.now()
            )

            success = self.mqtt_manager.publish(
                topic=MqttConfig.TOPIC_DEVICE_CONNECTED,
                payload=event.to_mqtt_payload(),
                retain=False
            )

            if success:
                logger.info(f"Device CONNECTED event published: {device.device_id}")
            else:
                logger.warning(
                    f"Failed to publish device CONNECTED event: {device.device_id}"
                )

            return success

        except Exception as e:
            logger.error(
                f"Error publishing device connected event for {device.device_id}: {e}",
                exc_info=True
            )
            return False

    def publish_device_disconnected(
            self,
            device_id: str,
            reason: DisconnectReason = DisconnectReason.USER_REQUEST
    ) -> bool:
        try:
            event = DeviceDisconnectedEvent(
                device_id=device_id,
                occurred_at=datetime.now(),
                reason=reason
            )

            success = self.mqtt_manager.publish(
                topic=MqttConfig.TOPIC_DEVICE_DISCONNECTED,
                payload=event.to_mqtt_payload(),
                retain=False
            )

            if success:
                logger.info(
                    f"Device DISCONNECTED event published: {device_id} ({reason.value})"
                )
            else:
                logger.warning(f"Failed to publish device DISCONNECTED event: {device_id}")

            return success

        except Exception as e:
            logger.error(
                f"Error publishing device disconnected event for {device_id}: {e}",
                exc_info=True
            )
            return False

    def is_connected(self) -> bool:
        return self.mqtt_manager.is_connected()
