import logging
from datetime import datetime
from typing import List

from config.mqtt_config import MqttConfig
from src.devicemonitoring.domain.model.aggregates import Measurement
from src.shared.infrastructure.mqtt import MqttConnectionManager

logger = logging.getLogger(__name__)


class MeasurementPublisher:
    """
    MQTT Publisher for sending measurements to Backend

    Publishes to topics:
    - vitals/measurements/{type} - Single measurement, right after it is stored
    - vitals/measurements/batch - Measurements that missed their first publish
    """

    def __init__(self, mqtt_manager: MqttConnectionManager):
        self.mqtt_manager = mqtt_manager

    def publish_measurement(self, measurement: Measurement) -> bool:
        """
        Publish a single measurement

        Payload format:
        {
            "eventType": "MEASUREMENT_RECORDED",
            "measurement": {
                "measurementId": "...",
                "deviceId": "C4:2A:11:90:0B:3E",
                "type": "blood_pressure",
                "systolic": 121,
                "diastolic": 79,
                ...
            },
            "publishedAt": "2025-01-15T10:30:06"
        }

        Returns:
            True if published successfully, False otherwise
        """
        topic = MqttConfig.TOPIC_MEASUREMENT.format(
            measurement_type=measurement.measurement_type.value
        )

        try:
            payload = {
                "eventType": "MEASUREMENT_RECORDED",
                "measurement": measurement.to_mqtt_payload(),
                "publishedAt": datetime.now().isoformat()
            }

            success = self.mqtt_manager.publish(topic=topic, payload=payload, retain=False)

            if success:
                logger.info(f"Measurement published: id={measurement.id}, topic={topic}")
            else:
                logger.warning(f"Measurement not published: id={measurement.id}")

            return success

        except Exception as e:
            logger.error(
                f"Error publishing measurement {measurement.id}: {e}",
                exc_info=True
            )
            return False

    def publish_measurement_batch(self, measurements: List[Measurement]) -> bool:
        """
        Publish a batch of measurements

        Payload format:
        {
            "eventType": "MEASUREMENT_BATCH",
            "count": 12,
            "measurements": [...],
            "publishedAt": "2025-01-15T11:00:00"
        }
        """
        if not measurements:
            logger.warning("Attempted to publish empty batch")
            return False

        try:
            payload = {
                "eventType": "MEASUREMENT_BATCH",
                "count": len(measurements),
                "measurements": [m.to_mqtt_payload() for m in measurements],
                "publishedAt": datetime.now().isoformat()
            }

            success = self.mqtt_manager.publish(
                topic=MqttConfig.TOPIC_MEASUREMENT_BATCH,
                payload=payload,
                retain=False
            )

            if success:
                logger.info(
                    f"Batch published: {len(measurements)} measurements "
                    f"(IDs: {measurements[0].id} - {measurements[-1].id})"
                )
            else:
                logger.error(f"Failed to publish batch of {len(measurements)} measurements")

            return success

        except Exception as e:
            logger.error(
                f"Error publishing batch of {len(measurements)} measurements: {e}",
                exc_info=True
            )
            return False

    def is_connected(self) -> bool:
        return self.mqtt_manager.is_connected()
