import logging
from typing import List, Optional

from src.devicemonitoring.domain.model.aggregates import Measurement, MeasurementType
from src.devicemonitoring.infrastructure.messaging import MeasurementPublisher
from src.devicemonitoring.infrastructure.persistence import MeasurementRepository

logger = logging.getLogger(__name__)


class MeasurementService:
    """
    Application Service for Measurement operations

    Responsibilities:
    - Validate incoming readings (REST clients and the device bridge)
    - Persist readings to SQLite
    - Publish each reading to the Backend right away over MQTT
    - Track sync status so the sync worker can retry what failed
    """

    def __init__(
            self,
            measurement_repository: MeasurementRepository,
            measurement_publisher: Optional[MeasurementPublisher] = None
    ):
        self.measurement_repository = measurement_repository
        self.measurement_publisher = measurement_publisher

    def record_measurement(
            self,
            device_id: str,
            measurement_type,
            payload: dict,
            source: str = 'bluetooth',
            device_model: Optional[str] = None
    ) -> Measurement:
        """
        Validate, store and publish one measurement

        Flow:
        1. Build the Measurement aggregate (validation)
        2. Persist to SQLite
        3. Publish over MQTT; on success mark it as synced

        Returns:
            Stored Measurement with ID populated

        Raises:
            ValueError: If the payload is invalid
        """
        measurement = Measurement.from_payload(
            device_id=device_id,
            measurement_type=measurement_type,
            payload=payload,
            source=source,
            device_model=device_model
        )

        saved = self.measurement_repository.save(measurement)

        self._publish(saved)

        return saved

    def record_from_bridge(self, device_id: str, measurement_type: str, payload: dict) -> Optional[Measurement]:
        """
        Store a measurement pushed by the device bridge

        Runs on the bridge reader thread: invalid data and storage errors
        are logged, never raised.
        """
        try:
            return self.record_measurement(device_id, measurement_type, payload)
        except ValueError as e:
            logger.warning(f"Discarding invalid measurement from {device_id}: {e}")
        except Exception as e:
            logger.error(f"Error recording measurement from {device_id}: {e}", exc_info=True)
        return None

    def _publish(self, measurement: Measurement):
        if self.measurement_publisher is None:
            return

        if not self.measurement_publisher.publish_measurement(measurement):
            logger.info(
                f"Measurement {measurement.id} left pending for the sync worker"
            )
            return

        self.mark_measurement_as_synced(measurement)

    def get_history(
            self,
            device_id: str,
            measurement_type: Optional[MeasurementType] = None,
            limit: int = 50
    ) -> List[Measurement]:
        """Newest first"""
        return self.measurement_repository.find_by_device(device_id, measurement_type, limit)

    def get_latest(
            self,
            device_id: str,
            measurement_type: Optional[MeasurementType] = None
    ) -> Optional[Measurement]:
        history = self.get_history(device_id, measurement_type, limit=1)
        return history[0] if history else None

    def count_measurements(
            self,
            device_id: str,
            measurement_type: Optional[MeasurementType] = None
    ) -> int:
        return self.measurement_repository.count_by_device(device_id, measurement_type)

    def get_measurement_by_id(self, measurement_id: int) -> Optional[Measurement]:
        return self.measurement_repository.find_by_id(measurement_id)

    def get_pending_sync_readings(self, limit: int = 1000) -> List[Measurement]:
        return self.measurement_repository.find_pending_sync(limit)

    def get_pending_sync_count(self) -> int:
        return self.measurement_repository.count_pending_sync()

    def mark_measurements_as_synced(self, measurements: List[Measurement]) -> int:
        """
        Mark multiple measurements as synced to Backend

        Returns:
            Number of measurements successfully marked
        """
        synced_count = 0

        for measurement in measurements:
            if self.mark_measurement_as_synced(measurement):
                synced_count += 1

        logger.info(f"Marked {synced_count}/{len(measurements)} measurements as synced")
        return synced_count

    def mark_measurement_as_synced(self, measurement: Measurement) -> bool:
        try:
            measurement.mark_as_synced()
            self.measurement_repository.update(measurement)
            logger.debug(f"Measurement {measurement.id} marked as synced")
            return True
        except Exception as e:
            logger.error(
                f"Error marking measurement {measurement.id} as synced: {e}",
                exc_info=True
            )
            return False
