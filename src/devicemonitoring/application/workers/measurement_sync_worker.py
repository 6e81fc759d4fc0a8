import logging

from config.mqtt_config import MqttConfig
from src.shared.infrastructure.workers import BackgroundWorker
from src.devicemonitoring.application.services.measurement_service import MeasurementService
from src.devicemonitoring.infrastructure.messaging import MeasurementPublisher

logger = logging.getLogger(__name__)


class MeasurementSyncWorker(BackgroundWorker):
    """
    Background worker re-publishing measurements the Backend never got

    Measurements are published right after they are stored; this worker
    is the safety net for the ones that failed (MQTT down, broker error).
    If MQTT stays down, measurements accumulate and sync when it returns.
    """

    def __init__(
            self,
            measurement_service: MeasurementService,
            measurement_publisher: MeasurementPublisher,
            interval_seconds: int = 300,
            batch_limit: int = MqttConfig.SYNC_BATCH_LIMIT
    ):
        super().__init__(
            name="MeasurementSyncWorker",
            interval_seconds=interval_seconds
        )

        self.measurement_service = measurement_service
        self.measurement_publisher = measurement_publisher
        self.batch_limit = batch_limit

    def do_work(self):
        """
        Flow:
        1. Check MQTT connection
        2. Fetch pending measurements (oldest first)
        3. Publish them as one batch
        4. Mark them as synced if the batch went out
        """
        if not self.measurement_publisher.is_connected():
            logger.warning("MQTT not connected, skipping sync. Will retry on next interval.")
            return

        pending = self.measurement_service.get_pending_sync_readings(limit=self.batch_limit)

        if not pending:
            logger.debug("No pending measurements to sync")
            return

        logger.info(f"Syncing {len(pending)} pending measurements...")

        if not self.measurement_publisher.publish_measurement_batch(pending):
            logger.warning(f"Batch of {len(pending)} measurements failed to publish")
            return

        synced_count = self.measurement_service.mark_measurements_as_synced(pending)
        logger.info(f"Sync complete: {synced_count}/{len(pending)} measurements marked as synced")
