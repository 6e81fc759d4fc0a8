import json
import logging
from typing import List, Optional

from peewee import (
    AutoField, BooleanField, CharField, DateTimeField, TextField
)

from src.shared.infrastructure.database import BaseModel, database
from src.devicemonitoring.domain.model.aggregates import Measurement, MeasurementType

logger = logging.getLogger(__name__)


class MeasurementModel(BaseModel):
    """
    Peewee ORM model for measurements table

    Stores every vital-sign reading received by the Edge.
    Per-type fields are kept as JSON in `data`.
    """

    id = AutoField(primary_key=True)
    measurement_id = CharField(max_length=36, unique=True)
    device_id = CharField(max_length=64, index=True)
    measurement_type = CharField(max_length=20, index=True)
    data = TextField()
    source = CharField(max_length=50, default='bluetooth')
    device_model = CharField(max_length=50, null=True)
    recorded_at = DateTimeField(index=True)  # When the device took the reading
    received_at = DateTimeField()  # When Edge received it
    synced_to_backend = BooleanField(default=False, index=True)
    synced_at = DateTimeField(null=True)

    class Meta:
        table_name = 'measurements'
        indexes = (
            (('device_id', 'recorded_at'), False),
            (('measurement_type', 'recorded_at'), False),
        )


class MeasurementRepository:
    """
    Repository for Measurement aggregate

    Handles persistence operations for measurements in SQLite
    """

    def __init__(self):
        self._ensure_table_exists()

    def _ensure_table_exists(self):
        """Create table if it doesn't exist"""
        with database:
            database.create_tables([MeasurementModel], safe=True)
        logger.info("MeasurementModel table verified/created")

    def save(self, measurement: Measurement) -> Measurement:
        """
        Save a new measurement

        Returns:
            Measurement with ID populated
        """
        try:
            model = MeasurementModel.create(
                measurement_id=measurement.measurement_id,
                device_id=measurement.device_id,
                measurement_type=measurement.measurement_type.value,
                data=json.dumps(measurement.values),
                source=measurement.source,
                device_model=measurement.device_model,
                recorded_at=measurement.recorded_at,
                received_at=measurement.received_at,
                synced_to_backend=measurement.synced_to_backend,
                synced_at=measurement.synced_at
            )

            measurement.id = model.id

            logger.info(
                f"Measurement saved: ID={model.id}, "
                f"type={measurement.measurement_type.value}, "
                f"device={measurement.device_id}"
            )

            return measurement

        except Exception as e:
            logger.error(f"Error saving measurement: {e}", exc_info=True)
            raise

    def update(self, measurement: Measurement) -> None:
        """Update sync status of an existing measurement"""
        try:
            if measurement.id is None:
                raise ValueError("Cannot update measurement without ID")

            MeasurementModel.update(
                synced_to_backend=measurement.synced_to_backend,
                synced_at=measurement.synced_at
            ).where(MeasurementModel.id == measurement.id).execute()

            logger.debug(f"Measurement updated: ID={measurement.id}")

        except Exception as e:
            logger.error(
                f"Error updating measurement {measurement.id}: {e}",
                exc_info=True
            )
            raise

    def find_by_id(self, measurement_id: int) -> Optional[Measurement]:
        try:
            model = MeasurementModel.get_or_none(MeasurementModel.id == measurement_id)
            return self._to_aggregate(model) if model else None

        except Exception as e:
            logger.error(
                f"Error finding measurement by ID {measurement_id}: {e}",
                exc_info=True
            )
            raise

    def find_by_device(
            self,
            device_id: str,
            measurement_type: Optional[MeasurementType] = None,
            limit: int = 50
    ) -> List[Measurement]:
        """
        Find recent measurements of a device

        Args:
            device_id: Device identifier
            measurement_type: Optional filter by type
            limit: Maximum number of measurements to return

        Returns:
            Measurements ordered by recorded_at DESC
        """
        try:
            query = MeasurementModel.select().where(MeasurementModel.device_id == device_id)

            if measurement_type is not None:
                query = query.where(
                    MeasurementModel.measurement_type == measurement_type.value
                )

            models = (query
                      .order_by(MeasurementModel.recorded_at.desc(),
                                MeasurementModel.id.desc())
                      .limit(limit))

            return [self._to_aggregate(model) for model in models]

        except Exception as e:
            logger.error(
                f"Error finding measurements for device {device_id}: {e}",
                exc_info=True
            )
            raise

    def count_by_device(
            self,
            device_id: str,
            measurement_type: Optional[MeasurementType] = None
    ) -> int:
        try:
            query = MeasurementModel.select().where(MeasurementModel.device_id == device_id)

            if measurement_type is not None:
                query = query.where(
                    MeasurementModel.measurement_type == measurement_type.value
                )

            return query.count()

        except Exception as e:
            logger.error(f"Error counting measurements for {device_id}: {e}", exc_info=True)
            raise

    def find_pending_sync(self, limit: int = 1000) -> List[Measurement]:
        """
        Find measurements pending sync to Backend

        Used by the sync worker to re-publish in batch
        """
        try:
            models = (MeasurementModel
                      .select()
                      .where(MeasurementModel.synced_to_backend == False)  # noqa: E712
                      .order_by(MeasurementModel.recorded_at.asc())
                      .limit(limit))

            measurements = [self._to_aggregate(model) for model in models]

            logger.debug(f"Found {len(measurements)} pending sync measurements")
            return measurements

        except Exception as e:
            logger.error(f"Error finding pending sync measurements: {e}", exc_info=True)
            raise

    def count_pending_sync(self) -> int:
        try:
            return (MeasurementModel
                    .select()
                    .where(MeasurementModel.synced_to_backend == False)  # noqa: E712
                    .count())
        except Exception as e:
            logger.error(f"Error counting pending sync: {e}", exc_info=True)
            raise

    def _to_aggregate(self, model: MeasurementModel) -> Measurement:
        """Convert Peewee model to Domain aggregate"""
        return Measurement(
            id=model.id,
            measurement_id=model.measurement_id,
            device_id=model.device_id,
            measurement_type=MeasurementType(model.measurement_type),
            values=json.loads(model.data),
            source=model.source,
            device_model=model.device_model,
            recorded_at=model.recorded_at,
            received_at=model.received_at,
            synced_to_backend=model.synced_to_backend,
            synced_at=model.synced_at
        )
