import json
import logging
from typing import List, Optional

from peewee import CharField, DateTimeField, TextField

from src.shared.infrastructure.database import BaseModel, database
from src.devicemonitoring.domain.model.aggregates import RegisteredDevice

logger = logging.getLogger(__name__)


class RegisteredDeviceModel(BaseModel):
    """
    Peewee ORM model for registered_devices table

    Vendor devices enrolled through the registration route,
    with their current configuration as JSON.
    """

    device_id = CharField(primary_key=True, max_length=64)
    model = CharField(max_length=50)
    name = CharField(max_length=100)
    mac_address = CharField(max_length=32, null=True)
    firmware = CharField(max_length=20, default='1.0.0')
    config = TextField(default='{}')
    registered_at = DateTimeField()

    class Meta:
        table_name = 'registered_devices'


class DeviceRegistryRepository:
    """Repository for RegisteredDevice aggregate"""

    def __init__(self):
        self._ensure_table_exists()

    def _ensure_table_exists(self):
        """Create table if it doesn't exist"""
        with database:
            database.create_tables([RegisteredDeviceModel], safe=True)
        logger.info("RegisteredDeviceModel table verified/created")

    def save(self, device: RegisteredDevice) -> RegisteredDevice:
        """
        Insert or replace a registered device

        Re-registering an id overwrites the previous record.
        """
        try:
            (RegisteredDeviceModel
             .insert(
                device_id=device.device_id,
                model=device.model,
                name=device.name,
                mac_address=device.mac_address,
                firmware=device.firmware,
                config=json.dumps(device.config),
                registered_at=device.registered_at
             )
             .on_conflict_replace()
             .execute())

            logger.info(f"Registered device saved: {device.device_id} ({device.model})")
            return device

        except Exception as e:
            logger.error(
                f"Error saving registered device {device.device_id}: {e}",
                exc_info=True
            )
            raise

    def update_config(self, device: RegisteredDevice) -> None:
        try:
            (RegisteredDeviceModel
             .update(config=json.dumps(device.config))
             .where(RegisteredDeviceModel.device_id == device.device_id)
             .execute())

            logger.debug(f"Config updated for {device.device_id}")

        except Exception as e:
            logger.error(
                f"Error updating config of {device.device_id}: {e}",
                exc_info=True
            )
            raise

    def find_by_id(self, device_id: str) -> Optional[RegisteredDevice]:
        try:
            model = RegisteredDeviceModel.get_or_none(
                RegisteredDeviceModel.device_id == device_id
            )
            return self._to_aggregate(model) if model else None

        except Exception as e:
            logger.error(f"Error finding registered device {device_id}: {e}", exc_info=True)
            raise

    def find_all(self) -> List[RegisteredDevice]:
        try:
            models = RegisteredDeviceModel.select().order_by(
                RegisteredDeviceModel.registered_at.desc()
            )
            return [self._to_aggregate(model) for model in models]

        except Exception as e:
            logger.error(f"Error listing registered devices: {e}", exc_info=True)
            raise

    def _to_aggregate(self, model: RegisteredDeviceModel) -> RegisteredDevice:
        return RegisteredDevice(
            device_id=model.device_id,
            model=model.model,
            name=model.name,
            mac_address=model.mac_address,
            firmware=model.firmware,
            config=json.loads(model.config or '{}'),
            registered_at=model.registered_at
        )
