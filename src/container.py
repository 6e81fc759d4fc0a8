import logging
import threading
from typing import Optional

from config.bluetooth_config import BluetoothConfig
from config.mqtt_config import MqttConfig
from src.devicemonitoring.application.services import (
    DeviceConnectionManager,
    DeviceRegistryService,
    MeasurementService
)
from src.devicemonitoring.application.workers.measurement_sync_worker import MeasurementSyncWorker
from src.devicemonitoring.infrastructure.messaging import (
    DeviceStatusPublisher,
    MeasurementPublisher
)
from src.devicemonitoring.infrastructure.persistence import (
    DeviceRegistryRepository,
    KeyValueRepository,
    MeasurementRepository
)
from src.devicemonitoring.interfaces.rest import (
    BloodPressureController,
    DeviceController,
    EcgController,
    GlucoseController,
    LepuController,
    OximeterController
)
from src.shared.infrastructure.bluetooth import DeviceBridge, SerialBridge
from src.shared.infrastructure.database import database
from src.shared.infrastructure.mqtt import MqttConnectionManager
from src.shared.infrastructure.storage import KeyValueStore
from src.shared.interfaces.health_controller import HealthController

logger = logging.getLogger(__name__)


class Container:
    """
    Dependency Injection Container

    Manages all application dependencies and their lifecycle.
    The bridge, the hint store and the MQTT manager can be injected
    (tests run the whole graph against fakes).
    """

    def __init__(
            self,
            bridge: Optional[DeviceBridge] = None,
            hint_store: Optional[KeyValueStore] = None,
            mqtt_manager: Optional[MqttConnectionManager] = None
    ):
        logger.info("Initializing application container...")

        # Infrastructure - Database
        self._database = database
        self._ensure_database_connected()

        # Infrastructure - MQTT
        self.mqtt_manager = mqtt_manager or MqttConnectionManager()

        # Infrastructure - Bluetooth
        self.bridge = bridge or SerialBridge(BluetoothConfig.BRIDGE_PORT)

        # Repositories
        self.measurement_repository = MeasurementRepository()
        self.registry_repository = DeviceRegistryRepository()
        self.hint_store = hint_store or KeyValueRepository()

        # MQTT publishers
        self.measurement_publisher = MeasurementPublisher(self.mqtt_manager)
        self.device_status_publisher = DeviceStatusPublisher(self.mqtt_manager)

        # Application Services
        self.measurement_service = MeasurementService(
            self.measurement_repository,
            self.measurement_publisher
        )
        self.connection_manager = DeviceConnectionManager(
            self.bridge,
            self.hint_store,
            status_publisher=self.device_status_publisher,
            measurement_service=self.measurement_service
        )
        self.registry_service = DeviceRegistryService(
            self.registry_repository,
            self.connection_manager
        )

        # REST Controllers
        self.device_controller = DeviceController(self.connection_manager)
        self.blood_pressure_controller = BloodPressureController(
            self.connection_manager,
            self.measurement_service
        )
        self.ecg_controller = EcgController(
            self.connection_manager,
            self.measurement_service
        )
        self.oximeter_controller = OximeterController(self.measurement_service)
        self.glucose_controller = GlucoseController(self.measurement_service)
        self.lepu_controller = LepuController(
            self.connection_manager,
            self.measurement_service,
            self.registry_service
        )
        self.health_controller = HealthController(self)

        # Background Workers
        self.sync_worker = MeasurementSyncWorker(
            self.measurement_service,
            self.measurement_publisher,
            interval_seconds=MqttConfig.SYNC_INTERVAL
        )

        logger.info("Application container initialized")

    def _ensure_database_connected(self):
        """Ensure database is connected"""
        try:
            if self._database.is_closed():
                self._database.connect()
            logger.info("Database connected")
        except Exception as e:
            logger.error(f"Database connection failed: {e}", exc_info=True)
            raise

    def get_controllers(self):
        """Controllers whose blueprints make up the REST API"""
        return [
            self.health_controller,
            self.device_controller,
            self.blood_pressure_controller,
            self.ecg_controller,
            self.oximeter_controller,
            self.glucose_controller,
            self.lepu_controller
        ]

    def start_mqtt(self):
        """Start MQTT connection"""
        logger.info("Starting MQTT...")

        self.mqtt_manager.connect()

        if not self.mqtt_manager.wait_until_connected(MqttConfig.CONNECT_WAIT):
            # The network loop keeps retrying in background
            raise RuntimeError("MQTT broker not reachable yet")

        logger.info("MQTT started")

    def start_sync_worker(self):
        logger.info("Starting measurement sync worker...")
        self.sync_worker.start()

    def start_bluetooth(self) -> threading.Thread:
        """
        Restore registered devices and run the startup reconnection

        Reconnection may scan for several seconds, so it runs in its own
        thread and the REST API comes up immediately.
        """
        self.registry_service.restore_known_devices()

        def reconnect():
            device = self.connection_manager.auto_reconnect()
            if device is not None:
                logger.info(f"Startup reconnection: {device!r}")
            else:
                logger.info("Startup reconnection: no device connected")

        thread = threading.Thread(target=reconnect, daemon=True, name="AutoReconnect")

        if BluetoothConfig.AUTO_RECONNECT_ON_STARTUP:
            thread.start()
        else:
            logger.info("Auto-reconnect on startup disabled")

        return thread

    def shutdown(self):
        """Gracefully shutdown all components"""
        logger.info("Shutting down application...")

        logger.info("Stopping measurement sync worker...")
        self.sync_worker.stop()

        logger.info("Stopping Bluetooth...")
        self.connection_manager.shutdown()

        logger.info("Disconnecting MQTT...")
        self.mqtt_manager.disconnect()

        logger.info("Closing database...")
        if not self._database.is_closed():
            self._database.close()

        logger.info("Application shutdown complete")
