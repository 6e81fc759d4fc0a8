import os
import tempfile

# Must run before config modules read the environment
_TEST_DIR = tempfile.mkdtemp(prefix='edge-service-tests-')
os.environ['DATABASE_PATH'] = os.path.join(_TEST_DIR, 'edge_service.db')
os.environ['LOG_FILE'] = os.path.join(_TEST_DIR, 'edge_service.log')
os.environ['BLUETOOTH_AUTO_RECONNECT'] = 'False'

import pytest  # noqa: E402

from src.devicemonitoring.application.services import DeviceConnectionManager  # noqa: E402
from src.devicemonitoring.infrastructure.persistence.device_registry_repository import (  # noqa: E402
    RegisteredDeviceModel
)
from src.devicemonitoring.infrastructure.persistence.key_value_repository import SettingModel  # noqa: E402
from src.devicemonitoring.infrastructure.persistence.measurement_repository import (  # noqa: E402
    MeasurementModel
)
from src.shared.infrastructure.database import database  # noqa: E402
from src.shared.infrastructure.storage import InMemoryKeyValueStore  # noqa: E402
from tests.fakes import FakeBridge, FakeHealthWorker, RecordingStatusPublisher  # noqa: E402

TABLES = [MeasurementModel, RegisteredDeviceModel, SettingModel]


@pytest.fixture(autouse=True)
def clean_database():
    database.create_tables(TABLES, safe=True)
    for model in TABLES:
        model.delete().execute()
    yield


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def hint_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def status_publisher():
    return RecordingStatusPublisher()


@pytest.fixture
def health_workers():
    return []


@pytest.fixture
def manager(bridge, hint_store, status_publisher, health_workers):
    def worker_factory(connection_manager, generation):
        worker = FakeHealthWorker(connection_manager, generation)
        health_workers.append(worker)
        return worker

    return DeviceConnectionManager(
        bridge,
        hint_store,
        status_publisher=status_publisher,
        health_worker_factory=worker_factory,
        sleep=lambda seconds: None
    )
