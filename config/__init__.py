from .app_config import AppConfig
from .bluetooth_config import BluetoothConfig
from .database_config import DatabaseConfig
from .mqtt_config import MqttConfig

__all__ = ['AppConfig', 'BluetoothConfig', 'DatabaseConfig', 'MqttConfig']
