import logging
from flask import Blueprint, jsonify

from config.app_config import AppConfig
from config.bluetooth_config import BluetoothConfig

logger = logging.getLogger(__name__)


class HealthController:
    """
    Controller for health and info endpoints
    """

    def __init__(self, container):
        """
        Initialize controller with container

        Args:
            container: DI container with all dependencies
        """
        self.container = container
        self.blueprint = Blueprint('health', __name__)
        self._register_routes()

    def _register_routes(self):
        """Register all routes"""
        self.blueprint.add_url_rule('/health', 'health_check', self.health_check, methods=['GET'])
        self.blueprint.add_url_rule('/info', 'info', self.info, methods=['GET'])

    def health_check(self):
        """
        GET /health

        Healthy when MQTT is up and the sync worker runs. Bluetooth state
        is reported but does not degrade the service: the Edge keeps
        accepting REST measurements without a device.
        """
        try:
            mqtt_status = self.container.mqtt_manager.is_connected()
            worker_status = self.container.sync_worker.is_running()
            session = self.container.connection_manager.get_state()

            status = {
                'status': 'healthy' if (mqtt_status and worker_status) else 'degraded',
                'mqtt_connected': mqtt_status,
                'sync_worker_running': worker_status,
                'bluetooth': {
                    'initialized': session.is_initialized,
                    'enabled': session.bluetooth_enabled,
                    'state': session.state.value,
                    'connected_device': (
                        session.connected_device.device_id if session.connected_device else None
                    ),
                    'last_error': session.last_error
                },
                'pending_sync_count': self.container.measurement_service.get_pending_sync_count()
            }

            status_code = 200 if status['status'] == 'healthy' else 503
            return jsonify(status), status_code

        except Exception as e:
            logger.error(f"Error in health check: {e}", exc_info=True)
            return jsonify({'error': 'Internal server error'}), 500

    def info(self):
        """
        GET /info

        Application info endpoint
        """
        try:
            session = self.container.connection_manager.get_state()

            return jsonify({
                'name': AppConfig.SERVICE_NAME,
                'version': AppConfig.SERVICE_VERSION,
                'mqtt': {
                    'connected': self.container.mqtt_manager.is_connected()
                },
                'bluetooth': {
                    'bridge_port': BluetoothConfig.BRIDGE_PORT,
                    'health_check_interval': BluetoothConfig.HEALTH_CHECK_INTERVAL,
                    'known_devices': len(session.devices),
                    'scanning': session.is_scanning,
                    'health_check_active': session.health_check_active
                },
                'workers': {
                    'sync_worker': {
                        'running': self.container.sync_worker.is_running(),
                        'interval_seconds': self.container.sync_worker.interval_seconds
                    }
                },
                'database': {
                    'registered_devices': len(self.container.registry_repository.find_all()),
                    'pending_sync': self.container.measurement_service.get_pending_sync_count()
                }
            }), 200

        except Exception as e:
            logger.error(f"Error in info endpoint: {e}", exc_info=True)
            return jsonify({'error': 'Internal server error'}), 500

    def get_blueprint(self):
        """Get Flask Blueprint"""
        return self.blueprint
