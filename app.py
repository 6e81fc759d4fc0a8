import logging
import signal
import sys

from flask import Flask
from flask_cors import CORS

from config.app_config import AppConfig
from config.bluetooth_config import BluetoothConfig
from config.mqtt_config import MqttConfig
from src.container import Container
from src.shared.infrastructure.logging import setup_logging

logger = logging.getLogger(__name__)


def create_flask_app(container: Container) -> Flask:
    """
    Create and configure Flask application

    Args:
        container: Dependency injection container

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    # Enable CORS
    CORS(app, origins=AppConfig.CORS_ORIGINS)

    # Register blueprints
    for controller in container.get_controllers():
        app.register_blueprint(controller.get_blueprint())

    logger.info("Flask app created")
    return app


def main():
    """Main application entry point"""
    setup_logging()

    logger.info("=" * 80)
    logger.info("EDGE SERVICE - MEDICAL DEVICE MONITORING (BLUETOOTH)")
    logger.info("=" * 80)

    # Create container
    container = Container()

    # Create Flask app
    app = create_flask_app(container)

    # Set up graceful shutdown
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, initiating shutdown...")
        container.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Start MQTT
    try:
        container.start_mqtt()
    except Exception as e:
        logger.error(f"Failed to start MQTT: {e}")
        logger.warning("Measurements stay pending until the broker is reachable (degraded mode)")

    # The sync worker also covers MQTT coming back later
    try:
        container.start_sync_worker()
    except Exception as e:
        logger.error(f"Failed to start sync worker: {e}")
        logger.warning("Continuing without sync worker")

    # Bluetooth
    try:
        container.start_bluetooth()
    except Exception as e:
        logger.error(f"Failed to start Bluetooth: {e}", exc_info=True)
        logger.warning("Continuing without Bluetooth (REST measurements only)")

    logger.info("=" * 80)
    logger.info(f"Starting Flask server on {AppConfig.FLASK_HOST}:{AppConfig.FLASK_PORT}")
    logger.info(f"Debug mode: {AppConfig.FLASK_DEBUG}")
    logger.info("=" * 80)
    logger.info("")
    logger.info("Available endpoints:")
    for rule in sorted(app.url_map.iter_rules(), key=lambda r: r.rule):
        if rule.endpoint == 'static':
            continue
        methods = ','.join(sorted(rule.methods - {'HEAD', 'OPTIONS'}))
        logger.info(f"  - {methods:<8} {rule.rule}")
    logger.info("")
    logger.info("Bluetooth Configuration:")
    logger.info(f"  - Bridge Port: {BluetoothConfig.BRIDGE_PORT}")
    logger.info(f"  - Baud Rate: {BluetoothConfig.BAUD_RATE}")
    logger.info(f"  - Health Check Interval: {BluetoothConfig.HEALTH_CHECK_INTERVAL}s")
    logger.info(f"  - Auto-reconnect: {BluetoothConfig.AUTO_RECONNECT_ON_STARTUP}")
    logger.info("")
    logger.info(f"MQTT sync interval: {MqttConfig.SYNC_INTERVAL}s")
    logger.info("=" * 80)

    try:
        app.run(
            host=AppConfig.FLASK_HOST,
            port=AppConfig.FLASK_PORT,
            debug=AppConfig.FLASK_DEBUG,
            use_reloader=False  # Disable reloader to avoid duplicate workers
        )
    except Exception as e:
        logger.error(f"Flask server error: {e}", exc_info=True)
    finally:
        container.shutdown()


if __name__ == '__main__':
    main()
