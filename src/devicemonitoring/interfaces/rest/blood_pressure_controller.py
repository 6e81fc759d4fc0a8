import logging

from flask import Blueprint

from src.devicemonitoring.application.services import DeviceConnectionManager, MeasurementService
from src.devicemonitoring.domain.model import device_catalog
from src.devicemonitoring.domain.model.aggregates import MeasurementType
from src.shared.infrastructure.bluetooth import DeviceManagerError, NoDeviceConnected
from src.shared.interfaces.rest_responses import error_response, success_response
from .rest_helpers import check_session, measurement_history, store_measurement

logger = logging.getLogger(__name__)


class BloodPressureController:
    """
    REST API Controller for blood pressure monitors

    Endpoints:
    - POST /api/bp/<id>/start-measurement - Start a cuff measurement
    - POST /api/bp/<id>/stop-measurement - Stop the live measurement
    - POST /api/bp/<id>/measurement - Store a reading
    - GET /api/bp/<id>/history - Stored readings, newest first
    """

    def __init__(
            self,
            connection_manager: DeviceConnectionManager,
            measurement_service: MeasurementService
    ):
        self.connection_manager = connection_manager
        self.measurement_service = measurement_service
        self.blueprint = Blueprint('blood_pressure', __name__)
        self._register_routes()

    def _register_routes(self):
        """Register all routes for this controller"""
        self.blueprint.add_url_rule(
            '/api/bp/<device_id>/start-measurement',
            'start_measurement',
            self.start_measurement,
            methods=['POST']
        )

        self.blueprint.add_url_rule(
            '/api/bp/<device_id>/stop-measurement',
            'stop_measurement',
            self.stop_measurement,
            methods=['POST']
        )

        self.blueprint.add_url_rule(
            '/api/bp/<device_id>/measurement',
            'store_measurement',
            self.store_measurement,
            methods=['POST']
        )

        self.blueprint.add_url_rule(
            '/api/bp/<device_id>/history',
            'get_history',
            self.get_history,
            methods=['GET']
        )

    def start_measurement(self, device_id: str):
        """
        POST /api/bp/<id>/start-measurement

        Response:
        - 200 OK: Measurement started
        - 404 Not Found: Device not connected
        - 400 Bad Request: Device is not a blood pressure monitor
        - 500 Internal Server Error: Bridge failure
        """
        rejection = check_session(
            self.connection_manager,
            device_id,
            device_catalog.CAPABILITY_BLOOD_PRESSURE,
            'blood pressure measurement'
        )
        if rejection:
            return rejection

        try:
            self.connection_manager.start_bp_measurement(device_id)
            return success_response(
                message='Blood pressure measurement started',
                deviceId=device_id
            )
        except NoDeviceConnected:
            return error_response('Device not connected', 404, deviceId=device_id)
        except DeviceManagerError as e:
            return error_response(str(e), 500, deviceId=device_id)
        except Exception as e:
            logger.error(f"Error starting BP measurement on {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def stop_measurement(self, device_id: str):
        """POST /api/bp/<id>/stop-measurement"""
        rejection = check_session(self.connection_manager, device_id)
        if rejection:
            return rejection

        try:
            self.connection_manager.stop_measurement(device_id)
            return success_response(
                message='Blood pressure measurement stopped',
                deviceId=device_id
            )
        except NoDeviceConnected:
            return error_response('Device not connected', 404, deviceId=device_id)
        except DeviceManagerError as e:
            return error_response(str(e), 500, deviceId=device_id)
        except Exception as e:
            logger.error(f"Error stopping BP measurement on {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def store_measurement(self, device_id: str):
        """
        POST /api/bp/<id>/measurement

        Request Body (JSON):
        {
            "systolic": 121,
            "diastolic": 79,
            "pulseRate": 68,
            "mean": 93,            (optional, (sys + 2*dia) / 3)
            "unit": "mmHg",        (optional)
            "timestamp": "..."     (optional)
        }
        """
        return store_measurement(
            self.measurement_service,
            device_id,
            MeasurementType.BLOOD_PRESSURE,
            'Blood pressure measurement stored'
        )

    def get_history(self, device_id: str):
        """GET /api/bp/<id>/history?limit=50"""
        return measurement_history(
            self.measurement_service, device_id, MeasurementType.BLOOD_PRESSURE
        )

    def get_blueprint(self):
        """Get Flask Blueprint for registration"""
        return self.blueprint
