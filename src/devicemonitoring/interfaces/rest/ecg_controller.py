import logging

from flask import Blueprint

from src.devicemonitoring.application.services import DeviceConnectionManager, MeasurementService
from src.devicemonitoring.domain.model import device_catalog
from src.devicemonitoring.domain.model.aggregates import MeasurementType
from src.shared.infrastructure.bluetooth import DeviceManagerError, NoDeviceConnected
from src.shared.interfaces.rest_responses import error_response, success_response
from .rest_helpers import check_session, measurement_history, store_measurement

logger = logging.getLogger(__name__)


class EcgController:
    """
    REST API Controller for ECG recorders

    Endpoints:
    - POST /api/ecg/<id>/start-recording
    - POST /api/ecg/<id>/stop-recording
    - POST /api/ecg/<id>/data - Store a recording
    - GET /api/ecg/<id>/history
    """

    def __init__(
            self,
            connection_manager: DeviceConnectionManager,
            measurement_service: MeasurementService
    ):
        self.connection_manager = connection_manager
        self.measurement_service = measurement_service
        self.blueprint = Blueprint('ecg', __name__)
        self._register_routes()

    def _register_routes(self):
        self.blueprint.add_url_rule(
            '/api/ecg/<device_id>/start-recording',
            'start_recording',
            self.start_recording,
            methods=['POST']
        )
        self.blueprint.add_url_rule(
            '/api/ecg/<device_id>/stop-recording',
            'stop_recording',
            self.stop_recording,
            methods=['POST']
        )
        self.blueprint.add_url_rule(
            '/api/ecg/<device_id>/data',
            'store_data',
            self.store_data,
            methods=['POST']
        )
        self.blueprint.add_url_rule(
            '/api/ecg/<device_id>/history',
            'get_history',
            self.get_history,
            methods=['GET']
        )

    def start_recording(self, device_id: str):
        """
        POST /api/ecg/<id>/start-recording

        404 if not the connected device, 400 if it has no ECG capability
        """
        rejection = check_session(
            self.connection_manager,
            device_id,
            device_catalog.CAPABILITY_ECG,
            'ECG recording'
        )
        if rejection:
            return rejection

        try:
            self.connection_manager.start_ecg_measurement(device_id)
            return success_response(message='ECG recording started', deviceId=device_id)
        except NoDeviceConnected:
            return error_response('Device not connected', 404, deviceId=device_id)
        except DeviceManagerError as e:
            return error_response(str(e), 500, deviceId=device_id)
        except Exception as e:
            logger.error(f"Error starting ECG on {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def stop_recording(self, device_id: str):
        rejection = check_session(self.connection_manager, device_id)
        if rejection:
            return rejection

        try:
            self.connection_manager.stop_measurement(device_id)
            return success_response(message='ECG recording stopped', deviceId=device_id)
        except NoDeviceConnected:
            return error_response('Device not connected', 404, deviceId=device_id)
        except DeviceManagerError as e:
            return error_response(str(e), 500, deviceId=device_id)
        except Exception as e:
            logger.error(f"Error stopping ECG on {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def store_data(self, device_id: str):
        """
        POST /api/ecg/<id>/data

        Request Body (JSON):
        {
            "heartRate": 72,
            "waveformData": [0.12, 0.15, ...],
            "samplingRate": 125,
            "duration": 30,
            "leadOff": false
        }
        """
        return store_measurement(
            self.measurement_service, device_id, MeasurementType.ECG, 'ECG data stored'
        )

    def get_history(self, device_id: str):
        return measurement_history(self.measurement_service, device_id, MeasurementType.ECG)

    def get_blueprint(self):
        return self.blueprint
