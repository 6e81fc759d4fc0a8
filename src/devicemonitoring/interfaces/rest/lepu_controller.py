import logging

from flask import Blueprint, request

from src.devicemonitoring.application.services import (
    DeviceConnectionManager,
    DeviceRegistryService,
    MeasurementService
)
from src.devicemonitoring.domain.model import device_catalog
from src.devicemonitoring.domain.model.aggregates import MeasurementType
from src.shared.interfaces.rest_responses import error_response, get_json_body, success_response
from .rest_helpers import parse_limit, store_measurement

logger = logging.getLogger(__name__)

SOURCE = device_catalog.MANUFACTURER

# Model assumed for readings of devices the Edge knows nothing about
DEFAULT_MODELS = {
    MeasurementType.BLOOD_PRESSURE: 'BP2',
    MeasurementType.ECG: 'PC-80B',
    MeasurementType.OXIMETER: 'PC-60FW',
    MeasurementType.GLUCOSE: 'Bioland-BGM',
}


class LepuController:
    """
    REST API Controller for the vendor (LepuDemo) device family

    Endpoints:
    - GET /api/lepu/models - Supported models
    - POST /api/lepu/devices/<id>/register - Enroll a device
    - GET /api/lepu/devices/<id>/status
    - GET /api/lepu/devices/<id>/history?type=&limit=
    - GET|POST /api/lepu/devices/<id>/config
    - POST /api/lepu/bp/<id>/measurement
    - POST /api/lepu/ecg/<id>/data
    - POST /api/lepu/oximeter/<id>/measurement
    - POST /api/lepu/glucose/<id>/measurement
    """

    def __init__(
            self,
            connection_manager: DeviceConnectionManager,
            measurement_service: MeasurementService,
            registry_service: DeviceRegistryService
    ):
        self.connection_manager = connection_manager
        self.measurement_service = measurement_service
        self.registry_service = registry_service
        self.blueprint = Blueprint('lepu', __name__)
        self._register_routes()

    def _register_routes(self):
        """Register all routes for this controller"""
        rules = [
            ('/api/lepu/models', 'get_models', self.get_models, ['GET']),
            ('/api/lepu/devices/<device_id>/register', 'register_device',
             self.register_device, ['POST']),
            ('/api/lepu/devices/<device_id>/status', 'get_status', self.get_status, ['GET']),
            ('/api/lepu/devices/<device_id>/history', 'get_history', self.get_history, ['GET']),
            ('/api/lepu/devices/<device_id>/config', 'get_config', self.get_config, ['GET']),
            ('/api/lepu/devices/<device_id>/config', 'update_config',
             self.update_config, ['POST']),
            ('/api/lepu/bp/<device_id>/measurement', 'store_bp',
             self.store_blood_pressure, ['POST']),
            ('/api/lepu/ecg/<device_id>/data', 'store_ecg', self.store_ecg, ['POST']),
            ('/api/lepu/oximeter/<device_id>/measurement', 'store_oximeter',
             self.store_oximeter, ['POST']),
            ('/api/lepu/glucose/<device_id>/measurement', 'store_glucose',
             self.store_glucose, ['POST']),
        ]

        for rule, endpoint, view_func, methods in rules:
            self.blueprint.add_url_rule(rule, endpoint, view_func, methods=methods)

    def get_models(self):
        """GET /api/lepu/models"""
        models = device_catalog.models_to_dict()
        return success_response(models=models, count=len(models))

    def register_device(self, device_id: str):
        """
        POST /api/lepu/devices/<id>/register

        Request Body (JSON):
        {
            "model": "BP2",
            "macAddress": "C4:2A:11:90:0B:3E",
            "name": "Living room BP",   (optional)
            "firmware": "1.2.0",        (optional)
            "battery": 90               (optional)
        }

        Response:
        - 200 OK: Registered
        - 400 Bad Request: Unsupported model
        """
        try:
            payload = get_json_body()

            if device_catalog.get_model(payload.get('model')) is None:
                return error_response(
                    'Unsupported LepuDemo device model', 400, deviceId=device_id
                )

            registered = self.registry_service.register_device(device_id, payload)
            device = self.connection_manager.get_device(device_id)

            body = registered.to_dict()
            if device is not None:
                body['connected'] = device.is_connected
                body['battery'] = device.battery

            return success_response(
                message='LepuDemo device registered successfully',
                device=body
            )

        except ValueError as e:
            return error_response(str(e), 400, deviceId=device_id)

        except Exception as e:
            logger.error(f"Error registering {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def get_status(self, device_id: str):
        """GET /api/lepu/devices/<id>/status"""
        try:
            device = self.connection_manager.get_device(device_id)
            if device is None:
                return error_response('Device not found', 404, deviceId=device_id)

            return success_response(
                device=device.to_dict(),
                status={
                    'connected': device.is_connected,
                    'battery': device.battery,
                    'lastSeen': device.last_seen.isoformat(),
                    'capabilities': device.capabilities
                }
            )

        except Exception as e:
            logger.error(f"Error getting status of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def get_history(self, device_id: str):
        """
        GET /api/lepu/devices/<id>/history

        Query Parameters:
            limit: int (optional, default 50)
            type: blood_pressure | ecg | oximeter | glucose (optional)
        """
        try:
            limit = parse_limit()
            raw_type = request.args.get('type')
            measurement_type = MeasurementType.parse(raw_type) if raw_type else None

            measurements = self.measurement_service.get_history(
                device_id, measurement_type, limit
            )
            total = self.measurement_service.count_measurements(device_id)

            return success_response(
                deviceId=device_id,
                measurements=[m.to_dict() for m in measurements],
                count=len(measurements),
                total=total
            )

        except ValueError as e:
            return error_response(str(e), 400, deviceId=device_id)

        except Exception as e:
            logger.error(f"Error getting history of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def get_config(self, device_id: str):
        """GET /api/lepu/devices/<id>/config"""
        try:
            config = self.registry_service.get_config(device_id)
            if config is None:
                return error_response('Device not found', 404, deviceId=device_id)

            return success_response(deviceId=device_id, config=config)

        except Exception as e:
            logger.error(f"Error getting config of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def update_config(self, device_id: str):
        """POST /api/lepu/devices/<id>/config (shallow merge)"""
        try:
            updates = get_json_body()
            config = self.registry_service.update_config(device_id, updates)

            if config is None:
                return error_response('Device not found', 404, deviceId=device_id)

            return success_response(
                message='Device configuration updated',
                deviceId=device_id,
                config=config
            )

        except ValueError as e:
            return error_response(str(e), 400, deviceId=device_id)

        except Exception as e:
            logger.error(f"Error updating config of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def store_blood_pressure(self, device_id: str):
        return self._store(device_id, MeasurementType.BLOOD_PRESSURE,
                           'Blood pressure measurement stored')

    def store_ecg(self, device_id: str):
        return self._store(device_id, MeasurementType.ECG, 'ECG data stored')

    def store_oximeter(self, device_id: str):
        return self._store(device_id, MeasurementType.OXIMETER,
                           'Pulse oximeter measurement stored')

    def store_glucose(self, device_id: str):
        return self._store(device_id, MeasurementType.GLUCOSE, 'Glucose measurement stored')

    def _store(self, device_id: str, measurement_type: MeasurementType, message: str):
        device = self.connection_manager.get_device(device_id)
        model = device.model if device and device.model else DEFAULT_MODELS[measurement_type]

        return store_measurement(
            self.measurement_service,
            device_id,
            measurement_type,
            message,
            source=SOURCE,
            device_model=model
        )

    def get_blueprint(self):
        """Get Flask Blueprint for registration"""
        return self.blueprint
