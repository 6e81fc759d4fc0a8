import logging

from flask import Blueprint

from src.devicemonitoring.application.services import MeasurementService
from src.devicemonitoring.domain.model.aggregates import MeasurementType
from src.shared.interfaces.rest_responses import error_response, success_response
from .rest_helpers import measurement_history, store_measurement

logger = logging.getLogger(__name__)


class GlucoseController:
    """
    REST API Controller for blood glucose meters

    Endpoints:
    - POST /api/glucose/<id>/measurement
    - GET /api/glucose/<id>/history
    - GET /api/glucose/<id>/latest
    """

    def __init__(self, measurement_service: MeasurementService):
        self.measurement_service = measurement_service
        self.blueprint = Blueprint('glucose', __name__)
        self._register_routes()

    def _register_routes(self):
        self.blueprint.add_url_rule(
            '/api/glucose/<device_id>/measurement',
            'store_measurement',
            self.store_measurement,
            methods=['POST']
        )
        self.blueprint.add_url_rule(
            '/api/glucose/<device_id>/history',
            'get_history',
            self.get_history,
            methods=['GET']
        )
        self.blueprint.add_url_rule(
            '/api/glucose/<device_id>/latest',
            'get_latest',
            self.get_latest,
            methods=['GET']
        )

    def store_measurement(self, device_id: str):
        """
        POST /api/glucose/<id>/measurement

        Request Body (JSON):
        {
            "value": 112,
            "unit": "mg/dL",        (or "mmol/L")
            "result": "Normal",     (optional, classified from value/unit)
            "testType": "fasting"   (optional, default "random")
        }
        """
        return store_measurement(
            self.measurement_service,
            device_id,
            MeasurementType.GLUCOSE,
            'Glucose measurement stored'
        )

    def get_history(self, device_id: str):
        return measurement_history(self.measurement_service, device_id, MeasurementType.GLUCOSE)

    def get_latest(self, device_id: str):
        """GET /api/glucose/<id>/latest; 404 when the device has no reading"""
        try:
            latest = self.measurement_service.get_latest(device_id, MeasurementType.GLUCOSE)

            if latest is None:
                return error_response('No glucose readings found', 404, deviceId=device_id)

            return success_response(deviceId=device_id, measurement=latest.to_dict())

        except Exception as e:
            logger.error(f"Error getting latest glucose of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def get_blueprint(self):
        return self.blueprint
