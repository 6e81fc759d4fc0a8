from flask import Blueprint

from src.devicemonitoring.application.services import MeasurementService
from src.devicemonitoring.domain.model.aggregates import MeasurementType
from .rest_helpers import measurement_history, store_measurement


class OximeterController:
    """
    REST API Controller for pulse oximeters

    Endpoints:
    - POST /api/oximeter/<id>/measurement
    - GET /api/oximeter/<id>/history
    """

    def __init__(self, measurement_service: MeasurementService):
        self.measurement_service = measurement_service
        self.blueprint = Blueprint('oximeter', __name__)
        self._register_routes()

    def _register_routes(self):
        self.blueprint.add_url_rule(
            '/api/oximeter/<device_id>/measurement',
            'store_measurement',
            self.store_measurement,
            methods=['POST']
        )
        self.blueprint.add_url_rule(
            '/api/oximeter/<device_id>/history',
            'get_history',
            self.get_history,
            methods=['GET']
        )

    def store_measurement(self, device_id: str):
        """
        POST /api/oximeter/<id>/measurement

        Request Body (JSON):
        {
            "spo2": 97,
            "pulseRate": 64,
            "pi": 3.2,
            "probeOff": false,
            "pulseSearching": false
        }
        """
        return store_measurement(
            self.measurement_service,
            device_id,
            MeasurementType.OXIMETER,
            'Pulse oximeter measurement stored'
        )

    def get_history(self, device_id: str):
        return measurement_history(self.measurement_service, device_id, MeasurementType.OXIMETER)

    def get_blueprint(self):
        return self.blueprint
