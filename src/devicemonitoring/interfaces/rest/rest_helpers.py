import logging
from typing import Optional

from flask import request

from src.devicemonitoring.application.services import DeviceConnectionManager, MeasurementService
from src.devicemonitoring.domain.model.aggregates import MeasurementType
from src.shared.interfaces.rest_responses import error_response, get_json_body, success_response

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 1000


def check_session(
        connection_manager: DeviceConnectionManager,
        device_id: str,
        capability: Optional[str] = None,
        capability_label: str = ''
):
    """
    Error response when device_id is not the connected device (404)
    or lacks the capability (400); None when the route may proceed
    """
    connected = connection_manager.get_connected_device()

    if connected is None or connected.device_id != device_id:
        return error_response('Device not connected', 404, deviceId=device_id)

    if capability and not connected.supports(capability):
        return error_response(
            f'Device does not support {capability_label or capability}',
            400,
            deviceId=device_id
        )

    return None


def store_measurement(
        measurement_service: MeasurementService,
        device_id: str,
        measurement_type: MeasurementType,
        message: str,
        source: str = 'api',
        device_model: Optional[str] = None
):
    """POST body → validated, stored and published measurement"""
    try:
        payload = get_json_body()
        measurement = measurement_service.record_measurement(
            device_id=device_id,
            measurement_type=measurement_type,
            payload=payload,
            source=source,
            device_model=device_model
        )
        return success_response(
            201,
            message=message,
            deviceId=device_id,
            measurement=measurement.to_dict()
        )

    except ValueError as e:
        return error_response(str(e), 400, deviceId=device_id)

    except Exception as e:
        logger.error(f"Error storing {measurement_type.value} measurement: {e}", exc_info=True)
        return error_response('Internal server error', 500, deviceId=device_id)


def parse_limit() -> int:
    """
    ?limit= query parameter

    Raises:
        ValueError: If out of range
    """
    limit = request.args.get('limit', default=DEFAULT_HISTORY_LIMIT, type=int)

    if limit is None or limit < 1 or limit > MAX_HISTORY_LIMIT:
        raise ValueError(f'limit must be between 1 and {MAX_HISTORY_LIMIT}')

    return limit


def measurement_history(
        measurement_service: MeasurementService,
        device_id: str,
        measurement_type: Optional[MeasurementType]
):
    try:
        limit = parse_limit()
        measurements = measurement_service.get_history(device_id, measurement_type, limit)

        return success_response(
            deviceId=device_id,
            measurements=[m.to_dict() for m in measurements],
            count=len(measurements)
        )

    except ValueError as e:
        return error_response(str(e), 400, deviceId=device_id)

    except Exception as e:
        logger.error(f"Error getting history for {device_id}: {e}", exc_info=True)
        return error_response('Internal server error', 500, deviceId=device_id)
