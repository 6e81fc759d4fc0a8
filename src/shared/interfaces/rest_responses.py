from datetime import datetime

from flask import jsonify, request


def success_response(status_code: int = 200, **payload):
    """
    Uniform success envelope

    {"success": true, ...payload, "timestamp": "..."}
    """
    body = {'success': True}
    body.update(payload)
    body.setdefault('timestamp', datetime.now().isoformat())
    return jsonify(body), status_code


def error_response(message: str, status_code: int, **payload):
    """
    Uniform error envelope

    {"success": false, "error": "...", ...payload, "timestamp": "..."}
    """
    body = {'success': False, 'error': message}
    body.update(payload)
    body.setdefault('timestamp', datetime.now().isoformat())
    return jsonify(body), status_code


def get_json_body() -> dict:
    """
    Parsed JSON object of the current request, {} when absent

    Raises:
        ValueError: If the body is present but not a JSON object
    """
    if not request.data:
        return {}

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError('Request body must be a JSON object')

    return data
