import logging

from flask import Blueprint

from src.devicemonitoring.application.services import DeviceConnectionManager
from src.shared.infrastructure.bluetooth import DeviceManagerError
from src.shared.interfaces.rest_responses import error_response, success_response

logger = logging.getLogger(__name__)


class DeviceController:
    """
    REST API Controller for the Bluetooth device lifecycle

    Endpoints:
    - GET /api/devices - Known devices
    - GET /api/devices/<id> - One known device
    - POST /api/devices/<id>/connect - Connect (direct connect allowed)
    - DELETE /api/devices/<id>/connect - Disconnect the session
    - GET /api/devices/<id>/status - Connection status
    - POST /api/devices/<id>/battery - Refresh battery of the connected device
    - POST /api/devices/scan/start - Start discovery
    - POST /api/devices/scan/stop - Stop discovery
    - GET /api/devices/session - Full connection state
    - POST /api/devices/initialize - Initialize the Bluetooth bridge
    - POST /api/devices/reconnect - Run the reconnection sequence
    """

    def __init__(self, connection_manager: DeviceConnectionManager):
        self.connection_manager = connection_manager
        self.blueprint = Blueprint('devices', __name__)
        self._register_routes()

    def _register_routes(self):
        """Register all routes for this controller"""
        rules = [
            ('/api/devices', 'list_devices', self.list_devices, ['GET']),
            ('/api/devices/session', 'get_session', self.get_session, ['GET']),
            ('/api/devices/initialize', 'initialize', self.initialize, ['POST']),
            ('/api/devices/reconnect', 'reconnect', self.reconnect, ['POST']),
            ('/api/devices/scan/start', 'start_scan', self.start_scan, ['POST']),
            ('/api/devices/scan/stop', 'stop_scan', self.stop_scan, ['POST']),
            ('/api/devices/<device_id>', 'get_device', self.get_device, ['GET']),
            ('/api/devices/<device_id>/connect', 'connect_device', self.connect_device, ['POST']),
            ('/api/devices/<device_id>/connect', 'disconnect_device', self.disconnect_device,
             ['DELETE']),
            ('/api/devices/<device_id>/status', 'get_status', self.get_status, ['GET']),
            ('/api/devices/<device_id>/battery', 'refresh_battery', self.refresh_battery,
             ['POST']),
        ]

        for rule, endpoint, view_func, methods in rules:
            self.blueprint.add_url_rule(rule, endpoint, view_func, methods=methods)

    def list_devices(self):
        """
        GET /api/devices

        Response:
        {
            "success": true,
            "count": 2,
            "devices": [...],
            "connectedDevice": {...} | null
        }
        """
        try:
            state = self.connection_manager.get_state()
            return success_response(
                count=len(state.devices),
                devices=[d.to_dict() for d in state.devices],
                connectedDevice=(
                    state.connected_device.to_dict() if state.connected_device else None
                )
            )
        except Exception as e:
            logger.error(f"Error listing devices: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def get_device(self, device_id: str):
        """GET /api/devices/<id>"""
        try:
            device = self.connection_manager.get_device(device_id)
            if device is None:
                return error_response('Device not found', 404, deviceId=device_id)

            return success_response(device=device.to_dict())
        except Exception as e:
            logger.error(f"Error getting device {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def connect_device(self, device_id: str):
        """
        POST /api/devices/<id>/connect

        Response:
        - 200 OK: Connected
        - 500 Internal Server Error: Bridge refused or failed
        """
        try:
            device = self.connection_manager.connect(device_id)
            return success_response(
                message='Device connected successfully',
                deviceId=device_id,
                device=device.to_dict()
            )
        except DeviceManagerError as e:
            return error_response(str(e), 500, deviceId=device_id)
        except Exception as e:
            logger.error(f"Error connecting {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def disconnect_device(self, device_id: str):
        """
        DELETE /api/devices/<id>/connect

        Response:
        - 200 OK: Disconnected
        - 404 Not Found: The device is not the connected one
        - 500 Internal Server Error: Bridge refused or failed
        """
        try:
            if not self.connection_manager.disconnect(device_id):
                return error_response('Device not connected', 404, deviceId=device_id)

            return success_response(
                message='Device disconnected successfully',
                deviceId=device_id
            )
        except DeviceManagerError as e:
            return error_response(str(e), 500, deviceId=device_id)
        except Exception as e:
            logger.error(f"Error disconnecting {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def get_status(self, device_id: str):
        """GET /api/devices/<id>/status"""
        try:
            device = self.connection_manager.get_device(device_id)
            if device is None:
                return error_response('Device not found', 404, deviceId=device_id)

            return success_response(
                deviceId=device_id,
                connected=device.is_connected,
                status={
                    'name': device.name,
                    'model': device.model,
                    'battery': device.battery,
                    'capabilities': device.capabilities,
                    'lastSeen': device.last_seen.isoformat()
                }
            )
        except Exception as e:
            logger.error(f"Error getting status of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def refresh_battery(self, device_id: str):
        """POST /api/devices/<id>/battery"""
        try:
            connected = self.connection_manager.get_connected_device()
            if connected is None or connected.device_id != device_id:
                return error_response('Device not connected', 404, deviceId=device_id)

            battery = self.connection_manager.refresh_battery()
            return success_response(deviceId=device_id, battery=battery)
        except Exception as e:
            logger.error(f"Error refreshing battery of {device_id}: {e}", exc_info=True)
            return error_response('Internal server error', 500, deviceId=device_id)

    def start_scan(self):
        """POST /api/devices/scan/start"""
        try:
            if not self.connection_manager.start_scan():
                state = self.connection_manager.get_state()
                return error_response(state.last_error or 'Failed to start scan', 500)

            return success_response(message='Device scanning started')
        except Exception as e:
            logger.error(f"Error starting scan: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def stop_scan(self):
        """POST /api/devices/scan/stop"""
        try:
            if not self.connection_manager.stop_scan():
                state = self.connection_manager.get_state()
                return error_response(state.last_error or 'Failed to stop scan', 500)

            return success_response(message='Device scanning stopped')
        except Exception as e:
            logger.error(f"Error stopping scan: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def get_session(self):
        """GET /api/devices/session"""
        try:
            return success_response(session=self.connection_manager.get_state().to_dict())
        except Exception as e:
            logger.error(f"Error getting session state: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def initialize(self):
        """POST /api/devices/initialize"""
        try:
            self.connection_manager.initialize()
            return success_response(message='Bluetooth initialized')
        except DeviceManagerError as e:
            return error_response(str(e), 500, errorKind=type(e).__name__)
        except Exception as e:
            logger.error(f"Error initializing Bluetooth: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def reconnect(self):
        """
        POST /api/devices/reconnect

        Best effort: 404 when the previous device could not be reached
        """
        try:
            device = self.connection_manager.auto_reconnect()
            if device is None:
                return error_response('No previous device could be reconnected', 404)

            return success_response(message='Device reconnected', device=device.to_dict())
        except Exception as e:
            logger.error(f"Error reconnecting: {e}", exc_info=True)
            return error_response('Internal server error', 500)

    def get_blueprint(self):
        """Get Flask Blueprint for registration"""
        return self.blueprint
