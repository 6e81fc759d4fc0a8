import errno
import json
import logging
import threading
import time
from typing import Dict, Optional

import serial

from config.bluetooth_config import BluetoothConfig
from .errors import PermissionDenied

logger = logging.getLogger(__name__)


class SerialClient:
    """
    Bluetooth Serial Client with retry logic

    Line-delimited JSON link to the SDK bridge process.
    Writes are serialized; reads are expected from a single reader thread.
    """

    def __init__(self, port: str, read_timeout: float = 1.0):
        """
        Initialize serial client

        Args:
            port: Serial port (e.g., /dev/rfcomm0, COM4)
            read_timeout: Blocking timeout of one readline()
        """
        self.port = port
        self.read_timeout = read_timeout
        self.connection: Optional[serial.Serial] = None
        self.is_connected = False
        self._write_lock = threading.Lock()

    def connect(self) -> bool:
        """
        Connect to serial port with retry logic

        Returns:
            True if connected, False otherwise

        Raises:
            PermissionDenied: If the OS refuses access to the port
        """
        for attempt in range(BluetoothConfig.MAX_RETRIES):
            try:
                logger.info(
                    f"Connecting to {self.port} "
                    f"(attempt {attempt + 1}/{BluetoothConfig.MAX_RETRIES})..."
                )

                self.connection = serial.Serial(
                    port=self.port,
                    baudrate=BluetoothConfig.BAUD_RATE,
                    timeout=self.read_timeout,
                    write_timeout=BluetoothConfig.WRITE_TIMEOUT
                )

                self.is_connected = True
                logger.info(f"Connected to {self.port}")
                return True

            except serial.SerialException as e:
                if self._is_permission_error(e):
                    logger.error(f"Permission denied opening {self.port}: {e}")
                    raise PermissionDenied(
                        f"Permission denied opening {self.port}"
                    ) from e

                logger.warning(f"Connection attempt {attempt + 1} failed: {e}")

                if attempt < BluetoothConfig.MAX_RETRIES - 1:
                    logger.info(f"Retrying in {BluetoothConfig.RETRY_DELAY}s...")
                    time.sleep(BluetoothConfig.RETRY_DELAY)
                else:
                    logger.error(
                        f"Failed to connect to {self.port} "
                        f"after {BluetoothConfig.MAX_RETRIES} attempts"
                    )

        self.is_connected = False
        return False

    @staticmethod
    def _is_permission_error(error: serial.SerialException) -> bool:
        if getattr(error, 'errno', None) in (errno.EACCES, errno.EPERM):
            return True
        return 'permission denied' in str(error).lower()

    def disconnect(self):
        """Disconnect from serial port"""
        try:
            if self.connection and self.connection.is_open:
                self.connection.close()
                logger.info(f"Disconnected from {self.port}")
        except serial.SerialException as e:
            logger.error(f"Error disconnecting from {self.port}: {e}")
        finally:
            self.is_connected = False
            self.connection = None

    def send_message(self, message: Dict) -> bool:
        """
        Send JSON message to the bridge

        Args:
            message: Dictionary to send as JSON

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_connected or not self.connection:
            logger.warning(f"Cannot send message: not connected to {self.port}")
            return False

        json_str = json.dumps(message, default=str) + '\n'

        try:
            with self._write_lock:
                self.connection.write(json_str.encode('utf-8'))
                self.connection.flush()

            logger.debug(f"Sent to {self.port}: {json_str.strip()}")
            return True

        except serial.SerialTimeoutException:
            logger.error(f"Timeout sending message to {self.port}")
            return False

        except serial.SerialException as e:
            logger.error(f"Error sending message to {self.port}: {e}", exc_info=True)
            return False

    def read_message(self) -> Optional[Dict]:
        """
        Read one JSON message from the bridge

        Returns:
            Parsed JSON dict or None on timeout, noise or error
        """
        if not self.is_connected or not self.connection:
            return None

        try:
            raw_line = self.connection.readline()
        except serial.SerialException as e:
            logger.error(f"Serial error reading from {self.port}: {e}")
            self.is_connected = False
            return None

        if not raw_line:
            return None

        line = raw_line.decode('utf-8', errors='replace').strip()

        if not line:
            return None

        if not line.startswith('{'):
            # Bridge diagnostics are plain text
            logger.info(f"[{self.port}] {line}")
            return None

        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from {self.port}: {line[:100]}")
            return None

        logger.debug(f"Received from {self.port}: {line}")
        return message

    def __repr__(self) -> str:
        status = "CONNECTED" if self.is_connected else "DISCONNECTED"
        return f"SerialClient({self.port}, {status})"
