import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class BluetoothMessageRouter:
    """
    Routes messages coming from the SDK bridge by topic

    Every bridge message is a dict with 'topic' and 'data' keys.
    Handlers receive the 'data' payload plus the full message.
    """

    def __init__(self):
        self.handlers: Dict[str, Callable[[Dict, Dict], None]] = {}
        logger.debug("Bluetooth Message Router initialized")

    def register_handler(self, topic: str, handler: Callable[[Dict, Dict], None]):
        """
        Register a handler for a specific topic

        Args:
            topic: Topic to handle (e.g., "event/device/found")
            handler: Signature handler(data: dict, message: dict)
        """
        self.handlers[topic] = handler
        logger.debug(f"Registered handler for topic: {topic}")

    def route_message(self, message: Dict) -> bool:
        """
        Route a message to the appropriate handler

        Returns:
            True if a handler ran without raising
        """
        if not isinstance(message, dict):
            logger.warning("Invalid bridge message: not a dict")
            return False

        topic = message.get('topic')
        data = message.get('data') or {}

        if not topic:
            logger.warning("Bridge message missing 'topic' field")
            return False

        handler = self.handlers.get(topic)

        if handler is None:
            logger.warning(f"No handler registered for topic: {topic}")
            return False

        try:
            logger.debug(f"Routing bridge message: topic={topic}")
            handler(data, message)
            return True
        except Exception as e:
            # A faulty handler must not kill the reader thread
            logger.error(f"Error in handler for topic '{topic}': {e}", exc_info=True)
            return False

    def get_registered_topics(self) -> List[str]:
        return list(self.handlers.keys())
