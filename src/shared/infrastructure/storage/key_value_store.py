import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional


class KeyValueStore(ABC):
    """
    Minimal string key-value store

    Holds small pieces of state that must survive a process restart,
    such as the reconnection hint.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None"""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Insert or replace the value for key"""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; no-op if absent"""


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store (tests, platforms without persistent storage)"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)
