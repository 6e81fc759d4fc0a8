import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BackgroundWorker(ABC):
    """
    Base class for background workers

    Provides infrastructure for periodic task execution in a separate thread.
    Subclasses implement the do_work() method with their specific logic.

    Features:
    - Runs in daemon thread (won't prevent app shutdown)
    - Configurable interval, first run after one interval
    - Stop cancels the pending wait immediately
    - Safe to stop from inside do_work()
    - Exception handling
    """

    def __init__(self, name: str, interval_seconds: float):
        """
        Initialize background worker

        Args:
            name: Worker name (for logging)
            interval_seconds: Seconds between work executions
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        logger.debug(
            f"Background worker '{name}' initialized "
            f"(interval: {interval_seconds}s)"
        )

    @abstractmethod
    def do_work(self):
        """
        Implement this method with the worker's logic

        This method will be called periodically at the configured interval.
        Should handle its own exceptions.
        """
        pass

    def start(self):
        """Start the background worker"""
        if self.running:
            logger.warning(f"Worker '{self.name}' is already running")
            return

        logger.info(f"Starting background worker: {self.name}")
        self.running = True
        self._stop_event = threading.Event()

        self.thread = threading.Thread(
            target=self._run_loop,
            args=(self._stop_event,),
            daemon=True,  # Daemon thread won't prevent app shutdown
            name=f"Worker-{self.name}"
        )
        self.thread.start()

    def stop(self, timeout: float = 5, join: bool = True):
        """
        Stop the background worker

        Args:
            timeout: Seconds to wait for the thread to finish
            join: False only signals the loop; a do_work() in progress
                finishes on its own
        """
        if not self.running:
            logger.debug(f"Worker '{self.name}' is not running")
            return

        logger.info(f"Stopping background worker: {self.name}")
        self.running = False
        self._stop_event.set()

        # A worker may stop itself from do_work(); joining would deadlock
        if (
                join
                and self.thread
                and self.thread.is_alive()
                and self.thread is not threading.current_thread()
        ):
            self.thread.join(timeout=timeout)

        logger.info(f"Worker '{self.name}' stopped")

    def _run_loop(self, stop_event: threading.Event):
        """Internal loop that executes work periodically"""
        logger.debug(f"Worker '{self.name}' loop started")

        while not stop_event.wait(self.interval_seconds):
            try:
                self.do_work()
            except Exception as e:
                logger.error(
                    f"Error in worker '{self.name}': {e}",
                    exc_info=True
                )

        logger.debug(f"Worker '{self.name}' loop ended")

    def is_running(self) -> bool:
        """Check if a worker is running"""
        return self.running
