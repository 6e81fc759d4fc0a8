import logging

from src.shared.infrastructure.workers import BackgroundWorker

logger = logging.getLogger(__name__)


class ConnectionHealthWorker(BackgroundWorker):
    """
    Periodic health check of one connection session

    Created per session by the DeviceConnectionManager and stopped on
    every teardown path. The generation ties each tick to the session
    that started the worker, so a tick that races a teardown is a no-op.
    """

    def __init__(self, connection_manager, generation: int, interval_seconds: float = 10):
        super().__init__(
            name=f"ConnectionHealthWorker-{generation}",
            interval_seconds=interval_seconds
        )

        self.connection_manager = connection_manager
        self.generation = generation

    def do_work(self):
        healthy = self.connection_manager.check_connection_health(self.generation)

        if not healthy:
            logger.info(f"Health check ended session generation {self.generation}")
            self.stop()
