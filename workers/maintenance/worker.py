"""Maintenance worker: periodic sweep of counters, lockouts and violations."""
import threading
import logging
from typing import Dict, Optional
from shared.config import config

logger = logging.getLogger(__name__)


class MaintenanceWorker:
    """Sweeps expired policy state on its own thread, off the request path."""

    def __init__(self, services, interval_seconds: float = config.SWEEP_INTERVAL_SECONDS):
        self.services = services
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self, now: Optional[int] = None) -> Dict[str, int]:
        """Run one sweep.

        Args:
            now: Epoch milliseconds to sweep against (defaults to each service's clock)

        Returns:
            Number of entries removed per store
        """
        swept = {
            "rate_limits": self.services.rate_limiter.sweep(now),
            "login_attempts": self.services.login_guard.sweep(now),
            "violations": self.services.recorder.sweep(now),
        }
        logger.info(f"Maintenance sweep removed {swept}")
        return swept

    def run(self):
        """Run the worker loop until stopped."""
        logger.info(f"Maintenance worker started (every {self.interval_seconds}s)")

        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in maintenance sweep: {e}")

        logger.info("Maintenance worker stopped")

    def start(self):
        """Start the loop on a daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="maintenance", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None


if __name__ == "__main__":
    # Standalone sweeper for deployments whose counters live in Redis
    from api.services.container import build_services

    logging.basicConfig(level=logging.INFO)
    worker = MaintenanceWorker(build_services())
    try:
        worker.run()
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
