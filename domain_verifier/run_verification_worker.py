# domain_verifier/run_verification_worker.py
"""Verification worker - periodically processes due domain verification attempts."""

import logging
import signal
import sys
import time

from domain_verifier.container import attempt_scheduler, verification_settings
from domain_verifier.scheduler.scheduler import AttemptScheduler

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


class VerificationWorker:
    """
    Verification worker - the periodic trigger for process_all_due().

    Separate process that:
    - Sweeps due attempts every poll interval
    - Leaves failed sweeps for the next cycle
    - Can run as several replicas; the store rejects duplicate transitions
    """

    def __init__(self, scheduler: AttemptScheduler, poll_interval: float = 30.0):
        """
        Initialize verification worker.

        Args:
            scheduler: Scheduler whose due attempts are processed
            poll_interval: How often to sweep (seconds)
        """
        self.scheduler = scheduler
        self.poll_interval = poll_interval
        self._stop_requested = False

        logger.info("Verification Worker initialized")
        logger.info(f"Poll interval: {poll_interval}s")

    def start(self):
        """Start the worker loop."""
        policy = self.scheduler.policy
        logger.info("=" * 80)
        logger.info("DOMAIN VERIFICATION WORKER STARTED")
        logger.info("=" * 80)
        logger.info(f"Poll interval: {self.poll_interval}s")
        logger.info(f"Max attempts: {policy.max_attempts}")
        logger.info(
            f"Backoff: {policy.initial_delay_seconds}s x{policy.backoff_multiplier} "
            f"(cap {policy.max_delay_seconds}s, jitter {policy.jitter_seconds}s)"
        )
        logger.info("Press Ctrl+C to stop")
        logger.info("=" * 80)

        # Register signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while not self._stop_requested:
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in verification cycle: {e}", exc_info=True)

            if not self._stop_requested:
                time.sleep(self.poll_interval)

        logger.info("Verification Worker stopped")

    def stop(self):
        self._stop_requested = True

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, stopping...")
        self.stop()

    def run_once(self):
        """Single sweep."""
        result = self.scheduler.process_all_due()

        if result.processed or result.errors:
            logger.info(
                f"[worker] processed={result.processed} verified={result.verified} "
                f"failed={result.failed} retried={result.retried} errors={result.errors}"
            )
        return result


def main():
    """Main entry point."""
    worker = VerificationWorker(
        scheduler=attempt_scheduler,
        poll_interval=verification_settings.poll_interval_seconds,
    )

    try:
        worker.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
