"""
Scheduler for cache refresh jobs.
Handles periodic execution of the refresh in a background thread.
"""
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional

import schedule

from news_cache.models import RefreshReport

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Runs a refresh job every N minutes.
    """

    def __init__(self, interval_minutes: float, job: Callable[[], Any]):
        """
        Initialize the scheduler.

        Args:
            interval_minutes: Minutes between two runs of the job
            job: Callable to execute; a RefreshReport result is summarized in the log
        """
        if interval_minutes <= 0:
            raise ValueError("Refresh interval must be positive")

        self.interval_minutes = interval_minutes
        self.job = job
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.last_run: Optional[datetime] = None
        self.last_result = None

        # Own instance, so jobs never leak between schedulers.
        self._schedule = schedule.Scheduler()
        self._stop_event = threading.Event()

        logger.debug(f"RefreshScheduler initialized with interval of {interval_minutes} minutes")

    def _run_job_safely(self):
        """
        Run the job function with error handling.
        """
        try:
            logger.info("Executing scheduled refresh job...")
            start_time = time.time()

            result = self.job()
            self.last_result = result
            self.last_run = datetime.now()

            duration = time.time() - start_time
            logger.info(f"Scheduled job completed in {duration:.2f} seconds")

            if isinstance(result, RefreshReport):
                logger.info(f"Job summary: {len(result.updated_regions)} regions updated, "
                            f"{result.articles_fetched} articles fetched ({len(result.failed_sources)} failed sources)")

        except Exception as e:
            logger.error(f"Error executing scheduled job: {e}", exc_info=True)

    def start(self):
        """
        Start the scheduler in a separate thread.
        """
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self._schedule.clear()
        self._schedule.every(self.interval_minutes).minutes.do(self._run_job_safely)
        logger.info(f"Scheduled refresh job every {self.interval_minutes} minutes")

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._scheduler_loop, daemon=True)
        self.thread.start()

        logger.info("Scheduler started in a separate thread.")

    def stop(self):
        """
        Stop the scheduler.
        """
        if not self.running:
            logger.warning("Scheduler is not running")
            return

        logger.info("Stopping scheduler...")
        self.running = False
        self._stop_event.set()

        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=5)
            if self.thread.is_alive():
                logger.warning("Scheduler thread did not terminate cleanly.")
            else:
                logger.info("Scheduler thread stopped.")

        self._schedule.clear()
        logger.info("Scheduler stopped")

    def _scheduler_loop(self):
        """
        Main scheduler loop running in separate thread.
        """
        logger.debug("Scheduler loop started")

        while self.running:
            try:
                self._schedule.run_pending()
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)
                self._stop_event.wait(5)
                continue

            self._stop_event.wait(1)

        logger.debug("Scheduler loop stopped")

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time as a naive local datetime, or None if nothing is scheduled
        """
        if not self._schedule.get_jobs():
            return None
        return self._schedule.next_run

    def get_status(self) -> dict:
        """
        Get scheduler status information.

        Returns:
            Dictionary with scheduler status
        """
        next_run = self.get_next_run_time()

        return {
            "running": self.running,
            "interval_minutes": self.interval_minutes,
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "jobs_count": len(self._schedule.get_jobs()),
            "thread_alive": self.thread.is_alive() if self.thread else False
        }

    def run_now(self):
        """
        Execute the refresh job immediately (outside of schedule).
        """
        logger.info("Running refresh job immediately...")
        self._run_job_safely()
        return self.last_result


def initialize_scheduler(config_manager, job: Callable[[], Any]) -> Optional[RefreshScheduler]:
    """
    Build a scheduler from the application settings.

    Args:
        config_manager: The ConfigManager instance with loaded settings.
        job: The function to call on every scheduled run.

    Returns:
        A configured RefreshScheduler, or None if scheduling is disabled.
    """
    if not config_manager.get_config_value("schedule.enabled", True):
        logger.warning("Scheduled refresh is disabled in settings.")
        return None

    interval = config_manager.get_config_value("schedule.refresh_minutes", 30)
    scheduler = RefreshScheduler(interval_minutes=interval, job=job)
    logger.info(f"Scheduler initialized with a {interval} minute refresh interval.")
    return scheduler
