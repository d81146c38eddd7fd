"""
Scheduler module for periodic attestation cycles.

This module provides scheduling functionality using APScheduler to run a
cycle function at a fixed interval. It handles overlap prevention, error
handling and graceful shutdown. Each Scheduler is an ordinary object: whoever
creates it owns it and stops it.
"""

import logging
import threading
from typing import Callable, Optional
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR
import pytz

from attestor.config import Config

# Configure module logger
logger = logging.getLogger(__name__)


class Scheduler:
    """
    Runs a cycle function at a fixed interval.

    stop() is the cancellation handle: once it returns no further cycles are
    started.
    """

    def __init__(self, job_name: str = "Attestation Cycle"):
        """Initialize the scheduler."""
        self.scheduler: Optional[BackgroundScheduler] = None
        self.cycle_function: Optional[Callable] = None
        self.interval_seconds: Optional[int] = None
        self.is_running = False
        self._execution_lock = threading.Lock()
        self._job_id = "attestation_cycle"
        self._job_name = job_name

    def start(
        self,
        cycle_function: Callable,
        interval_seconds: Optional[int] = None
    ) -> bool:
        """
        Start running cycle_function periodically.

        Args:
            cycle_function: Callable executing one cycle
            interval_seconds: Seconds between cycles. If None, uses Config.ATTEST_INTERVAL_SECONDS

        Returns:
            True if scheduler started successfully, False otherwise
        """
        if self.is_running:
            logger.warning("Scheduler is already running")
            return False

        if not callable(cycle_function):
            logger.error("cycle_function must be callable")
            return False

        if interval_seconds is None:
            interval_seconds = Config.ATTEST_INTERVAL_SECONDS

        if interval_seconds < 1:
            logger.error(f"Invalid interval_seconds: {interval_seconds}. Must be >= 1")
            return False

        self.cycle_function = cycle_function

        try:
            timezone = pytz.timezone(Config.SCHEDULER_TIMEZONE)
            self.scheduler = BackgroundScheduler(timezone=timezone)

            self.scheduler.add_listener(
                self._on_job_executed,
                EVENT_JOB_EXECUTED | EVENT_JOB_ERROR
            )

            self.scheduler.add_job(
                func=self._safe_execute_cycle,
                trigger=IntervalTrigger(seconds=interval_seconds),
                id=self._job_id,
                name=self._job_name,
                replace_existing=True,
                max_instances=1  # Prevent overlapping runs
            )

            self.scheduler.start()
            self.is_running = True
            self.interval_seconds = interval_seconds

            logger.info(f"Scheduler started with {interval_seconds} second interval")
            return True

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}", exc_info=True)
            self.scheduler = None
            self.is_running = False
            return False

    def stop(self, wait: bool = True) -> bool:
        """
        Stop the scheduler gracefully.

        Args:
            wait: Whether to wait for a running cycle to complete

        Returns:
            True if scheduler stopped successfully, False otherwise
        """
        if not self.is_running or not self.scheduler:
            logger.warning("Scheduler is not running")
            return False

        try:
            logger.info("Stopping scheduler...")
            self.scheduler.shutdown(wait=wait)

            self.is_running = False
            self.scheduler = None

            logger.info("Scheduler stopped successfully")
            return True

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}", exc_info=True)
            return False

    def run_now(self) -> bool:
        """
        Execute one cycle immediately in the calling thread.

        Returns:
            False if a cycle was already running and this one was skipped
        """
        return self._safe_execute_cycle()

    def _safe_execute_cycle(self) -> bool:
        """
        Execute the cycle function with overlap prevention.

        Errors are logged, never raised, so one failing cycle does not stop
        the schedule.
        """
        if not self._execution_lock.acquire(blocking=False):
            logger.warning("Cycle skipped: previous run still in progress")
            return False

        start_time = datetime.utcnow()

        try:
            if not self.cycle_function:
                logger.error("Cycle function not set")
                return False

            result = self.cycle_function()

            duration = (datetime.utcnow() - start_time).total_seconds()
            if result:
                logger.info(f"Cycle completed: {len(result)} markets processed in {duration:.2f} seconds")
            else:
                logger.info(f"Cycle completed with nothing to attest in {duration:.2f} seconds")
            return True

        except Exception as e:
            duration = (datetime.utcnow() - start_time).total_seconds()
            logger.error(f"Cycle failed after {duration:.2f} seconds: {e}", exc_info=True)
            return True

        finally:
            self._execution_lock.release()

    def _on_job_executed(self, event) -> None:
        if event.exception:
            logger.error(f"Job {event.job_id} raised an exception: {event.exception}")
        else:
            logger.debug(f"Job {event.job_id} executed successfully")

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time as datetime, or None if scheduler is not running
        """
        if not self.is_running or not self.scheduler:
            return None

        job = self.scheduler.get_job(self._job_id)
        return job.next_run_time if job else None

    def is_cycle_running(self) -> bool:
        """Check whether a cycle is executing right now."""
        return self._execution_lock.locked()

    def get_status(self) -> dict:
        """
        Get current scheduler status.

        Returns:
            Dictionary with scheduler status information
        """
        next_run = self.get_next_run_time()
        return {
            "is_running": self.is_running,
            "has_cycle_function": self.cycle_function is not None,
            "cycle_running": self.is_cycle_running(),
            "next_run_time": next_run.isoformat() if next_run else None,
            "interval_seconds": self.interval_seconds if self.is_running else None,
        }
