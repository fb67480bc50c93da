"""Periodic maintenance of the rotation service with APScheduler."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from token_rotation.services.rotation.service import TokenRotationService

log = logging.getLogger(__name__)

JOB_ID = "token_rotation_maintenance"


class MaintenanceScheduler:
    """
    Run :meth:`TokenRotationService.perform_maintenance` on a fixed interval.

    ``max_instances=1`` and ``coalesce=True`` keep at most one run in flight
    and collapse missed runs; the service's own lock covers manual calls.

    :param service: Service to maintain.
    :param interval_seconds: Seconds between runs (defaults to the service config).
    :param scheduler: Scheduler to register the job on; a
        :class:`BackgroundScheduler` is created when omitted.
    """

    def __init__(
        self,
        service: TokenRotationService,
        *,
        interval_seconds: int | None = None,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.service = service
        self.interval_seconds = interval_seconds or service.config.maintenance_interval
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def run_once(self) -> bool:
        """Job body: one maintenance pass, never raising into the scheduler."""
        try:
            return self.service.perform_maintenance()
        except Exception:
            log.error("Scheduled maintenance failed", exc_info=True)
            return False

    def start(self) -> None:
        if self.scheduler.get_job(JOB_ID) is None:
            self.scheduler.add_job(
                self.run_once,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                id=JOB_ID,
                name="Token rotation maintenance",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        if not self.scheduler.running:
            self.scheduler.start()
            log.info("Maintenance scheduled every %d seconds", self.interval_seconds)

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            log.info("Maintenance scheduler stopped")

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)
