from __future__ import annotations

from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .db import log_event

DOCKER_CLEANUP_JOB = "docker-cleanup"


class JobRegistry:
    """At most one periodic job per name.

    The scheduler is owned by the process and handed in; nothing here is global.
    """

    def __init__(self, scheduler: BackgroundScheduler | None = None):
        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={"coalesce": True, "max_instances": 1},
        )

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def register(self, name: str, schedule: str, callback: Callable[[], Any]) -> None:
        """Register ``callback`` under ``name`` on a crontab ``schedule``.

        A previous registration of the same name is cancelled first.
        """
        trigger = CronTrigger.from_crontab(schedule)
        self.cancel(name)
        self.scheduler.add_job(callback, trigger, id=name, name=name)
        log_event("INFO", f"Scheduled job '{name}' ({schedule}).")

    def cancel(self, name: str) -> bool:
        try:
            self.scheduler.remove_job(name)
        except JobLookupError:
            return False
        log_event("INFO", f"Cancelled job '{name}'.")
        return True

    def is_registered(self, name: str) -> bool:
        return self.scheduler.get_job(name) is not None

    def job_names(self) -> list[str]:
        return sorted(job.id for job in self.scheduler.get_jobs())
