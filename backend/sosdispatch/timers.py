import logging
from datetime import datetime
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

logger = logging.getLogger(__name__)


def deadline_job_id(request_id: int) -> str:
    return f"deadline:{request_id}"


class DeadlineTimers:
    """
    One APScheduler date job per pending request, plus immediate one-off jobs.

    Timers are a latency optimisation only: the expiry sweeper recovers any timer
    lost to a restart, and a timer firing late is rejected by the request's CAS.
    """

    def __init__(self, scheduler: BaseScheduler):
        self.scheduler = scheduler

    def arm(self, request_id: int, fire_at: datetime, callback: Callable[[int], object]):
        self.scheduler.add_job(
            callback,
            "date",
            run_date=fire_at,
            args=[request_id],
            id=deadline_job_id(request_id),
            replace_existing=True,
            misfire_grace_time=None,
        )

    def cancel(self, request_id: int):
        try:
            self.scheduler.remove_job(deadline_job_id(request_id))
        except JobLookupError:
            # Already fired or never armed in this process
            logger.debug(f"No deadline timer to cancel for request {request_id}")

    def submit(self, fn: Callable, *args):
        self.scheduler.add_job(fn, args=list(args))
