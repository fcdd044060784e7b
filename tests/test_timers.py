from datetime import datetime

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from sosdispatch.timers import DeadlineTimers, deadline_job_id


@pytest.fixture
def scheduler():
    # Never started: jobs stay pending, which is all these tests need
    return BackgroundScheduler(timezone="UTC")


def noop(*args):
    return args


def test_arm_and_cancel(scheduler):
    timers = DeadlineTimers(scheduler)

    timers.arm(7, datetime(2030, 1, 1), noop)
    assert scheduler.get_job(deadline_job_id(7)) is not None

    timers.cancel(7)
    assert scheduler.get_job(deadline_job_id(7)) is None


def test_cancel_is_best_effort(scheduler):
    timers = DeadlineTimers(scheduler)

    timers.cancel(99)
    timers.cancel(99)


def test_submit_queues_immediate_job(scheduler):
    timers = DeadlineTimers(scheduler)

    timers.submit(noop, 1, 2)

    jobs = scheduler.get_jobs()
    assert len(jobs) == 1
    assert jobs[0].args == (1, 2)
