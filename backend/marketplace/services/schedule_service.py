# Overview: Cluster-wide "at most once per interval" job leases and the ticker that uses them.

"""
Job scheduling across replicas.

try_run() claims the right to run a job for one interval by locking the
job's row in job_schedule. Whoever commits the new last_run_at first wins;
everyone else sees a recent timestamp and backs off. A failed job keeps its
lease, so the next attempt waits a full interval.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import JobSchedule
from .concurrency import lock_for_update
from marketplace.time_utils import as_naive_utc, utcnow


@dataclass(frozen=True)
class Job:
    name: str
    interval: timedelta
    run: Callable[[], object]


def try_run(job_name: str, interval: timedelta) -> bool:
    """Return True if the caller now holds the lease for job_name."""
    now = utcnow()
    try:
        row = lock_for_update(
            db.session.query(JobSchedule).filter_by(job_name=job_name)
        ).first()

        if row is None:
            db.session.add(JobSchedule(job_name=job_name, last_run_at=now))
            db.session.commit()
            return True

        if now - as_naive_utc(row.last_run_at) < interval:
            db.session.rollback()
            return False

        row.last_run_at = now
        db.session.commit()
        return True
    except IntegrityError:
        # Another replica inserted the first lease row concurrently
        db.session.rollback()
        return False


def default_jobs() -> list[Job]:
    from . import maintenance_service, order_service, rate_limit_service

    return [
        Job("stale_orders", timedelta(minutes=10), order_service.cancel_stale_orders),
        Job("expired_rate_limits", timedelta(minutes=10), rate_limit_service.cleanup),
        Job("expired_refresh_tokens", timedelta(hours=24), maintenance_service.purge_expired_refresh_tokens),
        Job("expired_password_resets", timedelta(hours=24), maintenance_service.purge_expired_password_resets),
        Job("expired_registration_codes", timedelta(hours=24), maintenance_service.purge_expired_registrations),
    ]


def _execute(app, job: Job, timeout: float) -> dict:
    outcome: dict = {}

    def target():
        with app.app_context():
            try:
                outcome["result"] = job.run()
            except Exception:
                app.logger.exception("Job %s failed", job.name)
                outcome["failed"] = True
            finally:
                db.session.remove()

    worker = threading.Thread(target=target, name=f"job-{job.name}", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        app.logger.error("Job %s exceeded %ss timeout", job.name, timeout)
        outcome["timed_out"] = True
    return outcome


def run_due_jobs(app, jobs: list[Job] | None = None, *, timeout: float | None = None) -> dict[str, object]:
    """
    Offer every job to try_run() and execute the ones whose lease we got.

    Each job runs on its own thread with a fresh app context and is waited
    on for at most `timeout` seconds. Returns {job_name: result} for jobs
    that finished successfully.
    """
    if jobs is None:
        jobs = default_jobs()
    if timeout is None:
        timeout = app.config.get("SCHEDULER_JOB_TIMEOUT", 10)

    results: dict[str, object] = {}
    for job in jobs:
        with app.app_context():
            acquired = try_run(job.name, job.interval)
            db.session.remove()
        if not acquired:
            app.logger.debug("Job %s skipped; lease held elsewhere", job.name)
            continue

        outcome = _execute(app, job, timeout)
        if "result" in outcome:
            results[job.name] = outcome["result"]
            app.logger.info("Job %s finished: %s", job.name, outcome["result"])
    return results


def run_scheduler(app, stop_event: threading.Event, *, tick_seconds: float | None = None) -> None:
    """Tick until stop_event is set, running due jobs on every tick."""
    if tick_seconds is None:
        tick_seconds = app.config.get("SCHEDULER_TICK_SECONDS", 600)

    app.logger.info("Scheduler started; tick every %ss", tick_seconds)
    while not stop_event.is_set():
        run_due_jobs(app)
        stop_event.wait(tick_seconds)
    app.logger.info("Scheduler stopped")
