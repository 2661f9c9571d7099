from __future__ import annotations

import logging
from typing import Dict, Optional

from celery import shared_task
from celery.signals import worker_process_shutdown, worker_shutting_down

from .runtime import current_runtime, get_runtime
from .scheduler import CycleLockUnavailable, SchedulerShutDown

LOGGER = logging.getLogger(__name__)


def _run(source: str) -> Optional[Dict[str, object]]:
    try:
        report = get_runtime().scheduler.trigger(source=source)
    except SchedulerShutDown:
        LOGGER.warning("Ignoring %s inactivity tick during shutdown", source)
        return None
    except CycleLockUnavailable:
        LOGGER.exception("Skipping %s inactivity tick: cycle lock unavailable", source)
        return None
    return report.as_dict() if report is not None else None


@shared_task(name="notifications.tasks.run_inactivity_cycle", ignore_result=False)
def run_inactivity_cycle() -> Optional[Dict[str, object]]:
    """Scheduled beat entry point."""
    return _run("beat")


@shared_task(name="notifications.tasks.run_inactivity_cycle_now")
def run_inactivity_cycle_now() -> Optional[Dict[str, object]]:
    """On-demand trigger for operational testing; same path as the beat tick."""
    return _run("manual")


@worker_shutting_down.connect
@worker_process_shutdown.connect
def _stop_inactivity_cycles(sender=None, how=None, **kwargs) -> None:
    """Cancel the cycle in whichever worker process holds the runtime.

    ``worker_shutting_down`` reaches the process running the task only with
    the solo pool, which ``create_celery_app`` selects. Under prefork it fires
    in the parent, and ``worker_process_shutdown`` fires in each child once
    its current task has finished.
    """
    runtime = current_runtime()
    if runtime is None:
        return
    LOGGER.info("Worker shutting down (%s); cancelling inactivity cycles", how or "process exit")
    runtime.scheduler.shutdown()
