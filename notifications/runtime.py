"""Process-level wiring: collaborators are built once and shared by reference."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from .channels import build_dispatcher
from .config import NotifierSettings, load_settings
from .scheduler import CycleLock, CycleScheduler, build_cycle_lock
from .service import CampaignRunner
from .store import SqlActivityRepository, SqlNotificationLog, create_session_factory
from .templates import TemplateRenderer

LOGGER = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: NotifierSettings
    session_factory: sessionmaker
    dispatcher: object
    renderer: TemplateRenderer
    log: SqlNotificationLog
    runner: CampaignRunner
    scheduler: CycleScheduler


def build_runtime(
    settings: NotifierSettings,
    session_factory: Optional[sessionmaker] = None,
    dispatcher=None,
    cycle_lock: Optional[CycleLock] = None,
) -> Runtime:
    session_factory = session_factory or create_session_factory(settings.database_url, timeout=settings.db_timeout)
    dispatcher = dispatcher or build_dispatcher(settings)
    renderer = TemplateRenderer(settings.frontend_url)
    log = SqlNotificationLog(session_factory)
    runner = CampaignRunner(
        repository=SqlActivityRepository(session_factory, page_size=settings.page_size),
        log=log,
        dispatcher=dispatcher,
        renderer=renderer,
        thresholds=settings.thresholds,
        dedup_window=settings.dedup_window,
    )
    return Runtime(
        settings=settings,
        session_factory=session_factory,
        dispatcher=dispatcher,
        renderer=renderer,
        log=log,
        runner=runner,
        scheduler=CycleScheduler(runner, cycle_lock=cycle_lock or build_cycle_lock(settings)),
    )


_RUNTIME: Optional[Runtime] = None
_RUNTIME_LOCK = threading.Lock()


def get_runtime() -> Runtime:
    global _RUNTIME
    with _RUNTIME_LOCK:
        if _RUNTIME is None:
            _RUNTIME = build_runtime(load_settings())
            LOGGER.info(
                "Inactivity notifier ready (cron=%r tz=%s thresholds=%s)",
                _RUNTIME.settings.cron,
                _RUNTIME.settings.timezone,
                list(_RUNTIME.settings.thresholds),
            )
        return _RUNTIME


def current_runtime() -> Optional[Runtime]:
    return _RUNTIME


def set_runtime(runtime: Optional[Runtime]) -> None:
    global _RUNTIME
    with _RUNTIME_LOCK:
        _RUNTIME = runtime
