from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .config import STUDENT_ROLE, ThresholdConfig
from .dedup import DedupGuard
from .models import (
    OUTCOME_FAILED,
    OUTCOME_SENT,
    SKIP_ALREADY_NOTIFIED,
    SKIP_ERROR,
    SKIP_NO_ACTIVITY,
    CycleReport,
    DispatchResult,
    Failed,
    NotificationLogEntry,
    Outcome,
    Sent,
    Skipped,
    UserActivityRecord,
)
from .templates import WELCOME_TEMPLATE
from .thresholds import category_for, elapsed_days, matching_thresholds

LOGGER = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignRunner:
    """Runs one inactivity scan over all students.

    Collaborators are passed in once at process start; the runner holds no
    state between cycles.
    """

    def __init__(
        self,
        repository,
        log,
        dispatcher,
        renderer,
        thresholds: ThresholdConfig,
        dedup_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.log = log
        self.dispatcher = dispatcher
        self.renderer = renderer
        self.thresholds = thresholds
        self.guard = DedupGuard(log, dedup_window)
        self.clock = clock

    def run_cycle(self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None) -> CycleReport:
        now = now or self.clock()
        outcomes: List[Outcome] = []
        scanned = 0
        flags = {}

        LOGGER.info("Checking for inactive students (thresholds=%s)", list(self.thresholds))
        try:
            for record in self.repository.list_users_by_role(STUDENT_ROLE):
                if cancel_event is not None and cancel_event.is_set():
                    LOGGER.warning("Inactivity cycle cancelled after %d users", scanned)
                    flags["cancelled"] = True
                    break
                scanned += 1
                outcomes.extend(self._process_user(record, now))
        except Exception as exc:
            LOGGER.exception("Inactivity cycle aborted after %d users", scanned)
            flags["aborted"] = True
            flags["error"] = f"{type(exc).__name__}: {exc}"

        report = CycleReport.from_outcomes(scanned, outcomes, **flags)
        LOGGER.info(
            "Inactivity check completed: scanned=%d sent=%d failed=%d skipped=%d",
            report.users_scanned,
            report.notifications_sent,
            report.notifications_failed,
            report.notifications_skipped,
        )
        return report

    def _process_user(self, record: UserActivityRecord, now: datetime) -> List[Outcome]:
        if record.last_activity is None:
            return [Skipped(record.user_id, SKIP_NO_ACTIVITY)]

        try:
            days = elapsed_days(now, record.last_activity)
            matches = sorted(matching_thresholds(days, self.thresholds))
        except Exception as exc:
            LOGGER.exception("Could not evaluate inactivity for %s", record.user_id)
            return [Skipped(record.user_id, SKIP_ERROR, detail=str(exc))]

        outcomes: List[Outcome] = []
        for threshold in matches:
            category = category_for(threshold)
            try:
                if self.guard.already_notified(record.user_id, category, now):
                    outcomes.append(Skipped(record.user_id, SKIP_ALREADY_NOTIFIED, category=category))
                    continue
            except Exception as exc:
                LOGGER.exception("Dedup lookup failed for %s/%s", record.user_id, category)
                outcomes.append(Skipped(record.user_id, SKIP_ERROR, category=category, detail=str(exc)))
                continue
            outcomes.append(self._notify(record, threshold, category, now))
        return outcomes

    def _notify(self, record: UserActivityRecord, threshold: int, category: str, now: datetime) -> Outcome:
        try:
            message = self.renderer.render(
                self.renderer.template_for_threshold(threshold),
                {"name": record.display_name, "days": threshold},
            )
            result = self.dispatcher.send(record.email, message)
        except Exception as exc:
            LOGGER.exception("Sending %s to %s raised", category, record.user_id)
            result = DispatchResult(False, f"{type(exc).__name__}: {exc}")

        entry = NotificationLogEntry(
            user_id=record.user_id,
            category=category,
            sent_at=now,
            outcome=OUTCOME_SENT if result.success else OUTCOME_FAILED,
            failure_detail=None if result.success else (result.error_detail or "unknown error"),
        )
        try:
            self.log.append(entry)
        except Exception:
            LOGGER.exception("Could not record %s outcome for %s", category, record.user_id)

        if result.success:
            LOGGER.info("Inactivity email (%s) sent to %s", category, record.email)
            return Sent(record.user_id, category)
        LOGGER.warning("Inactivity email (%s) to %s failed: %s", category, record.email, entry.failure_detail)
        return Failed(record.user_id, category, entry.failure_detail)


def send_welcome_email(dispatcher, renderer, log, user_id: str, email: str, name: str, now: Optional[datetime] = None) -> DispatchResult:
    """Send the signup welcome email and record the attempt."""
    try:
        message = renderer.render(WELCOME_TEMPLATE, {"name": name})
        result = dispatcher.send(email, message)
    except Exception as exc:
        LOGGER.exception("Sending welcome email to %s raised", email)
        result = DispatchResult(False, f"{type(exc).__name__}: {exc}")

    entry = NotificationLogEntry(
        user_id=user_id,
        category=WELCOME_TEMPLATE,
        sent_at=now or utcnow(),
        outcome=OUTCOME_SENT if result.success else OUTCOME_FAILED,
        failure_detail=None if result.success else (result.error_detail or "unknown error"),
    )
    try:
        log.append(entry)
    except Exception:
        LOGGER.exception("Could not record welcome email outcome for %s", user_id)
    LOGGER.info("Welcome email to %s: %s", email, "sent" if result.success else "failed")
    return result
