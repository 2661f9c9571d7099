from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional, Union

OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"

SKIP_NO_ACTIVITY = "no_activity"
SKIP_ALREADY_NOTIFIED = "already_notified"
SKIP_ERROR = "error"


@dataclass(slots=True, frozen=True)
class UserActivityRecord:
    """Snapshot of one notifiable account as read from the activity store."""

    user_id: str
    email: Optional[str]
    full_name: Optional[str]
    role: str
    last_activity: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.full_name or (self.email or "").split("@")[0] or "there"


@dataclass(slots=True)
class NotificationMessage:
    """Rendered payload passed to concrete notification senders."""

    subject: str
    body_html: str
    body_text: str = ""


@dataclass(slots=True, frozen=True)
class NotificationLogEntry:
    """One attempt to notify a user, appended after every dispatch."""

    user_id: str
    category: str
    sent_at: datetime
    outcome: str
    failure_detail: Optional[str] = None

    def __post_init__(self) -> None:
        if self.outcome not in (OUTCOME_SENT, OUTCOME_FAILED):
            raise ValueError(f"Unknown notification outcome {self.outcome!r}")
        if self.outcome == OUTCOME_SENT and self.failure_detail is not None:
            raise ValueError("failure_detail is only allowed on failed entries")


@dataclass(slots=True, frozen=True)
class DispatchResult:
    success: bool
    error_detail: Optional[str] = None


# Per (user, threshold) outcomes threaded through the campaign runner.


@dataclass(slots=True, frozen=True)
class Sent:
    user_id: str
    category: str


@dataclass(slots=True, frozen=True)
class Failed:
    user_id: str
    category: str
    detail: str


@dataclass(slots=True, frozen=True)
class Skipped:
    user_id: str
    reason: str
    category: Optional[str] = None
    detail: Optional[str] = None


Outcome = Union[Sent, Failed, Skipped]


@dataclass(slots=True)
class CycleReport:
    users_scanned: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    notifications_skipped: int = 0
    aborted: bool = False
    cancelled: bool = False
    error: Optional[str] = None

    @classmethod
    def from_outcomes(cls, users_scanned: int, outcomes: Iterable[Outcome], **flags) -> "CycleReport":
        report = cls(users_scanned=users_scanned, **flags)
        for outcome in outcomes:
            if isinstance(outcome, Sent):
                report.notifications_sent += 1
            elif isinstance(outcome, Failed):
                report.notifications_failed += 1
            elif isinstance(outcome, Skipped):
                report.notifications_skipped += 1
            else:
                raise TypeError(f"Unknown outcome {outcome!r}")
        return report

    def as_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            "usersScanned": self.users_scanned,
            "notificationsSent": self.notifications_sent,
            "notificationsFailed": self.notifications_failed,
            "notificationsSkipped": self.notifications_skipped,
        }
        if self.aborted:
            data["aborted"] = True
            data["error"] = self.error
        if self.cancelled:
            data["cancelled"] = True
        return data
