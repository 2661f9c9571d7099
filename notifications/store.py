"""SQL-backed activity repository and notification log.

The ``profiles`` table is owned by the platform's account service; this
module only reads it. ``email_logs`` is append-only from here.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Protocol

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from .models import (
    OUTCOME_SENT,
    DispatchResult,
    NotificationLogEntry,
    NotificationMessage,
    UserActivityRecord,
)

LOGGER = logging.getLogger(__name__)

Base = declarative_base()


class ProfileModel(Base):
    __tablename__ = "profiles"
    id = Column(String(64), primary_key=True)
    email = Column(String(255))
    full_name = Column(String(255))
    role = Column(String(20), default="student", nullable=False, index=True)
    # Stored as text by the account service; parsed leniently on read.
    last_login = Column(String(64))


class EmailLogModel(Base):
    __tablename__ = "email_logs"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    email_type = Column(String(64), nullable=False, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    error_message = Column(Text)


# Collaborator contracts consumed by the campaign runner.


class ActivityRepository(Protocol):
    def list_users_by_role(self, role: str) -> Iterator[UserActivityRecord]: ...


class NotificationLog(Protocol):
    def find_sent(self, user_id: str, category: str, since: datetime) -> List[NotificationLogEntry]: ...

    def append(self, entry: NotificationLogEntry) -> None: ...


class Dispatcher(Protocol):
    def send(self, recipient_email: str, message: NotificationMessage) -> DispatchResult: ...


class MessageRenderer(Protocol):
    def render(self, template_id: str, variables: Dict[str, Any]) -> NotificationMessage: ...


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Return an aware UTC datetime for common ISO-like input or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%d"):
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def connect_args_for(database_url: str, timeout: float) -> Dict[str, Any]:
    """Driver arguments that bound both connecting and every statement."""
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        return {"check_same_thread": False, "timeout": timeout}
    # libpq and the MySQL drivers read 0 as "wait forever"
    seconds = max(1, math.ceil(timeout))
    if backend == "postgresql":
        return {"connect_timeout": seconds, "options": f"-c statement_timeout={int(timeout * 1000)}"}
    if backend == "mysql":
        return {"connect_timeout": seconds, "read_timeout": seconds, "write_timeout": seconds}
    return {"connect_timeout": seconds}


def create_session_factory(database_url: str, timeout: float = 10.0) -> sessionmaker:
    pool_pre_ping = not str(database_url).startswith("sqlite")
    engine = create_engine(
        database_url,
        future=True,
        pool_pre_ping=pool_pre_ping,
        connect_args=connect_args_for(database_url, timeout),
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def _profile_to_record(row: ProfileModel) -> UserActivityRecord:
    last_activity = parse_timestamp(row.last_login)
    if row.last_login and last_activity is None:
        LOGGER.warning("Ignoring unparseable last_login %r for user %s", row.last_login, row.id)
    return UserActivityRecord(
        user_id=row.id,
        email=row.email,
        full_name=row.full_name,
        role=row.role,
        last_activity=last_activity,
    )


class SqlActivityRepository:
    """Streams profiles in primary-key order, one page per session."""

    def __init__(self, session_factory: sessionmaker, page_size: int = 500):
        self.session_factory = session_factory
        self.page_size = page_size

    def list_users_by_role(self, role: str) -> Iterator[UserActivityRecord]:
        last_id: Optional[str] = None
        while True:
            stmt = select(ProfileModel).where(ProfileModel.role == role)
            if last_id is not None:
                stmt = stmt.where(ProfileModel.id > last_id)
            stmt = stmt.order_by(ProfileModel.id).limit(self.page_size)
            with self.session_factory() as session:
                rows = session.execute(stmt).scalars().all()
            for row in rows:
                yield _profile_to_record(row)
            if len(rows) < self.page_size:
                return
            last_id = rows[-1].id


class SqlNotificationLog:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def find_sent(self, user_id: str, category: str, since: datetime) -> List[NotificationLogEntry]:
        stmt = (
            select(EmailLogModel)
            .where(
                EmailLogModel.user_id == user_id,
                EmailLogModel.email_type == category,
                EmailLogModel.status == OUTCOME_SENT,
                EmailLogModel.sent_at >= parse_timestamp(since),
            )
            .order_by(EmailLogModel.sent_at.desc())
        )
        with self.session_factory() as session:
            rows = session.execute(stmt).scalars().all()
        return [
            NotificationLogEntry(
                user_id=row.user_id,
                category=row.email_type,
                sent_at=parse_timestamp(row.sent_at),
                outcome=row.status,
                failure_detail=row.error_message,
            )
            for row in rows
        ]

    def append(self, entry: NotificationLogEntry) -> None:
        with self.session_factory.begin() as session:
            session.add(
                EmailLogModel(
                    user_id=entry.user_id,
                    email_type=entry.category,
                    sent_at=parse_timestamp(entry.sent_at),
                    status=entry.outcome,
                    error_message=entry.failure_detail,
                )
            )
