"""Shared configuration defaults and startup settings for the notification system."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from celery.schedules import ParseException, crontab

DEFAULT_CRON = "0 9 * * *"
DEFAULT_TIMEZONE = "Africa/Lagos"
DEFAULT_THRESHOLDS = (3, 7, 14)
DEFAULT_DEDUP_WINDOW_HOURS = 24
DEFAULT_PAGE_SIZE = 500
DEFAULT_TICK_EXPIRES_SECONDS = 3600
DEFAULT_LOCK_URL = "redis://localhost:6379/0"
DEFAULT_LOCK_TTL_SECONDS = 6 * 60 * 60
DEFAULT_FROM_EMAIL = "Skill Up Academy <onboarding@skillupacademy.com>"
DEFAULT_FRONTEND_URL = "http://localhost:5173"
DEFAULT_DATABASE_URL = "sqlite:///skillup.db"

STUDENT_ROLE = "student"
VALID_PROVIDERS = {"resend", "smtp"}
REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


class ConfigError(ValueError):
    """Raised at startup when the scheduler cannot be configured safely."""


@dataclass(frozen=True)
class ThresholdConfig:
    """Ordered, distinct inactivity thresholds in whole days."""

    days: Tuple[int, ...] = DEFAULT_THRESHOLDS

    def __post_init__(self) -> None:
        if not self.days:
            raise ConfigError("At least one inactivity threshold is required")
        for value in self.days:
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"Inactivity thresholds must be positive integers, got {value!r}")
        if len(set(self.days)) != len(self.days):
            raise ConfigError(f"Inactivity thresholds must be distinct, got {list(self.days)}")

    def __iter__(self):
        return iter(self.days)


@dataclass(frozen=True)
class NotifierSettings:
    cron: str = DEFAULT_CRON
    timezone: str = DEFAULT_TIMEZONE
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    dedup_window: timedelta = timedelta(hours=DEFAULT_DEDUP_WINDOW_HOURS)
    page_size: int = DEFAULT_PAGE_SIZE
    tick_expires: int = DEFAULT_TICK_EXPIRES_SECONDS
    http_timeout: float = 10.0
    db_timeout: float = 10.0
    from_email: str = DEFAULT_FROM_EMAIL
    frontend_url: str = DEFAULT_FRONTEND_URL
    database_url: str = DEFAULT_DATABASE_URL
    email_provider: str = "smtp"
    resend_api_key: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    # None keeps the overlap guard process-local
    lock_url: Optional[str] = None
    lock_ttl: int = DEFAULT_LOCK_TTL_SECONDS

    def schedule(self) -> crontab:
        return parse_cron_expression(self.cron, self.timezone)


def parse_thresholds(raw: str) -> ThresholdConfig:
    """Parse a comma separated day list such as ``"3,7,14"``."""
    parts = [part.strip() for part in (raw or "").split(",") if part.strip()]
    days = []
    for part in parts:
        try:
            days.append(int(part))
        except ValueError as exc:
            raise ConfigError(f"Invalid inactivity threshold {part!r}") from exc
    return ThresholdConfig(tuple(days))


def validate_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone {name!r}") from exc


def parse_cron_expression(expression: str, timezone: str = DEFAULT_TIMEZONE) -> crontab:
    """Turn a five-field cron expression into a celery ``crontab``.

    The timezone is only validated here; celery evaluates the crontab in the
    app timezone, which ``create_celery_app`` sets from the same settings.
    """
    fields = (expression or "").split()
    if len(fields) != 5:
        raise ConfigError(f"Cron expression must have 5 fields, got {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    validate_timezone(timezone)
    try:
        schedule = crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    except (ValueError, ParseException) as exc:
        raise ConfigError(f"Invalid cron expression {expression!r}: {exc}") from exc
    return schedule


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key)
    if value is None or not str(value).strip():
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be positive, got {parsed}")
    return parsed


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if value is None or not str(value).strip():
        return default
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be positive, got {parsed}")
    return parsed


def _lock_url(env: Mapping[str, str]) -> Optional[str]:
    """Redis URL for the cross-process cycle lock; "none" keeps it in-process."""
    explicit = (env.get("NOTIFY_LOCK_URL") or "").strip()
    if explicit.lower() in {"none", "local"}:
        return None
    if explicit:
        if not explicit.startswith(REDIS_SCHEMES):
            raise ConfigError(f"NOTIFY_LOCK_URL must be a redis URL or 'none', got {explicit!r}")
        return explicit
    for url in (env.get("REDIS_URL"), env.get("CELERY_BROKER_URL")):
        if url and url.startswith(REDIS_SCHEMES):
            return url
    return DEFAULT_LOCK_URL


def load_settings(env: Optional[Mapping[str, str]] = None) -> NotifierSettings:
    """Build settings from the environment, failing fast on bad input."""
    env = os.environ if env is None else env

    cron = env.get("NOTIFY_INACTIVITY_CRON") or DEFAULT_CRON
    timezone = env.get("NOTIFY_TIMEZONE") or env.get("TZ") or DEFAULT_TIMEZONE
    thresholds_raw = env.get("NOTIFY_INACTIVITY_THRESHOLDS")
    thresholds = parse_thresholds(thresholds_raw) if thresholds_raw is not None else ThresholdConfig()

    resend_api_key = env.get("RESEND_API_KEY") or None
    provider = (env.get("NOTIFY_EMAIL_PROVIDER") or ("resend" if resend_api_key else "smtp")).strip().lower()
    if provider not in VALID_PROVIDERS:
        raise ConfigError(f"NOTIFY_EMAIL_PROVIDER must be one of {sorted(VALID_PROVIDERS)}, got {provider!r}")

    settings = NotifierSettings(
        cron=cron,
        timezone=timezone,
        thresholds=thresholds,
        dedup_window=timedelta(hours=_get_int(env, "NOTIFY_DEDUP_WINDOW_HOURS", DEFAULT_DEDUP_WINDOW_HOURS)),
        page_size=_get_int(env, "NOTIFY_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        tick_expires=_get_int(env, "NOTIFY_TICK_EXPIRES_SECONDS", DEFAULT_TICK_EXPIRES_SECONDS),
        http_timeout=_get_float(env, "NOTIFY_HTTP_TIMEOUT", 10.0),
        db_timeout=_get_float(env, "NOTIFY_DB_TIMEOUT", 10.0),
        from_email=env.get("NOTIFY_FROM_EMAIL") or DEFAULT_FROM_EMAIL,
        frontend_url=(env.get("FRONTEND_URL") or DEFAULT_FRONTEND_URL).rstrip("/"),
        database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
        email_provider=provider,
        resend_api_key=resend_api_key,
        smtp_host=env.get("SMTP_HOST") or None,
        smtp_port=_get_int(env, "SMTP_PORT", 587),
        smtp_username=env.get("SMTP_USERNAME") or None,
        smtp_password=env.get("SMTP_PASSWORD") or None,
        smtp_use_tls=env.get("SMTP_USE_TLS", "1") not in {"0", "false", "False"},
        lock_url=_lock_url(env),
        lock_ttl=_get_int(env, "NOTIFY_LOCK_TTL_SECONDS", DEFAULT_LOCK_TTL_SECONDS),
    )
    # Resolve the cadence now so a bad expression never reaches beat.
    settings.schedule()
    return settings
