"""Configuration loaded from config.yaml plus credentials from the environment."""
import os
from dataclasses import dataclass, field
from datetime import date, datetime

import pytz
import yaml

DATE_FORMAT = "%m-%d-%Y"
DEFAULT_TIMEZONE = "America/Los_Angeles"

ENV_CREDS = {
    "ridb_api_key": "RIDB_API_KEY",
    "gmail_address": "GMAIL_ADDRESS",
    "app_password": "GMAIL_APP_PASSWORD",
    "twilio_sid": "TWILIO_ACCOUNT_SID",
    "twilio_auth_token": "TWILIO_AUTH_TOKEN",
    "twilio_from": "TWILIO_FROM",
    "ntfy_topic": "NTFY_TOPIC",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class AvailabilityConfig:
    partial: bool = False
    check_in: date = None
    check_out: date = None
    campground_ids: tuple = ()


@dataclass(frozen=True)
class NotificationConfig:
    sms_to: str = None
    email_to: str = None
    timezone: str = DEFAULT_TIMEZONE
    quiet_start: int = 23
    quiet_end: int = 6


@dataclass(frozen=True)
class Config:
    debug: bool = False
    poll_interval: float = 60.0
    fetch_timeout: float = 30.0
    workers: int = 1
    availabilities: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)


def load_config(path: str = "config.yaml") -> Config:
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}")
    return parse_config(raw or {})


def load_creds() -> dict:
    return {key: os.environ.get(var) for key, var in ENV_CREDS.items()}


def parse_config(raw: dict) -> Config:
    if not isinstance(raw, dict):
        raise ConfigError("Config must be a mapping")
    avail = raw.get("availabilities") or {}
    notif = raw.get("notifications") or {}

    poll_interval = _positive(raw, "poll_interval_seconds", 60)
    fetch_timeout = _positive(raw, "fetch_timeout_seconds", 30)
    workers = int(_positive(raw, "workers", 1))

    timezone = notif.get("timezone") or DEFAULT_TIMEZONE
    if timezone not in pytz.all_timezones_set:
        raise ConfigError(f"Unknown timezone: {timezone}")
    qh = notif.get("quiet_hours") or {}

    return Config(
        debug=_flag(raw, "debug"),
        poll_interval=poll_interval,
        fetch_timeout=fetch_timeout,
        workers=workers,
        availabilities=AvailabilityConfig(
            partial=_flag(avail, "partial"),
            check_in=parse_date(avail.get("check_in")),
            check_out=parse_date(avail.get("check_out")),
            campground_ids=parse_ids(avail.get("campground_ids")),
        ),
        notifications=NotificationConfig(
            sms_to=notif.get("sms_to") or None,
            email_to=notif.get("email_to") or None,
            timezone=timezone,
            quiet_start=_hour(qh.get("start"), 23),
            quiet_end=_hour(qh.get("end"), 6),
        ),
    )


def parse_date(value):
    """Parses a MM-DD-YYYY string; YAML may already have produced a date."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
    except ValueError:
        raise ConfigError(f'Invalid date {value!r}, expected "MM-DD-YYYY"')


def parse_ids(value) -> tuple:
    if not value:
        return ()
    if isinstance(value, (str, int)):
        value = str(value).split(",")
    return tuple(str(v).strip() for v in value if str(v).strip())


def _flag(raw: dict, key: str) -> bool:
    """Accepts YAML booleans and the strings "true"/"false"; anything else is an error."""
    value = raw.get(key, False)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"{key} must be true or false, got {value!r}")


def _positive(raw: dict, key: str, default):
    value = raw.get(key, default)
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _hour(value, default: int) -> int:
    if not value:
        return default
    try:
        hour = int(str(value).split(":")[0])
    except ValueError:
        raise ConfigError(f'Invalid quiet hour {value!r}, expected "HH:MM"')
    if not 0 <= hour <= 23:
        raise ConfigError(f"Quiet hour out of range: {value!r}")
    return hour
