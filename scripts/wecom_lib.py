"""Shared utilities for the WeCom approval scripts.

Consolidates config loading, the error types, timestamp parsing/formatting,
duration math and text helpers that every submit/list script needs.
"""

import json
import math
import os
import random
import re
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import yaml

SCRIPTS_DIR = Path(__file__).resolve().parent

CONFIG_PATH = SCRIPTS_DIR / ".wecom-config.yaml"

WECOM_API_BASE = "https://qyapi.weixin.qq.com"

# All wall-clock input and display is China Standard Time.
TZ_OFFSET = "+08:00"
TZ = timezone(timedelta(hours=8))

SUMMARY_MAX_CHARS = 20

OVERTIME_DURATION_CHOICES = [8.0, 8.5, 9.0, 9.5, 10.0]
OVERTIME_START_HOURS = [8, 9, 10]
OVERTIME_START_MINUTES = [0, 15, 30, 45]

# Config key -> environment variable that overrides it.
ENV_KEYS = {
    "corp_id": "WECOM_CORP_ID",
    "secret": "WECOM_SECRET",
    "default_user_id": "WECOM_DEFAULT_USER_ID",
    "agent_id": "WECOM_AGENT_ID",
    "template_overtime": "WECOM_TEMPLATE_OVERTIME",
    "template_expense": "WECOM_TEMPLATE_EXPENSE",
    "template_invoice": "WECOM_TEMPLATE_INVOICE",
    "expense_project_key": "WECOM_EXPENSE_PROJECT_KEY",
    "expense_project_name": "WECOM_EXPENSE_PROJECT_NAME",
    "remind_lookback_days": "WECOM_REMIND_LOOKBACK_DAYS",
}

# Expense category alias -> environment variable holding its option key.
CATEGORY_ALIAS_ENV = {
    "overtime-night": "WECOM_EXPENSE_CATEGORY_WEEKDAY_KEY",
    "overtime-weekend": "WECOM_EXPENSE_CATEGORY_WEEKEND_KEY",
    "inland-trip": "WECOM_EXPENSE_CATEGORY_INLAND_TRIP_KEY",
    "travel-transport": "WECOM_EXPENSE_CATEGORY_TRAVEL_TRANSPORT_KEY",
    "city-transport": "WECOM_EXPENSE_CATEGORY_CITY_TRANSPORT_KEY",
    "lodging": "WECOM_EXPENSE_CATEGORY_LODGING_KEY",
}


# --- Errors ---


class WecomError(Exception):
    """Base error for a failed approval run. ``kind`` names the condition."""

    kind = "wecom-error"


class InvalidDatetime(WecomError):
    kind = "invalid-datetime"


class InvalidRange(WecomError):
    kind = "invalid-range"


class MissingRequiredInput(WecomError):
    kind = "missing-required-input"


class SelectorOptionNotFound(WecomError):
    kind = "selector-option-not-found"


class AttachmentExtractionFailed(WecomError):
    kind = "attachment-extraction-failed"


class ApiError(WecomError):
    """Transport failure or a non-zero ``errcode`` from the WeCom API."""

    kind = "api-error"

    def __init__(self, scene: str, errcode=None, errmsg: str = ""):
        self.scene = scene
        self.errcode = errcode
        self.errmsg = errmsg or "unknown"
        if errcode is None:
            super().__init__(f"{scene} failed: {self.errmsg}")
        else:
            super().__init__(f"{scene} failed: errcode={errcode}, errmsg={self.errmsg}")


class SubmissionRejected(ApiError):
    kind = "submission-rejected"


class ListingPageError(ApiError):
    kind = "listing-page-error"


# --- Config ---


def load_config(path: Path | None = None) -> dict:
    """Load .wecom-config.yaml (optional) and apply WECOM_* env overrides.

    Expense category option keys live under ``category_keys`` (alias -> key);
    everything else is a flat top-level key.
    """
    config_path = path or CONFIG_PATH
    config = {}
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text())
        if data is None:
            data = {}
        if not isinstance(data, dict):
            print(f"Error: Config file is not a valid YAML dict: {config_path}", file=sys.stderr)
            sys.exit(1)
        config.update(data)

    for key, env_name in ENV_KEYS.items():
        value = os.environ.get(env_name, "")
        if value:
            config[key] = value

    category_keys = dict(config.get("category_keys") or {})
    for alias, env_name in CATEGORY_ALIAS_ENV.items():
        value = os.environ.get(env_name, "")
        if value:
            category_keys[alias] = value
    config["category_keys"] = category_keys
    return config


def require_config(config: dict, keys: list[str]) -> None:
    """Exit with a readable error if any required config key is blank."""
    missing = [k for k in keys if not str(config.get(k) or "").strip()]
    if not missing:
        return
    for key in missing:
        env_name = ENV_KEYS.get(key, key.upper())
        print(f"Error: missing config: {key} (set it in {CONFIG_PATH.name} or env {env_name})",
              file=sys.stderr)
    sys.exit(1)


def config_int(config: dict, key: str, default: int | None = None) -> int | None:
    """Integer config value, ``default`` when blank; exits with an error if not an integer."""
    raw = str(config.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        env_name = ENV_KEYS.get(key, key.upper())
        print(f"Error: config {key} must be an integer, got {raw!r} "
              f"(check {CONFIG_PATH.name} or env {env_name})", file=sys.stderr)
        sys.exit(1)


# --- Time helpers ---


_TZ_SUFFIX_RE = re.compile(r"([zZ]|[+-]\d\d:?\d\d)$")


def to_ts(value: str) -> int:
    """Parse a date/datetime string (or 10-digit epoch) into epoch seconds.

    Missing time defaults to midnight and a missing zone to UTC+8, so
    "2026-02-12 19:00" == "2026-02-12T19:00:00+08:00".
    """
    text = str(value).strip()
    if re.fullmatch(r"\d{10}", text):
        return int(text)

    if "T" in text:
        normalized = text
    else:
        normalized = text.replace(" ", "T", 1)
        if len(text) <= 10:
            normalized += "T00:00:00"
        elif len(text) <= 16:
            normalized += ":00"

    m = _TZ_SUFFIX_RE.search(normalized)
    if not m:
        normalized += TZ_OFFSET
    elif m.group(1) in ("z", "Z"):
        normalized = normalized[:-1] + "+00:00"
    elif ":" not in m.group(1):
        suffix = m.group(1)
        normalized = normalized[: -len(suffix)] + f"{suffix[:3]}:{suffix[3:]}"

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        raise InvalidDatetime(f"invalid datetime: {value} (expect e.g. 2026-02-12 19:00)")
    return math.floor(parsed.timestamp())


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def calc_hours(start_ts: int, end_ts: int) -> str:
    """Duration in hours rounded to 2 decimals, e.g. "8", "8.5", "2.33"."""
    hours = (end_ts - start_ts) / 3600
    if hours <= 0:
        raise InvalidRange("end time must be later than start time")
    return _format_number(math.floor(hours * 100 + 0.5) / 100)


def format_cn(ts: int, with_time: bool = True) -> str:
    d = datetime.fromtimestamp(ts, TZ)
    if not with_time:
        return f"{d.year}/{d.month}/{d.day}"
    return f"{d.year}/{d.month}/{d.day} {d:%H:%M}"


def format_date(ts: int) -> str:
    return datetime.fromtimestamp(ts, TZ).strftime("%Y-%m-%d")


def today_str() -> str:
    return datetime.now(TZ).strftime("%Y-%m-%d")


def now_ts() -> int:
    return math.floor(datetime.now(TZ).timestamp())


def is_weekend(ts: int) -> bool:
    return datetime.fromtimestamp(ts, TZ).weekday() >= 5


def pick_random_overtime_window(date_ts: int, rng=random) -> tuple[int, int]:
    """Pick a plausible overtime window on the day of ``date_ts``.

    Start 08:00-10:45 on a quarter hour, duration 8-10h in half-hour steps.
    """
    base = datetime.fromtimestamp(date_ts, TZ)
    start = base.replace(
        hour=rng.choice(OVERTIME_START_HOURS),
        minute=rng.choice(OVERTIME_START_MINUTES),
        second=0,
        microsecond=0,
    )
    end = start + timedelta(hours=rng.choice(OVERTIME_DURATION_CHOICES))
    return math.floor(start.timestamp()), math.floor(end.timestamp())


# --- Text helpers ---


def trim20(text: str) -> str:
    """Truncate to the 20 code points WeCom allows in a summary line."""
    return text[:SUMMARY_MAX_CHARS]


def read_text(value) -> str:
    """Render a WeCom text-ish value ({text}, [{text}], {value: [...]}) as a string."""
    if not value:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return " | ".join(t for t in (read_text(v) for v in value) if t)
    if isinstance(value, dict):
        if isinstance(value.get("text"), str):
            return value["text"]
        if isinstance(value.get("value"), list):
            return " | ".join(t for t in (read_text(v) for v in value["value"]) if t)
    return ""


def dump_json(data) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)
