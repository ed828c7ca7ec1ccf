"""Work-log helpers: duration grammar, Jira timestamps, batch parsing.

Durations are ``<int><w|d|h|m|s>`` tokens separated by optional spaces.
Seconds and zero-valued tokens are dropped because Jira tracks time in
minutes; a duration that drops to nothing is below the minimum.
"""

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from pydantic import ValidationError

from ..errors import (
    InputValidationError,
    InvalidDurationError,
    InvalidTimestampError,
    InvalidWorkLogEntryError,
)
from .models import WorkLogEntry

logger = logging.getLogger(__name__)

_DURATION_TOKEN = re.compile(r"(\d+)\s*([wdhms])", re.IGNORECASE)
_DURATION_FULL = re.compile(r"^\s*(?:\d+\s*[wdhms]\s*)+$", re.IGNORECASE)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.000+0000"
_INPUT_FORMATS = (
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)

# Failure reasons; batch reports group items by these strings.
REASON_MISSING_FIELDS = "Missing required fields"
REASON_INVALID_START = "Invalid start time format"
REASON_INVALID_DURATION = "Invalid duration format"
REASON_TOO_SHORT = "Duration must be at least 1 minute"
REASON_INVALID_ENTRY = "Invalid work-log entry"


def parse_duration(duration: str) -> str:
    """Normalize a duration for Jira.

    >>> parse_duration("2h 0m 30s")
    '2h'
    >>> parse_duration("1d4h")
    '1d 4h'
    >>> parse_duration("0h")
    ''

    Raises:
        InvalidDurationError: If the text is not a sequence of duration tokens.
    """
    if not _DURATION_FULL.match(duration or ""):
        raise InvalidDurationError(f"Invalid duration: {duration!r}")
    parts = [
        f"{int(amount)}{unit.lower()}"
        for amount, unit in _DURATION_TOKEN.findall(duration)
        if unit.lower() != "s" and int(amount) > 0
    ]
    return " ".join(parts)


def convert_to_tracker_timestamp(value: str | datetime | date) -> str:
    """Format a start time as ``YYYY-MM-DDTHH:MM:SS.000+0000`` in UTC.

    Accepts ``DD-MM-YYYY HH:MM``, ISO-8601 text (``Z`` suffix allowed), Jira's
    own timestamp form, or a date/datetime. Naive values are taken as UTC.

    Raises:
        InvalidTimestampError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        parsed = _parse_timestamp_text(value.strip())
    else:
        raise InvalidTimestampError(f"Invalid start time: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _parse_timestamp_text(text: str) -> datetime:
    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        raise InvalidTimestampError(f"Invalid start time: {text!r}") from None


@dataclass(frozen=True)
class PreparedWorkLog:
    issue_key: str
    time_spent: str
    started: str
    comment: str


def prepare_work_log(entry: WorkLogEntry) -> PreparedWorkLog:
    """Validate one entry and convert it to Jira's request values.

    Raises:
        InputValidationError: With one of the ``REASON_*`` strings as message.
    """
    if not entry.issue_key or not entry.start_time or not entry.duration:
        raise InputValidationError(REASON_MISSING_FIELDS)

    try:
        started = convert_to_tracker_timestamp(entry.start_time)
    except InvalidTimestampError as exc:
        raise InvalidTimestampError(REASON_INVALID_START) from exc

    try:
        time_spent = parse_duration(entry.duration)
    except InvalidDurationError as exc:
        raise InvalidDurationError(REASON_INVALID_DURATION) from exc
    if not time_spent:
        raise InvalidDurationError(REASON_TOO_SHORT)

    return PreparedWorkLog(
        issue_key=entry.issue_key.strip(),
        time_spent=time_spent,
        started=started,
        comment=entry.comment,
    )


def work_log_item_key(item: Any) -> str:
    """Issue key of a batch item, read leniently for failure reports."""
    if isinstance(item, WorkLogEntry):
        return item.issue_key or ""
    if isinstance(item, Mapping):
        value = item.get("issueKey", item.get("issue_key"))
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return str(value).strip()
    return ""


def coerce_work_log_entry(item: Any, index: int = 0) -> WorkLogEntry:
    """Turn one stored batch item into a ``WorkLogEntry``.

    Raises:
        InvalidWorkLogEntryError: If the item is not a mapping or a value
            has the wrong type. The message is ``REASON_INVALID_ENTRY``.
    """
    if isinstance(item, WorkLogEntry):
        return item
    if not isinstance(item, Mapping):
        raise InvalidWorkLogEntryError(
            REASON_INVALID_ENTRY,
            f"Entry {index} must be a mapping, got {type(item).__name__}",
        )
    try:
        return WorkLogEntry.model_validate(dict(item))
    except ValidationError as exc:
        error = exc.errors()[0]
        where = ".".join(str(part) for part in error["loc"]) or "entry"
        raise InvalidWorkLogEntryError(
            REASON_INVALID_ENTRY, f"Entry {index}: {where}: {error['msg']}"
        ) from exc


def parse_work_log_batch(raw: Any) -> list[Any]:
    """Read a batch stored in frontmatter (a JSON string or a YAML list).

    Items come back as stored. Each one is checked by
    ``coerce_work_log_entry`` when it is posted, so a bad item fails alone.

    Raises:
        InputValidationError: If the batch itself is not a list.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InputValidationError(
                f"Work-log batch is not valid JSON: {exc.msg}"
            ) from exc
    if not isinstance(raw, list):
        raise InputValidationError(
            f"Work-log batch must be a list, got {type(raw).__name__}"
        )
    logger.debug("Read %d work-log batch items", len(raw))
    return list(raw)
