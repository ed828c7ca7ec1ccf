"""Tests for work-log duration, timestamp and batch handling."""

from datetime import date, datetime, timedelta, timezone

import pytest

from jira_note_sync.errors import (
    InputValidationError,
    InvalidDurationError,
    InvalidTimestampError,
    InvalidWorkLogEntryError,
)
from jira_note_sync.sync.models import WorkLogEntry
from jira_note_sync.sync.worklog import (
    REASON_INVALID_DURATION,
    REASON_INVALID_ENTRY,
    REASON_INVALID_START,
    REASON_MISSING_FIELDS,
    REASON_TOO_SHORT,
    coerce_work_log_entry,
    convert_to_tracker_timestamp,
    parse_duration,
    parse_work_log_batch,
    prepare_work_log,
    work_log_item_key,
)

# ---------------------------------------------------------------------------
# parse_duration
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2h", "2h"),
        ("1h 30m", "1h 30m"),
        ("1d4h", "1d 4h"),
        ("2w 1d", "2w 1d"),
        ("2h 0m 30s", "2h"),
        ("90M", "90m"),
        ("45s", ""),
        ("0h", ""),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "2 hours", "1.5h", "h2", "30"])
def test_parse_duration_rejects_malformed(raw):
    with pytest.raises(InvalidDurationError):
        parse_duration(raw)


# ---------------------------------------------------------------------------
# convert_to_tracker_timestamp
# ---------------------------------------------------------------------------


class TestTimestamps:
    def test_day_first_format(self):
        assert (
            convert_to_tracker_timestamp("05-03-2024 09:15")
            == "2024-03-05T09:15:00.000+0000"
        )

    def test_iso_with_z_suffix(self):
        assert (
            convert_to_tracker_timestamp("2024-03-05T09:15:00Z")
            == "2024-03-05T09:15:00.000+0000"
        )

    def test_offset_is_normalised_to_utc(self):
        assert (
            convert_to_tracker_timestamp("2024-03-05T11:15:00+02:00")
            == "2024-03-05T09:15:00.000+0000"
        )

    def test_jira_format_round_trips(self):
        value = "2024-03-05T09:15:00.000+0000"
        assert convert_to_tracker_timestamp(value) == value

    def test_datetime_and_date_values(self):
        aware = datetime(2024, 3, 5, 10, 15, tzinfo=timezone(timedelta(hours=1)))
        assert convert_to_tracker_timestamp(aware) == "2024-03-05T09:15:00.000+0000"
        assert convert_to_tracker_timestamp(date(2024, 3, 5)) == (
            "2024-03-05T00:00:00.000+0000"
        )

    @pytest.mark.parametrize("value", ["", "yesterday", "32-13-2024 25:00", None])
    def test_rejects_unparseable(self, value):
        with pytest.raises(InvalidTimestampError):
            convert_to_tracker_timestamp(value)


# ---------------------------------------------------------------------------
# prepare_work_log
# ---------------------------------------------------------------------------


class TestPrepareWorkLog:
    def test_valid_entry(self):
        entry = WorkLogEntry(
            issueKey=" PROJ-1 ",
            startTime="05-03-2024 09:15",
            duration="1h 30m",
            comment="Review",
        )
        prepared = prepare_work_log(entry)
        assert prepared.issue_key == "PROJ-1"
        assert prepared.time_spent == "1h 30m"
        assert prepared.started == "2024-03-05T09:15:00.000+0000"
        assert prepared.comment == "Review"

    @pytest.mark.parametrize(
        "fields, reason",
        [
            ({"startTime": "05-03-2024 09:15", "duration": "1h"}, REASON_MISSING_FIELDS),
            ({"issueKey": "P-1", "duration": "1h"}, REASON_MISSING_FIELDS),
            ({"issueKey": "P-1", "startTime": "soon", "duration": "1h"}, REASON_INVALID_START),
            ({"issueKey": "P-1", "startTime": "05-03-2024 09:15", "duration": "lots"}, REASON_INVALID_DURATION),
            ({"issueKey": "P-1", "startTime": "05-03-2024 09:15", "duration": "30s"}, REASON_TOO_SHORT),
        ],
    )
    def test_failure_reasons(self, fields, reason):
        with pytest.raises(InputValidationError) as excinfo:
            prepare_work_log(WorkLogEntry.model_validate(fields))
        assert str(excinfo.value) == reason


# ---------------------------------------------------------------------------
# parse_work_log_batch
# ---------------------------------------------------------------------------


class TestParseBatch:
    def test_json_string(self):
        items = parse_work_log_batch(
            '[{"issueKey": "P-1", "startTime": "05-03-2024 09:15", "duration": "1h"}]'
        )
        assert items == [
            {"issueKey": "P-1", "startTime": "05-03-2024 09:15", "duration": "1h"}
        ]

    def test_items_are_not_checked_here(self):
        assert parse_work_log_batch([{"issueKey": "P-1"}, "junk", 3]) == [
            {"issueKey": "P-1"},
            "junk",
            3,
        ]

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty(self, raw):
        assert parse_work_log_batch(raw) == []

    @pytest.mark.parametrize("raw", ["{not json", '{"a": 1}', 7])
    def test_rejects_non_list(self, raw):
        with pytest.raises(InputValidationError):
            parse_work_log_batch(raw)


class TestCoerceEntry:
    def test_mapping_with_non_string_values(self):
        entry = coerce_work_log_entry(
            {"issueKey": 123, "startTime": "x", "duration": 2, "comment": None}
        )
        assert entry.issue_key == "123"
        assert entry.duration == "2"
        assert entry.comment == ""

    def test_entry_passes_through(self):
        entry = WorkLogEntry(issue_key="P-1", start_time="05-03-2024 09:15", duration="1h")
        assert coerce_work_log_entry(entry) is entry

    def test_non_mapping(self):
        with pytest.raises(InvalidWorkLogEntryError) as excinfo:
            coerce_work_log_entry(["P-1", "1h"], index=3)
        assert str(excinfo.value) == REASON_INVALID_ENTRY
        assert excinfo.value.detail == "Entry 3 must be a mapping, got list"

    def test_wrongly_typed_value(self):
        with pytest.raises(InvalidWorkLogEntryError) as excinfo:
            coerce_work_log_entry(
                {"issueKey": "P-2", "startTime": ["x"], "duration": "30m"}, index=1
            )
        assert str(excinfo.value) == REASON_INVALID_ENTRY
        assert excinfo.value.detail.startswith("Entry 1: startTime")

    @pytest.mark.parametrize(
        "item, key",
        [
            ({"issueKey": " P-1 "}, "P-1"),
            ({"issue_key": 42}, "42"),
            ({"issueKey": ["P-1"]}, ""),
            ("junk", ""),
            (WorkLogEntry(issue_key="P-9"), "P-9"),
        ],
    )
    def test_item_key(self, item, key):
        assert work_log_item_key(item) == key
