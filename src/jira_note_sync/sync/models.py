"""Pydantic models for the note sync engine.

Defines the data contracts shared by the sync modules:

- ``MarkerType``: Forms of sync marker.
- ``SyncMarker``: One marker span inside a document.
- ``SyncAction``: Operations recorded in batch reports.
- ``WorkLogEntry``: One work-log item as authored in a note.
- ``BatchItemResult``: Outcome of one item of a batch.
- ``BatchFailure``: Failed items sharing one reason.
- ``BatchReport``: Aggregate results for a batch run.

Markers and results are frozen (immutable).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class MarkerType(str, Enum):
    """Forms of sync marker."""

    SECTION = "section"
    LINE = "line"
    INLINE = "inline"
    BLOCK = "block"


class SyncMarker(BaseModel):
    """A sync marker span within the raw document text.

    Attributes:
        type: Marker form.
        name: Field name, matching ``[\\w-]+``.
        content: Extracted value (stripped per form).
        start_index: Offset of the opening token.
        end_index: Offset just past the span (past the end token if paired).
        token: The opening token text, e.g. ``\\`sync-line-status\\```.
        terminated: False for an inline/block start with no matching end.
    """

    type: MarkerType
    name: str
    content: str
    start_index: int
    end_index: int
    token: str
    terminated: bool = True

    model_config = {"frozen": True}


class SyncAction(str, Enum):
    """Operations recorded in batch reports."""

    WORKLOG = "worklog"
    IMPORT = "import"


class WorkLogEntry(BaseModel):
    """One work-log item, as written in a note's ``jira_worklog_batch``.

    Accepts both the camelCase keys used in notes and snake_case names.
    Nothing is required at construction; the batch poster validates each
    entry and records a failure reason instead of raising.
    """

    issue_key: str | None = Field(default=None, alias="issueKey")
    start_time: str | datetime | None = Field(default=None, alias="startTime")
    duration: str | None = None
    comment: str = ""

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "extra": "ignore",
    }

    @field_validator("issue_key", "duration", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("comment", mode="before")
    @classmethod
    def _default_comment(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class BatchItemResult(BaseModel):
    """Result of one item in a batch operation.

    Attributes:
        issue_key: Issue the item targeted ("" if the item had none).
        action: Operation that was attempted.
        success: Whether the item succeeded.
        error: Failure reason; items sharing a reason are grouped.
        detail: Extra context (for example the Jira response body).
    """

    issue_key: str
    action: SyncAction
    success: bool
    error: str | None = None
    detail: str | None = None

    model_config = {"frozen": True}


class BatchFailure(BaseModel):
    """Items that failed for the same reason."""

    reason: str
    issue_keys: list[str]

    model_config = {"frozen": True}


class BatchReport(BaseModel):
    """Aggregate report for a batch run.

    Attributes:
        action: Operation performed for every item.
        results: Individual item results, in input order.
        started_at: ISO 8601 timestamp when the batch started.
        completed_at: ISO 8601 timestamp when the batch completed.
    """

    action: SyncAction
    results: list[BatchItemResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> list[BatchItemResult]:
        """Results where success is True."""
        return [r for r in self.results if r.success]

    @property
    def errors(self) -> list[BatchItemResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def failures(self) -> list[BatchFailure]:
        """Failed items grouped by reason, in order of first occurrence."""
        grouped: dict[str, list[str]] = {}
        for result in self.errors:
            reason = result.error or "Unknown error"
            grouped.setdefault(reason, []).append(
                result.issue_key or "(no key)"
            )
        return [
            BatchFailure(reason=reason, issue_keys=keys)
            for reason, keys in grouped.items()
        ]

    def summary(self) -> str:
        """Format a human-readable summary of the batch run.

        Returns:
            Multi-line summary string with counts and grouped failures.
        """
        lines = [
            f"Batch {self.action.value}: "
            f"{len(self.succeeded)}/{self.total} succeeded",
        ]
        for failure in self.failures:
            lines.append(
                f"  {failure.reason}: {', '.join(failure.issue_keys)}"
            )
        return "\n".join(lines)
