"""Note <-> Jira issue sync engine.

Public API for keeping Markdown notes (frontmatter plus sync markers) in
step with Jira issues.

Modules:

- ``orchestrator`` -- ``SyncOrchestrator``: push, pull, transition,
  work-log batches and imports.
- ``markers``      -- sync marker parsing and in-place updates.
- ``fields``       -- ``FieldMappingRegistry``: built-in and custom field
  transforms.
- ``expressions``  -- ``ExpressionCompiler``: sandboxed custom mapping
  expressions.
- ``worklog``      -- duration and timestamp normalisation for work logs.
- ``models``       -- ``SyncMarker``, ``WorkLogEntry``, ``BatchReport`` and
  friends.
- ``reporter``     -- human-readable and JSON batch report formatting.

Usage example
-------------
::

    from jira_note_sync.core.client import JiraClient
    from jira_note_sync.documents import FileDocumentHost
    from jira_note_sync.sync import SyncOrchestrator, format_batch_report

    orchestrator = SyncOrchestrator(
        client=JiraClient(config),
        host=FileDocumentHost("notes/"),
    )

    key = await orchestrator.push_to_remote("jira-issues/Fix login.md")
    await orchestrator.fetch_and_pull("jira-issues/Fix login.md")

    report = await orchestrator.post_work_log_batch(entries)
    print(format_batch_report(report))
"""

from .expressions import Direction, ExpressionCompiler
from .fields import FieldMapping, FieldMappingRegistry
from .markers import apply_updates, extract_values, parse_markers
from .models import (
    BatchItemResult,
    BatchReport,
    MarkerType,
    SyncAction,
    SyncMarker,
    WorkLogEntry,
)
from .orchestrator import SyncOrchestrator
from .reporter import format_batch_report, report_to_json

__all__ = [
    "BatchItemResult",
    "BatchReport",
    "Direction",
    "ExpressionCompiler",
    "FieldMapping",
    "FieldMappingRegistry",
    "MarkerType",
    "SyncAction",
    "SyncMarker",
    "SyncOrchestrator",
    "WorkLogEntry",
    "apply_updates",
    "extract_values",
    "format_batch_report",
    "parse_markers",
    "report_to_json",
]
