"""Note <-> Jira synchronization orchestrator.

Composes the marker parser, the field mapping registry and the converters:

- ``push_to_remote`` builds a ``fields`` payload from a note and creates or
  updates the issue.
- ``pull_from_remote`` writes a fetched issue back into the note's
  frontmatter and sync markers in one read-modify-write.
- ``transition_status`` moves the issue through a workflow transition and
  updates only the local status.
- ``post_work_log_batch`` posts work-log entries concurrently and reports
  failures grouped by reason.
- ``import_issue`` / ``import_issues_by_query`` create or refresh notes for
  fetched issues.

All Jira calls go through ``run_sync_limited`` so batch fan-out is bounded
by the shared semaphore.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from ..config_schema import NotesConfig
from ..constants import (
    DEFAULT_NOTE_TEMPLATE,
    REQUIRED_CREATE_FIELDS,
    WORKLOG_FRONTMATTER_KEY,
)
from ..converters import markdown_to_wiki
from ..core.async_utils import gather_limited, run_sync_limited
from ..core.client import JiraClient
from ..documents.frontmatter import (
    render_document,
    render_frontmatter,
    split_frontmatter,
)
from ..documents.host import DocumentHost
from ..errors import (
    InputValidationError,
    MissingIssueKeyError,
    MissingRequiredFieldError,
    RemoteRequestError,
)
from ..file_handler import render_file_name, sanitize_file_name
from .fields import FieldMappingRegistry
from .markers import apply_updates, extract_values
from .models import BatchItemResult, BatchReport, SyncAction, WorkLogEntry
from .worklog import (
    coerce_work_log_entry,
    parse_work_log_batch,
    prepare_work_log,
    work_log_item_key,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def failure_reason(exc: Exception) -> tuple[str, str | None]:
    """(reason, detail) for a failed batch item; reasons are grouping keys."""
    if isinstance(exc, RemoteRequestError):
        return f"Jira request failed (HTTP {exc.status_code})", exc.body or None
    if isinstance(exc, InputValidationError):
        return str(exc), getattr(exc, "detail", None) or None
    return f"{type(exc).__name__}: {exc}", None


class SyncOrchestrator:
    """Synchronizes notes held by a ``DocumentHost`` with Jira issues.

    Args:
        client: Jira REST client.
        host: Note storage.
        registry: Field mappings; defaults to built-ins only.
        notes: Folder, file-name template and note template for imports.
        worklog_key: Frontmatter key holding a note's work-log batch.
    """

    def __init__(
        self,
        client: JiraClient,
        host: DocumentHost,
        registry: FieldMappingRegistry | None = None,
        notes: NotesConfig | None = None,
        worklog_key: str = WORKLOG_FRONTMATTER_KEY,
    ):
        self.client = client
        self.host = host
        self.registry = registry or FieldMappingRegistry()
        self.notes = notes or NotesConfig()
        self.worklog_key = worklog_key

    # ------------------------------------------------------------------
    # Note -> Jira
    # ------------------------------------------------------------------

    def build_remote_fields(self, text: str) -> dict[str, Any]:
        """Jira ``fields`` payload for a note's text.

        Frontmatter wins over marker values of the same name (unless the
        frontmatter value is empty). The description is converted to wiki
        markup unless a custom mapping owns it.
        """
        frontmatter, body, _ = split_frontmatter(text)
        markers = extract_values(body)
        snapshot: dict[str, Any] = {
            **markers,
            **{k: v for k, v in frontmatter.items() if v is not None},
        }
        fields = self.registry.to_remote_fields(snapshot)
        if (
            self.registry.uses_builtin("description")
            and snapshot.get("description") is not None
        ):
            fields["description"] = markdown_to_wiki(snapshot["description"])
        return fields

    async def push_to_remote(self, handle: str) -> str:
        """Create or update the issue for a note; returns the issue key.

        Raises:
            MissingRequiredFieldError: Creating without summary, project or
                issuetype (raised before any network call).
            RemoteRequestError: Jira rejected the request.
        """
        text = await self.host.read_document_text(handle)
        frontmatter, _, _ = split_frontmatter(text)
        fields = self.build_remote_fields(text)
        key = frontmatter.get("key")

        if key:
            await run_sync_limited(self.client.update_issue, str(key), fields)
            logger.info("Updated %s from %s (%d fields)", key, handle, len(fields))
            return str(key)

        missing = [name for name in REQUIRED_CREATE_FIELDS if not fields.get(name)]
        if missing:
            raise MissingRequiredFieldError(missing)

        created = await run_sync_limited(self.client.create_issue, fields)
        new_key = str(created["key"])

        def set_key(fm: dict[str, Any]) -> None:
            fm["key"] = new_key

        await self.host.mutate_frontmatter(handle, set_key)
        logger.info("Created %s from %s", new_key, handle)
        return new_key

    # ------------------------------------------------------------------
    # Jira -> note
    # ------------------------------------------------------------------

    def apply_remote_issue(self, text: str, issue: Mapping[str, Any]) -> str:
        """Return ``text`` updated from ``issue``.

        Every frontmatter key and every marker name is resolved through the
        registry; None results leave the local value alone. A frontmatter
        ``description`` is only written when the note has no description
        marker. Frontmatter is re-rendered only if a value changed.
        """
        frontmatter, body, _ = split_frontmatter(text)
        head = text[: len(text) - len(body)]
        markers = extract_values(body)
        local = {**frontmatter, **markers}

        frontmatter_names = [
            name
            for name in frontmatter
            if not (name == "description" and "description" in markers)
        ]
        frontmatter_updates = self.registry.from_remote_fields(
            issue, local, frontmatter_names
        )
        marker_updates = self.registry.from_remote_fields(issue, local, markers)

        updated_frontmatter = {**frontmatter, **frontmatter_updates}
        if updated_frontmatter != frontmatter:
            head = render_frontmatter(updated_frontmatter)
        return head + apply_updates(body, marker_updates)

    async def pull_from_remote(self, handle: str, issue: Mapping[str, Any]) -> None:
        """Write a fetched issue into a note as one atomic document edit."""
        await self.host.process_document(
            handle, lambda text: self.apply_remote_issue(text, issue)
        )
        logger.info("Pulled %s into %s", issue.get("key"), handle)

    async def _require_key(self, handle: str) -> str:
        key = (await self.host.read_frontmatter(handle)).get("key")
        if not key:
            raise MissingIssueKeyError(handle)
        return str(key)

    async def fetch_and_pull(self, handle: str) -> dict[str, Any]:
        """Fetch the note's issue by its ``key`` and pull it; returns the issue."""
        key = await self._require_key(handle)
        issue = await run_sync_limited(self.client.fetch_issue, key)
        await self.pull_from_remote(handle, issue)
        return issue

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def fetch_transitions(self, handle: str) -> list[dict[str, str]]:
        key = await self._require_key(handle)
        return await run_sync_limited(self.client.fetch_transitions, key)

    async def transition_status(
        self, handle: str, transition_id: str, status_name: str
    ) -> None:
        """Apply a workflow transition, then set only the local status.

        The ``status`` marker is updated if present; frontmatter ``status``
        is set if the key exists or there is no marker to hold it.
        """
        key = await self._require_key(handle)
        await run_sync_limited(self.client.transition_issue, key, transition_id)

        def transform(text: str) -> str:
            frontmatter, body, had_block = split_frontmatter(text)
            head = text[: len(text) - len(body)]
            has_marker = "status" in extract_values(body)
            if has_marker:
                body = apply_updates(body, {"status": status_name})
            if "status" in frontmatter or not has_marker:
                frontmatter["status"] = status_name
                return render_document(frontmatter, body, force_block=had_block)
            return head + body

        await self.host.process_document(handle, transform)
        logger.info("Transitioned %s to %s", key, status_name)

    # ------------------------------------------------------------------
    # Work logs
    # ------------------------------------------------------------------

    async def _post_one_work_log(self, index: int, item: Any) -> BatchItemResult:
        issue_key = work_log_item_key(item)
        try:
            prepared = prepare_work_log(coerce_work_log_entry(item, index))
            await run_sync_limited(
                self.client.post_work_log,
                prepared.issue_key,
                prepared.time_spent,
                prepared.started,
                prepared.comment,
            )
        except Exception as exc:
            reason, detail = failure_reason(exc)
            logger.warning("Work log for %s failed: %s", issue_key or "?", reason)
            return BatchItemResult(
                issue_key=issue_key,
                action=SyncAction.WORKLOG,
                success=False,
                error=reason,
                detail=detail,
            )
        return BatchItemResult(
            issue_key=issue_key, action=SyncAction.WORKLOG, success=True
        )

    async def post_work_log_batch(
        self, entries: Iterable[WorkLogEntry | Mapping[str, Any]]
    ) -> BatchReport:
        """Post every entry; one failure never stops the others.

        Malformed items (not a mapping, wrongly typed values) are reported
        as failures like any other invalid entry.
        """
        started_at = _now()
        results = await gather_limited(
            [
                self._post_one_work_log(index, item)
                for index, item in enumerate(entries)
            ]
        )
        report = BatchReport(
            action=SyncAction.WORKLOG,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info(
            "Work-log batch: %d/%d posted", len(report.succeeded), report.total
        )
        return report

    async def post_work_log_from_document(self, handle: str) -> BatchReport:
        """Post the batch stored under the note's work-log frontmatter key."""
        frontmatter = await self.host.read_frontmatter(handle)
        entries = parse_work_log_batch(frontmatter.get(self.worklog_key))
        return await self.post_work_log_batch(entries)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def _new_note_content(self, key: str) -> str:
        if self.notes.template_path:
            template = await self.host.read_document_text(self.notes.template_path)
        else:
            template = DEFAULT_NOTE_TEMPLATE
        frontmatter, body, _ = split_frontmatter(template)
        frontmatter["key"] = key
        return render_document(frontmatter, body)

    async def import_issue(self, issue: Mapping[str, Any]) -> str:
        """Create (if needed) and refresh the note for ``issue``; returns its handle."""
        key = str(issue.get("key") or "")
        if not key:
            raise InputValidationError("Issue has no key")

        handle = await self.host.find_by_key(key)
        if handle is None:
            name = render_file_name(self.notes.filename_template, dict(issue))
            folder = self.notes.issues_folder.strip("/")
            handle = f"{folder}/{name}.md" if folder else f"{name}.md"
            if self.host.exists(handle):
                handle = handle[: -len(".md")] + f" {sanitize_file_name(key)}.md"
            handle = await self.host.create_document(
                handle, await self._new_note_content(key)
            )
            self.host.remember_key(key, handle)

        await self.pull_from_remote(handle, issue)
        return handle

    async def import_issues_by_query(
        self, jql: str, limit: int | None = None
    ) -> BatchReport:
        """Import every issue a JQL query returns."""
        started_at = _now()
        issues = await run_sync_limited(self.client.fetch_issues_by_query, jql, limit)
        results: list[BatchItemResult] = []
        for issue in issues:
            key = str(issue.get("key") or "")
            try:
                await self.import_issue(issue)
            except Exception as exc:
                reason, detail = failure_reason(exc)
                logger.error("Import of %s failed: %s", key or "?", reason)
                results.append(
                    BatchItemResult(
                        issue_key=key,
                        action=SyncAction.IMPORT,
                        success=False,
                        error=reason,
                        detail=detail,
                    )
                )
            else:
                results.append(
                    BatchItemResult(
                        issue_key=key, action=SyncAction.IMPORT, success=True
                    )
                )
        return BatchReport(
            action=SyncAction.IMPORT,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
