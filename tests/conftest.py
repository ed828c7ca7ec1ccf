"""Shared pytest fixtures for jira-note-sync tests."""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from jira_note_sync.config import Config
from jira_note_sync.documents import FileDocumentHost
from jira_note_sync.errors import RemoteRequestError

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Jira instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Jira instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        jira_url="https://jira.example.com",
        username="testuser",
        password="testpass",
        auth_method="basic",
        insecure=False,
    )


@pytest.fixture
def mock_jira_client(mock_config):
    """Create a mock JiraClient instance for testing."""
    from jira_note_sync.core.client import JiraClient

    client = MagicMock(spec=JiraClient)
    client.config = mock_config
    return client


def make_issue(key: str = "PROJ-1", **fields: Any) -> dict[str, Any]:
    """Build a fetched-issue dict the way Jira's REST API returns it."""
    base = {
        "summary": "Fix login",
        "description": "h2. Steps\n*bold* step",
        "project": {"key": "PROJ", "name": "Project"},
        "issuetype": {"name": "Bug"},
        "priority": {"name": "High"},
        "status": {"name": "Open"},
        "assignee": {"name": "jdoe", "displayName": "Jane Doe"},
        "reporter": {"name": "asmith", "displayName": "Alex Smith"},
        "created": "2024-03-01T10:00:00.000+0000",
        "updated": "2024-03-02T11:30:00.000+0000",
        "aggregateprogress": {"progress": 1800, "total": 3600, "percent": 50},
    }
    base.update(fields)
    return {
        "id": "10001",
        "key": key,
        "self": f"https://jira.example.com/rest/api/2/issue/{key}",
        "fields": base,
    }


class FakeJiraClient:
    """Minimal JiraClient replacement backed by an in-memory issue store.

    Every call is recorded in ``calls`` as ``(method, args)``. Work logs for
    keys in ``failing_worklog_keys`` raise ``RemoteRequestError``.
    """

    def __init__(self, issues: dict[str, dict] | None = None):
        self.issues: dict[str, dict] = issues or {}
        self.calls: list[tuple[str, tuple]] = []
        self.transitions: list[dict[str, str]] = [
            {"id": "11", "action": "Start Progress", "status": "In Progress"},
            {"id": "31", "action": "Resolve", "status": "Done"},
        ]
        self.failing_worklog_keys: set[str] = set()
        self.next_key = "PROJ-100"

    def fetch_issue(self, key: str) -> dict:
        self.calls.append(("fetch_issue", (key,)))
        if key not in self.issues:
            raise RemoteRequestError(
                404, '{"errorMessages":["Issue does not exist"]}', "GET", f"/issue/{key}"
            )
        return copy.deepcopy(self.issues[key])

    def create_issue(self, fields: dict) -> dict:
        self.calls.append(("create_issue", (fields,)))
        key = self.next_key
        self.issues[key] = {"key": key, "fields": dict(fields)}
        return {"id": "20000", "key": key, "self": f"https://jira.example.com/rest/api/2/issue/{key}"}

    def update_issue(self, key: str, fields: dict) -> None:
        self.calls.append(("update_issue", (key, fields)))

    def fetch_transitions(self, key: str) -> list[dict[str, str]]:
        self.calls.append(("fetch_transitions", (key,)))
        return list(self.transitions)

    def transition_issue(self, key: str, transition_id: str) -> None:
        self.calls.append(("transition_issue", (key, transition_id)))

    def post_work_log(
        self, key: str, time_spent: str, started: str, comment: str = ""
    ) -> dict:
        self.calls.append(("post_work_log", (key, time_spent, started, comment)))
        if key in self.failing_worklog_keys:
            raise RemoteRequestError(
                400, "Worklog rejected", "POST", f"/issue/{key}/worklog"
            )
        return {"id": str(len(self.calls))}

    def fetch_issues_by_query(
        self, jql: str, limit: int | None = None, fields: list[str] | None = None
    ) -> list[dict]:
        self.calls.append(("fetch_issues_by_query", (jql, limit)))
        issues = [copy.deepcopy(issue) for issue in self.issues.values()]
        return issues[:limit] if limit else issues

    def called(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]


@pytest.fixture
def fake_client():
    return FakeJiraClient({"PROJ-1": make_issue()})


@pytest.fixture
def note_host(tmp_path):
    """FileDocumentHost rooted at a fresh temporary folder."""
    return FileDocumentHost(tmp_path)
