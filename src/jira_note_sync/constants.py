"""Shared constants: placeholder issue shape, note template, defaults."""

from types import MappingProxyType

# Snapshot keys starting with this prefix never leave the note.
RESERVED_PREFIX = "_"

REQUIRED_CREATE_FIELDS: tuple[str, ...] = ("summary", "project", "issuetype")

DEFAULT_ISSUES_FOLDER = "jira-issues"
DEFAULT_FILENAME_TEMPLATE = "{summary} ({key})"
FALLBACK_FILENAME = "jira-issue"
WORKLOG_FRONTMATTER_KEY = "jira_worklog_batch"

# Concurrent Jira requests when nothing else is configured.
DEFAULT_MAX_PARALLEL = 5

# Shape of a fetched issue with every commonly mapped field present.
# Used as the smoke-test argument for custom mapping expressions.
DEFAULT_ISSUE = MappingProxyType(
    {
        "key": "DEFAULT-1",
        "id": "10000",
        "self": "https://jira.example.com/rest/api/2/issue/10000",
        "fields": {
            "summary": "Default summary",
            "description": "Default *description*",
            "project": {"key": "DEFAULT", "name": "Default project"},
            "issuetype": {"name": "Task"},
            "priority": {"name": "Medium"},
            "status": {"name": "To Do"},
            "assignee": {"name": "jdoe", "displayName": "Jane Doe"},
            "reporter": {"name": "jdoe", "displayName": "Jane Doe"},
            "creator": {"name": "jdoe", "displayName": "Jane Doe"},
            "created": "2024-01-01T00:00:00.000+0000",
            "updated": "2024-01-01T00:00:00.000+0000",
            "lastViewed": None,
            "duedate": None,
            "labels": [],
            "components": [],
            "fixVersions": [],
            "aggregateprogress": {"progress": 0, "total": 0},
            "timetracking": {},
        },
    }
)

SAMPLE_LOCAL_SNAPSHOT = MappingProxyType(
    {"summary": "Default summary", "key": "DEFAULT-1", "status": "To Do"}
)

# Note values a to-remote expression is tried on; passing one is enough.
SAMPLE_VALUES = ("test", "1")

DEFAULT_NOTE_TEMPLATE = """---
key:
summary:
status:
issuetype:
project:
priority:
assignee:
reporter:
created:
updated:
link:
---

## Description

`sync-section-description`

"""
