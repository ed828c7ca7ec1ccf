"""Core Jira client functionality shared by the CLI and the sync engine."""

from .async_utils import run_sync
from .client import JiraClient

__all__ = ["JiraClient", "run_sync"]
