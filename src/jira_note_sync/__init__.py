"""Jira <-> Markdown note synchronization."""

__version__ = "1.2.0"
