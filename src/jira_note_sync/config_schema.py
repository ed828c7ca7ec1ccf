"""Unified configuration schema for jira_note_sync.

Pydantic models for the YAML config: Jira connection, note layout, custom
field mappings, work-log import and logging. The ``jira`` section feeds
``config.load_config`` as its lowest-precedence source.

Usage:
    from jira_note_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=unified.jira.model_dump())
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_FILENAME_TEMPLATE,
    DEFAULT_ISSUES_FOLDER,
    WORKLOG_FRONTMATTER_KEY,
)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class JiraConfig(BaseModel):
    """Jira server connection settings.

    All fields are optional: env vars and CLI args can supply them instead.
    """

    url: str | None = Field(default=None, description="Jira base URL")
    username: str | None = Field(default=None, description="Jira username")
    password: str | None = Field(default=None, description="Jira password")
    api_token: str | None = Field(
        default=None, description="API token (basic or bearer auth)"
    )
    auth_method: Literal["session", "basic", "bearer"] = Field(
        default="session", description="How to authenticate"
    )
    session_cookie_name: str = Field(
        default="JSESSIONID", description="Cookie set by session auth"
    )
    api_version: str = Field(default="2", description="REST API version")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent requests to Jira (1-100)",
    )

    model_config = {"frozen": True}


class NotesConfig(BaseModel):
    """Where imported issues are written and how their notes are named."""

    issues_folder: str = Field(default=DEFAULT_ISSUES_FOLDER)
    template_path: str | None = Field(
        default=None, description="Note template used for new issues"
    )
    filename_template: str = Field(
        default=DEFAULT_FILENAME_TEMPLATE,
        description="Placeholders: {key}, {summary}, and any issue field",
    )

    model_config = {"frozen": True}


class FieldMappingSource(BaseModel):
    """Expression pair for one custom field mapping.

    An empty half always yields None (never transmitted / never written).
    """

    to_remote: str = ""
    from_remote: str = ""

    model_config = {"frozen": True}


class FieldMappingConfig(BaseModel):
    enable_field_validation: bool = True
    mappings: dict[str, FieldMappingSource] = Field(default_factory=dict)

    model_config = {"frozen": True}


class WorklogConfig(BaseModel):
    frontmatter_key: str = Field(default=WORKLOG_FRONTMATTER_KEY)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: "text" or "json".
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(default="text")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    jira: JiraConfig = Field(default_factory=JiraConfig)
    notes: NotesConfig = Field(default_factory=NotesConfig)
    field_mapping: FieldMappingConfig = Field(
        default_factory=FieldMappingConfig
    )
    worklog: WorklogConfig = Field(default_factory=WorklogConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged YAML dict.

    Missing sections get defaults; unknown top-level sections are ignored
    with a warning.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(unknown))
    return UnifiedConfig(**{k: v for k, v in raw_data.items() if k in known})
