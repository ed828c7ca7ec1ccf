"""Common types and utilities for format conversion."""

import json
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# Markdown: ```js
# Jira:     {code:javascript}
#
# Markdown->Jira is the canonical direction. Jira->Markdown keeps Jira's
# names because every Jira language id is also a valid fence language.
# Unknown languages pass through unchanged.
# =============================================================================

_MARKDOWN_TO_WIKI_LANG = MappingProxyType(
    {
        "js": "javascript",
        "ts": "typescript",
        "py": "python",
        "sh": "bash",
        "shell": "bash",
        "zsh": "bash",
        "yml": "yaml",
        "c++": "cpp",
        "cs": "csharp",
        "c#": "csharp",
        "plaintext": "none",
        "text": "none",
    }
)


def markdown_to_wiki_lang(lang: str) -> str:
    """Map a Markdown fence language to a Jira ``{code}`` language.

    >>> markdown_to_wiki_lang("js")
    'javascript'
    >>> markdown_to_wiki_lang("python")
    'python'
    """
    return _MARKDOWN_TO_WIKI_LANG.get(lang.lower(), lang)


def wiki_to_markdown_lang(lang: str) -> str:
    """Map a Jira ``{code}`` language to a Markdown fence language."""
    if lang.lower() == "none":
        return ""
    return lang


@dataclass
class ConversionResult:
    """Result of format conversion with metadata and warnings.

    Attributes:
        text: Converted text output
        source_format: Format of input text ('markdown', 'wiki', or 'unknown')
        target_format: Format of output text ('markdown' or 'wiki')
        converted: True if conversion performed, False on pass-through or fallback
        warnings: Lossy conversions or the failure that caused a fallback
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    converted: bool = False
    warnings: list[str] = field(default_factory=list)


def coerce_text(value: Any) -> str:
    """Coerce any field value to the string the converters operate on.

    None becomes "", booleans, mappings and lists their JSON serialization,
    and anything else (numbers, dates) its ``str()``.

    >>> coerce_text(None)
    ''
    >>> coerce_text(42)
    '42'
    >>> coerce_text({"a": 1})
    '{"a": 1}'
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def detect_format_heuristic(text: str) -> str:
    """Guess whether text is Jira wiki markup or Markdown.

    Priority:
    1. Unambiguous markers (``hN.`` headings, ``{code}``, ``||`` headers)
    2. Score ambiguous markers
    3. Default to 'wiki' if unclear

    Returns 'markdown' or 'wiki'.
    """
    if re.search(r"^h[1-6]\.\s", text, re.MULTILINE):
        return "wiki"
    if re.search(r"\{(?:code|noformat|panel)[:}]", text):
        return "wiki"
    if re.search(r"^#{1,6}\s", text, re.MULTILINE) or "```" in text:
        return "markdown"

    md_score = (
        text.count("**")
        + text.count("](")
        + len(re.findall(r"^\|\s*-{3,}", text, re.MULTILINE))
    )
    wiki_score = (
        text.count("{{")
        + text.count("||")
        + len(re.findall(r"\[[^\]|]+\|[^\]]+\]", text))
    )
    return "markdown" if md_score > wiki_score else "wiki"


def convert(text: Any, target_format: str | None = None) -> ConversionResult:
    """Convert text to ``target_format``, or to the other dialect if None.

    Pass-through (``converted=False``) when the detected source format
    already matches the requested target.
    """
    from .markdown_to_wiki import MarkdownParser
    from .wiki_to_markdown import WikiMarkupParser

    source = coerce_text(text)
    source_format = detect_format_heuristic(source)
    if target_format is None:
        target_format = "wiki" if source_format == "markdown" else "markdown"

    if target_format == "markdown":
        if source_format == "markdown":
            return ConversionResult(
                text=source,
                source_format=source_format,
                target_format=target_format,
            )
        return WikiMarkupParser().parse(source)
    if target_format == "wiki":
        if source_format == "wiki":
            return ConversionResult(
                text=source,
                source_format=source_format,
                target_format=target_format,
            )
        return MarkdownParser().parse(source)

    raise ValueError(
        f"Unknown target format '{target_format}': expected 'markdown' or 'wiki'"
    )
