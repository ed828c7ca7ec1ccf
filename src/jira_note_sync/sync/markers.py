"""Sync-marker parsing and in-place replacement.

A sync marker is an inline code span naming a field:

- ``\\`sync-section-<name>\\``` -- content runs to the next heading line,
  the next marker token, or end of document.
- ``\\`sync-line-<name>\\``` -- content is the rest of the line.
- ``\\`sync-inline-start-<name>\\``` ... ``\\`sync-inline-end-<name>\\```
- ``\\`sync-block-start-<name>\\``` ... ``\\`sync-block-end-<name>\\```

End tokens may omit the name. An inline/block start without a matching end
runs to the next token or end of document.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from ..converters.common import coerce_text
from .models import MarkerType, SyncMarker

logger = logging.getLogger(__name__)

MARKER_TOKEN_RE = re.compile(
    r"`sync-(?P<form>section|line|inline-start|inline-end|block-start|block-end)"
    r"(?:-(?P<name>[\w-]+))?`"
)
HEADING_LINE_RE = re.compile(r"^#{1,6}[ \t]", re.MULTILINE)

_PAIRED_FORMS = {
    "inline-start": (MarkerType.INLINE, "inline-end"),
    "block-start": (MarkerType.BLOCK, "block-end"),
}


def _is_matching_end(token: re.Match[str], end_form: str, name: str) -> bool:
    return token.group("form") == end_form and token.group("name") in (
        None,
        name,
    )


def parse_markers(text: str) -> list[SyncMarker]:
    """Scan a document for sync markers, in document order.

    Args:
        text: Raw document text (frontmatter included or not).

    Returns:
        Markers whose spans never overlap; orphan end tokens and start
        tokens without a name are ignored.
    """
    tokens = list(MARKER_TOKEN_RE.finditer(text))
    markers: list[SyncMarker] = []
    consumed: set[int] = set()

    for i, token in enumerate(tokens):
        if i in consumed:
            continue
        form = token.group("form")
        name = token.group("name")
        if form.endswith("-end") or not name:
            continue

        start = token.end()
        next_token = tokens[i + 1] if i + 1 < len(tokens) else None
        next_start = next_token.start() if next_token else len(text)

        if form == "section":
            heading = HEADING_LINE_RE.search(text, start)
            end = min(next_start, heading.start() if heading else len(text))
            markers.append(
                SyncMarker(
                    type=MarkerType.SECTION,
                    name=name,
                    content=text[start:end].strip(),
                    start_index=token.start(),
                    end_index=end,
                    token=token.group(0),
                )
            )
        elif form == "line":
            newline = text.find("\n", start)
            end = min(next_start, newline if newline != -1 else len(text))
            markers.append(
                SyncMarker(
                    type=MarkerType.LINE,
                    name=name,
                    content=text[start:end].strip(),
                    start_index=token.start(),
                    end_index=end,
                    token=token.group(0),
                )
            )
        else:
            marker_type, end_form = _PAIRED_FORMS[form]
            terminated = next_token is not None and _is_matching_end(
                next_token, end_form, name
            )
            content = text[start:next_start]
            if terminated:
                consumed.add(i + 1)
                end = next_token.end()
            else:
                logger.debug(
                    "Unterminated %s marker '%s' at offset %d",
                    marker_type.value,
                    name,
                    token.start(),
                )
                end = next_start
            if marker_type is MarkerType.INLINE:
                content = content.strip()
            else:
                if content.startswith("\n"):
                    content = content[1:]
                if content.endswith("\n"):
                    content = content[:-1]
            markers.append(
                SyncMarker(
                    type=marker_type,
                    name=name,
                    content=content,
                    start_index=token.start(),
                    end_index=end,
                    token=token.group(0),
                    terminated=terminated,
                )
            )

    return markers


def extract_values(text: str) -> dict[str, str]:
    """Map marker name to content; the last marker wins on repeated names."""
    return {marker.name: marker.content for marker in parse_markers(text)}


def render_marker(marker: SyncMarker, content: str) -> str:
    """Serialize a marker with new content in its form's canonical layout."""
    match marker.type:
        case MarkerType.SECTION:
            body = content.rstrip("\n")
            return f"{marker.token}\n{body}\n"
        case MarkerType.LINE:
            first_line = content.split("\n", 1)[0]
            return f"{marker.token} {first_line}"
        case MarkerType.INLINE:
            return f"{marker.token}{content}`sync-inline-end-{marker.name}`"
        case MarkerType.BLOCK:
            return (
                f"{marker.token}\n{content}\n`sync-block-end-{marker.name}`"
            )
    raise ValueError(f"Unknown marker type: {marker.type}")


def apply_updates(text: str, updates: Mapping[str, Any]) -> str:
    """Replace the content of every marker whose name is in ``updates``.

    Spans are computed once against the original text and the result is
    rebuilt in a single left-to-right pass. Names without a marker are
    ignored; no marker is ever created.

    Args:
        text: Raw document text.
        updates: Field name -> new value (non-strings are coerced).

    Returns:
        Updated document text.
    """
    if not updates:
        return text

    parts: list[str] = []
    cursor = 0
    for marker in parse_markers(text):
        if marker.name not in updates:
            continue
        parts.append(text[cursor : marker.start_index])
        parts.append(render_marker(marker, coerce_text(updates[marker.name])))
        cursor = marker.end_index
    parts.append(text[cursor:])
    return "".join(parts)
