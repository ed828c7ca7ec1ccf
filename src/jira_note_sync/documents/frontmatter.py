"""YAML frontmatter split/render for Markdown notes."""

import re
from typing import Any

import yaml

from ..errors import InputValidationError

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<yaml>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)


def split_frontmatter(text: str) -> tuple[dict[str, Any], str, bool]:
    """Split a note into (frontmatter, body, has_frontmatter_block).

    Raises:
        InputValidationError: If the block is not valid YAML or not a mapping.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text, False

    try:
        data = yaml.safe_load(match.group("yaml"))
    except yaml.YAMLError as exc:
        raise InputValidationError(f"Invalid frontmatter YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InputValidationError(
            f"Frontmatter must be a mapping, got {type(data).__name__}"
        )
    return data, text[match.end() :], True


def render_frontmatter(frontmatter: dict[str, Any]) -> str:
    if not frontmatter:
        return "---\n---\n"
    dumped = yaml.safe_dump(
        frontmatter,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{dumped}---\n"


def render_document(
    frontmatter: dict[str, Any], body: str, force_block: bool = False
) -> str:
    """Join frontmatter and body; key order is preserved.

    An empty frontmatter is omitted unless ``force_block`` is set.
    """
    if not frontmatter and not force_block:
        return body
    return render_frontmatter(frontmatter) + body
