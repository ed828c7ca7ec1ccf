"""File handler module: path validation, note file names, encoding-aware read/write.

All functions are synchronous; ``FileDocumentHost`` runs them through
``run_sync()``.
"""

import re
from pathlib import Path

from charset_normalizer import from_bytes

from .constants import FALLBACK_FILENAME
from .errors import InputValidationError

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def sanitize_file_name(name: str) -> str:
    """Replace characters that are invalid in file names with ``-``.

    >>> sanitize_file_name('Fix: crash in a/b (PROJ-1)')
    'Fix- crash in a-b (PROJ-1)'
    """
    return _UNSAFE_FILENAME_CHARS.sub("-", name).strip()


def render_file_name(template: str, issue: dict) -> str:
    """Fill a file-name template like ``"{summary} ({key})"`` from an issue.

    Placeholders resolve against the issue's ``key`` and its fields; object
    fields use their ``name`` (or ``key``). Falls back to the key, then the
    summary, then ``jira-issue`` when the result is empty.
    """
    fields = issue.get("fields") or {}
    key = str(issue.get("key") or "")
    summary = str(fields.get("summary") or "")

    def fill(match: re.Match) -> str:
        name = match.group(1)
        if name == "key":
            return key
        value = fields.get(name)
        if isinstance(value, dict):
            value = value.get("name") or value.get("key") or ""
        return "" if value is None else str(value)

    name = sanitize_file_name(re.sub(r"\{(\w+)\}", fill, template))
    name = re.sub(r"\(\s*\)", "", name).strip()
    if not name or name == "-":
        name = sanitize_file_name(key) or sanitize_file_name(summary) or FALLBACK_FILENAME
    return name


def resolve_document_path(handle: str | Path, base_dir: Path) -> Path:
    """Resolve a document handle to an absolute path inside ``base_dir``.

    Raises:
        InputValidationError: If the path escapes ``base_dir``.
    """
    base = base_dir.resolve()
    path = Path(handle)
    if not path.is_absolute():
        path = base / path
    resolved = path.resolve()
    if not resolved.is_relative_to(base):
        raise InputValidationError(
            f"Document path is outside the notes folder: {resolved} not under {base}"
        )
    return resolved


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding in ("ascii", "utf_8"):
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write content to a file, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)
