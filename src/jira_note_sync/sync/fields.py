"""Field mapping registry: built-in and custom note <-> Jira field transforms.

Each field name maps to a pair of pure functions:

- ``to_remote(value)`` converts a local value into the Jira field payload;
  returning None means "do not transmit".
- ``from_remote(issue, local)`` extracts the local value from a fetched
  issue; returning None means "do not overwrite".

Custom mappings are compiled from expression strings and fully replace the
built-in entry of the same name.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any
from urllib.parse import urlsplit

from ..constants import RESERVED_PREFIX
from ..converters import wiki_to_markdown
from .expressions import Direction, ExpressionCompiler

logger = logging.getLogger(__name__)

ToRemote = Callable[[Any], Any]
FromRemote = Callable[[Mapping[str, Any], Mapping[str, Any]], Any]


@dataclass(frozen=True)
class FieldMapping:
    """One field's pair of transforms.

    Attributes:
        to_remote: Local value -> Jira payload value (None: skip).
        from_remote: (issue, local snapshot) -> local value (None: keep).
        source: "builtin", or the custom expression pair it was compiled from.
    """

    to_remote: ToRemote
    from_remote: FromRemote
    source: str = "builtin"


def _never(*_args: Any) -> None:
    return None


def _fields(issue: Mapping[str, Any]) -> Mapping[str, Any]:
    return issue.get("fields") or {}


def _field(name: str) -> FromRemote:
    return lambda issue, local: _fields(issue).get(name)


def _wrap_key(value: Any) -> dict[str, str] | None:
    return {"key": str(value)} if value not in (None, "") else None


def _wrap_name(value: Any) -> dict[str, str] | None:
    return {"name": str(value)} if value not in (None, "") else None


def _unwrap(name: str, attr: str) -> FromRemote:
    def from_remote(issue, local):
        ref = _fields(issue).get(name)
        if isinstance(ref, Mapping):
            return ref.get(attr) or ""
        return ""

    return from_remote


def _unwrap_user(name: str) -> FromRemote:
    def from_remote(issue, local):
        user = _fields(issue).get(name)
        if isinstance(user, Mapping):
            return user.get("name") or user.get("displayName") or ""
        return ""

    return from_remote


def browse_url(issue: Mapping[str, Any]) -> str | None:
    """``https://host/browse/KEY`` derived from the issue's REST self URL."""
    self_url = issue.get("self")
    key = issue.get("key")
    if not self_url or not key:
        return None
    parts = urlsplit(self_url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}/browse/{key}"


def _open_link(issue, local):
    url = browse_url(issue)
    return f"[Open in Jira]({url})" if url else None


def _progress(issue, local):
    progress = _fields(issue).get("aggregateprogress")
    if isinstance(progress, Mapping) and progress.get("percent") is not None:
        return f"{progress['percent']}%"
    return None


def _description(issue, local):
    return wiki_to_markdown(_fields(issue).get("description"))


BUILTIN_FIELD_MAPPINGS: Mapping[str, FieldMapping] = MappingProxyType(
    {
        "summary": FieldMapping(
            to_remote=lambda value: value, from_remote=_field("summary")
        ),
        # Pushed through the Markdown converter by the orchestrator instead.
        "description": FieldMapping(
            to_remote=_never, from_remote=_description
        ),
        "key": FieldMapping(
            to_remote=_never, from_remote=lambda issue, local: issue.get("key")
        ),
        "self": FieldMapping(
            to_remote=_never, from_remote=lambda issue, local: issue.get("self")
        ),
        "project": FieldMapping(
            to_remote=_wrap_key, from_remote=_unwrap("project", "key")
        ),
        "issuetype": FieldMapping(
            to_remote=_wrap_name, from_remote=_unwrap("issuetype", "name")
        ),
        "priority": FieldMapping(
            to_remote=_wrap_name, from_remote=_unwrap("priority", "name")
        ),
        "assignee": FieldMapping(
            to_remote=_wrap_name, from_remote=_unwrap_user("assignee")
        ),
        "reporter": FieldMapping(
            to_remote=_wrap_name, from_remote=_unwrap_user("reporter")
        ),
        # Status changes go through transitions, never a field write.
        "status": FieldMapping(
            to_remote=_never, from_remote=_unwrap("status", "name")
        ),
        "creator": FieldMapping(
            to_remote=_never, from_remote=_unwrap_user("creator")
        ),
        "created": FieldMapping(to_remote=_never, from_remote=_field("created")),
        "updated": FieldMapping(to_remote=_never, from_remote=_field("updated")),
        "lastViewed": FieldMapping(
            to_remote=_never, from_remote=_field("lastViewed")
        ),
        "link": FieldMapping(
            to_remote=_never, from_remote=lambda issue, local: browse_url(issue)
        ),
        "openLink": FieldMapping(to_remote=_never, from_remote=_open_link),
        "progress": FieldMapping(to_remote=_never, from_remote=_progress),
        # Note-only keys: never transmitted, never overwritten.
        "tags": FieldMapping(to_remote=_never, from_remote=_never),
        "aliases": FieldMapping(to_remote=_never, from_remote=_never),
        "deadline": FieldMapping(to_remote=_never, from_remote=_never),
    }
)


def _source_pair(spec: Any) -> tuple[str, str]:
    """Read (to_remote, from_remote) expression strings from a dict or model."""
    if isinstance(spec, Mapping):
        to_src = spec.get("to_remote") or spec.get("toJira") or ""
        from_src = spec.get("from_remote") or spec.get("fromJira") or ""
    else:
        to_src = getattr(spec, "to_remote", "") or ""
        from_src = getattr(spec, "from_remote", "") or ""
    return str(to_src).strip(), str(from_src).strip()


class FieldMappingRegistry:
    """Resolves field names to mappings and applies them to whole snapshots.

    Args:
        custom_sources: Field name -> ``{"to_remote": expr, "from_remote": expr}``
            (or an object with those attributes).
        compiler: Expression compiler; defaults to one with validation on.
    """

    def __init__(
        self,
        custom_sources: Mapping[str, Any] | None = None,
        compiler: ExpressionCompiler | None = None,
    ):
        self.compiler = compiler or ExpressionCompiler()
        self._custom: dict[str, FieldMapping] = {}
        self._sources: dict[str, tuple[str, str]] = {}
        self.update_sources(custom_sources or {})

    def update_sources(self, custom_sources: Mapping[str, Any]) -> None:
        """Rebuild custom entries, recompiling only those whose source changed.

        A custom entry that fails to compile is dropped, so the built-in of
        the same name (if any) applies again.
        """
        wanted = {
            name: _source_pair(spec) for name, spec in custom_sources.items()
        }

        for name in list(self._sources):
            if name not in wanted:
                del self._sources[name]
                self._custom.pop(name, None)

        for name, pair in wanted.items():
            if self._sources.get(name) == pair:
                continue
            self._sources[name] = pair
            mapping = self._compile_entry(name, *pair)
            if mapping is None:
                self._custom.pop(name, None)
            else:
                self._custom[name] = mapping

    def _compile_entry(
        self, name: str, to_src: str, from_src: str
    ) -> FieldMapping | None:
        to_remote: ToRemote = _never
        from_remote: FromRemote = _never
        if to_src:
            compiled = self.compiler.compile(to_src, Direction.TO_REMOTE)
            if compiled is None:
                logger.warning("Dropping custom mapping for '%s'", name)
                return None
            to_remote = compiled
        if from_src:
            compiled = self.compiler.compile(from_src, Direction.FROM_REMOTE)
            if compiled is None:
                logger.warning("Dropping custom mapping for '%s'", name)
                return None
            from_remote = compiled
        logger.debug("Compiled custom mapping for '%s'", name)
        return FieldMapping(
            to_remote=to_remote,
            from_remote=from_remote,
            source=f"to_remote: {to_src!r}, from_remote: {from_src!r}",
        )

    @property
    def custom_names(self) -> list[str]:
        return sorted(self._custom)

    def resolve(self, name: str) -> FieldMapping | None:
        """Custom entry if one compiled, else the built-in, else None."""
        return self._custom.get(name) or BUILTIN_FIELD_MAPPINGS.get(name)

    def uses_builtin(self, name: str) -> bool:
        return name not in self._custom and name in BUILTIN_FIELD_MAPPINGS

    def to_remote_fields(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        """Build a Jira ``fields`` payload from a local snapshot.

        Skips reserved keys, None values, unmapped keys and transforms that
        return None. A failing transform is logged and skipped.
        """
        payload: dict[str, Any] = {}
        for name, value in snapshot.items():
            if name.startswith(RESERVED_PREFIX) or value is None:
                continue
            mapping = self.resolve(name)
            if mapping is None:
                continue
            try:
                remote = mapping.to_remote(value)
            except Exception:
                logger.exception("to_remote failed for field '%s'", name)
                continue
            if remote is not None:
                payload[name] = remote
        return payload

    def from_remote_fields(
        self,
        issue: Mapping[str, Any],
        local: Mapping[str, Any],
        names: Iterable[str],
    ) -> dict[str, Any]:
        """Local values to write for ``names``, extracted from ``issue``.

        Unmapped names fall back to the raw ``issue.fields[name]``. Names
        whose value comes back None are left out.
        """
        updates: dict[str, Any] = {}
        for name in names:
            mapping = self.resolve(name)
            try:
                if mapping is None:
                    value = _fields(issue).get(name)
                else:
                    value = mapping.from_remote(issue, local)
            except Exception:
                logger.exception("from_remote failed for field '%s'", name)
                continue
            if value is not None:
                updates[name] = value
        return updates
