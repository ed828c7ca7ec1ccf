"""
Hierarchical YAML configuration loader for jira_note_sync.

Finds config files by convention, supports ``!include`` and
``${VAR:-default}`` interpolation, and merges files with "project wins"
semantics.

Usage:
    from jira_note_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "JIRA_SYNC_CONFIG"
PROJECT_CONFIG_DIR = ".jira_sync"

# ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    An unset or empty VAR yields the default, or "" without one. A ``${``
    with no closing brace is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass with ``!include``.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched; the
    per-load include stack detects circular includes.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml`` relative to the including file."""
    include_path = Path(loader.construct_scalar(node))
    if not include_path.is_absolute():
        include_path = Path(loader.name).resolve().parent / include_path
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in [*include_stack, include_path])
        raise ValueError(f"Circular include detected: {chain}")

    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return load_yaml_file(include_path, _include_stack=[*include_stack, include_path])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load one YAML file with ``ConfigLoader``."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    Search order:
        1. ``JIRA_SYNC_CONFIG`` env var (explicit path)
        2. ``.jira_sync/config.yml`` in CWD
        3. ``.jira_sync/config.yaml`` in CWD
        4. ``~/.config/jira_sync/config.yml`` (XDG global)
    """
    candidates: list[Path] = []
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_CONFIG_DIR / "config.yml")
    candidates.append(cwd / PROJECT_CONFIG_DIR / "config.yaml")
    candidates.append(Path.home() / ".config" / "jira_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# jira-note-sync configuration
#
# Connection settings can also come from the environment:
#   JIRA_URL, JIRA_USERNAME, JIRA_PASSWORD, JIRA_API_TOKEN, JIRA_AUTH_METHOD
#
# jira:
#   url: https://jira.example.com
#   username: ${JIRA_USERNAME}
#   password: ${JIRA_PASSWORD}
#   auth_method: session
#   max_parallel_requests: 5
#
# notes:
#   issues_folder: jira-issues
#   template_path: null
#   filename_template: "{summary} ({key})"
#
# field_mapping:
#   enable_field_validation: true
#   mappings:
#     labels:
#       to_remote: "value.split(',')"
#       from_remote: "', '.join(issue.fields.labels or [])"
#
# worklog:
#   frontmatter_key: jira_worklog_batch
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Highest-precedence existing config file, else the project default."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files load from lowest precedence to highest; each file's top-level
    sections replace (not deep-merge) earlier ones. Env var interpolation
    runs after the merge. Returns {} when no file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
