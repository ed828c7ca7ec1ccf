"""Jira connection configuration.

Reads connection settings from CLI args, environment variables, .env files
and the ``jira`` section of the YAML config.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    JIRA_URL: Jira base URL (required)
    JIRA_USERNAME: Jira username (required for session and basic auth)
    JIRA_PASSWORD: Jira password (session auth, or basic auth without token)
    JIRA_API_TOKEN: API token (basic auth on Jira Cloud, or bearer PAT)
    JIRA_AUTH_METHOD: session | basic | bearer (default: session)
    JIRA_INSECURE: Skip SSL verification (optional, default: false)
    JIRA_DEBUG: Enable debug logging (optional, default: false)
    JIRA_MAX_PARALLEL_REQUESTS: Max parallel REST requests (optional, default: 5)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .constants import DEFAULT_MAX_PARALLEL

logger = logging.getLogger(__name__)

AUTH_METHODS = ("session", "basic", "bearer")


@dataclass
class Config:
    jira_url: str
    username: str = ""
    password: str = ""
    api_token: str = ""
    auth_method: str = "session"
    session_cookie_name: str = "JSESSIONID"
    api_version: str = "2"
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = DEFAULT_MAX_PARALLEL


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the URL is malformed or the chosen auth method lacks
            credentials.
    """
    config.jira_url = config.jira_url.strip()

    if not config.jira_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid Jira URL '{config.jira_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.jira_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid Jira URL '{config.jira_url}': URL must include a hostname"
        )

    config.jira_url = config.jira_url.removesuffix("/")

    if config.auth_method not in AUTH_METHODS:
        raise ValueError(
            f"Invalid auth method '{config.auth_method}': expected one of {', '.join(AUTH_METHODS)}"
        )

    if config.auth_method in ("session", "basic") and not config.username.strip():
        raise ValueError(
            "Jira username cannot be empty. Set JIRA_USERNAME environment variable."
        )

    if config.auth_method == "session" and not config.password.strip():
        raise ValueError(
            "Jira password cannot be empty for session auth. Set JIRA_PASSWORD environment variable."
        )

    if config.auth_method == "basic" and not (
        config.password.strip() or config.api_token.strip()
    ):
        raise ValueError(
            "Basic auth needs JIRA_PASSWORD or JIRA_API_TOKEN."
        )

    if config.auth_method == "bearer" and not config.api_token.strip():
        raise ValueError(
            "Bearer auth needs an API token. Set JIRA_API_TOKEN environment variable."
        )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: must be between 1 and 100"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _resolve_flag(cli_value: bool, env_key: str, fallback: object) -> bool:
    if cli_value:
        return True
    env_value = _get_bool_env(env_key)
    if env_value is not None:
        return env_value
    return bool(fallback)


def load_config(
    url: str | None = None,
    username: str | None = None,
    password: str | None = None,
    api_token: str | None = None,
    auth_method: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override Jira URL.
        username: Override username.
        password: Override password.
        api_token: Override API token.
        auth_method: Override auth method.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict from the YAML config's ``jira`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the URL is missing or validation fails.
    """
    fb = yaml_fallbacks or {}

    jira_url = url or os.getenv("JIRA_URL") or fb.get("url")
    if not jira_url:
        raise ValueError(
            "Jira URL not found. Set JIRA_URL environment variable, "
            "pass --url CLI argument, or add 'url' to the jira section of config.yml."
        )

    def pick(cli_value: str | None, env_key: str, yaml_key: str, default: str = "") -> str:
        value = cli_value or os.getenv(env_key) or fb.get(yaml_key) or default
        return str(value).strip()

    max_parallel_raw = os.getenv("JIRA_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid JIRA_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 100"
            ) from None
    else:
        max_parallel = int(fb.get("max_parallel_requests", DEFAULT_MAX_PARALLEL))

    config = Config(
        jira_url=str(jira_url),
        username=pick(username, "JIRA_USERNAME", "username"),
        password=pick(password, "JIRA_PASSWORD", "password"),
        api_token=pick(api_token, "JIRA_API_TOKEN", "api_token"),
        auth_method=pick(auth_method, "JIRA_AUTH_METHOD", "auth_method", "session").lower(),
        session_cookie_name=str(fb.get("session_cookie_name") or "JSESSIONID"),
        api_version=str(fb.get("api_version") or "2"),
        insecure=_resolve_flag(insecure, "JIRA_INSECURE", fb.get("insecure", False)),
        debug=_resolve_flag(debug, "JIRA_DEBUG", fb.get("debug", False)),
        max_parallel_requests=max_parallel,
    )

    validate_config(config)

    return config
