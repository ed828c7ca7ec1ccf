"""Tests for jira_note_sync.config: env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the connection
bootstrap path: validate_config() and load_config().
"""

import logging

import pytest

from jira_note_sync.config import Config, load_config, validate_config

ENV_KEYS = (
    "JIRA_URL",
    "JIRA_USERNAME",
    "JIRA_PASSWORD",
    "JIRA_API_TOKEN",
    "JIRA_AUTH_METHOD",
    "JIRA_INSECURE",
    "JIRA_DEBUG",
    "JIRA_MAX_PARALLEL_REQUESTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def session_env(monkeypatch):
    monkeypatch.setenv("JIRA_URL", "https://jira.example.com")
    monkeypatch.setenv("JIRA_USERNAME", "user")
    monkeypatch.setenv("JIRA_PASSWORD", "pass")


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config(): URL format and credential checks."""

    def test_valid_session_config(self):
        config = Config(
            jira_url="https://jira.example.com",
            username="admin",
            password="secret",
        )
        validate_config(config)  # should not raise

    def test_http_url_valid(self):
        config = Config(
            jira_url="http://localhost:8080/jira",
            username="user",
            password="pass",
        )
        validate_config(config)

    @pytest.mark.parametrize("url", ["example.com", "ftp://example.com"])
    def test_invalid_scheme(self, url):
        config = Config(jira_url=url, username="user", password="pass")
        with pytest.raises(ValueError, match="must start with http:// or https://"):
            validate_config(config)

    @pytest.mark.parametrize("url", ["http://", "https://"])
    def test_empty_host(self, url):
        """URL with scheme but no hostname should be rejected."""
        config = Config(jira_url=url, username="user", password="pass")
        with pytest.raises(ValueError, match="must include a hostname"):
            validate_config(config)

    def test_url_whitespace_and_trailing_slash_stripped(self):
        config = Config(
            jira_url="  https://jira.example.com/  ",
            username="user",
            password="pass",
        )
        validate_config(config)
        assert config.jira_url == "https://jira.example.com"

    def test_unknown_auth_method(self):
        config = Config(
            jira_url="https://jira.example.com",
            username="user",
            password="pass",
            auth_method="oauth",
        )
        with pytest.raises(ValueError, match="Invalid auth method 'oauth'"):
            validate_config(config)

    def test_empty_username(self):
        config = Config(
            jira_url="https://jira.example.com", username="  ", password="pass"
        )
        with pytest.raises(ValueError, match="username cannot be empty"):
            validate_config(config)

    def test_session_needs_password(self):
        config = Config(
            jira_url="https://jira.example.com", username="user", password="   "
        )
        with pytest.raises(ValueError, match="password cannot be empty"):
            validate_config(config)

    def test_basic_accepts_token_instead_of_password(self):
        config = Config(
            jira_url="https://jira.example.com",
            username="me@example.com",
            api_token="tok",
            auth_method="basic",
        )
        validate_config(config)

    def test_basic_needs_a_secret(self):
        config = Config(
            jira_url="https://jira.example.com",
            username="user",
            auth_method="basic",
        )
        with pytest.raises(ValueError, match="JIRA_PASSWORD or JIRA_API_TOKEN"):
            validate_config(config)

    def test_bearer_needs_token_but_no_username(self):
        validate_config(
            Config(
                jira_url="https://jira.example.com",
                api_token="pat",
                auth_method="bearer",
            )
        )
        with pytest.raises(ValueError, match="Bearer auth needs an API token"):
            validate_config(
                Config(jira_url="https://jira.example.com", auth_method="bearer")
            )

    @pytest.mark.parametrize("value", [0, 101])
    def test_max_parallel_bounds(self, value):
        config = Config(
            jira_url="https://jira.example.com",
            username="user",
            password="pass",
            max_parallel_requests=value,
        )
        with pytest.raises(ValueError, match="must be between 1 and 100"):
            validate_config(config)

    def test_insecure_logs_warning(self, caplog):
        config = Config(
            jira_url="https://jira.example.com",
            username="user",
            password="pass",
            insecure=True,
        )
        with caplog.at_level(logging.WARNING, logger="jira_note_sync.config"):
            validate_config(config)
        assert "SSL verification disabled" in caplog.text

    def test_secure_no_warning(self, caplog):
        config = Config(
            jira_url="https://jira.example.com", username="user", password="pass"
        )
        with caplog.at_level(logging.WARNING, logger="jira_note_sync.config"):
            validate_config(config)
        assert "SSL verification disabled" not in caplog.text


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config(): env vars, CLI overrides, YAML fallbacks."""

    def test_load_from_env_vars(self, session_env):
        config = load_config()

        assert config.jira_url == "https://jira.example.com"
        assert config.username == "user"
        assert config.password == "pass"
        assert config.auth_method == "session"

    def test_cli_args_override_env(self, session_env):
        config = load_config(
            url="https://cli.example.com",
            username="cli-user",
            password="cli-pass",
        )

        assert config.jira_url == "https://cli.example.com"
        assert config.username == "cli-user"
        assert config.password == "cli-pass"

    def test_env_overrides_yaml(self, session_env):
        config = load_config(
            yaml_fallbacks={"url": "https://yaml.example.com", "username": "yaml"}
        )
        assert config.jira_url == "https://jira.example.com"
        assert config.username == "user"

    def test_yaml_fallbacks_fill_gaps(self):
        config = load_config(
            yaml_fallbacks={
                "url": "https://yaml.example.com/",
                "api_token": "tok",
                "auth_method": "BEARER",
                "api_version": "3",
                "max_parallel_requests": 8,
                "insecure": True,
            }
        )
        assert config.jira_url == "https://yaml.example.com"
        assert config.auth_method == "bearer"
        assert config.api_version == "3"
        assert config.max_parallel_requests == 8
        assert config.insecure is True

    def test_missing_url_raises(self):
        with pytest.raises(ValueError, match="Jira URL not found"):
            load_config()

    def test_missing_username_raises(self, monkeypatch):
        monkeypatch.setenv("JIRA_URL", "https://jira.example.com")
        with pytest.raises(ValueError, match="username cannot be empty"):
            load_config()

    def test_token_from_env(self, monkeypatch):
        monkeypatch.setenv("JIRA_URL", "https://jira.example.com")
        monkeypatch.setenv("JIRA_API_TOKEN", "pat")
        monkeypatch.setenv("JIRA_AUTH_METHOD", "bearer")

        config = load_config()
        assert config.api_token == "pat"
        assert config.auth_method == "bearer"

    # --- Boolean env var parsing ---

    @pytest.mark.parametrize("value", ["true", "1", "yes", "on", "TRUE", "Yes"])
    def test_insecure_truthy_values(self, session_env, monkeypatch, value):
        monkeypatch.setenv("JIRA_INSECURE", value)
        assert load_config().insecure is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", "random"])
    def test_insecure_falsy_values(self, session_env, monkeypatch, value):
        monkeypatch.setenv("JIRA_INSECURE", value)
        assert load_config(yaml_fallbacks={"insecure": True}).insecure is False

    def test_cli_flag_wins_over_env(self, session_env, monkeypatch):
        monkeypatch.setenv("JIRA_DEBUG", "false")
        assert load_config(debug=True).debug is True

    def test_debug_default_false(self, session_env):
        assert load_config().debug is False

    # --- Numeric env var parsing ---

    def test_max_parallel_from_env(self, session_env, monkeypatch):
        monkeypatch.setenv("JIRA_MAX_PARALLEL_REQUESTS", "10")
        assert load_config().max_parallel_requests == 10

    def test_max_parallel_default(self, session_env):
        assert load_config().max_parallel_requests == 5

    def test_max_parallel_non_numeric(self, session_env, monkeypatch):
        monkeypatch.setenv("JIRA_MAX_PARALLEL_REQUESTS", "abc")
        with pytest.raises(ValueError, match="Invalid JIRA_MAX_PARALLEL_REQUESTS 'abc'"):
            load_config()

    @pytest.mark.parametrize("value", ["0", "-5", "500"])
    def test_max_parallel_out_of_range(self, session_env, monkeypatch, value):
        monkeypatch.setenv("JIRA_MAX_PARALLEL_REQUESTS", value)
        with pytest.raises(ValueError, match="must be between 1 and 100"):
            load_config()

    # --- Whitespace stripping ---

    def test_url_whitespace_stripped(self, monkeypatch):
        monkeypatch.setenv("JIRA_URL", "  https://jira.example.com/  ")
        monkeypatch.setenv("JIRA_USERNAME", " user ")
        monkeypatch.setenv("JIRA_PASSWORD", "pass")

        config = load_config()
        assert config.jira_url == "https://jira.example.com"
        assert config.username == "user"
