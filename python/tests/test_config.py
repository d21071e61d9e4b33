"""Tests for application configuration."""

import pytest
from pydantic import ValidationError

from relay.config import Environment, Settings, get_settings


def _make_settings(**overrides) -> Settings:
    """Build a Settings instance with test defaults + overrides."""
    defaults = {
        "DATABASE_URL": "postgresql+psycopg://localhost/test",
        "RELAY_ENV": "test",
        "AUTH_JWKS_URL": "https://auth.example.test/.well-known/jwks.json",
        "AUTH_ISSUER": "https://auth.example.test/",
        "AUTH_AUDIENCES": "authenticated",
    }
    defaults.update(overrides)
    return Settings(**defaults)


class TestRequiredSettings:
    @pytest.mark.parametrize("missing", ["AUTH_JWKS_URL", "AUTH_ISSUER", "AUTH_AUDIENCES"])
    def test_auth_settings_required(self, missing):
        with pytest.raises(ValidationError, match=missing):
            _make_settings(**{missing: ""})

    @pytest.mark.parametrize("env", ["staging", "prod"])
    def test_internal_secret_required_outside_dev(self, env):
        with pytest.raises(ValidationError, match="RELAY_INTERNAL_SECRET"):
            _make_settings(RELAY_ENV=env)

    def test_internal_secret_optional_locally(self):
        s = _make_settings(RELAY_ENV="local")
        assert s.relay_internal_secret is None

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValidationError):
            _make_settings(RELAY_ENV="qa")


class TestDerivedSettings:
    def test_issuer_trailing_slash_stripped(self):
        assert _make_settings().normalized_issuer == "https://auth.example.test"

    def test_audience_list_parsed(self):
        s = _make_settings(AUTH_AUDIENCES=" authenticated, relay-cli ,,")
        assert s.audience_list == ["authenticated", "relay-cli"]

    @pytest.mark.parametrize(
        "env,required",
        [("local", False), ("test", False), ("staging", True), ("prod", True)],
    )
    def test_requires_internal_header(self, env, required):
        s = _make_settings(RELAY_ENV=env, RELAY_INTERNAL_SECRET="secret")
        assert s.relay_env == Environment(env)
        assert s.requires_internal_header is required


class TestUpstreamSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("UPSTREAM_API_URL", raising=False)
        s = _make_settings()

        assert s.upstream_api_url == "https://api.anthropic.com"
        assert s.upstream_api_version == "2023-06-01"
        assert s.upstream_beta == "ccr-byoc-2025-07-29"
        assert s.proxy_timeout_s == 60.0
        assert s.proxy_connect_timeout_s == 10.0

    def test_upstream_url_normalized(self):
        s = _make_settings(UPSTREAM_API_URL="https://upstream.example.test/")
        assert s.normalized_upstream_url == "https://upstream.example.test"

    def test_timeouts_overridable(self):
        s = _make_settings(PROXY_TIMEOUT_S="5", PROXY_CONNECT_TIMEOUT_S="1.5")
        assert s.proxy_timeout_s == 5.0
        assert s.proxy_connect_timeout_s == 1.5


class TestSettingsCache:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("UPSTREAM_BETA", "some-other-beta")
        assert get_settings().upstream_beta == "some-other-beta"
