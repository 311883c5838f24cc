"""Tests for configuration, API key resolution and catalogs."""

import os

import pytest

from price_monitor.config import (
    NO_KEY_PROVIDERS,
    STANDARD_ENV_VAR_NAMES,
    AgentSettings,
    LLMSettings,
    PlannerSettings,
    get_brand_catalog,
    get_currency_catalog,
    get_site_catalog,
)


class TestStandardEnvVarNames:
    """Test that standard env var names are correctly defined."""

    def test_all_providers_have_standard_names(self):
        assert set(STANDARD_ENV_VAR_NAMES.keys()) == {"openai", "anthropic", "google", "groq", "openrouter"}

    def test_standard_names_format(self):
        """Standard names should follow PROVIDER_API_KEY format."""
        for provider, env_vars in STANDARD_ENV_VAR_NAMES.items():
            vars_to_check = env_vars if isinstance(env_vars, list) else [env_vars]
            for env_var in vars_to_check:
                assert env_var.endswith("_API_KEY"), f"{provider} env var {env_var} should end with _API_KEY"
                assert env_var.isupper(), f"{provider} env var {env_var} should be uppercase"

    def test_ollama_no_key(self):
        assert "ollama" in NO_KEY_PROVIDERS


class TestApiKeyResolution:
    """Test API key resolution priority logic."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Clean environment variables before each test."""
        for var in list(os.environ.keys()):
            if "API_KEY" in var or var.startswith("MONITOR_LLM_") or var.startswith("MONITOR_PLANNER_"):
                monkeypatch.delenv(var, raising=False)

    def test_generic_override_takes_priority(self, monkeypatch):
        """MONITOR_LLM_API_KEY should override all other sources."""
        monkeypatch.setenv("MONITOR_LLM_API_KEY", "generic-key")
        monkeypatch.setenv("OPENAI_API_KEY", "standard-key")
        monkeypatch.setenv("MONITOR_LLM_OPENAI_API_KEY", "prefixed-key")
        monkeypatch.setenv("MONITOR_LLM_PROVIDER", "openai")

        settings = LLMSettings()
        assert settings.get_api_key_for_provider() == "generic-key"

    def test_standard_name_over_prefixed(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "standard-key")
        monkeypatch.setenv("MONITOR_LLM_OPENAI_API_KEY", "prefixed-key")
        monkeypatch.setenv("MONITOR_LLM_PROVIDER", "openai")

        assert LLMSettings().get_api_key_for_provider() == "standard-key"

    def test_prefixed_fallback(self, monkeypatch):
        monkeypatch.setenv("MONITOR_LLM_OPENAI_API_KEY", "prefixed-key")
        monkeypatch.setenv("MONITOR_LLM_PROVIDER", "openai")

        assert LLMSettings().get_api_key_for_provider() == "prefixed-key"

    def test_gemini_key_takes_priority_over_google(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
        monkeypatch.setenv("MONITOR_LLM_PROVIDER", "google")

        assert LLMSettings().get_api_key_for_provider() == "gemini-key"

    def test_ollama_no_key_required(self, monkeypatch):
        monkeypatch.setenv("MONITOR_LLM_PROVIDER", "ollama")

        settings = LLMSettings()
        assert settings.get_api_key_for_provider() is None
        assert not settings.requires_api_key()

    def test_planner_uses_google_keys(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
        assert PlannerSettings().get_api_key() == "google-key"

    def test_planner_override(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
        monkeypatch.setenv("MONITOR_PLANNER_API_KEY", "planner-key")
        assert PlannerSettings().get_api_key() == "planner-key"

    def test_no_key_returns_none(self, monkeypatch):
        monkeypatch.setenv("MONITOR_LLM_PROVIDER", "openai")

        settings = LLMSettings()
        assert settings.get_api_key_for_provider() is None
        assert settings.requires_api_key()


class TestDefaults:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for var in list(os.environ.keys()):
            if var.startswith("MONITOR_"):
                monkeypatch.delenv(var, raising=False)

    def test_planner_retry_defaults(self):
        settings = PlannerSettings()
        assert settings.max_retries == 5
        assert settings.base_delay == 2.0

    def test_agent_defaults(self):
        settings = AgentSettings()
        assert settings.use_directed_agent is False
        assert settings.max_turns == 20
        assert settings.min_confidence == 0.6

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MONITOR_AGENT_USE_DIRECTED_AGENT", "true")
        monkeypatch.setenv("MONITOR_AGENT_MAX_TURNS", "8")
        settings = AgentSettings()
        assert settings.use_directed_agent is True
        assert settings.max_turns == 8


class TestCatalogs:
    def test_site_catalog_has_search_templates(self):
        sites = get_site_catalog()
        assert "google" in sites
        for key, site in sites.items():
            assert "{query}" in site["search_url"], f"{key} search_url lacks a query placeholder"

    def test_brand_catalog(self):
        brands = get_brand_catalog()
        assert brands["nike"]["canonical"] == "Nike"

    def test_currency_catalog(self):
        assert get_currency_catalog()["EUR"]["symbol"] == "€"
