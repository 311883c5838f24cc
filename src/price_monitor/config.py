"""Configuration management using Pydantic settings with optional file persistence."""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Paths ---

APP_NAME = "price-monitor"

PACKAGE_DATA_DIR = Path(__file__).parent / "data"


def get_config_dir() -> Path:
    """Get the configuration directory (e.g. ~/.config/price-monitor)."""
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / ".config")).expanduser()
    else:
        base = Path("~/.config").expanduser()

    path = base / APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_default_output_dir() -> Path:
    """Get the default directory for results and screenshots."""
    base = Path("~/Documents").expanduser()
    if not base.exists():
        base = Path.home()

    return base / "price-monitor-outputs"


CONFIG_FILE = get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Load settings from the JSON config file if it exists."""
    if not CONFIG_FILE.exists():
        return {}

    try:
        text = CONFIG_FILE.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        return json.loads(text)
    except (OSError, json.JSONDecodeError):
        return {}


def save_config_file(config_data: dict[str, Any]) -> None:
    """Save settings to the JSON config file."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(config_data, indent=2), encoding="utf-8")


# Standard environment variable names for API keys
# For providers with multiple common env var names, use a list (first match wins)
STANDARD_ENV_VAR_NAMES: dict[str, str | list[str]] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": ["GEMINI_API_KEY", "GOOGLE_API_KEY"],  # GEMINI_API_KEY takes priority
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}

# Providers that don't require an API key
NO_KEY_PROVIDERS = frozenset({"ollama"})

ProviderType = Literal[
    "openai",
    "anthropic",
    "google",
    "groq",
    "ollama",
    "openrouter",
]


def _resolve_api_key(provider: str, override: Optional[SecretStr]) -> Optional[str]:
    """Resolve API key with priority: generic override > standard > prefixed."""
    if override:
        return override.get_secret_value()

    standard_vars = STANDARD_ENV_VAR_NAMES.get(provider)
    if standard_vars:
        if isinstance(standard_vars, str):
            standard_vars = [standard_vars]
        for var_name in standard_vars:
            key = os.environ.get(var_name)
            if key:
                return key

    return os.environ.get(f"MONITOR_LLM_{provider.upper()}_API_KEY")


class LLMSettings(BaseSettings):
    """LLM provider used for intent parsing."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_LLM_")

    provider: ProviderType = Field(default="google")
    model_name: str = Field(default="gemini-2.0-flash")
    api_key: Optional[SecretStr] = Field(default=None, description="Generic API key override (highest priority)")
    base_url: Optional[str] = Field(default=None, description="Custom base URL for OpenAI-compatible APIs")
    temperature: float = Field(default=0.1)

    def get_api_key_for_provider(self) -> Optional[str]:
        """Resolve API key with priority: generic > standard > MONITOR-prefixed.

        Priority order:
        1. MONITOR_LLM_API_KEY (generic override, applies to any provider)
        2. <PROVIDER>_API_KEY (standard name, e.g., OPENAI_API_KEY, GEMINI_API_KEY)
        3. MONITOR_LLM_<PROVIDER>_API_KEY

        Returns:
            The resolved API key or None if not found.
        """
        return _resolve_api_key(self.provider, self.api_key)

    def requires_api_key(self) -> bool:
        """Check if the current provider requires an API key."""
        return self.provider not in NO_KEY_PROVIDERS


class PlannerSettings(BaseSettings):
    """Remote vision model that directs the browser in directed mode."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_PLANNER_")

    model_name: str = Field(default="gemini-2.5-computer-use-preview-10-2025")
    api_key: Optional[SecretStr] = Field(default=None)
    max_retries: int = Field(default=5, description="Retries for rate-limited (429) or unavailable (503) responses")
    base_delay: float = Field(default=2.0, description="Base delay in seconds for exponential backoff")
    request_timeout: float = Field(default=60.0, description="Timeout per planning call in seconds")
    screen_width: int = Field(default=1440)
    screen_height: int = Field(default=900)

    def get_api_key(self) -> Optional[str]:
        return _resolve_api_key("google", self.api_key)


class BrowserSettings(BaseSettings):
    """Browser configuration."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_BROWSER_")

    headless: bool = Field(default=True)
    proxy_server: Optional[str] = Field(default=None, description="Proxy server URL (e.g., http://host:8080)")
    proxy_bypass: Optional[str] = Field(default=None, description="Comma-separated hosts to bypass proxy")
    viewport_width: int = Field(default=1366)
    viewport_height: int = Field(default=768)
    navigation_timeout: float = Field(default=30.0, description="Navigation timeout in seconds")
    settle_delay: float = Field(default=1.0, description="Seconds to wait for a page to settle after an action")
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )


class AgentSettings(BaseSettings):
    """Task execution behaviour."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_AGENT_")

    use_directed_agent: bool = Field(default=False, description="Use the vision-model-directed agent instead of selectors")
    dry_run: bool = Field(default=False, description="Use offline mock parser and agents")
    max_turns: int = Field(default=20)
    min_confidence: float = Field(default=0.6)
    default_rate_limit_ms: int = Field(default=5000)
    task_timeout_seconds: float = Field(default=300.0, description="Wall-clock ceiling for one task's execution phase")
    max_google_results: int = Field(default=5)


TransportType = Literal["stdio", "streamable-http", "sse"]


class ServerSettings(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_SERVER_")

    logging_level: str = Field(default="INFO")
    transport: TransportType = Field(default="streamable-http", description="MCP transport: stdio, streamable-http, or sse")
    host: str = Field(default="127.0.0.1", description="Host for HTTP transports")
    port: int = Field(default=8484, description="Port for HTTP transports")


class OutputSettings(BaseSettings):
    """Where results and screenshots are written."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_OUTPUT_")

    directory: Optional[str] = Field(default=None, description="Base directory for results/ and screenshots/")
    catalog_dir: Optional[str] = Field(default=None, description="Directory overriding the bundled YAML catalogs")


class AppSettings(BaseSettings):
    """Root application settings.

    Priority: Environment Variables > Config File > Defaults
    """

    model_config = SettingsConfigDict(env_prefix="MONITOR_", extra="ignore")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    planner: PlannerSettings = Field(default_factory=PlannerSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)

    def save(self) -> Path:
        """Save current configuration to file (excluding secrets)."""
        data = self.model_dump(mode="json", exclude_none=True)
        for section in ("llm", "planner"):
            if section in data and "api_key" in data[section]:
                del data[section]["api_key"]
        save_config_file(data)
        return CONFIG_FILE

    def get_output_dir(self) -> Path:
        if self.output.directory:
            return Path(self.output.directory).expanduser()
        return get_default_output_dir()

    def get_results_dir(self) -> Path:
        """Get the results directory, creating if needed."""
        path = self.get_output_dir() / "results"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_screenshots_dir(self) -> Path:
        """Get the screenshots directory, creating if needed."""
        path = self.get_output_dir() / "screenshots"
        path.mkdir(parents=True, exist_ok=True)
        return path


def _load_settings() -> AppSettings:
    """Load settings with file config as base, env vars overlay."""
    file_data = load_config_file()
    # Pydantic will overlay env vars on top
    return AppSettings(**file_data)


settings = _load_settings()


# --- Catalogs (sites, brands, currencies) ---


def _catalog_dir() -> Path:
    override = settings.output.catalog_dir or os.environ.get("MONITOR_CATALOG_DIR")
    if override:
        return Path(override).expanduser()
    return PACKAGE_DATA_DIR


@lru_cache(maxsize=None)
def load_catalog(filename: str) -> dict[str, Any]:
    """Load a YAML catalog, returning an empty mapping when it is missing."""
    path = _catalog_dir() / filename
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def get_site_catalog() -> dict[str, dict[str, Any]]:
    """Mapping of site key to raw site configuration."""
    return load_catalog("sites.yaml").get("sites") or {}


def get_brand_catalog() -> dict[str, dict[str, Any]]:
    return load_catalog("brands.yaml").get("brands") or {}


def get_currency_catalog() -> dict[str, dict[str, Any]]:
    return load_catalog("currencies.yaml").get("currencies") or {}
