"""Chat model construction for intent parsing, using browser-use's provider classes."""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from browser_use import ChatAnthropic, ChatGoogle, ChatGroq, ChatOllama, ChatOpenAI
from browser_use.llm.openrouter.chat import ChatOpenRouter

from .config import NO_KEY_PROVIDERS, STANDARD_ENV_VAR_NAMES, settings
from .exceptions import LLMProviderError

if TYPE_CHECKING:
    from browser_use.llm.base import BaseChatModel

# provider -> builder(model, api_key, base_url, extra options)
_BUILDERS: dict[str, Callable[[str, str | None, str | None, dict[str, Any]], "BaseChatModel"]] = {
    "openai": lambda model, key, url, extra: ChatOpenAI(model=model, api_key=key, base_url=url, **extra),
    "anthropic": lambda model, key, url, extra: ChatAnthropic(model=model, api_key=key, **extra),
    "google": lambda model, key, url, extra: ChatGoogle(model=model, api_key=key, **extra),
    "groq": lambda model, key, url, extra: ChatGroq(model=model, api_key=key, **extra),
    "ollama": lambda model, key, url, extra: ChatOllama(model=model, host=url),
    "openrouter": lambda model, key, url, extra: ChatOpenRouter(model=model, api_key=key, **extra),
}


def _key_hint(provider: str) -> str:
    names = STANDARD_ENV_VAR_NAMES.get(provider, "an API key")
    return " or ".join(names) if isinstance(names, list) else names


def get_llm(
    provider: str,
    model: str,
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
) -> "BaseChatModel":
    """Create the chat model used for intent parsing.

    Supported providers: openai, anthropic, google, groq, ollama, openrouter.
    A custom `base_url` (OpenAI-compatible server) lifts the API key requirement.

    Raises:
        LLMProviderError: If provider is unsupported, the API key is missing or construction fails
    """
    builder = _BUILDERS.get(provider)
    if builder is None:
        raise LLMProviderError(f"Unsupported provider: {provider}")

    if provider not in NO_KEY_PROVIDERS and not base_url and not api_key:
        raise LLMProviderError(f"API key required for provider '{provider}'. Set {_key_hint(provider)} or MONITOR_LLM_API_KEY.")

    extra = {} if temperature is None else {"temperature": temperature}
    try:
        return builder(model, api_key, base_url, extra)
    except Exception as e:
        raise LLMProviderError(f"Failed to initialize {provider} LLM: {e}") from e


def get_intent_llm() -> "BaseChatModel":
    """Chat model configured by the MONITOR_LLM_* settings."""
    llm = settings.llm
    return get_llm(
        provider=llm.provider,
        model=llm.model_name,
        api_key=llm.get_api_key_for_provider(),
        base_url=llm.base_url,
        temperature=llm.temperature,
    )
