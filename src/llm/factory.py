from __future__ import annotations

from typing import TYPE_CHECKING

from src.config import settings

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel

# Valid provider identifiers
VALID_PROVIDERS = ("ollama", "openai", "azure_openai", "anthropic", "azure_foundry")

# Module-level cache, one chat model per role
_llm_cache: dict[str, BaseChatModel] = {}


def clear_llm_cache() -> None:
    """Drop cached chat models so they're recreated on next call."""
    _llm_cache.clear()


# ---------------------------------------------------------------------------
# Internal constructors (lazy imports to avoid hard dep on unused packages)
# ---------------------------------------------------------------------------

def _create_chat_model(provider: str, *, model: str, temperature: float, json_mode: bool = False) -> BaseChatModel:
    if provider == "ollama":
        from langchain_ollama import ChatOllama

        kwargs: dict = dict(
            base_url=settings.OLLAMA_BASE_URL,
            model=model,
            temperature=temperature,
        )
        if json_mode:
            kwargs["format"] = "json"
        return ChatOllama(**kwargs)

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        if not settings.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY is required when using the openai provider")
        kwargs = dict(model=model, temperature=temperature, api_key=settings.OPENAI_API_KEY)
        if json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        return ChatOpenAI(**kwargs)

    if provider == "azure_openai":
        from langchain_openai import AzureChatOpenAI

        if not settings.AZURE_OPENAI_API_KEY:
            raise ValueError("AZURE_OPENAI_API_KEY is required when using the azure_openai provider")
        if not settings.AZURE_OPENAI_ENDPOINT:
            raise ValueError("AZURE_OPENAI_ENDPOINT is required when using the azure_openai provider")
        kwargs = dict(
            azure_deployment=model,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
            api_key=settings.AZURE_OPENAI_API_KEY,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            temperature=temperature,
        )
        if json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        return AzureChatOpenAI(**kwargs)

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        if not settings.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required when using the anthropic provider")
        return ChatAnthropic(model=model, temperature=temperature, api_key=settings.ANTHROPIC_API_KEY)

    if provider == "azure_foundry":
        from langchain_anthropic import ChatAnthropic as _ChatAnthropic

        if not settings.AZURE_FOUNDRY_API_KEY:
            raise ValueError("AZURE_FOUNDRY_API_KEY is required when using the azure_foundry provider")
        if not settings.AZURE_FOUNDRY_ENDPOINT:
            raise ValueError("AZURE_FOUNDRY_ENDPOINT is required when using the azure_foundry provider")
        return _ChatAnthropic(
            model=model,
            temperature=temperature,
            anthropic_api_key=settings.AZURE_FOUNDRY_API_KEY,
            anthropic_api_url=settings.AZURE_FOUNDRY_ENDPOINT,
        )

    raise ValueError(f"Unknown provider: {provider!r}. Valid: {VALID_PROVIDERS}")


def get_primary_model_name(provider: str | None = None) -> str:
    provider = provider or settings.LLM_PROVIDER_PRIMARY
    return {
        "ollama": settings.OLLAMA_MODEL_PRIMARY,
        "openai": settings.OPENAI_MODEL_PRIMARY,
        "azure_openai": settings.AZURE_OPENAI_MODEL_PRIMARY,
        "anthropic": settings.ANTHROPIC_MODEL_PRIMARY,
        "azure_foundry": settings.AZURE_FOUNDRY_MODEL_PRIMARY,
    }.get(provider, "unknown")


# ---------------------------------------------------------------------------
# Public factory functions
# ---------------------------------------------------------------------------

def get_primary_llm() -> BaseChatModel:
    """Primary Reasoning Engine. Used for: Scope of Work drafting."""
    key = "primary"
    if key not in _llm_cache:
        provider = settings.LLM_PROVIDER_PRIMARY
        _llm_cache[key] = _create_chat_model(
            provider,
            model=get_primary_model_name(provider),
            temperature=0.1,
            json_mode=True,
        )
    return _llm_cache[key]
