from functools import lru_cache

from identity_engine.ai.config import load_ai_config
from identity_engine.ai.types import AIClient

from identity_engine.ai.providers.openai_provider import OpenAIProvider


@lru_cache(maxsize=8)
def _client_for(provider: str, model: str) -> AIClient:
    if provider == "openai":
        return OpenAIProvider(model=model)

    raise ValueError(f"Unsupported AI_PROVIDER='{provider}'")


def get_ai_client(operation: str | None = None) -> AIClient:
    cfg = load_ai_config(operation)
    return _client_for(cfg.provider, cfg.model)
