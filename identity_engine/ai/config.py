import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AIConfig:
    provider: str
    model: str


def _operation_env(operation: str, suffix: str) -> str:
    return (os.getenv(f"{operation.upper()}_{suffix}") or "").strip()


def load_ai_config(operation: str | None = None) -> AIConfig:
    """Resolve provider/model for an operation.

    ``SYNTHESIZE_CLAIMS_MODEL`` overrides ``AI_MODEL`` for the
    ``synthesize_claims`` operation, and so on.
    """
    provider = os.getenv("AI_PROVIDER", "openai").strip().lower()
    model = os.getenv("AI_MODEL", "gpt-4o-mini").strip()
    if operation:
        provider = (_operation_env(operation, "PROVIDER") or provider).lower()
        model = _operation_env(operation, "MODEL") or model
    return AIConfig(provider=provider, model=model)
