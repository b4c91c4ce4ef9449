from __future__ import annotations

import json
import logging
import os
import re
import time
import uuid
from typing import Any

from identity_engine.ai.config import load_ai_config
from identity_engine.ai.factory import get_ai_client
from identity_engine.ai.types import ChatMessage

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class LLMError(RuntimeError):
    def __init__(self, message: str, *, code: str = "llm_unavailable"):
        super().__init__(message)
        self.code = code


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def llm_enabled(operation: str | None = None) -> bool:
    if not _env_bool("LLM_ENABLED", True):
        return False
    if load_ai_config(operation).provider != "openai":
        return False
    api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if not api_key or _looks_like_placeholder(api_key):
        return False
    return True


def parse_json_content(content: str) -> Any:
    """Parse model output, tolerating a surrounding markdown code fence."""
    cleaned = _CODE_FENCE_RE.sub("", (content or "").strip())
    return json.loads(cleaned)


def _log_run(*, run_id: str, operation: str, status: str, started: float, error_code: str | None = None) -> None:
    logger.info(
        "llm_run run_id=%s operation=%s status=%s error_code=%s latency_ms=%s",
        run_id,
        operation,
        status,
        error_code,
        int((time.perf_counter() - started) * 1000),
    )


def json_completion(
    *,
    system_prompt: str,
    user_prompt: str,
    operation: str,
    temperature: float = 0.0,
    max_output_tokens: int = 2000,
) -> dict[str, Any] | None:
    run_id = uuid.uuid4().hex
    started = time.perf_counter()
    if not llm_enabled(operation):
        _log_run(run_id=run_id, operation=operation, status="skipped", started=started, error_code="llm_disabled")
        return None

    try:
        content = get_ai_client(operation).complete(
            [
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
            max_tokens=max_output_tokens,
            json_mode=True,
        )
        if not content:
            _log_run(run_id=run_id, operation=operation, status="empty", started=started, error_code="empty_response")
            return None
        parsed = parse_json_content(content)
        if not isinstance(parsed, dict):
            _log_run(run_id=run_id, operation=operation, status="invalid_schema", started=started, error_code="invalid_schema")
            return None
        _log_run(run_id=run_id, operation=operation, status="success", started=started)
        return parsed
    except Exception as exc:  # noqa: BLE001 - callers treat a failed call as "no information"
        logger.warning("llm_json_failed operation=%s prompt_len=%s: %s", operation, len(user_prompt), exc)
        _log_run(run_id=run_id, operation=operation, status="error", started=started, error_code="llm_exception")
        return None


def json_completion_required(
    *,
    system_prompt: str,
    user_prompt: str,
    operation: str,
    temperature: float = 0.0,
    max_output_tokens: int = 2000,
) -> dict[str, Any]:
    if not llm_enabled(operation):
        raise LLMError("LLM is not configured. Set OPENAI_API_KEY.", code="llm_disabled")

    payload = json_completion(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        operation=operation,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
    )
    if payload is None:
        raise LLMError("LLM could not produce a valid JSON response.", code="llm_invalid")
    return payload
