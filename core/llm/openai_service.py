"""
OpenAI Service - CV extraction through the OpenAI chat completions API.

Uses JSON Schema response format so the model is steered towards the CV
schema; the shared flow in LLMProvider still validates the result.
"""
from typing import Dict, Any, Optional, Tuple
import copy
import logging
import re

import openai
from openai import OpenAI
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)
from tenacity import RetryCallState

from core.exceptions import LMFailure
from core.llm.interfaces import LLMProvider, Completion
from core.llm.schema_models import CV_EXTRACTION_SCHEMA

logger = logging.getLogger(__name__)

# APITimeoutError subclasses APIConnectionError; timeouts are reported, not retried.
_RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


# ---------------------------------------------------------------------------
# Retry helpers
# ---------------------------------------------------------------------------

def _is_retryable(exc: BaseException) -> bool:
    """Return True for transient errors that are worth retrying."""
    return isinstance(exc, _RETRYABLE_ERRORS) and not isinstance(exc, openai.APITimeoutError)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a warning before each retry sleep, including Retry-After info."""
    exc = retry_state.outcome.exception()
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    if isinstance(exc, openai.RateLimitError):
        logger.warning(
            "Rate limit hit (attempt %s). Waiting %.1fs before retry. Details: %s",
            retry_state.attempt_number, wait, exc,
        )
    else:
        logger.warning(
            "Transient API error (attempt %s). Waiting %.1fs before retry. Details: %s",
            retry_state.attempt_number, wait, exc,
        )


def _parse_reset_duration(value: str) -> float:
    """Parse an OpenAI reset-timer header value like '1s', '500ms', '1m30s' into seconds."""
    total = 0.0
    for amount, unit in re.findall(r"([\d.]+)(ms|s|m|h)", value):
        a = float(amount)
        if unit == "ms":
            total += a / 1000
        elif unit == "s":
            total += a
        elif unit == "m":
            total += a * 60
        else:  # h
            total += a * 3600
    return total


def _wait_from_rate_limit_headers(exc: openai.RateLimitError) -> float:
    """Extract the longest declared wait from rate-limit response headers.

    Reads ``retry-after`` (plain seconds) and the OpenAI
    ``x-ratelimit-reset-requests`` / ``x-ratelimit-reset-tokens`` timers,
    taking the maximum. Returns 0.0 if no usable header is present.
    """
    response = getattr(exc, "response", None)
    if response is None:
        return 0.0
    headers = response.headers
    candidates: list[float] = []

    retry_after = headers.get("retry-after", "")
    if retry_after:
        try:
            candidates.append(float(retry_after))
        except ValueError:
            logger.debug("Ignoring non-numeric retry-after header: %r", retry_after)

    for header in ("x-ratelimit-reset-requests", "x-ratelimit-reset-tokens"):
        parsed = _parse_reset_duration(headers.get(header, ""))
        if parsed > 0:
            candidates.append(parsed)

    return max(candidates) if candidates else 0.0


def _wait_respecting_retry_after(retry_state: RetryCallState) -> float:
    """Return how long tenacity should sleep before the next attempt.

    For ``RateLimitError``: honours server-declared timers via response headers.
    For all other retryable errors: falls back to capped exponential backoff.
    """
    exc = retry_state.outcome.exception()
    if isinstance(exc, openai.RateLimitError):
        wait = _wait_from_rate_limit_headers(exc)
        if wait > 0:
            wait = min(wait, 30)
            logger.info("Rate limit headers indicate %.1fs wait.", wait)
            return wait

    # Fallback: exponential backoff 1 -> 2 -> 4 ... capped at 10s
    exp = wait_exponential(multiplier=1, min=1, max=10)
    return exp(retry_state)


def _unwrap_schema_spec(spec: Dict[str, Any]) -> Tuple[str, bool, Dict[str, Any]]:
    """Unwrap a schema spec to extract name, strict flag, and raw JSON schema.

    Args:
        spec: Either a wrapped spec {'name': str, 'strict': bool, 'schema': {...}}
              or a raw JSON schema dict

    Returns:
        Tuple of (name, strict, raw_schema)
    """
    if isinstance(spec, dict) and "schema" in spec and "name" in spec:
        return spec.get("name", "extraction_response"), bool(spec.get("strict", False)), spec["schema"]
    return "extraction_response", False, spec


def _to_lm_failure(exc: Exception) -> LMFailure:
    if isinstance(exc, openai.APITimeoutError):
        return LMFailure(f"OpenAI request timed out: {exc}", kind="timeout")
    if isinstance(exc, openai.APIConnectionError):
        return LMFailure(f"Could not reach OpenAI: {exc}", kind="connection")
    return LMFailure(f"OpenAI API error: {exc}", kind="provider")


class OpenAIService(LLMProvider):
    """
    OpenAI LLM Service.

    Provides structured CV extraction using JSON Schema mode.
    """

    provider_name = "openai"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        schema_spec: Optional[Dict[str, Any]] = None,
        client: Optional[OpenAI] = None,
    ):
        super().__init__(model, temperature=temperature, max_tokens=max_tokens, timeout_seconds=timeout_seconds)

        if client is None:
            client_kwargs = {'timeout': timeout_seconds, 'max_retries': 0}
            if api_key:
                client_kwargs['api_key'] = api_key
            if base_url:
                client_kwargs['base_url'] = base_url
            client = OpenAI(**client_kwargs)

        self.client = client
        self.schema_spec = schema_spec or CV_EXTRACTION_SCHEMA

    def _create_with_retry(self, **request):
        retrying = retry(
            retry=retry_if_exception(_is_retryable),
            wait=_wait_respecting_retry_after,
            stop=stop_after_attempt(3) | stop_after_delay(self.timeout_seconds),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(self.client.chat.completions.create)(**request)

    def _complete(self, system_prompt: str, user_prompt: str) -> Completion:
        name, strict, raw_schema = _unwrap_schema_spec(self.schema_spec)
        runtime_schema = copy.deepcopy(raw_schema)
        runtime_schema.pop("$schema", None)

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        try:
            response = self._create_with_retry(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": name,
                        "schema": runtime_schema,
                        "strict": strict,
                    },
                },
            )
        except openai.OpenAIError as e:
            raise _to_lm_failure(e) from e

        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0

        try:
            content = response.choices[0].message.content
        except (IndexError, AttributeError) as e:
            logger.error(f"Failed to read structured data response: {e}")
            raise LMFailure(f"Malformed OpenAI response: {e}", kind="provider") from e

        return Completion(content=content, prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
