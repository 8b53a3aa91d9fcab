"""
Anthropic Service - CV extraction through the Anthropic Messages HTTP API.

Talks to the REST endpoint with ``requests``; the response is normalized into
the same Completion shape the OpenAI adapter produces.
"""
import logging
from typing import Any, Dict, Optional

import requests
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

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


class _RetryableStatus(Exception):
    """HTTP 429/5xx from the provider."""

    def __init__(self, response: requests.Response):
        super().__init__(f"HTTP {response.status_code}: {response.text[:200]}")
        self.response = response


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, requests.Timeout):
        return False
    return isinstance(exc, (_RetryableStatus, requests.ConnectionError))


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Transient Anthropic API error (attempt %s). Waiting %.1fs before retry. Details: %s",
        retry_state.attempt_number, wait, exc,
    )


class AnthropicService(LLMProvider):
    """Anthropic Messages API adapter."""

    provider_name = "anthropic"

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(model, temperature=temperature, max_tokens=max_tokens, timeout_seconds=timeout_seconds)
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        response = self.session.post(
            f"{self.base_url}/v1/messages",
            json=payload,
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise _RetryableStatus(response)
        return response

    def _post_with_retry(self, payload: Dict[str, Any]) -> requests.Response:
        retrying = retry(
            retry=retry_if_exception(_is_retryable),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            stop=stop_after_attempt(3) | stop_after_delay(self.timeout_seconds),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(self._post)(payload)

    def _complete(self, system_prompt: str, user_prompt: str) -> Completion:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

        try:
            response = self._post_with_retry(payload)
        except requests.Timeout as e:
            raise LMFailure(f"Anthropic request timed out: {e}", kind="timeout") from e
        except requests.ConnectionError as e:
            raise LMFailure(f"Could not reach Anthropic: {e}", kind="connection") from e
        except _RetryableStatus as e:
            raise LMFailure(f"Anthropic API error: {e}", kind="provider") from e
        except requests.RequestException as e:
            raise LMFailure(f"Anthropic request failed: {e}", kind="connection") from e

        if response.status_code >= 400:
            raise LMFailure(
                f"Anthropic API error: HTTP {response.status_code}: {response.text[:200]}",
                kind="provider",
            )

        try:
            body = response.json()
        except ValueError as e:
            raise LMFailure(f"Malformed Anthropic response: {e}", kind="provider") from e

        usage = body.get("usage") or {}
        text_blocks = [
            block.get("text", "")
            for block in body.get("content") or []
            if block.get("type") == "text"
        ]
        return Completion(
            content="".join(text_blocks),
            prompt_tokens=int(usage.get("input_tokens") or 0),
            completion_tokens=int(usage.get("output_tokens") or 0),
        )
