"""
LLM Provider Interface - Abstract base for CV extraction providers.

This module defines the interface for LLM services (OpenAI, Anthropic, etc.)
and the shared extraction flow: prompt building, timing, JSON parsing, schema
validation and usage accounting. Providers only implement ``_complete``.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional

from core.exceptions import LMFailure
from core.llm.schema_models import parse_json_content, validate_cv_payload
from core.llm.system_prompts import CV_EXTRACTION_SYSTEM_PROMPT, build_cv_user_prompt

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """Normalized provider response."""
    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class UsageRecord:
    provider: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    response_time_ms: int = 0
    success: bool = True
    error_message: Optional[str] = None

    @property
    def total_tokens(self) -> int:
        return (self.prompt_tokens or 0) + (self.completion_tokens or 0)


@dataclass
class LMResult:
    data: Dict[str, Any]
    usage: UsageRecord
    raw_content: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract Interface for AI Service Providers (OpenAI, Anthropic, etc.).
    """

    provider_name: str = "unknown"

    def __init__(self, model: str, temperature: float = 0.0, max_tokens: int = 4096, timeout_seconds: float = 60.0):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    def _complete(self, system_prompt: str, user_prompt: str) -> Completion:
        """
        Send one chat request and return the raw content plus token usage.

        Implementations raise LMFailure with kind connection, timeout or
        provider; any tokens already known are kept on the Completion.
        """
        pass

    def _usage(self, started: float, completion: Optional[Completion], error: Optional[str] = None) -> UsageRecord:
        return UsageRecord(
            provider=self.provider_name,
            model=self.model,
            prompt_tokens=completion.prompt_tokens if completion else 0,
            completion_tokens=completion.completion_tokens if completion else 0,
            response_time_ms=int((time.monotonic() - started) * 1000),
            success=error is None,
            error_message=error,
        )

    def extract_cv(self, text: str, reference_hints: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> LMResult:
        """Extract a structured CV from plain text.

        Args:
            text: CV text as recovered from the uploaded document
            reference_hints: Optional catalog excerpts ({'skills': [{'id', 'name'}], ...})
                the model should pick ids from

        Returns:
            LMResult with the validated payload and the call's usage

        Raises:
            LMFailure: transport, timeout or provider error; SchemaError for a
                payload that is not valid JSON or violates the schema. The
                exception's ``usage`` is always populated.
        """
        started = time.monotonic()
        completion = None
        user_prompt = build_cv_user_prompt(text, reference_hints)
        try:
            completion = self._complete(CV_EXTRACTION_SYSTEM_PROMPT, user_prompt)
            data = parse_json_content(completion.content)
            validate_cv_payload(data)
        except LMFailure as e:
            e.usage = self._usage(started, completion, error=str(e))
            logger.error(f"{self.provider_name} CV extraction failed ({e.kind}): {e}")
            raise
        except Exception as e:
            message = f"Unexpected {self.provider_name} error: {type(e).__name__}: {e}"
            logger.exception(f"{self.provider_name} CV extraction failed (provider)")
            raise LMFailure(
                message, kind="provider", usage=self._usage(started, completion, error=message)
            ) from e

        usage = self._usage(started, completion)
        logger.info(
            f"{self.provider_name} CV extraction ({self.model}): "
            f"{usage.total_tokens} tokens in {usage.response_time_ms}ms, "
            f"{len(data.get('skills', {}).get('extracted_skills', []))} skills"
        )
        return LMResult(data=data, usage=usage, raw_content=completion.content)
