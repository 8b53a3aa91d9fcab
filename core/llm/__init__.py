"""LLM Module - LLM services and interfaces."""
from core.llm.interfaces import LLMProvider, LMResult, UsageRecord, Completion
from core.llm.openai_service import OpenAIService
from core.llm.anthropic_service import AnthropicService

__all__ = ['LLMProvider', 'LMResult', 'UsageRecord', 'Completion', 'OpenAIService', 'AnthropicService']
