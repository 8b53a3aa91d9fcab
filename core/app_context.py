from dataclasses import dataclass
from typing import Optional

from core.config_loader import AppConfig, LlmConfig
from core.llm.interfaces import LLMProvider
from core.llm.openai_service import OpenAIService
from core.llm.anthropic_service import AnthropicService
from database.database import build_session_factory
from etl.orchestrator import CVImportOrchestrator
from etl.service import CVExtractionService
from etl.usage_logger import LLMUsageLogger
from pipeline.dispatcher import ExtractionDispatcher
from pipeline.worker import RetryWorker
from storage.blob_store import BlobStore, build_blob_store


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    This eliminates duplicate wiring code and provides a single source
    of truth for service instantiation. DB access is obtained through
    extraction_uow(session_factory) inside each operation.
    """
    config: AppConfig
    session_factory: object
    extractor: LLMProvider
    blob_store: BlobStore
    usage_logger: LLMUsageLogger
    orchestrator: CVImportOrchestrator
    dispatcher: ExtractionDispatcher
    service: CVExtractionService
    worker: RetryWorker

    @classmethod
    def build(cls, config: AppConfig, session_factory: Optional[object] = None) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            session_factory: Optional sessionmaker; built from config.database.url when omitted

        Returns:
            Fully wired AppContext instance (no DB session attached)
        """
        if session_factory is None:
            session_factory = build_session_factory(config.database.url)

        extraction_config = config.extraction
        extractor = cls._build_extractor(config.llm, timeout_seconds=extraction_config.lm_timeout_ms / 1000.0)
        blob_store = build_blob_store(config.storage)
        usage_logger = LLMUsageLogger(session_factory)

        orchestrator = CVImportOrchestrator(
            blob_store=blob_store,
            extractor=extractor,
            config=extraction_config,
            usage_logger=usage_logger,
            session_factory=session_factory,
        )

        queue_config = config.queue
        dispatcher = ExtractionDispatcher(
            process_fn=orchestrator.process,
            use_async_queue=queue_config.use_async_queue,
            redis_url=queue_config.redis_url,
            queue_name=queue_config.queue_name,
        )
        orchestrator.dispatcher = dispatcher

        return cls(
            config=config,
            session_factory=session_factory,
            extractor=extractor,
            blob_store=blob_store,
            usage_logger=usage_logger,
            orchestrator=orchestrator,
            dispatcher=dispatcher,
            service=CVExtractionService(orchestrator, session_factory),
            worker=RetryWorker(orchestrator, extraction_config, session_factory),
        )

    @staticmethod
    def _build_extractor(llm_config: LlmConfig, timeout_seconds: float) -> LLMProvider:
        """Build the LM adapter for the configured provider."""
        if llm_config.provider == "anthropic":
            return AnthropicService(
                model=llm_config.resolved_model,
                api_key=llm_config.api_key,
                base_url=llm_config.base_url,
                temperature=llm_config.temperature,
                max_tokens=llm_config.max_tokens,
                timeout_seconds=timeout_seconds,
            )
        return OpenAIService(
            model=llm_config.resolved_model,
            api_key=llm_config.api_key,
            base_url=llm_config.base_url,
            temperature=llm_config.temperature,
            max_tokens=llm_config.max_tokens,
            timeout_seconds=timeout_seconds,
        )
