"""
Extraction dispatch.

Two modes:
1. Redis Queue (RQ): the job pipeline.jobs.process_extraction is enqueued and
   picked up by `python -m pipeline.rq_worker`
2. Inline: the extraction is processed on a daemon thread of this process

dispatch never raises. An extraction whose dispatch failed stays pending and
the RetryWorker picks it up on its next tick.
"""
import logging
import threading
import uuid
from typing import Any, Callable, Optional

from redis import Redis
from rq import Queue

from pipeline.jobs import process_extraction

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = 'cv_extraction'


class ExtractionDispatcher:

    def __init__(
        self,
        process_fn: Callable[[uuid.UUID], Any],
        use_async_queue: bool = False,
        redis_url: Optional[str] = None,
        queue_name: str = DEFAULT_QUEUE_NAME,
        job_timeout_seconds: int = 600,
        queue: Optional[Queue] = None,
    ):
        self.process_fn = process_fn
        self.job_timeout_seconds = job_timeout_seconds
        self.queue = queue
        self.async_mode = queue is not None

        if self.queue is None and use_async_queue:
            try:
                redis_conn = Redis.from_url(redis_url or 'redis://localhost:6379/0')
                redis_conn.ping()
                self.queue = Queue(queue_name, connection=redis_conn)
                self.async_mode = True
                logger.info(f"Extraction dispatcher connected to Redis queue '{queue_name}'")
            except Exception as e:
                logger.error(f"Redis connection failed: {e}. Falling back to inline dispatch.")
                self.queue = None
                self.async_mode = False
        elif not use_async_queue:
            logger.info("Async queue disabled via config. Using inline dispatch.")

    def __call__(self, extraction_id: uuid.UUID) -> Optional[str]:
        return self.dispatch(extraction_id)

    def dispatch(self, extraction_id: uuid.UUID) -> Optional[str]:
        """Schedule processing of one extraction.

        Returns:
            The RQ job id or thread name, or None if scheduling failed
        """
        if self.async_mode:
            try:
                job = self.queue.enqueue(
                    process_extraction,
                    str(extraction_id),
                    job_timeout=self.job_timeout_seconds,
                    result_ttl=86400,
                )
            except Exception as e:
                logger.error(f"Failed to enqueue extraction {extraction_id}: {e}. Left pending for the worker.")
                return None
            logger.info(f"Queued extraction {extraction_id} as job {job.id}")
            return job.id

        name = f"cv-extraction-{extraction_id}"
        try:
            thread = threading.Thread(target=self._run_inline, args=(extraction_id,), name=name, daemon=True)
            thread.start()
        except RuntimeError as e:
            logger.error(f"Could not start thread for extraction {extraction_id}: {e}. Left pending for the worker.")
            return None
        return name

    def _run_inline(self, extraction_id: uuid.UUID) -> None:
        try:
            status = self.process_fn(extraction_id)
            logger.info(f"Inline processing of extraction {extraction_id} finished: {status}")
        except Exception:
            logger.exception(f"Inline processing of extraction {extraction_id} crashed")
