"""
RetryWorker - periodic sweep over the extraction table.

Each tick:
1. runs pending extractions whose dispatch never happened (or was lost)
2. re-attempts the import of extractions stuck at extracted
3. recovers rows left importing/processing by a worker that died

All state lives in the database, so a restarted worker simply continues; the
status compare-and-swap keeps two workers from handling the same row.
"""
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from core.config_loader import ExtractionConfig
from database.models import STATUS_IMPORTING, STATUS_PROCESSING
from database.uow import extraction_uow
from etl.orchestrator import CVImportOrchestrator

logger = logging.getLogger(__name__)


class RetryWorker:

    def __init__(
        self,
        orchestrator: CVImportOrchestrator,
        config: Optional[ExtractionConfig] = None,
        session_factory=None,
    ):
        self.orchestrator = orchestrator
        self.config = config or ExtractionConfig()
        self.session_factory = session_factory
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stats = {
            'is_running': False,
            'ticks': 0,
            'processed': 0,
            'errors': 0,
            'last_tick_at': None,
        }

    @property
    def tick_seconds(self) -> float:
        return self.config.worker_tick_ms / 1000.0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._stats)

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._stats[key] += amount

    def _ids(self, query: Callable) -> List:
        with extraction_uow(self.session_factory) as repo:
            return [row.id for row in query(repo)]

    def _handle(self, label: str, extraction_id, action: Callable) -> None:
        try:
            status = action(extraction_id)
        except Exception:
            self._bump('errors')
            logger.exception(f"Worker: {label} of extraction {extraction_id} crashed")
            return
        if status is not None:
            self._bump('processed')
            logger.info(f"Worker: {label} of extraction {extraction_id} -> {status}")

    def run_once(self) -> Dict[str, int]:
        """One sweep. Returns how many rows each step looked at."""
        cfg = self.config
        debounce = timedelta(seconds=cfg.debounce_seconds)
        counts = {'pending': 0, 'extracted': 0, 'stale_importing': 0, 'stale_processing': 0}

        try:
            steps = [
                ('pending', 'run', self.orchestrator.run,
                 lambda repo: repo.extractions.find_pending(cfg.pending_batch_size, older_than=debounce)),
                ('extracted', 'import', self.orchestrator.import_extraction,
                 lambda repo: repo.extractions.find_stuck(cfg.max_retries, debounce, cfg.extracted_batch_size)),
                ('stale_importing', 'import recovery', self.orchestrator.recover_stale_importing,
                 lambda repo: repo.extractions.find_stale(
                     STATUS_IMPORTING, timedelta(milliseconds=2 * cfg.import_tx_timeout_ms), cfg.extracted_batch_size)),
                ('stale_processing', 'extraction recovery', self.orchestrator.recover_stale_processing,
                 lambda repo: repo.extractions.find_stale(
                     STATUS_PROCESSING, timedelta(milliseconds=2 * cfg.lm_timeout_ms), cfg.pending_batch_size)),
            ]
            for key, label, action, query in steps:
                ids = self._ids(query)
                counts[key] = len(ids)
                for extraction_id in ids:
                    if self._stop_event.is_set():
                        break
                    self._handle(label, extraction_id, action)
        except Exception:
            self._bump('errors')
            logger.exception("Worker tick failed")
        finally:
            with self._lock:
                self._stats['ticks'] += 1
                self._stats['last_tick_at'] = datetime.now(timezone.utc)

        if any(counts.values()):
            logger.info(f"Worker tick: {counts}")
        return counts

    def run(self) -> None:
        """Blocking loop until stop() is called."""
        with self._lock:
            self._stats['is_running'] = True
        logger.info(f"Retry worker started (tick {self.tick_seconds:.1f}s)")
        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                self.run_once()
                remaining = self.tick_seconds - (time.monotonic() - started)
                self._stop_event.wait(max(remaining, 0.0))
        finally:
            with self._lock:
                self._stats['is_running'] = False
            logger.info("Retry worker stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="cv-retry-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
