"""Dispatch and background processing of CV extractions."""

from .dispatcher import ExtractionDispatcher
from .worker import RetryWorker

__all__ = ['ExtractionDispatcher', 'RetryWorker']
