from database.repositories.base import BaseRepository
from database.repositories.extraction import ExtractionRepository
from database.repositories.employee import EmployeeRepository
from database.repositories.reference import ReferenceRepository
from database.repositories.llm_usage import LLMUsageRepository

__all__ = [
    'BaseRepository',
    'ExtractionRepository',
    'EmployeeRepository',
    'ReferenceRepository',
    'LLMUsageRepository',
]
