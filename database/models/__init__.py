from .base import Base, JSONType, utcnow
from .tenant import Tenant
from .employee import Employee
from .extraction import (
    CVExtraction,
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_EXTRACTED,
    STATUS_IMPORTING,
    STATUS_COMPLETED,
    STATUS_FAILED,
    EXTRACTION_STATUSES,
    PHASE_CONNECTION,
    PHASE_EXTRACTION,
    PHASE_DATABASE_SAVE,
    PHASE_UNKNOWN,
    ERROR_PHASES,
    ALLOWED_TRANSITIONS,
    is_legal_transition,
)
from .reference import JobFamily, Skill, Language, Role, SubRole, Certification, EducationDegree, SoftSkill
from .employee_facts import (
    EmployeeEducation,
    EmployeeWorkExperience,
    EmployeeSkill,
    EmployeeSoftSkill,
    EmployeeLanguage,
    EmployeeCertification,
    EmployeePublication,
    EmployeeProject,
    EmployeeAward,
    EmployeeDomainKnowledge,
    EmployeeRole,
    EmployeeAdditionalInfo,
    REPLACE_SET_MODELS,
    SOURCE_CV,
    SOURCE_MANUAL,
    DOMAIN_INDUSTRY,
    DOMAIN_CLIENT_SECTOR,
    DOMAIN_BUSINESS_PROCESS,
    DOMAIN_STANDARD,
    DOMAIN_TYPES,
)
from .llm_usage import LLMUsageLog, USAGE_SUCCESS, USAGE_FAILURE

__all__ = [
    'Base',
    'JSONType',
    'utcnow',
    'Tenant',
    'Employee',
    'CVExtraction',
    'STATUS_PENDING',
    'STATUS_PROCESSING',
    'STATUS_EXTRACTED',
    'STATUS_IMPORTING',
    'STATUS_COMPLETED',
    'STATUS_FAILED',
    'EXTRACTION_STATUSES',
    'PHASE_CONNECTION',
    'PHASE_EXTRACTION',
    'PHASE_DATABASE_SAVE',
    'PHASE_UNKNOWN',
    'ERROR_PHASES',
    'ALLOWED_TRANSITIONS',
    'is_legal_transition',
    'JobFamily',
    'Skill',
    'Language',
    'Role',
    'SubRole',
    'Certification',
    'EducationDegree',
    'SoftSkill',
    'EmployeeEducation',
    'EmployeeWorkExperience',
    'EmployeeSkill',
    'EmployeeSoftSkill',
    'EmployeeLanguage',
    'EmployeeCertification',
    'EmployeePublication',
    'EmployeeProject',
    'EmployeeAward',
    'EmployeeDomainKnowledge',
    'EmployeeRole',
    'EmployeeAdditionalInfo',
    'REPLACE_SET_MODELS',
    'SOURCE_CV',
    'SOURCE_MANUAL',
    'DOMAIN_INDUSTRY',
    'DOMAIN_CLIENT_SECTOR',
    'DOMAIN_BUSINESS_PROCESS',
    'DOMAIN_STANDARD',
    'DOMAIN_TYPES',
    'LLMUsageLog',
    'USAGE_SUCCESS',
    'USAGE_FAILURE',
]
