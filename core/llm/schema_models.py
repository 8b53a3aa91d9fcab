"""
JSON schema of the structured CV returned by the language model.

The schema is deliberately lenient on value ranges (proficiency, years):
out-of-range numbers are clamped during normalization rather than rejected.
It is strict on shape: a payload missing a required section is a SchemaError.
"""
import json
import logging
from typing import Any, Dict

from jsonschema import Draft202012Validator

from core.exceptions import SchemaError

logger = logging.getLogger(__name__)

_NULLABLE_STRING = {"type": ["string", "null"]}
_NULLABLE_INTEGER = {"type": ["integer", "null"]}
_NULLABLE_NUMBER = {"type": ["number", "null"]}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}

# {year?, month?, ongoing?} or free text such as "03/2019" / "Present"
_PARTIAL_DATE = {
    "anyOf": [
        {
            "type": "object",
            "properties": {
                "year": _NULLABLE_INTEGER,
                "month": _NULLABLE_INTEGER,
                "ongoing": {"type": ["boolean", "null"]},
            },
            "additionalProperties": False,
        },
        {"type": "string"},
        {"type": "null"},
    ]
}

CV_EXTRACTION_JSON_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["personal_info", "education", "work_experience", "skills"],
    "properties": {
        "personal_info": {
            "type": "object",
            "properties": {
                "full_name": _NULLABLE_STRING,
                "first_name": _NULLABLE_STRING,
                "last_name": _NULLABLE_STRING,
                "email": _NULLABLE_STRING,
                "phone": _NULLABLE_STRING,
                "current_position": _NULLABLE_STRING,
                "location": _NULLABLE_STRING,
                "date_of_birth": _NULLABLE_STRING,
                "nationality": _NULLABLE_STRING,
                "linkedin_url": _NULLABLE_STRING,
                "github_url": _NULLABLE_STRING,
                "portfolio_url": _NULLABLE_STRING,
                "summary": _NULLABLE_STRING,
                "hobbies": {"type": ["string", "array", "null"], "items": {"type": "string"}},
            },
        },
        "education": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "degree_id": _NULLABLE_INTEGER,
                    "degree_name": _NULLABLE_STRING,
                    "institution_name": _NULLABLE_STRING,
                    "field_of_study": _NULLABLE_STRING,
                    "start_date": _PARTIAL_DATE,
                    "end_date": _PARTIAL_DATE,
                    "grade": _NULLABLE_STRING,
                },
            },
        },
        "work_experience": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "company_name": _NULLABLE_STRING,
                    "job_title": _NULLABLE_STRING,
                    "company_location": _NULLABLE_STRING,
                    "start_date": _PARTIAL_DATE,
                    "end_date": _PARTIAL_DATE,
                    "is_current": {"type": ["boolean", "null"]},
                    "description": _NULLABLE_STRING,
                    "responsibilities": _STRING_LIST,
                    "achievements": _STRING_LIST,
                    "technologies": _STRING_LIST,
                },
            },
        },
        "skills": {
            "type": "object",
            "required": ["extracted_skills"],
            "properties": {
                "extracted_skills": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "skill_id": _NULLABLE_INTEGER,
                            "skill_name": _NULLABLE_STRING,
                            "proficiency_level": _NULLABLE_NUMBER,
                            "years_experience": _NULLABLE_NUMBER,
                            "last_used_year": _NULLABLE_INTEGER,
                        },
                    },
                },
                "not_found": _STRING_LIST,
            },
        },
        "soft_skills": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "soft_skill_id": _NULLABLE_INTEGER,
                    "name": _NULLABLE_STRING,
                    "evidence": _NULLABLE_STRING,
                },
            },
        },
        "languages": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "language_name": _NULLABLE_STRING,
                    "proficiency": _NULLABLE_STRING,
                    "cef_level": _NULLABLE_STRING,
                    "listening": _NULLABLE_STRING,
                    "reading": _NULLABLE_STRING,
                    "spoken_interaction": _NULLABLE_STRING,
                    "spoken_production": _NULLABLE_STRING,
                    "writing": _NULLABLE_STRING,
                    "is_native": {"type": ["boolean", "null"]},
                },
            },
        },
        "certifications": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "certification_id": _NULLABLE_INTEGER,
                    "certification_name": _NULLABLE_STRING,
                    "issuing_organization": _NULLABLE_STRING,
                    "issue_date": _PARTIAL_DATE,
                    "expiry_date": _PARTIAL_DATE,
                    "credential_id": _NULLABLE_STRING,
                    "credential_url": _NULLABLE_STRING,
                },
            },
        },
        "publications": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": _NULLABLE_STRING,
                    "publisher": _NULLABLE_STRING,
                    "publication_date": _PARTIAL_DATE,
                    "url": _NULLABLE_STRING,
                    "description": _NULLABLE_STRING,
                },
            },
        },
        "projects": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": _NULLABLE_STRING,
                    "role": _NULLABLE_STRING,
                    "description": _NULLABLE_STRING,
                    "start_date": _PARTIAL_DATE,
                    "end_date": _PARTIAL_DATE,
                    "url": _NULLABLE_STRING,
                    "technologies": _STRING_LIST,
                },
            },
        },
        "awards": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": _NULLABLE_STRING,
                    "issuer": _NULLABLE_STRING,
                    "award_date": _PARTIAL_DATE,
                    "description": _NULLABLE_STRING,
                },
            },
        },
        "domain_knowledge": {
            "type": "object",
            "properties": {
                "industry_domains": _STRING_LIST,
                "client_sectors": _STRING_LIST,
                "business_processes": _STRING_LIST,
                "standards_protocols": _STRING_LIST,
            },
        },
        "role": {
            "type": ["object", "null"],
            "properties": {
                "id_role": _NULLABLE_INTEGER,
                "id_sub_role": _NULLABLE_INTEGER,
                "role_name": _NULLABLE_STRING,
                "matched_sub_role": _NULLABLE_STRING,
                "seniority": _NULLABLE_STRING,
                "years_experience": _NULLABLE_NUMBER,
                "is_current": {"type": ["boolean", "null"]},
                "candidates": {"type": "array", "items": {"type": "object"}},
            },
        },
    },
}

# Wrapped form accepted by OpenAIService (name / strict / schema)
CV_EXTRACTION_SCHEMA = {
    "name": "cv_extraction",
    "strict": False,
    "schema": CV_EXTRACTION_JSON_SCHEMA,
}

_validator = Draft202012Validator(CV_EXTRACTION_JSON_SCHEMA)


def parse_json_content(content: str) -> Dict[str, Any]:
    """Parse the model's message body, tolerating a markdown code fence around it."""
    if content is None:
        raise SchemaError("Model returned an empty response")

    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Model response is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise SchemaError(f"Model response must be a JSON object, got {type(data).__name__}")
    return data


def validate_cv_payload(data: Dict[str, Any]) -> None:
    """Raise SchemaError describing the first few violations, if any."""
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.path))
    if not errors:
        return

    details = []
    for error in errors[:5]:
        location = "/".join(str(p) for p in error.path) or "<root>"
        details.append(f"{location}: {error.message}")
    logger.warning(f"CV payload failed schema validation ({len(errors)} errors)")
    raise SchemaError("CV payload does not match schema: " + "; ".join(details))
