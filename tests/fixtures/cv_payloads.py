"""
Structured CV payloads as the language model would return them.

FIXTURE_SKILL_IDS mirrors the catalog rows seeded by tests.unit.db_helpers.
"""
import copy

FIXTURE_SKILL_IDS = [276, 821, 1365, 278, 284, 294]

VALID_CV_PAYLOAD = {
    "personal_info": {
        "full_name": "Giulia Bianchi",
        "email": "Giulia.Bianchi@example.com",
        "phone": "+39 333 1234567",
        "current_position": "Senior Backend Engineer",
        "date_of_birth": "1988-04-12",
        "nationality": "Italian",
        "linkedin_url": "https://linkedin.com/in/gbianchi",
        "hobbies": "climbing, chess; photography",
    },
    "education": [
        {
            "degree_name": "Master of Science",
            "institution_name": "Politecnico di Milano",
            "field_of_study": "Computer Engineering",
            "start_date": {"year": 2010, "month": 9, "ongoing": False},
            "end_date": {"year": 2012, "month": 7, "ongoing": False},
            "grade": "110/110",
        },
        {
            "degree_name": "Bachelor of Science",
            "institution_name": "Politecnico di Milano",
            "field_of_study": "Computer Engineering",
            "start_date": {"year": 2007, "month": None, "ongoing": False},
            "end_date": {"year": 2010, "month": None, "ongoing": False},
        },
        {
            "degree_name": "High School Diploma",
            "institution_name": "Liceo Scientifico Volta",
            "start_date": {"year": 2002},
            "end_date": {"year": 2007},
        },
    ],
    "work_experience": [
        {
            "company_name": "Acme S.p.A.",
            "job_title": "Senior Backend Engineer",
            "company_location": "Milan",
            "start_date": {"year": 2018, "month": 3, "ongoing": False},
            "end_date": {"year": None, "month": None, "ongoing": True},
            "is_current": True,
            "description": "Payments platform",
            "responsibilities": ["Own the settlement service"],
            "achievements": ["Cut batch time by 40%"],
            "technologies": ["Python", "PostgreSQL"],
        },
        {
            "company_name": "Globex SRL",
            "job_title": "Software Engineer",
            "start_date": {"year": 2012, "month": 10, "ongoing": False},
            "end_date": {"year": 2018, "month": 2, "ongoing": False},
            "is_current": False,
            "responsibilities": [],
            "achievements": [],
            "technologies": ["Java"],
        },
    ],
    "skills": {
        "extracted_skills": [
            {"skill_id": 276, "skill_name": "Python", "proficiency_level": 9, "years_experience": 10, "last_used_year": 2024},
            {"skill_id": 821, "skill_name": "PostgreSQL", "proficiency_level": 8, "years_experience": 8},
            {"skill_id": 1365, "skill_name": "Kubernetes", "proficiency_level": 6, "years_experience": 3},
            {"skill_id": 278, "skill_name": "Java", "proficiency_level": 7, "years_experience": 6},
            {"skill_id": 284, "skill_name": "Docker", "proficiency_level": 8, "years_experience": 5},
            {"skill_id": 294, "skill_name": "Git", "proficiency_level": 9, "years_experience": 12},
        ],
        "not_found": ["Internal DSL"],
    },
    "soft_skills": [
        {"soft_skill_id": 1, "name": "Leadership", "evidence": "Led a team of 5"},
    ],
    "languages": [
        {"language_name": "Italian", "proficiency": "Native", "is_native": True},
        {"language_name": "English", "proficiency": "Fluent", "cef_level": None},
    ],
    "certifications": [
        {"certification_name": "AWS Certified Developer", "issuing_organization": "Amazon",
         "issue_date": {"year": 2021, "month": 5}},
    ],
    "publications": [],
    "projects": [
        {"name": "Open ledger", "role": "Maintainer", "technologies": ["Python"]},
    ],
    "awards": [],
    "domain_knowledge": {
        "industry_domains": ["Fintech", "Banking"],
        "client_sectors": ["Retail"],
        "business_processes": ["Payments"],
        "standards_protocols": ["PSD2", "ISO 20022"],
    },
    "role": {
        "id_role": 3,
        "id_sub_role": 31,
        "seniority": "Senior",
        "years_experience": 12,
        "is_current": True,
    },
}


def make_cv_payload(**overrides):
    """Deep copy of VALID_CV_PAYLOAD with top-level sections replaced."""
    payload = copy.deepcopy(VALID_CV_PAYLOAD)
    payload.update(copy.deepcopy(overrides))
    return payload


def payload_without(key):
    payload = copy.deepcopy(VALID_CV_PAYLOAD)
    payload.pop(key, None)
    return payload
