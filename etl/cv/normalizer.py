"""
CV payload normalization.

Turns the validated model payload into plain rows ready for the save
service: values clamped to their ranges, partial dates resolved to calendar
dates, company names canonicalized, duplicates collapsed. Nothing here
touches the database; catalog lookups happen in the resolver.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from database.models import (
    DOMAIN_INDUSTRY,
    DOMAIN_CLIENT_SECTOR,
    DOMAIN_BUSINESS_PROCESS,
    DOMAIN_STANDARD,
)

logger = logging.getLogger(__name__)

PROFICIENCY_MIN, PROFICIENCY_MAX = 0, 10
YEARS_MIN, YEARS_MAX = 0.0, 60.0

LEGAL_SUFFIXES = frozenset({
    'srl', 'spa', 'ltd', 'inc', 'llc', 'gmbh', 'sa', 'ag', 'nv', 'bv',
    'corporation', 'corp', 'limited', 'company', 'co',
})
CONNECTIVES = frozenset({'and', 'e', 'et'})

MIN_YEAR = 1900
MAX_YEAR = 2100

CEF_LEVELS = ('A1', 'A2', 'B1', 'B2', 'C1', 'C2')
PROFICIENCY_TO_CEF = {
    'native': 'C2',
    'mother tongue': 'C2',
    'bilingual': 'C2',
    'fluent': 'C1',
    'advanced': 'C1',
    'professional': 'B2',
    'upper intermediate': 'B2',
    'intermediate': 'B1',
    'basic': 'A2',
    'elementary': 'A2',
    'beginner': 'A1',
}
LANGUAGE_SKILLS = ('listening', 'reading', 'spoken_interaction', 'spoken_production', 'writing')

DOMAIN_KEYS = {
    'industry_domains': DOMAIN_INDUSTRY,
    'client_sectors': DOMAIN_CLIENT_SECTOR,
    'business_processes': DOMAIN_BUSINESS_PROCESS,
    'standards_protocols': DOMAIN_STANDARD,
}

SENIORITY_RANK = {'junior': 1, 'mid': 2, 'senior': 3}

_ONGOING_WORDS = frozenset({'present', 'current', 'ongoing', 'now', 'today', 'presente', 'oggi', 'in corso'})
_YEAR_RE = re.compile(r'\b(19|20)\d{2}\b')
_NUMERIC_MONTH_RE = re.compile(r'\b(0?[1-9]|1[0-2])\s*[/.-]\s*((?:19|20)\d{2})\b|\b((?:19|20)\d{2})\s*[/.-]\s*(0?[1-9]|1[0-2])\b')
_HOBBY_SPLIT_RE = re.compile(r'[,;\n]')


@dataclass
class PartialDate:
    year: Optional[int] = None
    month: Optional[int] = None
    ongoing: bool = False

    def to_date(self) -> Optional[date]:
        """Calendar date for storage: missing month means January, ongoing means no date."""
        if self.ongoing or self.year is None:
            return None
        month = self.month if self.month and 1 <= self.month <= 12 else 1
        return date(self.year, month, 1)


@dataclass
class NormalizedCV:
    employee_patch: Dict[str, str] = field(default_factory=dict)
    additional_info: List[Dict[str, str]] = field(default_factory=list)
    education: List[Dict[str, Any]] = field(default_factory=list)
    work_experience: List[Dict[str, Any]] = field(default_factory=list)
    skills: List[Dict[str, Any]] = field(default_factory=list)
    skills_without_id: int = 0
    soft_skills: List[Dict[str, Any]] = field(default_factory=list)
    languages: List[Dict[str, Any]] = field(default_factory=list)
    certifications: List[Dict[str, Any]] = field(default_factory=list)
    publications: List[Dict[str, Any]] = field(default_factory=list)
    projects: List[Dict[str, Any]] = field(default_factory=list)
    awards: List[Dict[str, Any]] = field(default_factory=list)
    domain_knowledge: List[Dict[str, str]] = field(default_factory=list)
    role: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------

def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


def clamp_proficiency(value: Any) -> Optional[int]:
    number = _to_number(value)
    if number is None:
        return None
    return int(min(max(round(number), PROFICIENCY_MIN), PROFICIENCY_MAX))


def clamp_years(value: Any) -> Optional[float]:
    number = _to_number(value)
    if number is None:
        return None
    return round(min(max(number, YEARS_MIN), YEARS_MAX), 1)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [s for s in (_clean(v) for v in value) if s]


def parse_partial_date(value: Any) -> Optional[PartialDate]:
    """Accept {year, month, ongoing} objects or free text ("03/2019", "March 2019", "Present")."""
    if value is None:
        return None

    if isinstance(value, dict):
        year = value.get('year')
        month = value.get('month')
        ongoing = bool(value.get('ongoing'))
        year = int(year) if isinstance(year, (int, float)) and not isinstance(year, bool) else None
        month = int(month) if isinstance(month, (int, float)) and not isinstance(month, bool) else None
        if month is not None and not 1 <= month <= 12:
            month = None
        if year is not None and not MIN_YEAR <= year <= MAX_YEAR:
            year = None
        if year is None and not ongoing:
            return None
        return PartialDate(year=year, month=month, ongoing=ongoing)

    text = str(value).strip()
    if not text:
        return None
    if text.lower() in _ONGOING_WORDS:
        return PartialDate(ongoing=True)

    numeric = _NUMERIC_MONTH_RE.search(text)
    if numeric:
        if numeric.group(1):
            return PartialDate(year=int(numeric.group(2)), month=int(numeric.group(1)))
        return PartialDate(year=int(numeric.group(3)), month=int(numeric.group(4)))

    year_match = _YEAR_RE.search(text)
    if not year_match:
        return None
    year = int(year_match.group(0))

    # Parse twice with different default months: if they agree, the text named a month
    try:
        first = date_parser.parse(text, default=datetime(year, 1, 1), fuzzy=True)
        second = date_parser.parse(text, default=datetime(year, 2, 1), fuzzy=True)
    except (ValueError, OverflowError):
        return PartialDate(year=year)
    month = first.month if first.month == second.month else None
    return PartialDate(year=year, month=month)


def _storage_date(value: Any) -> Optional[date]:
    parsed = parse_partial_date(value)
    return parsed.to_date() if parsed else None


def _is_ongoing(value: Any) -> bool:
    parsed = parse_partial_date(value)
    return bool(parsed and parsed.ongoing)


def normalize_company_name(name: Optional[str]) -> Optional[str]:
    """Canonical company form used to detect the same employer written differently.

    "Acme S.p.A." and "ACME spa" both become "acme"; "Johnson & Johnson Inc."
    becomes "johnson johnson"; "Acme S.p.A. Italia" becomes "acme italia".
    """
    if not name:
        return None
    text = re.sub(r'[^\w\s]', ' ', name.lower().replace('.', ''))
    words = text.split()
    tokens = [t for t in words if t not in CONNECTIVES and t not in LEGAL_SUFFIXES]
    if not tokens:
        return ' '.join(words) or None
    return ' '.join(tokens)


def _cef(value: Any) -> Optional[str]:
    text = _clean(value)
    if not text:
        return None
    upper = text.upper()
    if upper in CEF_LEVELS:
        return upper
    return PROFICIENCY_TO_CEF.get(text.lower())


def _seniority(value: Any) -> Optional[str]:
    text = _clean(value)
    if not text:
        return None
    lowered = text.lower()
    for key in SENIORITY_RANK:
        if key in lowered:
            return key.capitalize()
    return text


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class CVNormalizer:
    """Stateless payload -> NormalizedCV conversion."""

    def normalize(self, payload: Dict[str, Any]) -> NormalizedCV:
        cv = NormalizedCV()
        personal = payload.get('personal_info') or {}
        cv.employee_patch = self._employee_patch(personal)
        cv.additional_info = self._additional_info(personal)
        cv.education = self._education(payload.get('education'))
        cv.work_experience = self._work_experience(payload.get('work_experience'))
        cv.skills, cv.skills_without_id = self._skills(payload.get('skills'))
        cv.soft_skills = self._soft_skills(payload.get('soft_skills'))
        cv.languages = self._languages(payload.get('languages'))
        cv.certifications = self._certifications(payload.get('certifications'))
        cv.publications = self._simple_items(payload.get('publications'), 'title', {
            'publisher': 'publisher', 'url': 'url', 'description': 'description',
        }, dates={'publication_date': 'publication_date'})
        cv.projects = self._projects(payload.get('projects'))
        cv.awards = self._simple_items(payload.get('awards'), 'title', {
            'issuer': 'issuer', 'description': 'description',
        }, dates={'award_date': 'award_date'})
        cv.domain_knowledge = self._domain_knowledge(payload.get('domain_knowledge'))
        cv.role = self._role(payload.get('role'))

        logger.debug(
            f"Normalized CV: {len(cv.education)} education, {len(cv.work_experience)} work, "
            f"{len(cv.skills)} skills ({cv.skills_without_id} without id)"
        )
        return cv

    @staticmethod
    def _items(value: Any) -> List[Dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    def _employee_patch(self, personal: Dict[str, Any]) -> Dict[str, str]:
        first_name = _clean(personal.get('first_name'))
        last_name = _clean(personal.get('last_name'))
        full_name = _clean(personal.get('full_name'))
        if full_name and not (first_name and last_name):
            parts = full_name.split()
            if not first_name:
                first_name = parts[0]
            if not last_name and len(parts) > 1:
                last_name = ' '.join(parts[1:])

        email = _clean(personal.get('email'))
        patch = {
            'first_name': first_name,
            'last_name': last_name,
            'email': email.lower() if email else None,
            'phone': _clean(personal.get('phone')),
            'position': _clean(personal.get('current_position')),
        }
        return {k: v for k, v in patch.items() if v}

    def _additional_info(self, personal: Dict[str, Any]) -> List[Dict[str, str]]:
        rows = []
        for key in ('date_of_birth', 'nationality', 'location', 'linkedin_url',
                    'github_url', 'portfolio_url', 'summary'):
            value = _clean(personal.get(key))
            if value:
                rows.append({'info_type': key, 'info_value': value})

        hobbies = personal.get('hobbies')
        if isinstance(hobbies, list):
            candidates = hobbies
        elif isinstance(hobbies, str):
            candidates = _HOBBY_SPLIT_RE.split(hobbies)
        else:
            candidates = []
        seen = set()
        for hobby in candidates:
            value = _clean(hobby)
            if value and value.lower() not in seen:
                seen.add(value.lower())
                rows.append({'info_type': 'hobby', 'info_value': value})
        return rows

    def _education(self, value: Any) -> List[Dict[str, Any]]:
        rows = []
        for item in self._items(value):
            degree = _clean(item.get('degree_name'))
            institution = _clean(item.get('institution_name'))
            if not degree and not institution:
                continue
            ongoing = _is_ongoing(item.get('end_date'))
            rows.append({
                'degree_id': item.get('degree_id'),
                'degree_name': degree or 'Unknown',
                'institution_name': institution or 'Unknown',
                'field_of_study': _clean(item.get('field_of_study')),
                'start_date': _storage_date(item.get('start_date')),
                'end_date': None if ongoing else _storage_date(item.get('end_date')),
                'is_current': ongoing,
                'grade': _clean(item.get('grade')),
            })
        return rows

    def _work_experience(self, value: Any) -> List[Dict[str, Any]]:
        merged: Dict[Tuple, Dict[str, Any]] = {}
        for item in self._items(value):
            company = _clean(item.get('company_name'))
            title = _clean(item.get('job_title'))
            if not company and not title:
                continue

            is_current = bool(item.get('is_current')) or _is_ongoing(item.get('end_date'))
            row = {
                'company_name': company or 'Unknown',
                'company_normalized': normalize_company_name(company),
                'company_location': _clean(item.get('company_location')),
                'job_title': title or 'Unknown',
                'start_date': _storage_date(item.get('start_date')),
                'end_date': None if is_current else _storage_date(item.get('end_date')),
                'is_current': is_current,
                'description': _clean(item.get('description')),
                'responsibilities': _string_list(item.get('responsibilities')),
                'achievements': _string_list(item.get('achievements')),
                'technologies': _string_list(item.get('technologies')),
            }

            key = (row['company_normalized'] or row['job_title'].lower(), row['start_date'])
            existing = merged.get(key)
            if existing is None:
                merged[key] = row
                continue
            for column, new_value in row.items():
                if existing.get(column) in (None, [], '') and new_value not in (None, [], ''):
                    existing[column] = new_value
        return list(merged.values())

    def _skills(self, value: Any) -> Tuple[List[Dict[str, Any]], int]:
        section = value if isinstance(value, dict) else {}
        by_id: Dict[int, Dict[str, Any]] = {}
        without_id = 0
        for item in self._items(section.get('extracted_skills')):
            skill_id = item.get('skill_id')
            if not isinstance(skill_id, int) or isinstance(skill_id, bool):
                without_id += 1
                continue

            last_used_year = item.get('last_used_year')
            row = {
                'skill_id': skill_id,
                'skill_name': _clean(item.get('skill_name')),
                'proficiency_level': clamp_proficiency(item.get('proficiency_level')),
                'years_experience': clamp_years(item.get('years_experience')),
                'last_used_date': date(last_used_year, 1, 1)
                if isinstance(last_used_year, int) and MIN_YEAR <= last_used_year <= MAX_YEAR else None,
            }
            existing = by_id.get(skill_id)
            if existing is None:
                by_id[skill_id] = row
            else:
                for column, new_value in row.items():
                    if existing.get(column) is None and new_value is not None:
                        existing[column] = new_value
        return list(by_id.values()), without_id

    def _soft_skills(self, value: Any) -> List[Dict[str, Any]]:
        rows = []
        seen = set()
        for item in self._items(value):
            soft_skill_id = item.get('soft_skill_id')
            name = _clean(item.get('name'))
            key = soft_skill_id if isinstance(soft_skill_id, int) else (name or '').lower()
            if not key or key in seen:
                continue
            seen.add(key)
            rows.append({
                'soft_skill_id': soft_skill_id if isinstance(soft_skill_id, int) else None,
                'name': name,
                'evidence': _clean(item.get('evidence')),
            })
        return rows

    def _languages(self, value: Any) -> List[Dict[str, Any]]:
        rows = []
        seen = set()
        for item in self._items(value):
            name = _clean(item.get('language_name') or item.get('language'))
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())

            proficiency = _clean(item.get('proficiency'))
            is_native = bool(item.get('is_native')) or (
                proficiency is not None and proficiency.lower() in ('native', 'mother tongue', 'bilingual')
            )
            overall = _cef(item.get('cef_level')) or _cef(proficiency)
            if is_native and overall is None:
                overall = 'C2'

            levels = {}
            for skill in LANGUAGE_SKILLS:
                levels[f'{skill}_level'] = _cef(item.get(skill)) or overall

            rows.append({'language_name': name, 'levels': levels, 'is_native': is_native})
        return rows

    def _certifications(self, value: Any) -> List[Dict[str, Any]]:
        rows = []
        for item in self._items(value):
            name = _clean(item.get('certification_name'))
            if not name:
                continue
            rows.append({
                'certification_id': item.get('certification_id'),
                'certification_name': name,
                'issuing_organization': _clean(item.get('issuing_organization')),
                'issue_date': _storage_date(item.get('issue_date')),
                'expiry_date': _storage_date(item.get('expiry_date')),
                'credential_id': _clean(item.get('credential_id')),
                'credential_url': _clean(item.get('credential_url')),
            })
        return rows

    def _projects(self, value: Any) -> List[Dict[str, Any]]:
        rows = []
        for item in self._items(value):
            name = _clean(item.get('name'))
            if not name:
                continue
            ongoing = _is_ongoing(item.get('end_date'))
            rows.append({
                'name': name,
                'role': _clean(item.get('role')),
                'description': _clean(item.get('description')),
                'start_date': _storage_date(item.get('start_date')),
                'end_date': None if ongoing else _storage_date(item.get('end_date')),
                'url': _clean(item.get('url')),
                'technologies': _string_list(item.get('technologies')),
            })
        return rows

    def _simple_items(
        self,
        value: Any,
        required: str,
        text_fields: Dict[str, str],
        dates: Dict[str, str],
    ) -> List[Dict[str, Any]]:
        rows = []
        for item in self._items(value):
            head = _clean(item.get(required))
            if not head:
                continue
            row = {required: head}
            for column, source in text_fields.items():
                row[column] = _clean(item.get(source))
            for column, source in dates.items():
                row[column] = _storage_date(item.get(source))
            rows.append(row)
        return rows

    def _domain_knowledge(self, value: Any) -> List[Dict[str, str]]:
        section = value if isinstance(value, dict) else {}
        rows = []
        for key, domain_type in DOMAIN_KEYS.items():
            seen = set()
            for entry in _string_list(section.get(key)):
                if entry.lower() in seen:
                    continue
                seen.add(entry.lower())
                rows.append({'domain_type': domain_type, 'domain_value': entry})
        return rows

    def _role(self, value: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(value, dict):
            return None

        candidates = self._items(value.get('candidates'))
        chosen = self._pick_current_role(candidates) if candidates else value
        if chosen is not value:
            # Top-level fields fill what the chosen candidate leaves out
            chosen = {**{k: v for k, v in value.items() if k != 'candidates'},
                      **{k: v for k, v in chosen.items() if v is not None}}

        role = {
            'role_id': chosen.get('id_role') if isinstance(chosen.get('id_role'), int) else None,
            'sub_role_id': chosen.get('id_sub_role') if isinstance(chosen.get('id_sub_role'), int) else None,
            'role_name': _clean(chosen.get('role_name')),
            'sub_role_name': _clean(chosen.get('matched_sub_role')),
            'seniority': _seniority(chosen.get('seniority')),
            'years_experience': clamp_years(chosen.get('years_experience')),
        }
        if not any(role[k] for k in ('role_id', 'sub_role_id', 'role_name', 'sub_role_name')):
            return None
        return role

    @staticmethod
    def _pick_current_role(candidates: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Current roles first, then by seniority (Senior > Mid > Junior), then years."""
        def rank(candidate):
            seniority = (_seniority(candidate.get('seniority')) or '').lower()
            years = _to_number(candidate.get('years_experience')) or 0.0
            return (
                1 if candidate.get('is_current') else 0,
                SENIORITY_RANK.get(seniority, 0),
                years,
            )
        return max(candidates, key=rank)
