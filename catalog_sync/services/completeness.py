"""
Completeness scoring for university profiles.

Pure functions over the record: a weighted checklist of required (2),
important (1.5) and optional (1) fields.
"""

import math
from typing import Any, Callable, List, NamedTuple

from catalog_sync.schemas.profile import NO_INFO, UniversityProfile

REQUIRED_WEIGHT = 2.0
IMPORTANT_WEIGHT = 1.5
OPTIONAL_WEIGHT = 1.0


class WeightedField(NamedTuple):
    name: str
    weight: float
    getter: Callable[[UniversityProfile], Any]


def _section(profile: UniversityProfile, section: str, field: str) -> Any:
    value = getattr(profile, section)
    return getattr(value, field) if value is not None else None


def _email(profile: UniversityProfile) -> Any:
    contacts = profile.contacts
    if contacts is None:
        return None
    if is_field_filled(contacts.main_email):
        return contacts.main_email
    return contacts.email


FIELD_WEIGHTS: List[WeightedField] = [
    # Required
    WeightedField("name", REQUIRED_WEIGHT, lambda p: p.name),
    WeightedField("country", REQUIRED_WEIGHT, lambda p: p.country),
    WeightedField("city", REQUIRED_WEIGHT, lambda p: p.city),
    WeightedField("description", REQUIRED_WEIGHT, lambda p: p.description),
    # Important
    WeightedField("programs", IMPORTANT_WEIGHT, lambda p: p.programs),
    WeightedField("contacts.email", IMPORTANT_WEIGHT, _email),
    WeightedField("contacts.phone", IMPORTANT_WEIGHT, lambda p: _section(p, "contacts", "phone")),
    WeightedField("admissions.requirements", IMPORTANT_WEIGHT, lambda p: _section(p, "admissions", "requirements")),
    # Optional
    WeightedField("name_en", OPTIONAL_WEIGHT, lambda p: p.name_en),
    WeightedField("mission", OPTIONAL_WEIGHT, lambda p: p.mission),
    WeightedField("founded_year", OPTIONAL_WEIGHT, lambda p: p.founded_year),
    WeightedField("student_count", OPTIONAL_WEIGHT, lambda p: p.student_count),
    WeightedField("contacts.address", OPTIONAL_WEIGHT, lambda p: _section(p, "contacts", "address")),
    WeightedField(
        "tuition_general.international_students",
        OPTIONAL_WEIGHT,
        lambda p: _section(p, "tuition_general", "international_students"),
    ),
    WeightedField("scholarships", OPTIONAL_WEIGHT, lambda p: p.scholarships),
    WeightedField("rankings", OPTIONAL_WEIGHT, lambda p: p.rankings),
    WeightedField("campus.facilities", OPTIONAL_WEIGHT, lambda p: _section(p, "campus", "facilities")),
    WeightedField(
        "international.languages_of_instruction",
        OPTIONAL_WEIGHT,
        lambda p: _section(p, "international", "languages_of_instruction"),
    ),
]


def is_field_filled(value: Any) -> bool:
    """Not null, not empty, not zero, not the NO_INFO sentinel."""
    if value is None:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return bool(stripped) and stripped != NO_INFO
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def score_profile(profile: UniversityProfile) -> int:
    """Weighted share of filled fields, rounded half up to 0..100."""
    total = sum(field.weight for field in FIELD_WEIGHTS)
    filled = sum(field.weight for field in FIELD_WEIGHTS if is_field_filled(field.getter(profile)))
    return int(math.floor(100 * filled / total + 0.5))


def missing_fields(profile: UniversityProfile) -> List[str]:
    return [field.name for field in FIELD_WEIGHTS if not is_field_filled(field.getter(profile))]
