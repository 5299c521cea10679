"""
University profile schemas.

Typed structured record produced by the extraction backend and persisted
as a versioned snapshot. Fields are tolerant: unexpected types coming back
from the backend are coerced or dropped instead of failing the record.

Two kinds of "empty" are distinguished:
- unset: the field is None / an empty list (the backend said nothing)
- sentinel: the field holds NO_INFO (explicitly unknown, rendered as such)
"""

import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Explicit "no information" marker for required fields that could not be extracted
NO_INFO = "Нет информации"

REQUIRED_SCALAR_FIELDS = ("name", "country", "city", "description")


class DegreeLevel(str, Enum):
    BACHELOR = "Bachelor"
    MASTER = "Master"
    PHD = "PhD"
    DIPLOMA = "Diploma"


def is_blank(value: Any) -> bool:
    """True for unset values and for the NO_INFO sentinel."""
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped == NO_INFO
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _coerce_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        parts = [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
        return ", ".join(parts) or None
    return None


_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value.replace("\u00a0", "").replace(" ", ""))
        if match:
            return float(match.group(0).replace(",", "."))
    return None


def _coerce_int(value: Any) -> Optional[int]:
    number = _coerce_float(value)
    return int(number) if number is not None else None


def _coerce_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _coerce_object(value: Any) -> Optional[dict]:
    if isinstance(value, dict):
        return value
    return None


# Keyword fragments per degree level, checked in order (most specific first)
DEGREE_KEYWORDS = [
    (DegreeLevel.PHD, ("phd", "ph.d", "doctor", "доктор", "аспирант", "докторант", "doktor")),
    (DegreeLevel.MASTER, ("master", "магистр", "msc", "mba", "m.sc", "магистратура")),
    (DegreeLevel.DIPLOMA, ("diploma", "диплом", "college", "колледж", "certificate", "сертификат")),
    (DegreeLevel.BACHELOR, ("bachelor", "бакалавр", "bsc", "b.sc", "undergraduate", "бакалавриат")),
]


def classify_degree_level(value: Any) -> DegreeLevel:
    """Map a free-form degree description onto DegreeLevel, defaulting to Bachelor."""
    if not isinstance(value, str):
        return DegreeLevel.BACHELOR
    normalized = value.strip().lower()
    for level, keywords in DEGREE_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return level
    return DegreeLevel.BACHELOR


class RecordModel(BaseModel):
    """Base for all record parts: ignore unknown keys from the backend."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)


class TuitionInfo(RecordModel):
    amount: Optional[float] = None
    currency: Optional[str] = None
    per_year: bool = True
    additional_info: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return _coerce_float(v)

    @field_validator("currency", "additional_info", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    @field_validator("per_year", mode="before")
    @classmethod
    def _per_year(cls, v):
        return v if isinstance(v, bool) else True


class TuitionGeneral(RecordModel):
    international_students: Optional[str] = None
    domestic_students: Optional[str] = None
    payment_options: Optional[str] = None
    financial_aid: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)


class Program(RecordModel):
    id: Optional[str] = None
    name: Optional[str] = None
    degree_level: DegreeLevel = Field(DegreeLevel.BACHELOR, validate_default=True)
    duration_years: Optional[float] = None
    language: Optional[str] = None
    description: Optional[str] = None
    tuition: Optional[TuitionInfo] = None
    admission_requirements: Optional[str] = None
    language_requirements: Optional[str] = None
    application_deadline: Optional[str] = None
    career_outcomes: Optional[str] = None

    @field_validator(
        "id",
        "name",
        "language",
        "description",
        "admission_requirements",
        "language_requirements",
        "application_deadline",
        "career_outcomes",
        mode="before",
    )
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    @field_validator("degree_level", mode="before")
    @classmethod
    def _degree(cls, v):
        return classify_degree_level(v)

    @field_validator("duration_years", mode="before")
    @classmethod
    def _duration(cls, v):
        return _coerce_float(v)

    @field_validator("tuition", mode="before")
    @classmethod
    def _tuition(cls, v):
        if isinstance(v, (int, float, str)) and not isinstance(v, bool):
            amount = _coerce_float(v)
            return {"amount": amount, "additional_info": _coerce_str(v)} if amount is not None else None
        return _coerce_object(v)

    def identity_key(self) -> Optional[str]:
        """Stable key used to de-duplicate programs across chunks; None for unnamed programs."""
        name = (self.name or "").strip().casefold()
        if name and name != NO_INFO.casefold():
            level = getattr(self.degree_level, "value", self.degree_level)
            return f"{name}|{level}"
        return None


class Scholarship(RecordModel):
    name: Optional[str] = None
    amount: Optional[str] = None
    eligibility: Optional[str] = None
    description: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    def identity_key(self) -> str:
        return (self.name or "").strip().casefold()


class Ranking(RecordModel):
    source: Optional[str] = None
    rank: Optional[int] = None
    year: Optional[int] = None
    category: Optional[str] = None

    @field_validator("source", "category", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    @field_validator("rank", "year", mode="before")
    @classmethod
    def _number(cls, v):
        return _coerce_int(v)

    def identity_key(self) -> str:
        return f"{(self.source or '').strip().casefold()}|{self.year}|{(self.category or '').strip().casefold()}"


class SocialMedia(RecordModel):
    website: Optional[str] = None
    facebook: Optional[str] = None
    twitter: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)


class Contacts(RecordModel):
    main_email: Optional[str] = None
    admissions_email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    social_media: Optional[SocialMedia] = None
    email: Optional[str] = None  # legacy alias of main_email

    @field_validator("main_email", "admissions_email", "phone", "address", "email", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    @field_validator("social_media", mode="before")
    @classmethod
    def _social(cls, v):
        return _coerce_object(v)


class Admissions(RecordModel):
    requirements: Optional[str] = None
    english_proficiency: Optional[str] = None
    test_requirements: Optional[str] = None
    documents_needed: Optional[str] = None
    application_process: Optional[str] = None
    intake_dates: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)


class Campus(RecordModel):
    location: Optional[str] = None
    facilities: Optional[str] = None
    accommodation: Optional[str] = None
    student_life: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)


class International(RecordModel):
    accepts_international: Optional[bool] = None
    international_percentage: Optional[float] = None
    visa_support: Optional[str] = None
    exchange_programs: Optional[str] = None
    languages_of_instruction: List[str] = Field(default_factory=list)

    @field_validator("accepts_international", mode="before")
    @classmethod
    def _accepts(cls, v):
        return v if isinstance(v, bool) else None

    @field_validator("international_percentage", mode="before")
    @classmethod
    def _percentage(cls, v):
        return _coerce_float(v)

    @field_validator("visa_support", "exchange_programs", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    @field_validator("languages_of_instruction", mode="before")
    @classmethod
    def _languages(cls, v):
        if isinstance(v, str):
            v = re.split(r"[,;/]", v)
        return [item.strip() for item in _coerce_list(v) if isinstance(item, str) and item.strip()]


class Other(RecordModel):
    accreditations: Optional[str] = None
    notable_alumni: Optional[str] = None
    research_focus: Optional[str] = None
    special_programs: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)


class ParseMetadata(RecordModel):
    parsed_at: str
    source_url: str
    completeness_score: int = Field(0, ge=0, le=100)
    missing_fields: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class UniversityProfile(RecordModel):
    """
    Full structured record for one university.

    Partial records (one per chunk) use the same type; after validation
    the required scalar fields are never None.
    """

    name: Optional[str] = None
    name_en: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    website_url: Optional[str] = None
    logo_url: Optional[str] = None
    description: Optional[str] = None
    mission: Optional[str] = None
    founded_year: Optional[int] = None
    student_count: Optional[int] = None
    faculty_count: Optional[int] = None

    programs: List[Program] = Field(default_factory=list)
    tuition_general: Optional[TuitionGeneral] = None
    scholarships: List[Scholarship] = Field(default_factory=list)
    admissions: Optional[Admissions] = None
    campus: Optional[Campus] = None
    rankings: List[Ranking] = Field(default_factory=list)
    contacts: Optional[Contacts] = None
    international: Optional[International] = None
    other: Optional[Other] = None

    metadata: Optional[ParseMetadata] = None

    @field_validator(
        "name", "name_en", "country", "city", "website_url", "logo_url", "description", "mission",
        mode="before",
    )
    @classmethod
    def _text(cls, v):
        return _coerce_str(v)

    @field_validator("founded_year", "student_count", "faculty_count", mode="before")
    @classmethod
    def _count(cls, v):
        return _coerce_int(v)

    @field_validator("programs", mode="before")
    @classmethod
    def _programs(cls, v):
        items = []
        for item in _coerce_list(v):
            if isinstance(item, str) and item.strip():
                items.append({"name": item})
            elif isinstance(item, dict):
                items.append(item)
        return items

    @field_validator("scholarships", mode="before")
    @classmethod
    def _scholarships(cls, v):
        items = []
        for item in _coerce_list(v):
            if isinstance(item, str) and item.strip():
                items.append({"name": item})
            elif isinstance(item, dict):
                items.append(item)
        return items

    @field_validator("rankings", mode="before")
    @classmethod
    def _rankings(cls, v):
        return [item for item in _coerce_list(v) if isinstance(item, dict)]

    @field_validator(
        "tuition_general", "admissions", "campus", "contacts", "international", "other",
        mode="before",
    )
    @classmethod
    def _sections(cls, v):
        return _coerce_object(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, v):
        # Only pipeline-written metadata is kept; anything the backend invents is dropped
        if isinstance(v, ParseMetadata):
            return v
        if isinstance(v, dict) and v.get("parsed_at") and v.get("source_url"):
            return v
        return None

    def to_payload(self) -> dict:
        """JSON-ready dict for snapshot storage."""
        return self.model_dump(mode="json")
