import pytest

from catalog_sync.errors import ExtractionError
from catalog_sync.prompts import build_parser_prompt
from catalog_sync.schemas.profile import NO_INFO, DegreeLevel, UniversityProfile, classify_degree_level
from catalog_sync.services.extraction_client import ExtractionClient, normalize_profile
from catalog_sync.utils.retry import RetryPolicy
from tests.fakes import FakeBackend, RecordingSleeper, backend_failure, full_profile

pytestmark = pytest.mark.unit

URL = "https://university.example.edu"


def _client(backend, sleeper=None):
    return ExtractionClient(backend, policy=RetryPolicy(max_attempts=3, base_delay=2.0), sleep=sleeper or RecordingSleeper())


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Bachelor of Science", DegreeLevel.BACHELOR),
        ("Бакалавриат", DegreeLevel.BACHELOR),
        ("Магистратура", DegreeLevel.MASTER),
        ("MSc in Physics", DegreeLevel.MASTER),
        ("PhD", DegreeLevel.PHD),
        ("Докторантура", DegreeLevel.PHD),
        ("аспирантура", DegreeLevel.PHD),
        ("Diploma", DegreeLevel.DIPLOMA),
        ("something else", DegreeLevel.BACHELOR),
        (None, DegreeLevel.BACHELOR),
    ],
)
def test_classify_degree_level(raw, expected):
    assert classify_degree_level(raw) == expected


def test_normalize_fills_required_fields_with_sentinel():
    profile = normalize_profile({"name": "  ", "programs": None, "rankings": "n/a"})

    assert profile.name == NO_INFO
    assert profile.country == NO_INFO
    assert profile.city == NO_INFO
    assert profile.description == NO_INFO
    assert profile.programs == []
    assert profile.rankings == []
    assert profile.scholarships == []


def test_normalize_backfills_from_prior():
    prior = UniversityProfile(name="KazNU", country="Kazakhstan", city=NO_INFO, website_url="https://kaznu.kz")

    profile = normalize_profile({"description": "Research university"}, prior)

    assert profile.name == "KazNU"
    assert profile.country == "Kazakhstan"
    assert profile.city == NO_INFO
    assert profile.description == "Research university"
    assert profile.website_url == "https://kaznu.kz"


def test_normalize_programs_and_tolerant_types():
    profile = normalize_profile(
        {
            "name": "KazNU",
            "founded_year": "1934 год",
            "student_count": "25 000",
            "programs": [
                {"name": "Physics", "degree_level": "магистр", "duration_years": "2 года"},
                {"name": "History"},
                "Law",
                42,
            ],
            "international": {"languages_of_instruction": "русский, казахский; English"},
            "unknown_field": {"ignored": True},
        }
    )

    assert profile.founded_year == 1934
    assert profile.student_count == 25000
    assert [p.name for p in profile.programs] == ["Physics", "History", "Law"]
    assert [p.id for p in profile.programs] == ["prog-0", "prog-1", "prog-2"]
    assert profile.programs[0].degree_level == "Master"
    assert profile.programs[0].duration_years == 2.0
    assert profile.programs[1].degree_level == "Bachelor"
    assert profile.programs[1].duration_years == 4.0
    assert profile.international.languages_of_instruction == ["русский", "казахский", "English"]


def test_normalize_is_idempotent():
    prior = UniversityProfile(name="KazNU")
    once = normalize_profile(full_profile(name=None), prior)
    twice = normalize_profile(once, prior)

    assert once.to_payload() == twice.to_payload()


def test_prompt_embeds_content_url_and_prior():
    prompt = build_parser_prompt("Page text", URL, {"name": "KazNU", "metadata": {"x": 1}})

    assert "SOURCE URL: https://university.example.edu" in prompt
    assert "Page text" in prompt
    assert '"name": "KazNU"' in prompt
    assert '"x"' not in prompt
    assert prompt.rstrip().endswith("Return ONLY valid JSON based on the content above:")


@pytest.mark.asyncio
async def test_extract_returns_normalized_profile():
    backend = FakeBackend(responses=[full_profile()])

    profile = await _client(backend).extract("text", URL)

    assert profile.name == "Test University"
    assert profile.programs[0].id == "prog-0"
    assert backend.calls == 1


@pytest.mark.asyncio
async def test_extract_retries_then_succeeds():
    sleeper = RecordingSleeper()
    backend = FakeBackend(responses=[backend_failure(), backend_failure(), full_profile()])

    profile = await _client(backend, sleeper).extract("text", URL)

    assert profile.city == "Almaty"
    assert backend.calls == 3
    assert sleeper.calls == [2.0, 4.0]


@pytest.mark.asyncio
async def test_unparsable_shape_is_retried():
    backend = FakeBackend(responses=[["not", "an", "object"], full_profile()])

    profile = await _client(backend).extract("text", URL)

    assert backend.calls == 2
    assert profile.name == "Test University"


@pytest.mark.asyncio
async def test_extract_raises_after_retry_budget():
    backend = FakeBackend(responses=[backend_failure("a"), backend_failure("b"), backend_failure("c")])

    with pytest.raises(ExtractionError) as exc_info:
        await _client(backend).extract("text", URL)

    assert backend.calls == 3
    assert exc_info.value.source_url == URL
    assert str(exc_info.value.last_error) == "c"
