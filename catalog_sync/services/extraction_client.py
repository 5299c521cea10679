"""
Extraction client.

Wraps the structured-extraction backend with a retry policy and turns its
raw JSON into a validated UniversityProfile:

- required scalar fields are backfilled from prior known data, then NO_INFO
- list fields default to empty lists
- programs get stable ids, a default duration and a classified degree level
"""

import logging
from typing import Any, Dict, Optional, Protocol, Union

from pydantic import ValidationError

from catalog_sync.core.config import Settings
from catalog_sync.errors import ExtractionBackendError, ExtractionError
from catalog_sync.prompts import build_parser_prompt
from catalog_sync.schemas.profile import (
    NO_INFO,
    REQUIRED_SCALAR_FIELDS,
    UniversityProfile,
    is_blank,
)
from catalog_sync.utils.retry import RetryExhausted, RetryPolicy, Sleeper, linear_backoff, with_retry

logger = logging.getLogger(__name__)

DEFAULT_PROGRAM_DURATION_YEARS = 4.0

# A failed call, or a response that does not fit the record shape, is retried.
RETRYABLE_ERRORS = (ExtractionBackendError, ValidationError)


class StructuredBackend(Protocol):
    async def extract_structured(self, prompt: str) -> Dict[str, Any]:
        ...


def normalize_profile(
    raw: Union[Dict[str, Any], UniversityProfile],
    prior: Optional[UniversityProfile] = None,
) -> UniversityProfile:
    """
    Validate a raw record and fill the fields downstream consumers rely on.

    Idempotent: normalizing an already normalized record with the same prior
    returns an equal record.
    """
    if isinstance(raw, UniversityProfile):
        profile = raw.model_copy(deep=True)
    else:
        profile = UniversityProfile.model_validate(raw)

    for field_name in REQUIRED_SCALAR_FIELDS:
        if not is_blank(getattr(profile, field_name)):
            continue
        prior_value = getattr(prior, field_name, None) if prior else None
        setattr(profile, field_name, prior_value if not is_blank(prior_value) else NO_INFO)

    if not profile.website_url and prior and prior.website_url:
        profile.website_url = prior.website_url

    for index, program in enumerate(profile.programs):
        if not program.id:
            program.id = f"prog-{index}"
        if not program.name:
            program.name = NO_INFO
        if program.duration_years is None:
            program.duration_years = DEFAULT_PROGRAM_DURATION_YEARS

    return profile


class ExtractionClient:
    """Per-chunk structured extraction with bounded retries."""

    def __init__(
        self,
        backend: StructuredBackend,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.backend = backend
        self.policy = policy or RetryPolicy(max_attempts=3, base_delay=2.0, backoff=linear_backoff)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, backend: StructuredBackend, settings: Settings, sleep: Optional[Sleeper] = None) -> "ExtractionClient":
        policy = RetryPolicy(
            max_attempts=settings.EXTRACTION_MAX_ATTEMPTS,
            base_delay=settings.EXTRACTION_RETRY_DELAY_SECONDS,
            backoff=linear_backoff,
        )
        return cls(backend, policy=policy, sleep=sleep)

    async def extract(
        self,
        chunk_text: str,
        source_url: str,
        prior: Optional[UniversityProfile] = None,
    ) -> UniversityProfile:
        """
        Extract a partial record from one chunk.

        Raises:
            ExtractionError: every attempt failed; wraps the last error.
        """
        prior_payload = prior.to_payload() if prior else None
        prompt = build_parser_prompt(chunk_text, source_url, prior_payload)

        async def attempt_extract(attempt: int) -> UniversityProfile:
            raw = await self.backend.extract_structured(prompt)
            if not isinstance(raw, dict):
                raise ExtractionBackendError(f"Expected a JSON object, got {type(raw).__name__}")
            return normalize_profile(raw, prior)

        try:
            profile = await with_retry(
                self.policy,
                attempt_extract,
                retry_on=RETRYABLE_ERRORS,
                sleep=self._sleep,
                label=f"extract {source_url}",
            )
        except RetryExhausted as exc:
            raise ExtractionError(
                f"Failed to extract profile after {exc.attempts} attempts: {exc.last_error}",
                source_url=source_url,
                last_error=exc.last_error,
            ) from exc.last_error

        logger.info(
            "Extracted profile chunk from %s: %d programs",
            source_url, len(profile.programs),
        )
        return profile
