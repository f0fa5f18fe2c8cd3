from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain_verifier.core.models import Domain, VerificationAttempt


class RegisterDomainRequest(BaseModel):
    hostname: str = Field(..., min_length=3, max_length=255)
    site_id: Optional[UUID] = None
    provider: str = Field(default="vercel")


class DomainResponse(BaseModel):
    domain_id: UUID
    hostname: str
    site_id: Optional[UUID]
    provider: str
    status: str
    verified_at: Optional[datetime]

    @classmethod
    def from_domain(cls, domain: Domain) -> "DomainResponse":
        return cls(
            domain_id=domain.domain_id,
            hostname=domain.hostname,
            site_id=domain.site_id,
            provider=domain.provider,
            status=domain.status.value,
            verified_at=domain.verified_at,
        )


class StartVerificationRequest(BaseModel):
    """Optional per-attempt overrides of the default backoff policy."""
    max_attempts: Optional[int] = Field(default=None, gt=0)
    initial_delay_seconds: Optional[float] = Field(default=None, ge=0)


class AttemptResponse(BaseModel):
    attempt_id: UUID
    domain_id: UUID
    attempt: int
    max_attempts: int
    next_retry_at: Optional[datetime]
    status: str
    error: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_attempt(cls, attempt: VerificationAttempt) -> "AttemptResponse":
        return cls(
            attempt_id=attempt.attempt_id,
            domain_id=attempt.domain_id,
            attempt=attempt.attempt,
            max_attempts=attempt.max_attempts,
            next_retry_at=attempt.next_retry_at if attempt.is_pending() else None,
            status=attempt.status.value,
            error=attempt.error,
            created_at=attempt.created_at,
            updated_at=attempt.updated_at,
        )


class VerificationStatusResponse(BaseModel):
    status: str
    attempt: Optional[AttemptResponse] = None
    next_retry_at: Optional[datetime] = None
    error: Optional[str] = None


class SweepResponse(BaseModel):
    processed: int
    verified: int
    failed: int
    retried: int
    errors: int
