"""Core domain models (business logic)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from domain_verifier.core.event_details import EventDetails, GenericDetails


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DomainStatus(Enum):
    """Routing status of a tenant hostname."""

    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"


class AttemptStatus(Enum):
    """Verification attempt state machine."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = frozenset({
    AttemptStatus.VERIFIED,
    AttemptStatus.FAILED,
    AttemptStatus.TIMEOUT,
})


class EventType(Enum):
    VERIFICATION_STARTED = "verification_started"
    VERIFICATION_SUCCESS = "verification_success"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_TIMEOUT = "verification_timeout"
    DNS_ERROR = "dns_error"
    AUTHORITY_ERROR = "authority_error"
    ENVIRONMENT_ERROR = "environment_error"


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


FAILURE_SEVERITIES = frozenset({Severity.WARNING, Severity.ERROR, Severity.CRITICAL})


# ============================================
# DOMAIN
# ============================================

@dataclass
class Domain:
    """Hostname a tenant wants served by the platform."""

    domain_id: UUID
    hostname: str
    site_id: Optional[UUID] = None
    provider: str = "vercel"

    status: DomainStatus = DomainStatus.PENDING
    verified_at: Optional[datetime] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def activate(self, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        self.status = DomainStatus.ACTIVE
        self.verified_at = now
        self.updated_at = now


# ============================================
# VERIFICATION ATTEMPT
# ============================================

@dataclass
class VerificationAttempt:
    """
    One verification campaign for a domain, spanning multiple checks.

    Transitions only move forward: a terminal attempt is never reopened,
    a retry after timeout creates a new attempt record.
    """

    attempt_id: UUID
    domain_id: UUID

    attempt: int = 1
    max_attempts: int = 10
    next_retry_at: datetime = field(default_factory=utcnow)

    status: AttemptStatus = AttemptStatus.PENDING
    error: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # Optimistic concurrency
    version: int = 0

    # -------------------------
    # STATE TRANSITIONS
    # -------------------------

    def is_pending(self) -> bool:
        return self.status == AttemptStatus.PENDING

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_due(self, now: datetime) -> bool:
        return self.is_pending() and now >= self.next_retry_at

    def has_budget(self) -> bool:
        """True while another check can still be scheduled."""
        return self.attempt < self.max_attempts

    def schedule_retry(self, next_retry_at: datetime, error: Optional[str] = None,
                       now: Optional[datetime] = None) -> None:
        """PENDING -> PENDING with the counter bumped."""
        self._require_pending("retry")
        if not self.has_budget():
            raise ValueError(
                f"Attempt budget exhausted ({self.attempt}/{self.max_attempts})"
            )

        self.attempt += 1
        self.next_retry_at = next_retry_at
        self.error = error
        self.updated_at = now or utcnow()
        self.version += 1

    def mark_verified(self, now: Optional[datetime] = None) -> None:
        self._finish(AttemptStatus.VERIFIED, None, now)

    def mark_failed(self, error: str, now: Optional[datetime] = None) -> None:
        self._finish(AttemptStatus.FAILED, error, now)

    def mark_timeout(self, error: str, now: Optional[datetime] = None) -> None:
        self._finish(AttemptStatus.TIMEOUT, error, now)

    def _finish(self, status: AttemptStatus, error: Optional[str],
                now: Optional[datetime]) -> None:
        self._require_pending(status.value)
        self.status = status
        self.error = error
        self.updated_at = now or utcnow()
        self.version += 1

    def _require_pending(self, action: str) -> None:
        if self.status != AttemptStatus.PENDING:
            raise ValueError(f"Cannot {action} from {self.status.value} state")


# ============================================
# TELEMETRY
# ============================================

@dataclass
class TelemetryEvent:
    """
    Immutable fact about verification.

    Only the resolution fields change, and only once.
    """

    event_id: UUID
    domain_id: UUID
    event_type: EventType
    severity: Severity
    message: str
    details: EventDetails = field(default_factory=GenericDetails)
    timestamp: datetime = field(default_factory=utcnow)

    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @classmethod
    def new(cls, domain_id: UUID, event_type: EventType, severity: Severity,
            message: str, details: Optional[EventDetails] = None,
            now: Optional[datetime] = None) -> "TelemetryEvent":
        return cls(
            event_id=uuid4(),
            domain_id=domain_id,
            event_type=event_type,
            severity=severity,
            message=message,
            details=details if details is not None else GenericDetails(),
            timestamp=now or utcnow(),
        )

    def is_failure(self) -> bool:
        return self.severity in FAILURE_SEVERITIES

    def resolve(self, actor: str, now: Optional[datetime] = None) -> bool:
        """Mark resolved. Returns False when it already was."""
        if self.resolved:
            return False
        self.resolved = True
        self.resolved_at = now or utcnow()
        self.resolved_by = actor
        return True
