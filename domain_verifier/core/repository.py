# domain_verifier/core/repository.py

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from domain_verifier.core.models import (
    AttemptStatus,
    Domain,
    TelemetryEvent,
    VerificationAttempt,
)


class DomainRepository(ABC):
    """
    Persistence contract for domains.
    """

    @abstractmethod
    def create(self, domain: Domain) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, domain_id: UUID) -> Optional[Domain]:
        """
        Fetch domain by ID.
        Returns None if not found.
        """
        raise NotImplementedError


class AttemptRepository(ABC):
    """
    Persistence contract for verification attempts.

    ``create`` and ``apply_transition`` take the telemetry event describing
    the change and store it in the same transaction as the attempt.
    """

    @abstractmethod
    def create(
        self,
        attempt: VerificationAttempt,
        event: Optional[TelemetryEvent] = None,
    ) -> None:
        """
        Persist a new attempt.
        Must fail with VerificationAlreadyInProgress if the domain
        already has a pending attempt; the check and insert are atomic.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, attempt_id: UUID) -> Optional[VerificationAttempt]:
        raise NotImplementedError

    @abstractmethod
    def latest_for_domain(self, domain_id: UUID) -> Optional[VerificationAttempt]:
        """Most recently created attempt for the domain."""
        raise NotImplementedError

    @abstractmethod
    def list_due(
        self,
        now: datetime,
        limit: int,
        exclude: Iterable[UUID] = (),
    ) -> List[VerificationAttempt]:
        """
        Pending attempts with next_retry_at <= now, soonest first,
        skipping the IDs in ``exclude``.
        Used by the periodic sweep.
        """
        raise NotImplementedError

    @abstractmethod
    def list_pending(self, limit: int) -> List[VerificationAttempt]:
        """Pending attempts ordered by next_retry_at."""
        raise NotImplementedError

    @abstractmethod
    def apply_transition(
        self,
        attempt: VerificationAttempt,
        domain: Optional[Domain] = None,
        event: Optional[TelemetryEvent] = None,
    ) -> None:
        """
        Persist an advanced attempt (and optionally its domain and event)
        atomically.

        The stored attempt must still be PENDING at version
        ``attempt.version - 1``; otherwise raise VerificationConcurrencyError
        and write nothing.
        """
        raise NotImplementedError

    @abstractmethod
    def count_domains_with_status(self, statuses: Iterable[AttemptStatus]) -> int:
        """Distinct domains having at least one attempt in ``statuses``."""
        raise NotImplementedError


class TelemetryRepository(ABC):
    """
    Append-only persistence for telemetry events.
    """

    @abstractmethod
    def create(self, event: TelemetryEvent) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, event_id: UUID) -> Optional[TelemetryEvent]:
        raise NotImplementedError

    @abstractmethod
    def list_by_domain(
        self,
        domain_id: UUID,
        unresolved_failures_only: bool = False,
    ) -> List[TelemetryEvent]:
        """Events for a domain, newest first."""
        raise NotImplementedError

    @abstractmethod
    def mark_resolved(self, event_id: UUID, actor: str, at: datetime) -> bool:
        """
        Set resolution fields if still unresolved.
        Returns False if the event was already resolved.
        """
        raise NotImplementedError

    @abstractmethod
    def mark_domain_resolved(self, domain_id: UUID, actor: str, at: datetime) -> int:
        """Resolve every unresolved event of a domain; returns how many."""
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def count_failures_by_type(self) -> Dict[str, int]:
        raise NotImplementedError

    @abstractmethod
    def count_failures_by_severity(self) -> Dict[str, int]:
        raise NotImplementedError

    @abstractmethod
    def list_recent_unresolved_failures(self, limit: int) -> List[TelemetryEvent]:
        raise NotImplementedError

    @abstractmethod
    def list_resolved(self) -> List[TelemetryEvent]:
        raise NotImplementedError
