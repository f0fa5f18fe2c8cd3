# domain_verifier/infrastructure/memory/repository.py

from collections import Counter
from copy import deepcopy
from datetime import datetime
from threading import Lock
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from domain_verifier.core.errors import (
    AttemptNotFound,
    DomainNotFound,
    VerificationAlreadyInProgress,
    VerificationConcurrencyError,
)
from domain_verifier.core.models import (
    AttemptStatus,
    Domain,
    TelemetryEvent,
    VerificationAttempt,
)
from domain_verifier.core.repository import (
    AttemptRepository,
    DomainRepository,
    TelemetryRepository,
)
from domain_verifier.core.state_machine import assert_transition


# Stored objects are copied in and out so callers never share state with the store.

class InMemoryDomainRepository(DomainRepository):
    def __init__(self):
        self._store: dict[UUID, Domain] = {}
        self._lock = Lock()

    def create(self, domain: Domain) -> None:
        with self._lock:
            if domain.domain_id in self._store:
                raise VerificationConcurrencyError("Domain already exists")
            if any(d.hostname == domain.hostname for d in self._store.values()):
                raise VerificationConcurrencyError(f"Domain {domain.hostname} already exists")
            self._store[domain.domain_id] = deepcopy(domain)

    def get(self, domain_id: UUID) -> Domain | None:
        with self._lock:
            domain = self._store.get(domain_id)
            return deepcopy(domain) if domain else None


class InMemoryAttemptRepository(AttemptRepository):
    def __init__(self, domains: InMemoryDomainRepository, events: "InMemoryTelemetryRepository"):
        self._store: dict[UUID, VerificationAttempt] = {}
        self._domains = domains
        self._events = events
        self._lock = Lock()

    def create(
        self,
        attempt: VerificationAttempt,
        event: Optional[TelemetryEvent] = None,
    ) -> None:
        with self._lock:
            if attempt.attempt_id in self._store:
                raise VerificationConcurrencyError("Attempt already exists")
            for existing in self._store.values():
                if existing.domain_id == attempt.domain_id and existing.is_pending():
                    raise VerificationAlreadyInProgress(
                        attempt.domain_id, existing.attempt_id
                    )
            if event is not None:
                with self._events._lock:
                    self._events._insert(event)
            self._store[attempt.attempt_id] = deepcopy(attempt)

    def get(self, attempt_id: UUID) -> VerificationAttempt | None:
        with self._lock:
            attempt = self._store.get(attempt_id)
            return deepcopy(attempt) if attempt else None

    def latest_for_domain(self, domain_id: UUID) -> VerificationAttempt | None:
        with self._lock:
            attempts = [a for a in self._store.values() if a.domain_id == domain_id]
            if not attempts:
                return None
            # stable sort: ties keep insertion order, so the newest wins
            return deepcopy(sorted(attempts, key=lambda a: a.created_at)[-1])

    def list_due(
        self,
        now: datetime,
        limit: int = 100,
        exclude: Iterable[UUID] = (),
    ) -> List[VerificationAttempt]:
        skip = set(exclude)
        with self._lock:
            due = [
                a for a in self._store.values()
                if a.is_due(now) and a.attempt_id not in skip
            ]
        due.sort(key=lambda a: a.next_retry_at)
        return [deepcopy(a) for a in due[:limit]]

    def list_pending(self, limit: int = 100) -> List[VerificationAttempt]:
        with self._lock:
            pending = [a for a in self._store.values() if a.is_pending()]
        pending.sort(key=lambda a: a.next_retry_at)
        return [deepcopy(a) for a in pending[:limit]]

    def apply_transition(
        self,
        attempt: VerificationAttempt,
        domain: Optional[Domain] = None,
        event: Optional[TelemetryEvent] = None,
    ) -> None:
        # Lock order: attempts, domains, events.
        with self._lock:
            stored = self._store.get(attempt.attempt_id)
            if not stored:
                raise AttemptNotFound(f"Attempt {attempt.attempt_id} not found")

            if stored.version != attempt.version - 1:
                raise VerificationConcurrencyError(
                    f"Attempt {attempt.attempt_id} modified concurrently "
                    f"(stored v{stored.version}, expected v{attempt.version - 1})"
                )
            assert_transition(stored.status, attempt.status)

            with self._domains._lock, self._events._lock:
                if domain is not None and domain.domain_id not in self._domains._store:
                    raise DomainNotFound(f"Domain {domain.domain_id} not found")
                # the event insert is the last step that can fail
                if event is not None:
                    self._events._insert(event)
                if domain is not None:
                    self._domains._store[domain.domain_id] = deepcopy(domain)
                self._store[attempt.attempt_id] = deepcopy(attempt)

    def count_domains_with_status(self, statuses: Iterable[AttemptStatus]) -> int:
        wanted = set(statuses)
        with self._lock:
            return len({a.domain_id for a in self._store.values() if a.status in wanted})


class InMemoryTelemetryRepository(TelemetryRepository):
    def __init__(self):
        self._store: dict[UUID, TelemetryEvent] = {}
        self._lock = Lock()

    def create(self, event: TelemetryEvent) -> None:
        with self._lock:
            self._insert(event)

    def _insert(self, event: TelemetryEvent) -> None:
        # caller holds self._lock
        if event.event_id in self._store:
            raise VerificationConcurrencyError("Event already exists")
        self._store[event.event_id] = deepcopy(event)

    def get(self, event_id: UUID) -> TelemetryEvent | None:
        with self._lock:
            event = self._store.get(event_id)
            return deepcopy(event) if event else None

    def list_by_domain(
        self,
        domain_id: UUID,
        unresolved_failures_only: bool = False,
    ) -> List[TelemetryEvent]:
        with self._lock:
            events = [e for e in self._store.values() if e.domain_id == domain_id]
        if unresolved_failures_only:
            events = [e for e in events if e.is_failure() and not e.resolved]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return [deepcopy(e) for e in events]

    def mark_resolved(self, event_id: UUID, actor: str, at: datetime) -> bool:
        with self._lock:
            event = self._store.get(event_id)
            if not event:
                return False
            return event.resolve(actor, at)

    def mark_domain_resolved(self, domain_id: UUID, actor: str, at: datetime) -> int:
        with self._lock:
            return sum(
                1 for e in self._store.values()
                if e.domain_id == domain_id and e.resolve(actor, at)
            )

    def count(self) -> int:
        with self._lock:
            return len(self._store)

    def count_failures_by_type(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(
                e.event_type.value for e in self._store.values() if e.is_failure()
            ))

    def count_failures_by_severity(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(
                e.severity.value for e in self._store.values() if e.is_failure()
            ))

    def list_recent_unresolved_failures(self, limit: int = 10) -> List[TelemetryEvent]:
        with self._lock:
            events = [
                e for e in self._store.values() if e.is_failure() and not e.resolved
            ]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return [deepcopy(e) for e in events[:limit]]

    def list_resolved(self) -> List[TelemetryEvent]:
        with self._lock:
            return [
                deepcopy(e) for e in self._store.values()
                if e.resolved and e.resolved_at is not None
            ]
