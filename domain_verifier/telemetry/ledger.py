# domain_verifier/telemetry/ledger.py
"""Telemetry ledger - append-only verification event log and failure diagnosis."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import UUID

from domain_verifier.core.errors import DomainNotFound, TelemetryEventNotFound
from domain_verifier.core.event_details import EventDetails
from domain_verifier.core.guidance import get_guidance
from domain_verifier.core.models import (
    AttemptStatus,
    EventType,
    Severity,
    TelemetryEvent,
    utcnow,
)
from domain_verifier.core.repository import (
    AttemptRepository,
    DomainRepository,
    TelemetryRepository,
)

logger = logging.getLogger(__name__)

RECENT_FAILURES_LIMIT = 10


@dataclass
class FailureSummary:
    domain_id: UUID
    hostname: str
    total_failures: int = 0
    last_failure: Optional[datetime] = None
    failure_types: Dict[str, int] = field(default_factory=dict)
    actionable_errors: List[str] = field(default_factory=list)
    suggested_actions: List[str] = field(default_factory=list)
    can_retry: bool = False
    next_retry_at: Optional[datetime] = None


@dataclass
class TelemetryStats:
    total_events: int
    failures_by_type: Dict[str, int]
    failures_by_severity: Dict[str, int]
    recent_failures: List[TelemetryEvent]
    domains_with_issues: int
    average_resolution_time: Optional[float] = None  # seconds


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class TelemetryLedger:
    """
    Records verification events and turns unresolved failures into
    operator guidance.

    Events are never deleted; critical events are never resolved
    automatically, only through ``resolve``/``resolve_all``.
    """

    def __init__(
        self,
        events: TelemetryRepository,
        domains: DomainRepository,
        attempts: AttemptRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._events = events
        self._domains = domains
        self._attempts = attempts
        self._clock = clock

    # -------------------------
    # RECORD
    # -------------------------

    def record(
        self,
        domain_id: UUID,
        event_type: EventType,
        severity: Severity,
        message: str,
        details: Optional[EventDetails] = None,
    ) -> TelemetryEvent:
        event = self.new_event(domain_id, event_type, severity, message, details)
        self._events.create(event)
        self.log_recorded(event)
        return event

    def new_event(
        self,
        domain_id: UUID,
        event_type: EventType,
        severity: Severity,
        message: str,
        details: Optional[EventDetails] = None,
    ) -> TelemetryEvent:
        """
        Build an event stamped with the ledger clock without storing it.

        Used when the event must be committed together with an attempt
        transition; call ``log_recorded`` once that commit succeeds.
        """
        return TelemetryEvent.new(
            domain_id=domain_id,
            event_type=event_type,
            severity=severity,
            message=message,
            details=details,
            now=self._clock(),
        )

    def log_recorded(self, event: TelemetryEvent) -> None:
        log = logger.warning if event.is_failure() else logger.info
        log(
            f"[telemetry] {event.event_type.value} ({event.severity.value}) "
            f"domain={event.domain_id}: {event.message}"
        )

    # -------------------------
    # QUERIES
    # -------------------------

    def get_domain_events(self, domain_id: UUID) -> List[TelemetryEvent]:
        """All events for a domain, newest first."""
        return self._events.list_by_domain(domain_id)

    def summarize_failures(self, domain_id: UUID) -> FailureSummary:
        domain = self._domains.get(domain_id)
        if not domain:
            raise DomainNotFound(f"Domain {domain_id} not found")

        failures = self._events.list_by_domain(domain_id, unresolved_failures_only=True)

        failure_types: Dict[str, int] = {}
        actionable_errors: List[str] = []
        suggested_actions: List[str] = []

        for event in failures:
            key = event.event_type.value
            failure_types[key] = failure_types.get(key, 0) + 1

            guidance = get_guidance(event.event_type, event.message)
            if guidance.actionable:
                actionable_errors.append(guidance.message)
                suggested_actions.extend(guidance.actions)

        latest = self._attempts.latest_for_domain(domain_id)
        can_retry = latest is not None and latest.status in (
            AttemptStatus.PENDING,
            AttemptStatus.FAILED,
        )

        return FailureSummary(
            domain_id=domain.domain_id,
            hostname=domain.hostname,
            total_failures=len(failures),
            last_failure=failures[0].timestamp if failures else None,
            failure_types=failure_types,
            actionable_errors=_dedupe(actionable_errors),
            suggested_actions=_dedupe(suggested_actions),
            can_retry=can_retry,
            next_retry_at=latest.next_retry_at if latest and latest.is_pending() else None,
        )

    def stats(self) -> TelemetryStats:
        resolved = self._events.list_resolved()
        average = None
        if resolved:
            total = sum(
                (e.resolved_at - e.timestamp).total_seconds() for e in resolved
            )
            average = total / len(resolved)

        return TelemetryStats(
            total_events=self._events.count(),
            failures_by_type=self._events.count_failures_by_type(),
            failures_by_severity=self._events.count_failures_by_severity(),
            recent_failures=self._events.list_recent_unresolved_failures(
                RECENT_FAILURES_LIMIT
            ),
            domains_with_issues=self._attempts.count_domains_with_status(
                [AttemptStatus.FAILED, AttemptStatus.TIMEOUT]
            ),
            average_resolution_time=average,
        )

    # -------------------------
    # RESOLUTION
    # -------------------------

    def resolve(self, event_id: UUID, actor: str) -> TelemetryEvent:
        """Acknowledge an event. Re-resolving keeps the first resolution."""
        if not self._events.get(event_id):
            raise TelemetryEventNotFound(f"Telemetry event {event_id} not found")

        if self._events.mark_resolved(event_id, actor, self._clock()):
            logger.info(f"[telemetry] event {event_id} resolved by {actor}")

        return self._events.get(event_id)

    def resolve_all(self, domain_id: UUID, actor: str) -> int:
        count = self._events.mark_domain_resolved(domain_id, actor, self._clock())
        logger.info(f"[telemetry] resolved {count} event(s) for domain {domain_id} by {actor}")
        return count
