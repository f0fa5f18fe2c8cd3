# domain_verifier/scheduler/scheduler.py
"""Attempt scheduler - drives verification attempts through retries to a terminal state."""

import logging
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple
from uuid import UUID, uuid4

from domain_verifier.core.backoff import DEFAULT_BACKOFF_POLICY, BackoffPolicy
from domain_verifier.core.errors import (
    AttemptNotFound,
    DomainNotFound,
    VerificationConcurrencyError,
)
from domain_verifier.core.event_details import (
    AuthorityErrorDetails,
    DnsDetails,
    EnvironmentErrorDetails,
    FailedDetails,
    StartedDetails,
    SuccessDetails,
    TimeoutDetails,
)
from domain_verifier.core.models import (
    AttemptStatus,
    Domain,
    EventType,
    Severity,
    VerificationAttempt,
    utcnow,
)
from domain_verifier.core.repository import AttemptRepository, DomainRepository
from domain_verifier.telemetry.ledger import TelemetryLedger
from domain_verifier.verification.checker import VerificationChecker
from domain_verifier.verification.outcomes import CheckOutcome, OutcomeKind

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "Cancelled by user"
BUDGET_EXHAUSTED_ERROR = "Maximum verification attempts reached"
NOT_STARTED = "not_started"

# cancel() re-reads and retries when a sweep advances the attempt underneath it
_CANCEL_RETRIES = 3


class ProcessOutcome(Enum):
    VERIFIED = "verified"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"
    TIMEOUT = "timeout"
    NOT_DUE = "not_due"
    ALREADY_TERMINAL = "already_terminal"
    CONFLICT = "conflict"


@dataclass
class ProcessResult:
    attempt_id: UUID
    outcome: ProcessOutcome
    status: AttemptStatus
    attempt: int
    next_retry_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def verified(self) -> bool:
        return self.status == AttemptStatus.VERIFIED


@dataclass
class SweepResult:
    processed: int = 0
    verified: int = 0
    failed: int = 0
    retried: int = 0
    errors: int = 0


@dataclass
class VerificationStatus:
    status: str
    attempt: Optional[VerificationAttempt] = None
    next_retry_at: Optional[datetime] = None
    error: Optional[str] = None


class AttemptScheduler:
    """
    Owns the verification attempt state machine.

        pending -> verified   (authority confirmed)
        pending -> failed     (environment broken, or authority errors exhausted budget)
        pending -> timeout    (still not verified when budget ran out)
        pending -> pending    (retry scheduled with backoff)

    Every transition is committed with a compare-and-swap on the attempt
    version, so concurrent sweeps and cancels never double-apply a result.
    """

    def __init__(
        self,
        domains: DomainRepository,
        attempts: AttemptRepository,
        checker: VerificationChecker,
        ledger: TelemetryLedger,
        policy: BackoffPolicy = DEFAULT_BACKOFF_POLICY,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
        max_workers: int = 1,
        sweep_limit: int = 100,
    ):
        self._domains = domains
        self._attempts = attempts
        self._checker = checker
        self._ledger = ledger
        self._policy = policy
        self._clock = clock
        self._rng = rng
        self._max_workers = max(1, max_workers)
        self._sweep_limit = sweep_limit

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    # -------------------------
    # START
    # -------------------------

    def start_attempt(
        self,
        domain_id: UUID,
        policy: Optional[BackoffPolicy] = None,
    ) -> VerificationAttempt:
        """
        Open a new attempt for the domain.

        Raises VerificationAlreadyInProgress if a pending attempt exists.
        """
        domain = self._require_domain(domain_id)
        policy = policy or self._policy
        now = self._clock()

        attempt = VerificationAttempt(
            attempt_id=uuid4(),
            domain_id=domain.domain_id,
            attempt=1,
            max_attempts=policy.max_attempts,
            next_retry_at=now + policy.next_delay(1, rng=self._rng),
            created_at=now,
            updated_at=now,
        )

        event = self._ledger.new_event(
            domain.domain_id,
            EventType.VERIFICATION_STARTED,
            Severity.INFO,
            "Domain verification process started",
            StartedDetails(
                attempt_id=attempt.attempt_id,
                max_attempts=attempt.max_attempts,
                next_retry_at=attempt.next_retry_at,
            ),
        )

        # Atomic check-and-insert at repository level, event included
        self._attempts.create(attempt, event)
        self._ledger.log_recorded(event)

        logger.info(
            f"[scheduler] started attempt {attempt.attempt_id} for {domain.hostname} "
            f"(max {attempt.max_attempts}, first check at {attempt.next_retry_at.isoformat()})"
        )
        return attempt

    # -------------------------
    # PROCESS ONE
    # -------------------------

    def process_due(self, attempt_id: UUID) -> ProcessResult:
        attempt = self._attempts.get(attempt_id)
        if not attempt:
            raise AttemptNotFound(f"Attempt {attempt_id} not found")

        if not attempt.is_pending():
            return self._result(attempt, ProcessOutcome.ALREADY_TERMINAL)

        if self._clock() < attempt.next_retry_at:
            return self._result(attempt, ProcessOutcome.NOT_DUE)

        domain = self._require_domain(attempt.domain_id)

        logger.debug(
            f"[scheduler] checking {domain.hostname} "
            f"(attempt {attempt.attempt}/{attempt.max_attempts})"
        )
        outcome = self._checker.check(domain)

        # The check may have been slow; a cancel or another worker may have
        # advanced the attempt meanwhile. The version check below discards us.
        now = self._clock()
        result, description = self._advance(attempt, domain, outcome, now)
        event = self._ledger.new_event(domain.domain_id, *description)

        try:
            self._attempts.apply_transition(
                attempt,
                domain if result.outcome == ProcessOutcome.VERIFIED else None,
                event,
            )
        except VerificationConcurrencyError as e:
            current = self._attempts.get(attempt_id) or attempt
            logger.info(
                f"[scheduler] attempt {attempt_id} advanced concurrently, "
                f"discarding {outcome.kind.value}: {e}"
            )
            return self._result(current, ProcessOutcome.CONFLICT)

        self._ledger.log_recorded(event)

        logger.info(
            f"[scheduler] {domain.hostname} -> {result.outcome.value} "
            f"(attempt {result.attempt}/{attempt.max_attempts})"
        )
        return result

    def _advance(
        self,
        attempt: VerificationAttempt,
        domain: Domain,
        outcome: CheckOutcome,
        now: datetime,
    ) -> Tuple[ProcessResult, tuple]:
        """Apply the outcome to the in-memory attempt/domain and describe the event."""
        checked = attempt.attempt

        if outcome.kind == OutcomeKind.VERIFIED:
            attempt.mark_verified(now)
            domain.activate(now)
            return self._result(attempt, ProcessOutcome.VERIFIED), (
                EventType.VERIFICATION_SUCCESS,
                Severity.INFO,
                "Domain verification completed successfully",
                SuccessDetails(attempt_id=attempt.attempt_id, attempt=checked, verified_at=now),
            )

        if outcome.kind == OutcomeKind.ENVIRONMENT_UNAVAILABLE:
            attempt.mark_failed(outcome.reason or "Verification environment not available", now)
            return self._result(attempt, ProcessOutcome.FAILED), (
                EventType.ENVIRONMENT_ERROR,
                Severity.CRITICAL,
                "Verification authority configuration is missing or invalid",
                EnvironmentErrorDetails(
                    attempt_id=attempt.attempt_id,
                    reason=outcome.reason or "",
                    missing=outcome.missing,
                    invalid=outcome.invalid,
                    warnings=outcome.warnings,
                ),
            )

        not_yet = outcome.kind == OutcomeKind.NOT_YET_VERIFIED

        if attempt.has_budget():
            next_retry_at = now + self._policy.next_delay(checked + 1, rng=self._rng)
            attempt.schedule_retry(next_retry_at, error=None if not_yet else outcome.reason, now=now)
            result = self._result(attempt, ProcessOutcome.RETRY_SCHEDULED)

            if not_yet:
                info = outcome.verification_info
                return result, (
                    EventType.DNS_ERROR,
                    Severity.WARNING,
                    f"Domain {domain.hostname} not yet verified, retry scheduled",
                    DnsDetails(
                        attempt_id=attempt.attempt_id,
                        attempt=checked,
                        hostname=domain.hostname,
                        next_retry_at=next_retry_at,
                        txt_name=info.host if info else None,
                        txt_value=info.txt if info else None,
                    ),
                )
            return result, (
                EventType.AUTHORITY_ERROR,
                Severity.ERROR,
                f"Verification authority error: {outcome.reason}",
                AuthorityErrorDetails(
                    attempt_id=attempt.attempt_id,
                    attempt=checked,
                    hostname=domain.hostname,
                    error=outcome.reason or "",
                    status_code=outcome.status_code,
                    next_retry_at=next_retry_at,
                ),
            )

        if not_yet:
            attempt.mark_timeout(BUDGET_EXHAUSTED_ERROR, now)
            return self._result(attempt, ProcessOutcome.TIMEOUT), (
                EventType.VERIFICATION_TIMEOUT,
                Severity.ERROR,
                "Domain verification timed out after maximum attempts",
                TimeoutDetails(
                    attempt_id=attempt.attempt_id,
                    attempt=checked,
                    max_attempts=attempt.max_attempts,
                    hostname=domain.hostname,
                ),
            )

        attempt.mark_failed(outcome.reason or BUDGET_EXHAUSTED_ERROR, now)
        return self._result(attempt, ProcessOutcome.FAILED), (
            EventType.VERIFICATION_FAILED,
            Severity.ERROR,
            "Domain verification failed after maximum attempts",
            FailedDetails(
                attempt_id=attempt.attempt_id,
                attempt=checked,
                max_attempts=attempt.max_attempts,
                final_error=outcome.reason or "",
            ),
        )

    # -------------------------
    # SWEEP
    # -------------------------

    def process_all_due(self) -> SweepResult:
        """
        Process every due pending attempt independently.

        Due attempts are fetched in pages of ``sweep_limit``; each attempt
        is visited at most once per sweep, so ones that error stay due for
        the next sweep without being retried in this one.

        Safe to run from several triggers at once: losers of a race see
        a CONFLICT no-op.
        """
        now = self._clock()
        sweep = SweepResult()
        seen: List[UUID] = []

        while True:
            due = self._attempts.list_due(now, self._sweep_limit, exclude=seen)
            if not due:
                break

            logger.info(f"[scheduler] found {len(due)} due attempt(s)")
            ids = [a.attempt_id for a in due]
            seen.extend(ids)
            self._tally(sweep, self._process_batch(ids))

        if not seen:
            return sweep

        logger.info(
            f"[scheduler] sweep done: processed={sweep.processed} verified={sweep.verified} "
            f"failed={sweep.failed} retried={sweep.retried} errors={sweep.errors}"
        )
        return sweep

    def _process_batch(self, ids: List[UUID]) -> List[Optional[ProcessResult]]:
        if self._max_workers > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                return list(pool.map(self._process_safely, ids))
        return [self._process_safely(attempt_id) for attempt_id in ids]

    @staticmethod
    def _tally(sweep: SweepResult, outcomes: List[Optional[ProcessResult]]) -> None:
        for result in outcomes:
            if result is None:
                sweep.errors += 1
                continue

            sweep.processed += 1
            if result.outcome == ProcessOutcome.VERIFIED:
                sweep.verified += 1
            elif result.outcome in (ProcessOutcome.FAILED, ProcessOutcome.TIMEOUT):
                sweep.failed += 1
            elif result.outcome == ProcessOutcome.RETRY_SCHEDULED:
                sweep.retried += 1

    def _process_safely(self, attempt_id: UUID) -> Optional[ProcessResult]:
        try:
            return self.process_due(attempt_id)
        except Exception as e:
            # Attempt is left unchanged and picked up again next sweep
            logger.error(
                f"[scheduler] failed to process attempt {attempt_id}: {e}",
                exc_info=True,
            )
            return None

    # -------------------------
    # CANCEL / STATUS
    # -------------------------

    def cancel(self, domain_id: UUID) -> Optional[VerificationAttempt]:
        """Fail the domain's pending attempt, if any. Operator action, not a fault."""
        for _ in range(_CANCEL_RETRIES):
            attempt = self._attempts.latest_for_domain(domain_id)
            if not attempt or not attempt.is_pending():
                return None

            attempt.mark_failed(CANCELLED_ERROR, self._clock())
            try:
                self._attempts.apply_transition(attempt)
            except VerificationConcurrencyError:
                continue

            logger.info(f"[scheduler] cancelled attempt {attempt.attempt_id} for domain {domain_id}")
            return attempt

        raise VerificationConcurrencyError(
            f"Could not cancel verification for domain {domain_id}: attempt kept changing"
        )

    def get_status(self, domain_id: UUID) -> VerificationStatus:
        attempt = self._attempts.latest_for_domain(domain_id)
        if not attempt:
            return VerificationStatus(status=NOT_STARTED)

        return VerificationStatus(
            status=attempt.status.value,
            attempt=attempt,
            next_retry_at=attempt.next_retry_at if attempt.is_pending() else None,
            error=attempt.error,
        )

    def list_active(self, limit: int = 100) -> List[VerificationAttempt]:
        """Pending attempts, soonest check first."""
        return self._attempts.list_pending(limit)

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    def _require_domain(self, domain_id: UUID) -> Domain:
        domain = self._domains.get(domain_id)
        if not domain:
            raise DomainNotFound(f"Domain {domain_id} not found")
        return domain

    @staticmethod
    def _result(attempt: VerificationAttempt, outcome: ProcessOutcome) -> ProcessResult:
        return ProcessResult(
            attempt_id=attempt.attempt_id,
            outcome=outcome,
            status=attempt.status,
            attempt=attempt.attempt,
            next_retry_at=attempt.next_retry_at if attempt.is_pending() else None,
            error=attempt.error,
        )
