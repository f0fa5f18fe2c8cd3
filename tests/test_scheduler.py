"""Test attempt scheduler: starting, processing, sweeping and cancelling attempts."""

import threading
from datetime import timedelta
from uuid import uuid4

import pytest

from domain_verifier.core.backoff import BackoffPolicy
from domain_verifier.core.errors import (
    AttemptNotFound,
    AuthorityConfigurationError,
    AuthorityRequestError,
    DomainNotFound,
    VerificationAlreadyInProgress,
    VerificationPersistenceError,
)
from domain_verifier.core.event_details import (
    DnsDetails,
    EnvironmentErrorDetails,
    StartedDetails,
)
from domain_verifier.core.models import (
    AttemptStatus,
    Domain,
    DomainStatus,
    EventType,
    Severity,
)
from domain_verifier.scheduler.scheduler import (
    BUDGET_EXHAUSTED_ERROR,
    CANCELLED_ERROR,
    NOT_STARTED,
    AttemptScheduler,
    ProcessOutcome,
)
from domain_verifier.verification.authority_client import AuthorityStatus
from domain_verifier.verification.checker import VerificationChecker

from conftest import FakeAuthorityClient


VERIFIED = AuthorityStatus(verified=True)


class PerHostAuthority(FakeAuthorityClient):
    """Verified only for the listed hostnames."""

    def __init__(self, verified_hosts):
        super().__init__()
        self.verified_hosts = set(verified_hosts)

    def check_status(self, hostname):
        self.calls.append(hostname)
        return AuthorityStatus(verified=hostname in self.verified_hosts)


def event_types(ledger, domain_id):
    return [e.event_type for e in reversed(ledger.get_domain_events(domain_id))]


class TestStartAttempt:

    def test_start_schedules_first_check(self, scheduler, domain, ledger, clock):
        attempt = scheduler.start_attempt(domain.domain_id)

        assert attempt.status == AttemptStatus.PENDING
        assert attempt.attempt == 1
        assert attempt.max_attempts == 3
        assert attempt.next_retry_at == clock() + timedelta(seconds=30)

        events = ledger.get_domain_events(domain.domain_id)
        assert len(events) == 1
        assert events[0].event_type == EventType.VERIFICATION_STARTED
        assert events[0].severity == Severity.INFO
        assert isinstance(events[0].details, StartedDetails)

    def test_start_unknown_domain(self, scheduler):
        with pytest.raises(DomainNotFound):
            scheduler.start_attempt(uuid4())

    def test_second_start_while_pending_is_rejected(self, scheduler, domain):
        first = scheduler.start_attempt(domain.domain_id)

        with pytest.raises(VerificationAlreadyInProgress) as exc:
            scheduler.start_attempt(domain.domain_id)

        assert exc.value.attempt_id == first.attempt_id

    def test_restart_after_terminal_creates_new_attempt(self, scheduler, domain, clock):
        first = scheduler.start_attempt(domain.domain_id)
        scheduler.cancel(domain.domain_id)

        clock.advance(1)
        second = scheduler.start_attempt(domain.domain_id)

        assert second.attempt_id != first.attempt_id
        assert scheduler.get_status(domain.domain_id).attempt.attempt_id == second.attempt_id

    def test_per_start_policy_sets_budget_and_first_delay(self, scheduler, domain, clock):
        custom = BackoffPolicy(max_attempts=7, initial_delay_seconds=5,
                               max_delay_seconds=5, backoff_multiplier=2, jitter_seconds=0)

        attempt = scheduler.start_attempt(domain.domain_id, policy=custom)

        assert attempt.max_attempts == 7
        assert attempt.next_retry_at == clock() + timedelta(seconds=5)

    def test_start_event_failure_leaves_no_attempt(self, scheduler, domain, events, monkeypatch):
        def broken_insert(event):
            raise VerificationPersistenceError("disk full")

        monkeypatch.setattr(events, "_insert", broken_insert)

        with pytest.raises(VerificationPersistenceError):
            scheduler.start_attempt(domain.domain_id)

        assert scheduler.get_status(domain.domain_id).status == NOT_STARTED

        monkeypatch.undo()
        assert scheduler.start_attempt(domain.domain_id).attempt == 1


class TestProcessDue:

    def test_unknown_attempt(self, scheduler):
        with pytest.raises(AttemptNotFound):
            scheduler.process_due(uuid4())

    def test_not_due_never_checks_or_mutates(self, scheduler, domain, attempts, authority, clock):
        """A call before next_retry_at is a pure no-op."""
        attempt = scheduler.start_attempt(domain.domain_id)
        clock.advance(29)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.NOT_DUE
        assert authority.calls == []
        assert attempts.get(attempt.attempt_id) == attempt

    def test_not_yet_verified_schedules_retry(self, scheduler, domain, attempts, ledger, clock):
        attempt = scheduler.start_attempt(domain.domain_id)
        clock.advance(30)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.RETRY_SCHEDULED
        stored = attempts.get(attempt.attempt_id)
        assert stored.status == AttemptStatus.PENDING
        assert stored.attempt == 2
        # delay before check #2 is 30 * 2
        assert stored.next_retry_at == clock() + timedelta(seconds=60)

        latest = ledger.get_domain_events(domain.domain_id)[0]
        assert latest.event_type == EventType.DNS_ERROR
        assert latest.severity == Severity.WARNING
        assert isinstance(latest.details, DnsDetails)
        assert latest.details.txt_name == "_vercel.example.com"

    def test_authority_error_schedules_retry(self, scheduler, domain, attempts, authority, ledger, clock):
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(AuthorityRequestError("bad gateway", status_code=502))
        clock.advance(30)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.RETRY_SCHEDULED
        stored = attempts.get(attempt.attempt_id)
        assert stored.attempt == 2
        assert "bad gateway" in stored.error

        latest = ledger.get_domain_events(domain.domain_id)[0]
        assert latest.event_type == EventType.AUTHORITY_ERROR
        assert latest.severity == Severity.ERROR
        assert latest.details.status_code == 502

    def test_budget_respected(self, scheduler, domain, attempts, authority, ledger, clock):
        """Always-unverified attempt with max_attempts=3 times out on exactly the third check."""
        attempt = scheduler.start_attempt(domain.domain_id)

        outcomes = []
        for _ in range(5):
            clock.advance(600)
            outcomes.append(scheduler.process_due(attempt.attempt_id).outcome)

        assert outcomes == [
            ProcessOutcome.RETRY_SCHEDULED,
            ProcessOutcome.RETRY_SCHEDULED,
            ProcessOutcome.TIMEOUT,
            ProcessOutcome.ALREADY_TERMINAL,
            ProcessOutcome.ALREADY_TERMINAL,
        ]
        assert len(authority.calls) == 3

        stored = attempts.get(attempt.attempt_id)
        assert stored.status == AttemptStatus.TIMEOUT
        assert stored.attempt == 3
        assert stored.error == BUDGET_EXHAUSTED_ERROR

        assert event_types(ledger, domain.domain_id) == [
            EventType.VERIFICATION_STARTED,
            EventType.DNS_ERROR,
            EventType.DNS_ERROR,
            EventType.VERIFICATION_TIMEOUT,
        ]

    def test_single_attempt_authority_failure(self, domains, attempts, ledger, authority, clock, domain):
        """max_attempts=1 and an unavailable authority fails immediately."""
        scheduler = AttemptScheduler(
            domains, attempts, VerificationChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=1, jitter_seconds=0), clock=clock,
        )
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(AuthorityRequestError("service unavailable", status_code=503))
        clock.advance(60)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.FAILED
        assert attempts.get(attempt.attempt_id).status == AttemptStatus.FAILED

        failures = [e for e in ledger.get_domain_events(domain.domain_id)
                    if e.event_type == EventType.VERIFICATION_FAILED]
        assert len(failures) == 1
        assert failures[0].severity == Severity.ERROR

    def test_verified_activates_domain(self, scheduler, domain, domains, attempts, authority, ledger, clock):
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(VERIFIED)
        clock.advance(30)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.VERIFIED
        assert result.verified
        assert attempts.get(attempt.attempt_id).status == AttemptStatus.VERIFIED

        stored_domain = domains.get(domain.domain_id)
        assert stored_domain.status == DomainStatus.ACTIVE
        assert stored_domain.verified_at == clock()

        successes = [e for e in ledger.get_domain_events(domain.domain_id)
                     if e.event_type == EventType.VERIFICATION_SUCCESS]
        assert len(successes) == 1
        assert successes[0].severity == Severity.INFO

    def test_environment_error_fails_without_retry(self, domains, attempts, ledger, authority, clock, domain):
        scheduler = AttemptScheduler(
            domains, attempts, VerificationChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=10, jitter_seconds=0), clock=clock,
        )
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(AuthorityConfigurationError("token missing", missing=["VERCEL_TOKEN"]))
        clock.advance(30)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.FAILED
        stored = attempts.get(attempt.attempt_id)
        assert stored.status == AttemptStatus.FAILED
        assert stored.attempt == 1

        latest = ledger.get_domain_events(domain.domain_id)[0]
        assert latest.event_type == EventType.ENVIRONMENT_ERROR
        assert latest.severity == Severity.CRITICAL
        assert isinstance(latest.details, EnvironmentErrorDetails)
        assert latest.details.missing == ["VERCEL_TOKEN"]

        # Domain routing status is left alone on failure
        assert domains.get(domain.domain_id).status == DomainStatus.PENDING

    @pytest.mark.parametrize("terminal_response", [
        VERIFIED,
        AuthorityConfigurationError("broken"),
    ])
    def test_terminal_states_are_sticky(self, scheduler, domain, attempts, authority, clock,
                                        terminal_response):
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(terminal_response)
        clock.advance(30)
        scheduler.process_due(attempt.attempt_id)
        terminal = attempts.get(attempt.attempt_id)

        authority.queue(VERIFIED)
        clock.advance(3600)
        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.ALREADY_TERMINAL
        assert attempts.get(attempt.attempt_id) == terminal
        assert len(authority.calls) == 1

    def test_concurrent_processing_applies_once(self, scheduler, domain, attempts, authority, ledger, clock):
        """Two workers checking the same due attempt: one transition, one no-op."""
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.default = VERIFIED
        clock.advance(30)

        barrier = threading.Barrier(2, timeout=5)
        authority.on_check = lambda hostname: barrier.wait()

        results = []
        lock = threading.Lock()

        def worker():
            result = scheduler.process_due(attempt.attempt_id)
            with lock:
                results.append(result.outcome)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert sorted(o.value for o in results) == ["conflict", "verified"]
        assert attempts.get(attempt.attempt_id).version == 1

        successes = [e for e in ledger.get_domain_events(domain.domain_id)
                     if e.event_type == EventType.VERIFICATION_SUCCESS]
        assert len(successes) == 1

    def test_cancel_during_check_wins(self, scheduler, domain, attempts, authority, ledger, clock):
        """A result computed before a cancel landed is discarded."""
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.default = VERIFIED
        clock.advance(30)
        authority.on_check = lambda hostname: scheduler.cancel(domain.domain_id)

        result = scheduler.process_due(attempt.attempt_id)

        assert result.outcome == ProcessOutcome.CONFLICT
        stored = attempts.get(attempt.attempt_id)
        assert stored.status == AttemptStatus.FAILED
        assert stored.error == CANCELLED_ERROR
        assert EventType.VERIFICATION_SUCCESS not in event_types(ledger, domain.domain_id)

    def test_store_failure_leaves_attempt_unchanged(self, scheduler, domain, attempts, ledger,
                                                    authority, clock, monkeypatch):
        """A failed write aborts processing: no transition, no event."""
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(VERIFIED)
        clock.advance(30)
        before = attempts.get(attempt.attempt_id)

        def broken_store(*args, **kwargs):
            raise VerificationPersistenceError("connection reset")

        monkeypatch.setattr(attempts, "apply_transition", broken_store)

        with pytest.raises(VerificationPersistenceError):
            scheduler.process_due(attempt.attempt_id)

        stored = attempts.get(attempt.attempt_id)
        assert stored == before
        assert stored.status == AttemptStatus.PENDING
        assert stored.attempt == 1
        assert stored.version == 0
        assert event_types(ledger, domain.domain_id) == [EventType.VERIFICATION_STARTED]

    def test_event_write_failure_rolls_back_verification(self, scheduler, domain, domains, attempts,
                                                         events, ledger, authority, clock,
                                                         monkeypatch):
        """The success event is committed with the transition or not at all."""
        attempt = scheduler.start_attempt(domain.domain_id)
        authority.queue(VERIFIED)
        clock.advance(30)

        def broken_insert(event):
            raise VerificationPersistenceError("disk full")

        monkeypatch.setattr(events, "_insert", broken_insert)

        result = scheduler.process_all_due()

        assert (result.processed, result.verified, result.errors) == (0, 0, 1)
        stored = attempts.get(attempt.attempt_id)
        assert stored.status == AttemptStatus.PENDING
        assert stored.version == 0
        assert domains.get(domain.domain_id).status == DomainStatus.PENDING
        assert event_types(ledger, domain.domain_id) == [EventType.VERIFICATION_STARTED]

        monkeypatch.undo()
        authority.queue(VERIFIED)

        assert scheduler.process_all_due().verified == 1
        assert domains.get(domain.domain_id).status == DomainStatus.ACTIVE
        assert event_types(ledger, domain.domain_id) == [
            EventType.VERIFICATION_STARTED,
            EventType.VERIFICATION_SUCCESS,
        ]


class TestProcessAllDue:

    def _register(self, domains, clock, hostname):
        d = Domain(domain_id=uuid4(), hostname=hostname, created_at=clock(), updated_at=clock())
        domains.create(d)
        return d

    def test_sweep_counts(self, domains, attempts, ledger, clock):
        authority = PerHostAuthority(verified_hosts={"ok.example.com"})
        scheduler = AttemptScheduler(
            domains, attempts, VerificationChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=3, jitter_seconds=0), clock=clock,
        )
        ok = self._register(domains, clock, "ok.example.com")
        waiting = self._register(domains, clock, "waiting.example.com")
        scheduler.start_attempt(ok.domain_id)
        scheduler.start_attempt(waiting.domain_id)
        clock.advance(30)

        result = scheduler.process_all_due()

        assert result.processed == 2
        assert result.verified == 1
        assert result.retried == 1
        assert result.failed == 0
        assert result.errors == 0

    def test_nothing_due(self, scheduler, domain):
        scheduler.start_attempt(domain.domain_id)

        result = scheduler.process_all_due()

        assert result.processed == 0

    def test_one_failure_does_not_stop_the_sweep(self, domains, attempts, ledger, authority, clock):
        """A crash on one attempt is counted and the rest are still processed."""

        class ExplodingChecker(VerificationChecker):
            def check(self, domain):
                if domain.hostname == "bad.example.com":
                    raise RuntimeError("checker bug")
                return super().check(domain)

        scheduler = AttemptScheduler(
            domains, attempts, ExplodingChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=3, jitter_seconds=0), clock=clock,
        )
        bad = self._register(domains, clock, "bad.example.com")
        good = self._register(domains, clock, "good.example.com")
        bad_attempt = scheduler.start_attempt(bad.domain_id)
        scheduler.start_attempt(good.domain_id)
        authority.default = VERIFIED
        clock.advance(60)

        result = scheduler.process_all_due()

        assert result.errors == 1
        assert result.processed == 1
        assert result.verified == 1
        # left untouched for the next sweep
        assert attempts.get(bad_attempt.attempt_id).status == AttemptStatus.PENDING
        assert attempts.get(bad_attempt.attempt_id).attempt == 1

    def test_parallel_sweep(self, domains, attempts, ledger, authority, clock):
        scheduler = AttemptScheduler(
            domains, attempts, VerificationChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=3, jitter_seconds=0), clock=clock,
            max_workers=4,
        )
        for i in range(6):
            d = self._register(domains, clock, f"site{i}.example.com")
            scheduler.start_attempt(d.domain_id)
        authority.default = VERIFIED
        clock.advance(60)

        result = scheduler.process_all_due()

        assert result.processed == 6
        assert result.verified == 6
        assert scheduler.list_active() == []

    def test_sweep_pages_through_every_due_attempt(self, domains, attempts, ledger, authority, clock):
        scheduler = AttemptScheduler(
            domains, attempts, VerificationChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=3, jitter_seconds=0), clock=clock,
            sweep_limit=2,
        )
        for i in range(5):
            d = self._register(domains, clock, f"page{i}.example.com")
            scheduler.start_attempt(d.domain_id)
        authority.default = VERIFIED
        clock.advance(60)

        result = scheduler.process_all_due()

        assert result.processed == 5
        assert result.verified == 5
        assert len(authority.calls) == 5

    def test_erroring_attempts_are_visited_once_per_sweep(self, domains, attempts, ledger,
                                                          authority, clock):
        class BrokenChecker(VerificationChecker):
            def check(self, domain):
                raise RuntimeError("checker bug")

        scheduler = AttemptScheduler(
            domains, attempts, BrokenChecker(authority), ledger,
            policy=BackoffPolicy(max_attempts=3, jitter_seconds=0), clock=clock,
            sweep_limit=1,
        )
        for i in range(3):
            d = self._register(domains, clock, f"broken{i}.example.com")
            scheduler.start_attempt(d.domain_id)
        clock.advance(60)

        result = scheduler.process_all_due()

        assert result.errors == 3
        assert result.processed == 0
        assert len(scheduler.list_active()) == 3


class TestCancelAndStatus:

    def test_status_not_started(self, scheduler, domain):
        status = scheduler.get_status(domain.domain_id)

        assert status.status == NOT_STARTED
        assert status.attempt is None

    def test_status_pending(self, scheduler, domain, clock):
        attempt = scheduler.start_attempt(domain.domain_id)

        status = scheduler.get_status(domain.domain_id)

        assert status.status == "pending"
        assert status.next_retry_at == attempt.next_retry_at

    def test_cancel_pending(self, scheduler, domain, ledger):
        attempt = scheduler.start_attempt(domain.domain_id)

        cancelled = scheduler.cancel(domain.domain_id)

        assert cancelled.attempt_id == attempt.attempt_id
        status = scheduler.get_status(domain.domain_id)
        assert status.status == "failed"
        assert status.error == CANCELLED_ERROR
        assert status.next_retry_at is None
        # cancellation is an operator action, not a failure event
        assert event_types(ledger, domain.domain_id) == [EventType.VERIFICATION_STARTED]

    def test_cancel_without_pending_attempt(self, scheduler, domain):
        assert scheduler.cancel(domain.domain_id) is None

    def test_list_active_orders_by_next_check(self, scheduler, domains, clock):
        first = Domain(domain_id=uuid4(), hostname="a.example.com")
        second = Domain(domain_id=uuid4(), hostname="b.example.com")
        domains.create(first)
        domains.create(second)

        scheduler.start_attempt(first.domain_id)
        clock.advance(10)
        scheduler.start_attempt(second.domain_id)

        active = scheduler.list_active()

        assert [a.domain_id for a in active] == [first.domain_id, second.domain_id]
