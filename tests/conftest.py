#tests\conftest.py

"""Pytest configuration and fixtures."""

from collections import deque
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from domain_verifier.core.backoff import BackoffPolicy
from domain_verifier.core.models import Domain
from domain_verifier.infrastructure.memory.repository import (
    InMemoryAttemptRepository,
    InMemoryDomainRepository,
    InMemoryTelemetryRepository,
)
from domain_verifier.infrastructure.postgres.database import (
    drop_db,
    get_session_factory,
    init_db,
)
from domain_verifier.infrastructure.postgres.repository import (
    PostgresAttemptRepository,
    PostgresDomainRepository,
)
from domain_verifier.infrastructure.postgres.telemetry_repository import (
    PostgresTelemetryRepository,
)
from domain_verifier.scheduler.scheduler import AttemptScheduler
from domain_verifier.telemetry.ledger import TelemetryLedger
from domain_verifier.verification.authority_client import (
    AuthorityClient,
    AuthorityStatus,
)
from domain_verifier.verification.checker import VerificationChecker


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

TXT_CHALLENGE = [
    {
        "type": "TXT",
        "domain": "_vercel.example.com",
        "value": "vc-domain-verify=example.com,abc123",
        "reason": "pending_domain_verification",
    }
]


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeAuthorityClient(AuthorityClient):
    """
    Scripted authority.

    Each queued item is either an AuthorityStatus to return or an exception
    to raise; once the queue drains, ``default`` is used. ``on_check`` runs
    before every answer so tests can interleave concurrent work.
    """

    def __init__(self, default=None, provider: str = "vercel"):
        self.provider = provider
        self.default = default or AuthorityStatus(verified=False, verification=TXT_CHALLENGE)
        self.responses = deque()
        self.calls = []
        self.on_check = None

    def queue(self, *responses):
        self.responses.extend(responses)

    def check_status(self, hostname: str) -> AuthorityStatus:
        self.calls.append(hostname)
        if self.on_check is not None:
            self.on_check(hostname)

        response = self.responses.popleft() if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


# -------------------------
# IN-MEMORY SERVICES
# -------------------------

@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def policy():
    """Deterministic policy: 30s, 60s, 120s ... capped at 300s, no jitter."""
    return BackoffPolicy(
        max_attempts=3,
        initial_delay_seconds=30,
        max_delay_seconds=300,
        backoff_multiplier=2,
        jitter_seconds=0,
    )


@pytest.fixture
def domains():
    return InMemoryDomainRepository()


@pytest.fixture
def attempts(domains, events):
    return InMemoryAttemptRepository(domains, events)


@pytest.fixture
def events():
    return InMemoryTelemetryRepository()


@pytest.fixture
def authority():
    return FakeAuthorityClient()


@pytest.fixture
def checker(authority):
    return VerificationChecker(authority)


@pytest.fixture
def ledger(events, domains, attempts, clock):
    return TelemetryLedger(events=events, domains=domains, attempts=attempts, clock=clock)


@pytest.fixture
def scheduler(domains, attempts, checker, ledger, policy, clock):
    return AttemptScheduler(
        domains=domains,
        attempts=attempts,
        checker=checker,
        ledger=ledger,
        policy=policy,
        clock=clock,
    )


@pytest.fixture
def domain(domains, clock):
    """A registered, not yet verified domain."""
    d = Domain(
        domain_id=uuid4(),
        hostname="shop.example.com",
        site_id=uuid4(),
        created_at=clock(),
        updated_at=clock(),
    )
    domains.create(d)
    return d


# -------------------------
# SQL (SQLite in-memory)
# -------------------------

@pytest.fixture
def test_engine():
    """Single shared in-memory connection so every session sees the same tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    yield engine

    drop_db(engine)
    engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    return get_session_factory(test_engine)


@pytest.fixture
def sql_domains(test_session_factory):
    return PostgresDomainRepository(session_factory=test_session_factory)


@pytest.fixture
def sql_attempts(test_session_factory):
    return PostgresAttemptRepository(session_factory=test_session_factory)


@pytest.fixture
def sql_events(test_session_factory):
    return PostgresTelemetryRepository(session_factory=test_session_factory)


@pytest.fixture
def sql_domain(sql_domains, clock):
    d = Domain(
        domain_id=uuid4(),
        hostname="blog.example.org",
        created_at=clock(),
        updated_at=clock(),
    )
    sql_domains.create(d)
    return d
