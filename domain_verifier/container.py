#domain_verifier\container.py

"""Dependency injection container - wires all services together."""

from domain_verifier.infrastructure.postgres.repository import (
    PostgresAttemptRepository,
    PostgresDomainRepository,
)
from domain_verifier.infrastructure.postgres.telemetry_repository import (
    PostgresTelemetryRepository,
)

from domain_verifier.scheduler.config import VerificationSettings
from domain_verifier.scheduler.scheduler import AttemptScheduler
from domain_verifier.telemetry.ledger import TelemetryLedger
from domain_verifier.verification.authority_client import VercelAuthorityClient
from domain_verifier.verification.checker import VerificationChecker
from domain_verifier.verification.config import AuthoritySettings


# ============================================
# SETTINGS
# ============================================

verification_settings = VerificationSettings()
authority_settings = AuthoritySettings()


# ============================================
# REPOSITORIES
# ============================================

domain_repository = PostgresDomainRepository()
attempt_repository = PostgresAttemptRepository()
telemetry_repository = PostgresTelemetryRepository()


# ============================================
# SERVICES
# ============================================

telemetry_ledger = TelemetryLedger(
    events=telemetry_repository,
    domains=domain_repository,
    attempts=attempt_repository,
)

verification_checker = VerificationChecker(
    client=VercelAuthorityClient(authority_settings),
)

attempt_scheduler = AttemptScheduler(
    domains=domain_repository,
    attempts=attempt_repository,
    checker=verification_checker,
    ledger=telemetry_ledger,
    policy=verification_settings.backoff_policy(),
    max_workers=verification_settings.max_workers,
    sweep_limit=verification_settings.sweep_limit,
)
