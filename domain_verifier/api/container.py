#domain_verifier\api\container.py
from domain_verifier.core.repository import DomainRepository
from domain_verifier.scheduler.scheduler import AttemptScheduler
from domain_verifier.telemetry.ledger import TelemetryLedger


def get_scheduler() -> AttemptScheduler:
    from domain_verifier.container import attempt_scheduler
    return attempt_scheduler


def get_ledger() -> TelemetryLedger:
    from domain_verifier.container import telemetry_ledger
    return telemetry_ledger


def get_domain_repository() -> DomainRepository:
    from domain_verifier.container import domain_repository
    return domain_repository
