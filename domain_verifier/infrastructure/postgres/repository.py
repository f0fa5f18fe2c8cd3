#domain_verifier\infrastructure\postgres\repository.py

"""PostgreSQL repository implementation using SQLAlchemy."""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import case, distinct, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from domain_verifier.core.errors import (
    AttemptNotFound,
    DomainNotFound,
    VerificationAlreadyInProgress,
    VerificationConcurrencyError,
    VerificationError,
    VerificationPersistenceError,
)
from domain_verifier.core.event_details import dump_details, load_details
from domain_verifier.core.models import (
    AttemptStatus,
    Domain,
    TelemetryEvent,
    VerificationAttempt,
)
from domain_verifier.core.repository import AttemptRepository, DomainRepository
from domain_verifier.core.state_machine import assert_transition
from domain_verifier.infrastructure.postgres.database import get_session_factory
from domain_verifier.infrastructure.postgres.models import (
    DomainORM,
    TelemetryEventORM,
    VerificationAttemptORM,
)

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Some backends drop tzinfo on read; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================
# Mapping Functions
# ============================================

def domain_orm_to_domain(orm: DomainORM) -> Domain:
    """Convert ORM model to domain model."""
    return Domain(
        domain_id=orm.domain_id,
        hostname=orm.hostname,
        site_id=orm.site_id,
        provider=orm.provider,
        status=orm.status,
        verified_at=as_utc(orm.verified_at),
        created_at=as_utc(orm.created_at),
        updated_at=as_utc(orm.updated_at),
    )


def attempt_orm_to_domain(orm: VerificationAttemptORM) -> VerificationAttempt:
    return VerificationAttempt(
        attempt_id=orm.attempt_id,
        domain_id=orm.domain_id,
        attempt=orm.attempt,
        max_attempts=orm.max_attempts,
        next_retry_at=as_utc(orm.next_retry_at),
        status=orm.status,
        error=orm.error,
        created_at=as_utc(orm.created_at),
        updated_at=as_utc(orm.updated_at),
        version=orm.version,
    )


def attempt_to_orm(attempt: VerificationAttempt) -> VerificationAttemptORM:
    return VerificationAttemptORM(
        attempt_id=attempt.attempt_id,
        domain_id=attempt.domain_id,
        attempt=attempt.attempt,
        max_attempts=attempt.max_attempts,
        next_retry_at=attempt.next_retry_at,
        status=attempt.status,
        error=attempt.error,
        created_at=attempt.created_at,
        updated_at=attempt.updated_at,
        version=attempt.version,
    )


def event_to_orm(event: TelemetryEvent) -> TelemetryEventORM:
    return TelemetryEventORM(
        event_id=event.event_id,
        domain_id=event.domain_id,
        event_type=event.event_type,
        severity=event.severity,
        message=event.message,
        details=dump_details(event.details),
        timestamp=event.timestamp,
        resolved=event.resolved,
        resolved_at=event.resolved_at,
        resolved_by=event.resolved_by,
    )


def orm_to_event(orm: TelemetryEventORM) -> TelemetryEvent:
    return TelemetryEvent(
        event_id=orm.event_id,
        domain_id=orm.domain_id,
        event_type=orm.event_type,
        severity=orm.severity,
        message=orm.message,
        details=load_details(orm.details),
        timestamp=as_utc(orm.timestamp),
        resolved=orm.resolved,
        resolved_at=as_utc(orm.resolved_at),
        resolved_by=orm.resolved_by,
    )


class SessionFactoryMixin:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        """
        Initialize repository with optional session factory.

        Args:
            session_factory: SQLAlchemy session factory. If None, the production
                factory is built on first use.
        """
        self._session_factory = session_factory

    def _get_session(self) -> Session:
        """Get new session from the injected factory."""
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory()


# ============================================
# Domain Repository
# ============================================

class PostgresDomainRepository(SessionFactoryMixin, DomainRepository):

    def create(self, domain: Domain) -> None:
        session = self._get_session()
        try:
            session.add(DomainORM(
                domain_id=domain.domain_id,
                hostname=domain.hostname,
                site_id=domain.site_id,
                provider=domain.provider,
                status=domain.status,
                verified_at=domain.verified_at,
                created_at=domain.created_at,
                updated_at=domain.updated_at,
            ))
            session.commit()
            logger.debug(f"[postgres] create domain {domain.domain_id} -> done")
        except IntegrityError as e:
            session.rollback()
            raise VerificationConcurrencyError(
                f"Domain {domain.hostname} already exists"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise VerificationPersistenceError(f"Failed to create domain: {e}") from e
        finally:
            session.close()

    def get(self, domain_id) -> Optional[Domain]:
        session = self._get_session()
        try:
            orm = session.get(DomainORM, domain_id)
            return domain_orm_to_domain(orm) if orm else None
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to load domain: {e}") from e
        finally:
            session.close()


# ============================================
# Attempt Repository
# ============================================

class PostgresAttemptRepository(SessionFactoryMixin, AttemptRepository):

    # -------------------------
    # CREATE
    # -------------------------

    def create(
        self,
        attempt: VerificationAttempt,
        event: Optional[TelemetryEvent] = None,
    ) -> None:
        """Insert unless the domain already has a pending attempt."""
        session = self._get_session()
        try:
            # Serialize starts per domain with a row lock
            domain = session.query(DomainORM).filter(
                DomainORM.domain_id == attempt.domain_id
            ).with_for_update().first()

            if not domain:
                raise DomainNotFound(f"Domain {attempt.domain_id} not found")

            existing = session.query(VerificationAttemptORM).filter(
                VerificationAttemptORM.domain_id == attempt.domain_id,
                VerificationAttemptORM.status == AttemptStatus.PENDING,
            ).first()

            if existing:
                raise VerificationAlreadyInProgress(attempt.domain_id, existing.attempt_id)

            session.add(attempt_to_orm(attempt))
            if event is not None:
                session.add(event_to_orm(event))
            session.commit()
            logger.debug(f"[postgres] create attempt {attempt.attempt_id} -> done")
        except VerificationError:
            session.rollback()
            raise
        except IntegrityError as e:
            # Partial unique index caught a concurrent start
            session.rollback()
            raise VerificationAlreadyInProgress(attempt.domain_id) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise VerificationPersistenceError(f"Failed to create attempt: {e}") from e
        finally:
            session.close()

    # -------------------------
    # READ
    # -------------------------

    def get(self, attempt_id) -> Optional[VerificationAttempt]:
        session = self._get_session()
        try:
            orm = session.get(VerificationAttemptORM, attempt_id)
            return attempt_orm_to_domain(orm) if orm else None
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to load attempt: {e}") from e
        finally:
            session.close()

    def latest_for_domain(self, domain_id) -> Optional[VerificationAttempt]:
        session = self._get_session()
        try:
            # On a created_at tie the pending attempt is the newest; the
            # previous one had to be terminal before it could be created.
            orm = session.query(VerificationAttemptORM).filter(
                VerificationAttemptORM.domain_id == domain_id
            ).order_by(
                VerificationAttemptORM.created_at.desc(),
                case((VerificationAttemptORM.status == AttemptStatus.PENDING, 1), else_=0).desc(),
                VerificationAttemptORM.updated_at.desc(),
                VerificationAttemptORM.attempt_id.desc(),
            ).first()
            return attempt_orm_to_domain(orm) if orm else None
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to load latest attempt: {e}") from e
        finally:
            session.close()

    def list_due(
        self,
        now: datetime,
        limit: int = 100,
        exclude: Iterable[UUID] = (),
    ) -> List[VerificationAttempt]:
        session = self._get_session()
        try:
            query = session.query(VerificationAttemptORM).filter(
                VerificationAttemptORM.status == AttemptStatus.PENDING,
                VerificationAttemptORM.next_retry_at <= now,
            )
            skip = list(exclude)
            if skip:
                query = query.filter(VerificationAttemptORM.attempt_id.notin_(skip))
            results = query.order_by(
                VerificationAttemptORM.next_retry_at.asc()
            ).limit(limit).all()

            logger.debug(f"[postgres] list_due -> {len(results)} rows")
            return [attempt_orm_to_domain(orm) for orm in results]
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to list due attempts: {e}") from e
        finally:
            session.close()

    def list_pending(self, limit: int = 100) -> List[VerificationAttempt]:
        session = self._get_session()
        try:
            results = session.query(VerificationAttemptORM).filter(
                VerificationAttemptORM.status == AttemptStatus.PENDING,
            ).order_by(VerificationAttemptORM.next_retry_at.asc()).limit(limit).all()
            return [attempt_orm_to_domain(orm) for orm in results]
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to list pending attempts: {e}") from e
        finally:
            session.close()

    # -------------------------
    # TRANSITION (compare-and-swap)
    # -------------------------

    def apply_transition(
        self,
        attempt: VerificationAttempt,
        domain: Optional[Domain] = None,
        event: Optional[TelemetryEvent] = None,
    ) -> None:
        session = self._get_session()
        try:
            assert_transition(AttemptStatus.PENDING, attempt.status)

            updated = session.query(VerificationAttemptORM).filter(
                VerificationAttemptORM.attempt_id == attempt.attempt_id,
                VerificationAttemptORM.status == AttemptStatus.PENDING,
                VerificationAttemptORM.version == attempt.version - 1,
            ).update({
                VerificationAttemptORM.attempt: attempt.attempt,
                VerificationAttemptORM.next_retry_at: attempt.next_retry_at,
                VerificationAttemptORM.status: attempt.status,
                VerificationAttemptORM.error: attempt.error,
                VerificationAttemptORM.updated_at: attempt.updated_at,
                VerificationAttemptORM.version: attempt.version,
            }, synchronize_session=False)

            if updated != 1:
                if session.get(VerificationAttemptORM, attempt.attempt_id) is None:
                    raise AttemptNotFound(f"Attempt {attempt.attempt_id} not found")
                raise VerificationConcurrencyError(
                    f"Update failed for {attempt.attempt_id} - concurrent modification"
                )

            if domain is not None:
                domain_updated = session.query(DomainORM).filter(
                    DomainORM.domain_id == domain.domain_id
                ).update({
                    DomainORM.status: domain.status,
                    DomainORM.verified_at: domain.verified_at,
                    DomainORM.updated_at: domain.updated_at,
                }, synchronize_session=False)
                if domain_updated != 1:
                    raise DomainNotFound(f"Domain {domain.domain_id} not found")

            if event is not None:
                session.add(event_to_orm(event))

            # Attempt, domain and event become visible together or not at all
            session.commit()
            logger.debug(
                f"[postgres] transition {attempt.attempt_id} -> {attempt.status.value} "
                f"v{attempt.version}"
            )
        except VerificationError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise VerificationPersistenceError(f"Transition failed: {e}") from e
        finally:
            session.close()

    def count_domains_with_status(self, statuses: Iterable[AttemptStatus]) -> int:
        session = self._get_session()
        try:
            return session.query(
                func.count(distinct(VerificationAttemptORM.domain_id))
            ).filter(
                VerificationAttemptORM.status.in_(list(statuses))
            ).scalar() or 0
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to count domains: {e}") from e
        finally:
            session.close()
