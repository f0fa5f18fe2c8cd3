"""Telemetry repository implementation."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from domain_verifier.core.errors import (
    VerificationConcurrencyError,
    VerificationPersistenceError,
)
from domain_verifier.core.models import FAILURE_SEVERITIES, TelemetryEvent
from domain_verifier.core.repository import TelemetryRepository
from domain_verifier.infrastructure.postgres.models import TelemetryEventORM
from domain_verifier.infrastructure.postgres.repository import (
    SessionFactoryMixin,
    event_to_orm,
    orm_to_event,
)

logger = logging.getLogger(__name__)

_FAILURE_SEVERITIES = list(FAILURE_SEVERITIES)


class PostgresTelemetryRepository(SessionFactoryMixin, TelemetryRepository):

    def create(self, event: TelemetryEvent) -> None:
        session = self._get_session()
        try:
            session.add(event_to_orm(event))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise VerificationConcurrencyError(f"Event {event.event_id} already exists") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise VerificationPersistenceError(f"Failed to record event: {e}") from e
        finally:
            session.close()

    def get(self, event_id) -> Optional[TelemetryEvent]:
        session = self._get_session()
        try:
            orm = session.get(TelemetryEventORM, event_id)
            return orm_to_event(orm) if orm else None
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to load event: {e}") from e
        finally:
            session.close()

    def list_by_domain(self, domain_id, unresolved_failures_only: bool = False) -> List[TelemetryEvent]:
        session = self._get_session()
        try:
            query = session.query(TelemetryEventORM).filter(
                TelemetryEventORM.domain_id == domain_id
            )
            if unresolved_failures_only:
                query = query.filter(
                    TelemetryEventORM.resolved.is_(False),
                    TelemetryEventORM.severity.in_(_FAILURE_SEVERITIES),
                )
            results = query.order_by(TelemetryEventORM.timestamp.desc()).all()
            return [orm_to_event(orm) for orm in results]
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to list events: {e}") from e
        finally:
            session.close()

    # -------------------------
    # RESOLUTION (set once)
    # -------------------------

    def mark_resolved(self, event_id, actor: str, at: datetime) -> bool:
        return self._resolve_where(
            actor, at, TelemetryEventORM.event_id == event_id
        ) == 1

    def mark_domain_resolved(self, domain_id, actor: str, at: datetime) -> int:
        return self._resolve_where(
            actor, at, TelemetryEventORM.domain_id == domain_id
        )

    def _resolve_where(self, actor: str, at: datetime, condition) -> int:
        session = self._get_session()
        try:
            count = session.query(TelemetryEventORM).filter(
                condition,
                TelemetryEventORM.resolved.is_(False),
            ).update({
                TelemetryEventORM.resolved: True,
                TelemetryEventORM.resolved_at: at,
                TelemetryEventORM.resolved_by: actor,
            }, synchronize_session=False)
            session.commit()
            return count
        except SQLAlchemyError as e:
            session.rollback()
            raise VerificationPersistenceError(f"Failed to resolve events: {e}") from e
        finally:
            session.close()

    # -------------------------
    # STATS
    # -------------------------

    def count(self) -> int:
        session = self._get_session()
        try:
            return session.query(func.count(TelemetryEventORM.event_id)).scalar() or 0
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to count events: {e}") from e
        finally:
            session.close()

    def count_failures_by_type(self) -> Dict[str, int]:
        return self._count_failures_by(TelemetryEventORM.event_type)

    def count_failures_by_severity(self) -> Dict[str, int]:
        return self._count_failures_by(TelemetryEventORM.severity)

    def _count_failures_by(self, column) -> Dict[str, int]:
        session = self._get_session()
        try:
            rows = session.query(column, func.count()).filter(
                TelemetryEventORM.severity.in_(_FAILURE_SEVERITIES)
            ).group_by(column).all()
            return {key.value: total for key, total in rows}
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to aggregate failures: {e}") from e
        finally:
            session.close()

    def list_recent_unresolved_failures(self, limit: int = 10) -> List[TelemetryEvent]:
        session = self._get_session()
        try:
            results = session.query(TelemetryEventORM).filter(
                TelemetryEventORM.resolved.is_(False),
                TelemetryEventORM.severity.in_(_FAILURE_SEVERITIES),
            ).order_by(TelemetryEventORM.timestamp.desc()).limit(limit).all()
            return [orm_to_event(orm) for orm in results]
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to list failures: {e}") from e
        finally:
            session.close()

    def list_resolved(self) -> List[TelemetryEvent]:
        session = self._get_session()
        try:
            results = session.query(TelemetryEventORM).filter(
                TelemetryEventORM.resolved.is_(True),
                TelemetryEventORM.resolved_at.isnot(None),
            ).all()
            return [orm_to_event(orm) for orm in results]
        except SQLAlchemyError as e:
            raise VerificationPersistenceError(f"Failed to list resolved events: {e}") from e
        finally:
            session.close()
