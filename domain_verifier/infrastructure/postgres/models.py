#domain_verifier\infrastructure\postgres\models.py
"""SQLAlchemy ORM models for database tables."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, JSON, String, Text, Uuid, text
)
from sqlalchemy.orm import relationship

from domain_verifier.core.models import AttemptStatus, DomainStatus, EventType, Severity
from domain_verifier.infrastructure.postgres.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name):
    """Store enum values ("pending"), not member names."""
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


# ============================================
# DOMAINS
# ============================================

class DomainORM(Base):
    """Domain table."""

    __tablename__ = "domains"

    domain_id = Column(Uuid, primary_key=True, default=uuid4)
    hostname = Column(String(255), nullable=False, unique=True, index=True)
    site_id = Column(Uuid, nullable=True, index=True)
    provider = Column(String(50), nullable=False, default="vercel")

    status = Column(_enum(DomainStatus, "domain_status"), nullable=False, default=DomainStatus.PENDING)
    verified_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<DomainORM(domain_id={self.domain_id}, hostname={self.hostname}, status={self.status.value})>"


# ============================================
# VERIFICATION ATTEMPTS
# ============================================

class VerificationAttemptORM(Base):
    """
    Verification attempt table.

    Indexes:
    - Composite index on (status, next_retry_at) for the due sweep
    - Composite index on (domain_id, created_at) for latest-attempt lookups
    - Partial unique index: at most one pending attempt per domain
    """

    __tablename__ = "verification_attempts"

    attempt_id = Column(Uuid, primary_key=True, default=uuid4)
    domain_id = Column(Uuid, ForeignKey("domains.domain_id"), nullable=False)

    attempt = Column(Integer, nullable=False, default=1)
    max_attempts = Column(Integer, nullable=False, default=10)
    next_retry_at = Column(DateTime(timezone=True), nullable=False)

    status = Column(
        _enum(AttemptStatus, "attempt_status"),
        nullable=False,
        default=AttemptStatus.PENDING,
        index=True,
    )
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=0)

    domain = relationship("DomainORM", backref="verification_attempts")

    __table_args__ = (
        Index("ix_attempts_due_lookup", "status", "next_retry_at"),
        Index("ix_attempts_domain_created", "domain_id", "created_at"),
        Index(
            "uq_attempts_one_pending_per_domain",
            "domain_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<VerificationAttemptORM(attempt_id={self.attempt_id}, "
            f"status={self.status.value}, attempt={self.attempt}/{self.max_attempts})>"
        )


# ============================================
# TELEMETRY EVENTS
# ============================================

class TelemetryEventORM(Base):
    """Telemetry event table (append-only)."""

    __tablename__ = "telemetry_events"

    event_id = Column(Uuid, primary_key=True, default=uuid4)
    domain_id = Column(Uuid, ForeignKey("domains.domain_id"), nullable=False)

    event_type = Column(_enum(EventType, "telemetry_event_type"), nullable=False, index=True)
    severity = Column(_enum(Severity, "telemetry_severity"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_telemetry_domain_timestamp", "domain_id", "timestamp"),
        Index("ix_telemetry_unresolved", "resolved", "severity"),
    )
