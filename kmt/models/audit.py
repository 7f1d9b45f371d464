"""
Audit log model.

Provides the immutable, append-only trail of every state-changing action on a
material request. Entries are written in the same transaction as the change
they describe.
"""
from sqlalchemy import Column, String, Integer, DateTime, Enum as SQLEnum, JSON
from kmt.database import Base
from kmt.models.domain import utcnow
from kmt.models.enums import AuditAction


class AuditEntry(Base):
    """
    Immutable audit entry.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    - target_request_id is not a foreign key; it must outlive a purged request
    """
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    actor_id = Column(String, nullable=False)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    target_request_id = Column(String(36), nullable=False, index=True)
    meta = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
