"""Append-only audit log for request state changes."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from kmt.models.audit import AuditEntry
from kmt.models.enums import AuditAction


class AuditLog:
    """
    Writes and reads audit entries.

    record() only stages the entry on the session; the caller commits it
    together with the mutation it describes. There is no update or
    delete.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        actor_id: str,
        action: AuditAction,
        target_request_id: str,
        at: datetime,
        meta: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            target_request_id=target_request_id,
            meta=meta or {},
            created_at=at
        )
        self.db.add(entry)
        return entry

    def entries_for(self, request_id: str) -> List[AuditEntry]:
        """All entries for a request, oldest first."""
        return self.db.query(AuditEntry).filter(
            AuditEntry.target_request_id == request_id
        ).order_by(AuditEntry.created_at, AuditEntry.id).all()

    def entries(self, action: Optional[AuditAction] = None) -> List[AuditEntry]:
        query = self.db.query(AuditEntry)
        if action is not None:
            query = query.filter(AuditEntry.action == action)
        return query.order_by(AuditEntry.created_at, AuditEntry.id).all()
