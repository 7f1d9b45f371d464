"""
Recovery manager - soft delete, recover and purge.

Soft delete is orthogonal to status: a request keeps its status while it sits
in the recovery bin, and comes back exactly as it was.
"""
import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from kmt.models.actor import Actor
from kmt.models.domain import MaterialRequest
from kmt.models.enums import AuditAction
from kmt.services.audit_log import AuditLog
from kmt.services.errors import (
    AlreadyDeletedError,
    ForbiddenError,
    NotDeletedError,
    NotFoundError
)
from kmt.services.request_store import RequestStore, require_active

logger = logging.getLogger(__name__)


def require_admin(actor: Actor, verb: str) -> None:
    require_active(actor)
    if not actor.is_admin:
        raise ForbiddenError(f"Only an admin can {verb} requests")


class RecoveryManager:
    """Admin-only lifecycle operations outside the status workflow."""

    def __init__(self, db: Session, store: Optional[RequestStore] = None, audit: Optional[AuditLog] = None):
        self.db = db
        self.store = store or RequestStore(db)
        self.audit = audit or AuditLog(db)

    def soft_delete(self, actor: Actor, request_id: str) -> MaterialRequest:
        """
        Hide a request from every active query and from the workflow engine.

        Raises NotFoundError if the request does not exist and
        AlreadyDeletedError if it is already in the recovery bin.
        """
        require_admin(actor, "delete")

        with self.store.mutation(request_id):
            request = self.store.find(request_id)
            if request is None:
                raise NotFoundError(f"Request {request_id} not found")
            if request.is_deleted:
                raise AlreadyDeletedError(f"Request {request_id} is already deleted")

            now = self.store.stamp(request)
            request.deleted_at = now
            self.audit.record(
                actor_id=actor.id,
                action=AuditAction.DELETED,
                target_request_id=request.id,
                at=now,
                meta={"status": request.status.value}
            )

        logger.info("Request %s soft-deleted by %s", request_id, actor.id)
        return request

    def recover(self, actor: Actor, request_id: str) -> MaterialRequest:
        """
        Clear deleted_at. Every other field is left as it was before the delete.

        A purged request no longer exists, so it is reported as NotDeletedError
        like any other request that is not in the recovery bin.
        """
        require_admin(actor, "recover")

        with self.store.mutation(request_id):
            request = self.store.find(request_id)
            if request is None or not request.is_deleted:
                raise NotDeletedError(f"Request {request_id} is not deleted")

            deleted_at = request.deleted_at
            now = self.store.stamp(request)
            if now < deleted_at:
                now = deleted_at
            request.deleted_at = None
            self.audit.record(
                actor_id=actor.id,
                action=AuditAction.RECOVERED,
                target_request_id=request.id,
                at=now,
                meta={"deleted_at": deleted_at.isoformat()}
            )

        logger.info("Request %s recovered by %s", request_id, actor.id)
        return request

    def purge(self, actor: Actor, request_id: str) -> None:
        """
        Permanently remove a soft-deleted request. Irreversible.

        The audit entry keeps a full snapshot, since the row itself is gone.
        """
        require_admin(actor, "purge")

        with self.store.mutation(request_id):
            request = self.store.find(request_id)
            if request is None or not request.is_deleted:
                raise NotDeletedError(
                    f"Request {request_id} must be deleted before it can be purged"
                )

            now = self.store.stamp(request)
            if now < request.deleted_at:
                now = request.deleted_at
            snapshot = request.snapshot()
            self.db.delete(request)
            self.audit.record(
                actor_id=actor.id,
                action=AuditAction.PURGED,
                target_request_id=request_id,
                at=now,
                meta={"snapshot": snapshot}
            )

        logger.info("Request %s purged by %s", request_id, actor.id)

    def list_deleted(self, actor: Actor) -> List[MaterialRequest]:
        """The recovery bin, most recently deleted first."""
        require_admin(actor, "view deleted")
        return self.store.list_deleted()
