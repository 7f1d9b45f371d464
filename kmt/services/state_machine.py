"""
Workflow engine for material requests.

This is the core enforcement mechanism - every status change MUST go through here.

    pending ──accept──▶ in_progress ──complete──▶ completed
       │  ▲                  │
       │  └────reassign──────┘
       └──decline──▶ declined

completed and declined are terminal. Soft delete is handled separately by the
recovery manager and does not touch status.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from sqlalchemy.orm import Session
from kmt.models.actor import Actor
from kmt.models.domain import MaterialRequest, PpeRegisterEntry, to_naive_utc
from kmt.models.enums import AuditAction, RequestCategory, RequestStatus, WorkflowAction
from kmt.services.audit_log import AuditLog
from kmt.services.errors import (
    ForbiddenError,
    InvalidTransitionError,
    KmtError,
    ValidationError
)
from kmt.services.request_store import RequestStore, require_active

logger = logging.getLogger(__name__)


# action -> (from, to). Anything not listed here is not a transition.
TRANSITIONS = {
    WorkflowAction.ACCEPT: (RequestStatus.PENDING, RequestStatus.IN_PROGRESS),
    WorkflowAction.DECLINE: (RequestStatus.PENDING, RequestStatus.DECLINED),
    WorkflowAction.COMPLETE: (RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED),
    WorkflowAction.REASSIGN: (RequestStatus.IN_PROGRESS, RequestStatus.PENDING),
}

AUDIT_ACTIONS = {
    WorkflowAction.ACCEPT: AuditAction.ACCEPTED,
    WorkflowAction.DECLINE: AuditAction.DECLINED,
    WorkflowAction.COMPLETE: AuditAction.COMPLETED,
    WorkflowAction.REASSIGN: AuditAction.ASSIGNED,
}


def authorize(actor: Actor, request: MaterialRequest, action: WorkflowAction) -> None:
    """
    Role and area gates for each action.

    - accept / decline: a supervisor of the request's area, or an admin
    - complete: the assigned supervisor, or an admin
    - reassign: admin only
    """
    if actor.is_admin:
        return

    if action in (WorkflowAction.ACCEPT, WorkflowAction.DECLINE):
        if actor.is_supervisor and actor.area == request.area:
            return
        raise ForbiddenError(
            f"Only a supervisor of {request.area} or an admin can {action.value} this request"
        )

    if action == WorkflowAction.COMPLETE:
        if actor.is_supervisor and request.assigned_supervisor_id == actor.id:
            return
        raise ForbiddenError(
            "Only the assigned supervisor or an admin can complete this request"
        )

    raise ForbiddenError(f"Only an admin can {action.value} a request")


class WorkflowEngine:
    """Validates and applies role-gated status transitions."""

    def __init__(self, db: Session, store: Optional[RequestStore] = None, audit: Optional[AuditLog] = None):
        self.db = db
        self.store = store or RequestStore(db)
        self.audit = audit or AuditLog(db)

    def accept(self, actor: Actor, request_id: str) -> MaterialRequest:
        """
        pending → in_progress. The accepting actor becomes the assigned supervisor.
        """
        def apply(request: MaterialRequest) -> Dict[str, Any]:
            request.assigned_supervisor_id = actor.id
            return {"assigned_supervisor_id": actor.id}

        return self._transition(actor, request_id, WorkflowAction.ACCEPT, apply)

    def decline(self, actor: Actor, request_id: str, reason: str) -> MaterialRequest:
        """
        pending → declined. A reason is required so the decision can be audited.
        """
        def apply(request: MaterialRequest) -> Dict[str, Any]:
            cleaned = (reason or "").strip()
            if not cleaned:
                raise ValidationError("A decline reason is required")
            request.decline_reason = cleaned
            return {"reason": cleaned}

        return self._transition(actor, request_id, WorkflowAction.DECLINE, apply)

    def complete(
        self,
        actor: Actor,
        request_id: str,
        received_by: str,
        completed_at: datetime
    ) -> MaterialRequest:
        """
        in_progress → completed.

        Invariants:
        - received_by must name whoever took the materials
        - completed_at cannot be earlier than the request's created_at
        - a PPE request writes one register entry per item, in the same transaction
        """
        def apply(request: MaterialRequest) -> Dict[str, Any]:
            name = (received_by or "").strip()
            if not name:
                raise ValidationError("Received-by name is required to complete a request")
            if completed_at is None:
                raise ValidationError("Completion time is required")
            when = to_naive_utc(completed_at)
            if when < request.created_at:
                raise ValidationError("Completion time cannot be before the request was created")

            request.received_by = name
            request.completed_at = when

            ppe_entries = 0
            if request.category == RequestCategory.PPE:
                ppe_entries = self._issue_ppe(actor, request, when)

            return {
                "received_by": name,
                "completed_at": when.isoformat(),
                "ppe_entries": ppe_entries
            }

        return self._transition(actor, request_id, WorkflowAction.COMPLETE, apply)

    def reassign(self, actor: Actor, request_id: str) -> MaterialRequest:
        """
        in_progress → pending, clearing the assignee so another supervisor can accept.
        """
        def apply(request: MaterialRequest) -> Dict[str, Any]:
            previous = request.assigned_supervisor_id
            request.assigned_supervisor_id = None
            return {"previous_supervisor_id": previous}

        return self._transition(actor, request_id, WorkflowAction.REASSIGN, apply)

    def _transition(
        self,
        actor: Actor,
        request_id: str,
        action: WorkflowAction,
        apply: Callable[[MaterialRequest], Dict[str, Any]]
    ) -> MaterialRequest:
        """
        Shared path for every transition.

        Order of checks: the request must be live, the edge must exist, the
        actor must be allowed, then the action's own inputs. Status,
        updated_at, and the audit entry are committed together.
        """
        try:
            require_active(actor)
            with self.store.mutation(request_id):
                request = self.store.find_live(request_id)

                from_status, to_status = TRANSITIONS[action]
                if request.status != from_status:
                    raise InvalidTransitionError(request.status.value, action.value)

                authorize(actor, request, action)

                now = self.store.stamp(request)
                meta = apply(request)
                request.status = to_status
                request.updated_at = now

                meta.update({"from": from_status.value, "to": to_status.value})
                self.audit.record(
                    actor_id=actor.id,
                    action=AUDIT_ACTIONS[action],
                    target_request_id=request.id,
                    at=now,
                    meta=meta
                )
        except KmtError as exc:
            logger.warning(
                "Refused %s on request %s by %s: %s",
                action.value, request_id, actor.id, exc.message
            )
            raise

        logger.info(
            "Request %s %s -> %s by %s",
            request_id, from_status.value, to_status.value, actor.id
        )
        return request

    def _issue_ppe(self, actor: Actor, request: MaterialRequest, issued_at: datetime) -> int:
        """Stage one PPE register entry per item on the current transaction."""
        items = request.item_records
        for item in items:
            self.db.add(PpeRegisterEntry(
                request_id=request.id,
                user_id=request.requester_id,
                item_name=item.material_name,
                size=item.size,
                qty=item.qty,
                nationality=request.requester_nationality,
                issued_by=actor.id,
                issued_at=issued_at,
                returned=False,
                return_photo_refs=[item.return_photo_ref] if item.return_photo_ref else []
            ))
        return len(items)
