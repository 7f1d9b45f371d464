"""API routes for the material request workflow."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.orm import Session

from kmt.database import get_db
from kmt.models.actor import Actor
from kmt.models.domain import utcnow
from kmt.models.enums import ExportFormat, RequestStatus, Role
from kmt.services.audit_log import AuditLog
from kmt.services.catalog import MaterialCatalog
from kmt.services.errors import ForbiddenError, NotFoundError
from kmt.services.export import ExportProjector, export_filename
from kmt.services.ppe_register import PpeRegister
from kmt.services.recovery import RecoveryManager
from kmt.services.request_store import RequestStore
from kmt.services.state_machine import WorkflowEngine
from kmt.api.schemas import (
    AuditEntryResponse,
    CompleteBody,
    DeclineBody,
    ErrorResponse,
    ExportResponse,
    MaterialCreate,
    MaterialRequestCreate,
    MaterialRequestCreated,
    MaterialRequestResponse,
    MaterialResponse,
    PpeRegisterEntryResponse,
    PpeReturnBody
)

router = APIRouter()

REFUSALS = {
    403: {"model": ErrorResponse, "description": "Actor not allowed"},
    404: {"model": ErrorResponse, "description": "Request not found"},
    409: {"model": ErrorResponse, "description": "Invalid transition or concurrent modification"},
}


def get_actor(
    x_actor_id: str = Header(..., min_length=1),
    x_actor_role: Role = Header(...),
    x_actor_area: str = Header(""),
    x_actor_active: bool = Header(True),
    x_actor_nationality: Optional[str] = Header(None)
) -> Actor:
    """
    Caller identity, set by the upstream identity provider and trusted as-is.
    Unknown roles are rejected with 422 by the enum.
    """
    return Actor(
        id=x_actor_id,
        role=x_actor_role,
        area=x_actor_area,
        active=x_actor_active,
        nationality=x_actor_nationality
    )


# Catalog endpoints
@router.get("/materials", response_model=List[MaterialResponse])
def list_materials(
    category: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Catalog entries, by name."""
    return MaterialCatalog(db).list_materials(category=category)


@router.post("/materials", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_material(
    body: MaterialCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Add a catalog entry. Supervisor or admin."""
    return MaterialCatalog(db).add(
        actor,
        name=body.name,
        category=body.category,
        unit=body.unit,
        sku=body.sku
    )


# Material request endpoints
@router.post("/requests", response_model=MaterialRequestCreated, status_code=status.HTTP_201_CREATED)
def create_request(
    body: MaterialRequestCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Submit a new material request in pending status."""
    request_id = RequestStore(db).create(
        actor,
        area=body.area,
        items=[item.to_domain() for item in body.items],
        category=body.category
    )
    return MaterialRequestCreated(id=request_id, status=RequestStatus.PENDING)


@router.get("/requests", response_model=List[MaterialRequestResponse])
def list_requests(
    area: Optional[str] = None,
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """List live requests visible to the caller, newest first."""
    return RequestStore(db).list_active(actor, area=area, status=status_filter)


@router.get("/requests/{request_id}", response_model=MaterialRequestResponse, responses=REFUSALS)
def get_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Get a specific request."""
    return RequestStore(db).get(actor, request_id)


@router.get("/requests/{request_id}/audit", response_model=List[AuditEntryResponse], responses=REFUSALS)
def get_request_audit(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """
    Audit trail for a request, oldest first.
    Admins can read the trail of deleted and purged requests too; an id with
    neither a row nor any history is 404.
    """
    store = RequestStore(db)
    if actor.role == Role.STAFF:
        raise ForbiddenError("Only supervisors and admins can read the audit trail")
    if actor.role == Role.SUPERVISOR:
        store.get(actor, request_id)

    entries = AuditLog(db).entries_for(request_id)
    if not entries and store.find(request_id) is None:
        raise NotFoundError(f"Request {request_id} not found")
    return entries


# Workflow endpoints
@router.post("/requests/{request_id}/accept", response_model=MaterialRequestResponse, responses=REFUSALS)
def accept_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """pending → in_progress; the caller becomes the assigned supervisor."""
    return WorkflowEngine(db).accept(actor, request_id)


@router.post("/requests/{request_id}/decline", response_model=MaterialRequestResponse, responses=REFUSALS)
def decline_request(
    request_id: str,
    body: DeclineBody,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """pending → declined. A reason is required."""
    return WorkflowEngine(db).decline(actor, request_id, body.reason)


@router.post("/requests/{request_id}/complete", response_model=MaterialRequestResponse, responses=REFUSALS)
def complete_request(
    request_id: str,
    body: CompleteBody,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    in_progress → completed.
    Side effect: PPE requests add one PPE register entry per item.
    """
    return WorkflowEngine(db).complete(actor, request_id, body.received_by, body.completed_at)


@router.post("/requests/{request_id}/reassign", response_model=MaterialRequestResponse, responses=REFUSALS)
def reassign_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """in_progress → pending, clearing the assignee. Admin only."""
    return WorkflowEngine(db).reassign(actor, request_id)


# Recovery endpoints
@router.delete("/requests/{request_id}", response_model=MaterialRequestResponse, responses=REFUSALS)
def soft_delete_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Move a request to the recovery bin (sets deleted_at)."""
    return RecoveryManager(db).soft_delete(actor, request_id)


@router.post("/requests/{request_id}/recover", response_model=MaterialRequestResponse, responses=REFUSALS)
def recover_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Restore a soft-deleted request."""
    return RecoveryManager(db).recover(actor, request_id)


@router.delete("/requests/{request_id}/purge", status_code=status.HTTP_204_NO_CONTENT, responses=REFUSALS)
def purge_request(request_id: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Permanently remove a soft-deleted request. Irreversible."""
    RecoveryManager(db).purge(actor, request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/recovery", response_model=List[MaterialRequestResponse], responses=REFUSALS)
def list_recovery_bin(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    """Soft-deleted requests, most recently deleted first. Admin only."""
    return RecoveryManager(db).list_deleted(actor)


# Export endpoints
@router.get("/exports/requests", response_model=ExportResponse)
def export_requests(
    format: ExportFormat = ExportFormat.XLSX,
    area: Optional[str] = None,
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    explode_items: bool = False,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Flat rows for the XLSX/PDF renderer.
    Scoped the same way as the request list; deleted requests never appear.
    """
    rows = ExportProjector(RequestStore(db)).project(
        actor,
        area=area,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        explode_items=explode_items
    )
    return ExportResponse(
        filename=export_filename(area, format.value, utcnow().date()),
        explode_items=explode_items,
        rows=rows
    )


# PPE register endpoints
@router.get("/ppe-register", response_model=List[PpeRegisterEntryResponse])
def list_ppe_register(
    user_id: Optional[str] = None,
    returned: Optional[bool] = Query(None),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Issued PPE, newest first. Staff only see their own entries."""
    return PpeRegister(db).list_entries(actor, user_id=user_id, returned=returned)


@router.post("/ppe-register/{entry_id}/return", response_model=PpeRegisterEntryResponse, responses=REFUSALS)
def return_ppe(
    entry_id: int,
    body: PpeReturnBody,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Record that issued PPE came back, with optional photos."""
    return PpeRegister(db).mark_returned(actor, entry_id, body.photo_refs, body.remark)
