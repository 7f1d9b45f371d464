"""
Request store - owns material requests and the rules for reading them.

Mutations are exposed only to the workflow engine and the recovery manager,
through mutation(); callers never set fields directly.
"""
import logging
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from kmt.models.actor import Actor
from kmt.models.catalog import Material
from kmt.models.domain import MaterialRequest, RequestItem, utcnow
from kmt.models.enums import RequestCategory, RequestStatus, Role
from kmt.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from kmt.services.locks import KeyedLock, request_locks

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def validate_items(items: Sequence[RequestItem]) -> List[RequestItem]:
    """
    Items are validated on write, never on read.

    Rules:
    - At least one item
    - Every item has a non-blank material name
    - Every quantity is a positive integer
    """
    if not items:
        raise ValidationError("A request needs at least one item")

    for index, item in enumerate(items):
        if not (item.material_name or "").strip():
            raise ValidationError(f"Item {index + 1}: material name is required")
        if isinstance(item.qty, bool) or not isinstance(item.qty, int) or item.qty <= 0:
            raise ValidationError(f"Item {index + 1}: quantity must be greater than zero")

    return [
        RequestItem(
            material_name=item.material_name.strip(),
            qty=item.qty,
            size=(item.size or "").strip(),
            new_photo_ref=item.new_photo_ref,
            return_photo_ref=item.return_photo_ref,
            material_id=item.material_id,
        )
        for item in items
    ]


def require_active(actor: Actor) -> None:
    if not actor.active:
        raise ForbiddenError(f"User {actor.id} is not active")


def can_view(actor: Actor, request: MaterialRequest) -> bool:
    """
    Viewing rules:
    - admin sees every request
    - supervisor sees requests in their own area
    - staff see the requests they submitted
    """
    if actor.role == Role.ADMIN:
        return True
    if actor.role == Role.SUPERVISOR:
        return request.area == actor.area
    return request.requester_id == actor.id


class RequestStore:
    """Creates, reads and guards mutation of material requests."""

    def __init__(
        self,
        db: Session,
        locks: KeyedLock = request_locks,
        clock: Clock = utcnow,
        id_generator: Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        self.db = db
        self.locks = locks
        self.clock = clock
        self.id_generator = id_generator

    def create(
        self,
        actor: Actor,
        area: str,
        items: Sequence[RequestItem],
        category: RequestCategory = RequestCategory.MATERIAL
    ) -> str:
        """Submit a new request in pending status and return its id."""
        require_active(actor)
        if not (area or "").strip():
            raise ValidationError("Area is required")
        clean_items = validate_items(self._resolve_catalog(items))

        now = self.clock()
        request = MaterialRequest(
            id=self.id_generator(),
            requester_id=actor.id,
            requester_nationality=actor.nationality,
            area=area.strip(),
            category=category,
            items=[item.to_dict() for item in clean_items],
            status=RequestStatus.PENDING,
            created_at=now,
            updated_at=now
        )
        self.db.add(request)
        self.db.commit()

        logger.info(
            "Request %s submitted by %s for area %s (%d items)",
            request.id, actor.id, request.area, len(clean_items)
        )
        return request.id

    def _resolve_catalog(self, items: Sequence[RequestItem]) -> List[RequestItem]:
        """Check catalog references; a blank name is filled in from the catalog."""
        resolved = []
        for index, item in enumerate(items):
            if item.material_id:
                material = self.db.get(Material, item.material_id)
                if material is None:
                    raise ValidationError(f"Item {index + 1}: unknown material {item.material_id}")
                if not (item.material_name or "").strip():
                    item = replace(item, material_name=material.name)
            resolved.append(item)
        return resolved

    def get(self, actor: Actor, request_id: str) -> MaterialRequest:
        """
        Fetch a live request.

        Absent, soft-deleted and not-visible requests are all reported the
        same way, as NotFoundError.
        """
        request = self.db.get(MaterialRequest, request_id)
        if request is None or request.is_deleted or not can_view(actor, request):
            raise NotFoundError(f"Request {request_id} not found")
        return request

    def list_active(
        self,
        actor: Actor,
        area: Optional[str] = None,
        status: Optional[RequestStatus] = None
    ) -> List[MaterialRequest]:
        """
        Live requests visible to the actor, newest first (ties broken by id).
        """
        query = self.db.query(MaterialRequest).filter(MaterialRequest.deleted_at.is_(None))

        if area:
            query = query.filter(MaterialRequest.area == area)
        if status is not None:
            query = query.filter(MaterialRequest.status == status)

        if actor.role == Role.SUPERVISOR:
            query = query.filter(MaterialRequest.area == actor.area)
        elif actor.role == Role.STAFF:
            query = query.filter(MaterialRequest.requester_id == actor.id)

        return query.order_by(
            MaterialRequest.created_at.desc(),
            MaterialRequest.id.asc()
        ).all()

    def list_deleted(self) -> List[MaterialRequest]:
        return self.db.query(MaterialRequest).filter(
            MaterialRequest.deleted_at.isnot(None)
        ).order_by(
            MaterialRequest.deleted_at.desc(),
            MaterialRequest.id.asc()
        ).all()

    # -- used by the workflow engine and recovery manager -------------------

    def find(self, request_id: str) -> Optional[MaterialRequest]:
        """Look up a request regardless of soft-delete state."""
        return self.db.get(MaterialRequest, request_id)

    def find_live(self, request_id: str) -> MaterialRequest:
        request = self.find(request_id)
        if request is None or request.is_deleted:
            raise NotFoundError(f"Request {request_id} not found")
        return request

    def stamp(self, request: MaterialRequest) -> datetime:
        """Time for a change to the request; never earlier than its updated_at."""
        now = self.clock()
        if request.updated_at is not None and now < request.updated_at:
            return request.updated_at
        return now

    @contextmanager
    def mutation(self, request_id: str) -> Iterator[None]:
        """
        Run one change to a request as a single unit.

        Holds the per-request lock, commits on success and rolls back on any
        error. A write against a stale version becomes ConflictError.
        """
        with self.locks.hold(request_id):
            try:
                yield
                self.db.commit()
            except StaleDataError as exc:
                self.db.rollback()
                logger.warning("Concurrent modification of request %s", request_id)
                raise ConflictError(
                    f"Request {request_id} was modified concurrently; retry"
                ) from exc
            except Exception:
                self.db.rollback()
                raise
