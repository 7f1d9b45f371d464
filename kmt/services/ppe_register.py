"""PPE register - issued protective equipment and its return."""
import logging
from typing import List, Optional, Sequence
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from kmt.models.actor import Actor
from kmt.models.domain import PpeRegisterEntry
from kmt.models.enums import Role
from kmt.services.errors import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError
from kmt.services.locks import KeyedLock, request_locks
from kmt.services.request_store import require_active

logger = logging.getLogger(__name__)


class PpeRegister:
    """
    Reads the register and records returns.

    Entries are only ever created by completing a PPE request; see
    WorkflowEngine.complete.
    """

    def __init__(self, db: Session, locks: KeyedLock = request_locks):
        self.db = db
        self.locks = locks

    def list_entries(
        self,
        actor: Actor,
        user_id: Optional[str] = None,
        returned: Optional[bool] = None
    ) -> List[PpeRegisterEntry]:
        query = self.db.query(PpeRegisterEntry)

        # Staff only ever see what was issued to them
        if actor.role == Role.STAFF:
            query = query.filter(PpeRegisterEntry.user_id == actor.id)
        elif user_id:
            query = query.filter(PpeRegisterEntry.user_id == user_id)

        if returned is not None:
            query = query.filter(PpeRegisterEntry.returned == returned)

        return query.order_by(PpeRegisterEntry.issued_at.desc(), PpeRegisterEntry.id.desc()).all()

    def mark_returned(
        self,
        actor: Actor,
        entry_id: int,
        photo_refs: Sequence[str] = (),
        remark: Optional[str] = None
    ) -> PpeRegisterEntry:
        """
        Record that issued PPE came back.

        Invariant: an entry is returned at most once. Two returns racing on
        the same entry end with one success and one ConflictError; the loser
        writes nothing.
        """
        require_active(actor)
        if actor.role not in (Role.SUPERVISOR, Role.ADMIN):
            raise ForbiddenError("Only a supervisor or an admin can record a PPE return")

        with self.locks.hold(f"ppe:{entry_id}"):
            entry = self.db.get(PpeRegisterEntry, entry_id)
            if entry is None:
                raise NotFoundError(f"PPE register entry {entry_id} not found")
            if entry.returned:
                raise InvalidTransitionError("returned", "return")

            try:
                entry.returned = True
                # JSON columns are not mutation-tracked; assign a new list
                entry.return_photo_refs = list(entry.return_photo_refs or []) + list(photo_refs)
                if remark is not None:
                    entry.remark = remark.strip() or None
                self.db.commit()
            except StaleDataError as exc:
                self.db.rollback()
                logger.warning("Concurrent return of PPE register entry %s", entry_id)
                raise ConflictError(
                    f"PPE register entry {entry_id} was modified concurrently; retry"
                ) from exc
            except Exception:
                self.db.rollback()
                raise

        logger.info("PPE register entry %s marked returned by %s", entry_id, actor.id)
        return entry
