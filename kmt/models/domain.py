"""Domain models - material requests, their items, and the PPE register."""
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Enum as SQLEnum, JSON
from kmt.database import Base
from kmt.models.enums import RequestCategory, RequestStatus


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class RequestItem:
    """One line of a material request. Photo refs are opaque blob-store handles."""
    material_name: str
    qty: int
    size: str = ""
    new_photo_ref: Optional[str] = None
    return_photo_ref: Optional[str] = None
    material_id: Optional[str] = None  # catalog entry, when picked from the list

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestItem":
        return cls(
            material_name=data["material_name"],
            qty=data["qty"],
            size=data.get("size") or "",
            new_photo_ref=data.get("new_photo_ref"),
            return_photo_ref=data.get("return_photo_ref"),
            material_id=data.get("material_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MaterialRequest(Base):
    """
    A material request moves through: pending → in_progress → completed, or pending → declined.

    Invariants enforced here:
    - Status is always one of the four allowed states
    - Created with pending status (handled in the request store)
    - deleted_at set means the request is invisible to everything but recovery
    - version is bumped on every write; a stale write fails instead of overwriting
    """
    __tablename__ = "material_requests"

    id = Column(String(36), primary_key=True, index=True)
    requester_id = Column(String, nullable=False, index=True)
    requester_nationality = Column(String, nullable=True)
    area = Column(String, nullable=False, index=True)
    category = Column(SQLEnum(RequestCategory), nullable=False, default=RequestCategory.MATERIAL)
    items = Column(JSON, nullable=False)  # list of RequestItem.to_dict()
    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True)

    assigned_supervisor_id = Column(String, nullable=True)
    decline_reason = Column(String, nullable=True)

    # Set only at completion
    received_by = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Timestamps (updated_at is written by the services, never by onupdate)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def item_records(self) -> List[RequestItem]:
        return [RequestItem.from_dict(item) for item in self.items or []]

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy of every field, kept in the audit log when the row is purged."""
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "requester_nationality": self.requester_nationality,
            "area": self.area,
            "category": self.category.value,
            "items": list(self.items or []),
            "status": self.status.value,
            "assigned_supervisor_id": self.assigned_supervisor_id,
            "decline_reason": self.decline_reason,
            "received_by": self.received_by,
            "completed_at": iso(self.completed_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "deleted_at": iso(self.deleted_at),
        }


class PpeRegisterEntry(Base):
    """
    Issued PPE, written when a PPE request is completed.

    request_id is a plain reference so entries survive a purge of the request.
    A return is written at most once; version catches a second, stale return.
    """
    __tablename__ = "ppe_register"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    item_name = Column(String, nullable=False)
    size = Column(String, nullable=False, default="")
    qty = Column(Integer, nullable=False, default=1)
    nationality = Column(String, nullable=True)
    issued_by = Column(String, nullable=False)
    issued_at = Column(DateTime, nullable=False, default=utcnow)
    returned = Column(Boolean, nullable=False, default=False)
    return_photo_refs = Column(JSON, nullable=False, default=list)
    remark = Column(String, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
