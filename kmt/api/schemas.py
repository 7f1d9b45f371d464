"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from kmt.models.domain import RequestItem
from kmt.models.enums import AuditAction, RequestCategory, RequestStatus


# Material request schemas
class RequestItemIn(BaseModel):
    """material_name may be left blank when material_id names a catalog entry."""
    material_name: str = Field("", max_length=200)
    material_id: Optional[str] = None
    size: str = ""
    qty: int = Field(..., gt=0)
    new_photo_ref: Optional[str] = None
    return_photo_ref: Optional[str] = None

    def to_domain(self) -> RequestItem:
        return RequestItem(
            material_name=self.material_name,
            qty=self.qty,
            size=self.size,
            new_photo_ref=self.new_photo_ref,
            return_photo_ref=self.return_photo_ref,
            material_id=self.material_id
        )


class RequestItemOut(BaseModel):
    material_name: str
    material_id: Optional[str] = None
    size: str
    qty: int
    new_photo_ref: Optional[str] = None
    return_photo_ref: Optional[str] = None


class MaterialRequestCreate(BaseModel):
    area: str = Field(..., min_length=1)
    items: List[RequestItemIn] = Field(..., min_length=1)
    category: RequestCategory = RequestCategory.MATERIAL


class MaterialRequestCreated(BaseModel):
    id: str
    status: RequestStatus


class MaterialRequestResponse(BaseModel):
    id: str
    requester_id: str
    requester_nationality: Optional[str] = None
    area: str
    category: RequestCategory
    items: List[RequestItemOut]
    status: RequestStatus
    assigned_supervisor_id: Optional[str]
    decline_reason: Optional[str]
    received_by: Optional[str]
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# Transition schemas
class DeclineBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class CompleteBody(BaseModel):
    received_by: str = Field(..., min_length=1, max_length=200)
    completed_at: datetime


# Audit schemas
class AuditEntryResponse(BaseModel):
    id: int
    actor_id: str
    action: AuditAction
    target_request_id: str
    meta: Dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Export schemas
class ExportResponse(BaseModel):
    """Rows for the external XLSX/PDF renderer, plus the file name it should use."""
    filename: str
    explode_items: bool
    rows: List[Dict[str, Any]]


# PPE register schemas
class PpeRegisterEntryResponse(BaseModel):
    id: int
    request_id: str
    user_id: str
    item_name: str
    size: str
    qty: int
    nationality: Optional[str] = None
    issued_by: str
    issued_at: datetime
    returned: bool
    return_photo_refs: List[str]
    remark: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class PpeReturnBody(BaseModel):
    photo_refs: List[str] = []
    remark: Optional[str] = Field(None, max_length=500)


# Catalog schemas
class MaterialCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    unit: Optional[str] = None
    sku: Optional[str] = None


class MaterialResponse(BaseModel):
    id: str
    name: str
    sku: Optional[str]
    category: Optional[str]
    unit: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Error response
class ErrorResponse(BaseModel):
    """Response when an operation is refused."""
    error: str
    message: str
    retryable: bool = False
