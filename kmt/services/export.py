"""
Export projector - flattens live requests into rows for the XLSX/PDF renderer.

Read-only: it never writes, and it sees exactly what list_active shows the caller.
"""
from datetime import date
from typing import Any, Dict, List, Optional
from kmt.models.actor import Actor
from kmt.models.domain import MaterialRequest, RequestItem
from kmt.models.enums import ExportFormat, RequestStatus
from kmt.services.errors import ValidationError
from kmt.services.request_store import RequestStore


def summarize_items(items: List[RequestItem]) -> str:
    """e.g. ``Ring spanner 10 x1; Safety gloves (L) x2``"""
    parts = []
    for item in items:
        label = f"{item.material_name} ({item.size})" if item.size else item.material_name
        parts.append(f"{label} x{item.qty}")
    return "; ".join(parts)


def export_filename(area: Optional[str], fmt: str, on: date) -> str:
    """KMT_requests_<area>_<YYYY-MM-DD>.<xlsx|pdf>"""
    try:
        extension = ExportFormat(fmt).value
    except ValueError:
        raise ValidationError(f"Unsupported export format: {fmt}") from None
    return f"KMT_requests_{area or 'All'}_{on.isoformat()}.{extension}"


class ExportProjector:
    """Produces deterministic flat records from the request store."""

    def __init__(self, store: RequestStore):
        self.store = store

    def project(
        self,
        actor: Actor,
        area: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        explode_items: bool = False
    ) -> List[Dict[str, Any]]:
        """
        One row per request, or one row per item when explode_items is set.

        date_from / date_to are inclusive and apply to the request's created_at.
        """
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to")

        rows: List[Dict[str, Any]] = []
        for request in self.store.list_active(actor, area=area, status=status):
            created = request.created_at.date()
            if date_from and created < date_from:
                continue
            if date_to and created > date_to:
                continue

            base = self._base_row(request)
            items = request.item_records
            if explode_items:
                for index, item in enumerate(items):
                    row = dict(base)
                    row.update({
                        "item_index": index,
                        "material_name": item.material_name,
                        "size": item.size,
                        "qty": item.qty,
                        "new_photo_ref": item.new_photo_ref,
                        "return_photo_ref": item.return_photo_ref,
                        "material_id": item.material_id,
                    })
                    rows.append(row)
            else:
                base.update({
                    "items": summarize_items(items),
                    "item_count": len(items),
                    "total_qty": sum(item.qty for item in items),
                })
                rows.append(base)

        return rows

    def _base_row(self, request: MaterialRequest) -> Dict[str, Any]:
        return {
            "request_id": request.id,
            "area": request.area,
            "category": request.category.value,
            "status": request.status.value,
            "requester_id": request.requester_id,
            "assigned_supervisor_id": request.assigned_supervisor_id,
            "received_by": request.received_by,
            "completed_at": request.completed_at.isoformat() if request.completed_at else None,
            "decline_reason": request.decline_reason,
            "created_at": request.created_at.isoformat(),
            "updated_at": request.updated_at.isoformat(),
        }
