"""Materials catalog service."""
import logging
import uuid
from typing import Callable, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from kmt.models.actor import Actor
from kmt.models.catalog import Material
from kmt.models.domain import utcnow
from kmt.models.enums import Role
from kmt.services.errors import ForbiddenError, NotFoundError, ValidationError
from kmt.services.request_store import require_active

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class MaterialCatalog:
    """Lists catalog entries and lets supervisors and admins add new ones."""

    def __init__(
        self,
        db: Session,
        clock: Callable = utcnow,
        id_generator: Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        self.db = db
        self.clock = clock
        self.id_generator = id_generator

    def list_materials(self, category: Optional[str] = None) -> List[Material]:
        query = self.db.query(Material)
        if category:
            query = query.filter(Material.category == category)
        return query.order_by(Material.name.asc(), Material.id.asc()).all()

    def get(self, material_id: str) -> Material:
        material = self.db.get(Material, material_id)
        if material is None:
            raise NotFoundError(f"Material {material_id} not found")
        return material

    def add(
        self,
        actor: Actor,
        name: str,
        category: Optional[str] = None,
        unit: Optional[str] = None,
        sku: Optional[str] = None
    ) -> Material:
        """
        Add a catalog entry.

        Rules:
        - Only active supervisors and admins add materials
        - Name is required and unique, ignoring case
        """
        require_active(actor)
        if actor.role not in (Role.SUPERVISOR, Role.ADMIN):
            raise ForbiddenError("Only a supervisor or an admin can add materials")

        name = _clean(name)
        if not name:
            raise ValidationError("Material name is required")

        duplicate = self.db.query(Material).filter(
            func.lower(Material.name) == name.lower()
        ).first()
        if duplicate is not None:
            raise ValidationError(f"Material '{name}' is already in the catalog")

        material = Material(
            id=self.id_generator(),
            name=name,
            sku=_clean(sku),
            category=_clean(category),
            unit=_clean(unit),
            created_at=self.clock()
        )
        try:
            self.db.add(material)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Material %s (%s) added by %s", material.id, material.name, actor.id)
        return material
