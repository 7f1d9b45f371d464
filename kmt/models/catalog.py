"""Materials catalog - the items staff pick from when filling in a request."""
from sqlalchemy import Column, String, DateTime
from kmt.database import Base
from kmt.models.domain import utcnow


class Material(Base):
    """
    A catalog entry.

    Request items may point at one through material_id, but keep their own
    material_name so a request still reads correctly if the catalog changes.
    """
    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    sku = Column(String, nullable=True)
    category = Column(String, nullable=True, index=True)
    unit = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
