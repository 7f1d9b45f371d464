"""The caller identity, as vouched for by the external identity provider."""
from dataclasses import dataclass
from typing import Optional

from kmt.models.enums import Role


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    area: str = ""
    active: bool = True
    nationality: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_supervisor(self) -> bool:
        return self.role == Role.SUPERVISOR
