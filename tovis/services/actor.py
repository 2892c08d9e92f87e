# tovis/services/actor.py

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    PRO = "PRO"
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation. Passed explicitly into every core call."""

    user_id: int
    role: Role
    professional_id: int | None = None

    @property
    def is_pro(self) -> bool:
        return self.role == Role.PRO and self.professional_id is not None

    @property
    def is_system(self) -> bool:
        return self.role == Role.SYSTEM

    def owns_professional(self, professional_id: int) -> bool:
        return self.is_pro and self.professional_id == professional_id


SYSTEM_ACTOR = Actor(user_id=0, role=Role.SYSTEM)
