from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    ``user_id`` is the JWT subject; for learners it is the learner id.
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def is_platform_admin(self) -> bool:
        return "admin" in self.roles

    @property
    def learner_id(self) -> UUID | None:
        try:
            return UUID(self.user_id)
        except ValueError:
            return None
