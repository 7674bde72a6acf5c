from dataclasses import dataclass
from typing import Optional

from backend.ledger.models import UserProfile


@dataclass(frozen=True)
class Actor:
    """Authenticated identity as seen by the services."""

    id: Optional[int]
    role: str = UserProfile.ADMIN
    linked_account_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserProfile.ADMIN

    @property
    def is_secretary(self) -> bool:
        return self.role == UserProfile.SECRETARY

    @property
    def restricted_account_id(self) -> Optional[int]:
        """Account a secretary is confined to, None for unrestricted actors."""
        if self.is_secretary:
            return self.linked_account_id
        return None

    @classmethod
    def from_user(cls, user) -> "Actor":
        profile = getattr(user, "ledger_profile", None)
        if profile is None:
            return cls(id=user.pk)
        return cls(id=user.pk, role=profile.role, linked_account_id=profile.secretary_account_id)


SYSTEM = Actor(id=None)
