"""
Active principal

The household app has a single family login, but every operation still takes
the principal explicitly so rows are always scoped by ``user_id``.
"""
import os
import uuid
from dataclasses import dataclass

# Fixed family identity used when DEFAULT_USER_ID is not configured
FALLBACK_USER_ID = "00000000-0000-0000-0000-000000000001"


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID

    @property
    def state_prefix(self) -> str:
        """Prefix of OAuth state values issued for this principal"""
        return f"{self.user_id}:"


def get_active_principal() -> Principal:
    """FastAPI dependency returning the principal requests act on behalf of"""
    return Principal(user_id=uuid.UUID(os.getenv("DEFAULT_USER_ID", FALLBACK_USER_ID)))
