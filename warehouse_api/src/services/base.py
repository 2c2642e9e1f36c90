from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories. A service operation commits once, after every repository
    change it makes has been staged.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def format_document_number(prefix: str, existing_count: int) -> str:
    """Return the next sequential document number, e.g. JOB-000001."""
    return f"{prefix}-{existing_count + 1:06d}"
