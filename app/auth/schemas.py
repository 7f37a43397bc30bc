from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Identity carried in the access token. Issued by the auth service, not this one."""

    id: UUID
    agency_id: UUID
    role: str
