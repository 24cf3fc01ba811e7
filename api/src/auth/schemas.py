"""Pydantic schemas for authentication."""

from pydantic import BaseModel, Field


class AuthenticatedLearner(BaseModel):
    """Learner identity decoded from an access token."""

    id: str = Field(..., min_length=1, description="Learner id (token subject)")
    role: str | None = Field(default=None, description="Optional role claim")
