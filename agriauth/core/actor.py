"""Authenticated principal handed to the engine."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Actor(BaseModel):
    """Actor resolved by the authentication collaborator.

    The engine trusts ``role`` verbatim and performs no identity checks.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    location: Optional[str] = None
