"""
Authentication Models

Typed identity passed to protected routes after JWT verification.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class UserContext(BaseModel):
    """
    Authenticated user derived from a verified bearer token.

    The raw token and its expiry are kept so logout can revoke exactly the
    token that was presented.
    """

    user_id: int = Field(
        ...,
        ge=1,
        description="Id of the user the token was issued to.",
    )

    email: Optional[str] = Field(
        default=None,
        description="Email claim, when the issuer includes one.",
    )

    role: str = Field(
        default="user",
        description="Role claim; defaults to 'user'.",
    )

    token: str = Field(..., min_length=1, repr=False)

    expires_at: datetime

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
