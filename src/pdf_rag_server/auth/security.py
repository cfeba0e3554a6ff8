"""
JWT Verification

This module is responsible for:

1. Verifying bearer JWTs presented to protected routes.
2. Rejecting tokens revoked by logout.
3. Producing a validated `UserContext` object to downstream routes.

Security Model
--------------
- Tokens are HS256-signed with the shared ``jwt_secret``.
- Issuer and audience are always checked.
- The user id is read from ``sub`` or, for older issuers, ``user_id``.
"""

from __future__ import annotations

from datetime import datetime, timezone

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from .models import UserContext
from .revocation import TokenRevocationList


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _decode_token(token: str) -> dict:
    """
    Decode and validate a bearer token.

    Raises
    ------
    Various JWT-related exceptions, which the public wrapper handles.
    """
    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={"require": ["iss", "aud", "exp"]},
    )


def _user_id_from(payload: dict) -> int:
    raw = payload.get("sub", payload.get("user_id"))
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        raise _unauthorized("Token missing a valid user id claim.")

    if user_id < 1:
        raise _unauthorized("Token missing a valid user id claim.")
    return user_id


# ---------------------------------------------------------------------
# Public Dependencies
# ---------------------------------------------------------------------

def get_revocation_list(request: Request) -> TokenRevocationList:
    return request.app.state.revocations


def verify_jwt(
    creds: HTTPAuthorizationCredentials = Depends(security),
    revocations: TokenRevocationList = Depends(get_revocation_list),
) -> UserContext:
    """
    Verify the bearer token and construct a UserContext.

    Expected claims:
      - iss / aud: must match the configured issuer and audience
      - exp: expiry
      - sub (or user_id): numeric user id
      - email, role: optional

    Raises
    ------
    HTTPException(401) for invalid, expired or revoked tokens.
    """
    token = creds.credentials

    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired.")
    except jwt.InvalidAudienceError:
        raise _unauthorized("Invalid token audience.")
    except jwt.InvalidIssuerError:
        raise _unauthorized("Invalid token issuer.")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid or malformed token.")

    if revocations.is_revoked(token):
        raise _unauthorized("Token has been revoked.")

    return UserContext(
        user_id=_user_id_from(payload),
        email=payload.get("email"),
        role=payload.get("role") or "user",
        token=token,
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
    )
