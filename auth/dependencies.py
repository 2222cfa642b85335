"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one credential is accepted: Authorization: Bearer <token>, where the
token was issued by the hosted identity provider. The provider verifies it;
this module then resolves the caller's role and returns an AuthResult.

get_auth_result() raises HTTP 401 if the credential is missing or invalid.
require_admin() wraps it and raises HTTP 403 if the role is not "admin".

Collaborators are read from app.state (set by the lifespan):
  settings       -- core.config.Settings (fail-safe admin email)
  verifier       -- auth.verifier.SupabaseIdentityVerifier (or a test fake)
  profile_store  -- auth.store.SupabaseProfileStore / SqlProfileStore

Layer rule: no imports from api/ or uploads/.
  auth/dependencies.py may import from fastapi because it is part of the
  FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import AuthResult
from auth.roles import is_admin, resolve_role

_BEARER_PREFIX = "Bearer "


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_bearer_token(request: Request) -> str | None:
    """Return the raw bearer token, or None if the header is missing or malformed."""
    header = request.headers.get("Authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def get_auth_result(request: Request) -> AuthResult:
    """Require a valid identity. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(auth: AuthResult = Depends(get_auth_result)): ...
    """
    token = get_bearer_token(request)
    if token is None:
        raise _unauthorized("Missing or invalid authorization header.")

    state = request.app.state
    identity = state.verifier.verify(token)
    if identity is None:
        raise _unauthorized("Invalid or expired token.")

    role = resolve_role(identity, state.settings.super_admin_email, state.profile_store.get_role)
    return AuthResult(identity=identity, role=role)


def require_admin(request: Request) -> AuthResult:
    """Require the admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        async def route(auth: AuthResult = Depends(require_admin)): ...
    """
    result = get_auth_result(request)
    if not is_admin(result.role):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return result
