"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
properties). Stores and routes do the work.

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

ROLE_ADMIN = "admin"
ROLE_USER = "user"
VALID_ROLES = frozenset({ROLE_ADMIN, ROLE_USER})


@dataclass(frozen=True)
class Identity:
    """A caller verified by the hosted identity provider.

    subject_id is the provider's stable user id (a UUID for Supabase).
    metadata is the provider's user_metadata blob (display name, avatar, ...).
    Never persisted by this service.
    """

    subject_id: str
    email: str | None
    metadata: dict = field(default_factory=dict)

    @property
    def display_name(self) -> str | None:
        return self.metadata.get("full_name") or self.metadata.get("name")


@dataclass
class Profile:
    """One row of the profiles table, keyed by the provider's subject id."""

    user_id: str
    email: str | None
    role: str = ROLE_USER
    full_name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of request authentication, handed to route handlers.

    Returned by auth.dependencies.get_auth_result() instead of being attached
    to the request, so handlers declare exactly what they consume.
    """

    identity: Identity
    role: str


@dataclass(frozen=True)
class AuthSession:
    """Tokens issued by the identity provider after a completed sign-in."""

    access_token: str
    refresh_token: str
    expires_in: int
    identity: Identity
    token_type: str = "bearer"  # noqa: S105 -- OAuth token type, not a password
