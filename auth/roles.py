"""
auth/roles.py -- Role resolution and the admin authorization gate.

resolve_role() decides whether a verified identity acts as "admin" or
"user". Priority order, short-circuiting:

  1. Fail-safe admin: the identity's email equals the configured
     SUPER_ADMIN_EMAIL (exact, case-sensitive). Returns "admin" without
     touching the profile store, so this account keeps working while the
     store is unreachable or its profile row is missing.
  2. Stored role: whatever find_role(subject_id) returns, normalized.
  3. Anything else (not found, lookup error) -> "user". Never fails open.

The function is total. The fail-safe email and the lookup are passed in by
the caller; nothing here reads configuration or request state.

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from auth.models import ROLE_ADMIN, ROLE_USER, VALID_ROLES, Identity

logger = logging.getLogger("supagate.auth.roles")

RoleLookup = Callable[[str], Optional[str]]


def normalize_role(value: object) -> str:
    """Map a stored role value onto {"admin", "user"}.

    Unrecognized values are downgraded to "user" and logged so a corrupted
    or misspelled row is visible without locking the account out.
    """
    if isinstance(value, str) and value in VALID_ROLES:
        return value
    if value is not None:
        logger.warning("Unrecognized stored role %r -- treating as %r", value, ROLE_USER)
    return ROLE_USER


def resolve_role(identity: Identity, fail_safe_email: str | None, find_role: RoleLookup) -> str:
    """Return the role for a verified identity.

    Args:
        identity:        Identity already verified by the identity provider.
        fail_safe_email: Configured fail-safe admin email. Empty or None
                         disables the fail-safe path.
        find_role:       Lookup by subject id. Returns the stored role, or
                         None when no profile exists. May raise.
    """
    if fail_safe_email and identity.email == fail_safe_email:
        return ROLE_ADMIN

    try:
        stored = find_role(identity.subject_id)
    except Exception:
        logger.warning(
            "Role lookup failed for subject %s -- defaulting to %r",
            identity.subject_id,
            ROLE_USER,
            exc_info=True,
        )
        return ROLE_USER

    return normalize_role(stored)


def is_admin(role: str) -> bool:
    """Authorization gate for elevated operations."""
    return role == ROLE_ADMIN
