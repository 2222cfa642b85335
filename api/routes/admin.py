"""
api/routes/admin.py -- Admin-only overview of registered profiles.

Returns a single payload for the admin dashboard:
  - the calling admin's email and resolved role
  - total profile count and the size of the recent-users page
  - the 50 newest profiles

Read-only -- no mutations here.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import DashboardAdmin, DashboardResponse, DashboardStats, ProfileResponse
from auth.dependencies import require_admin
from auth.models import AuthResult

logger = logging.getLogger("supagate.api.admin")

_RECENT_LIMIT = 50

# Auth policy:
# - GET /api/admin/dashboard: requires admin role (require_admin)
router = APIRouter()


@router.get("/admin/dashboard", response_model=DashboardResponse)
def get_dashboard(request: Request, auth: AuthResult = Depends(require_admin)) -> DashboardResponse:
    """Return profile statistics and the newest profiles."""
    profile_store = request.app.state.profile_store

    try:
        users = profile_store.list_recent(limit=_RECENT_LIMIT)
    except Exception as exc:
        logger.exception("Profile listing failed")
        raise HTTPException(
            status_code=500,
            detail={"code": "data_fetch_failed", "message": "Failed to fetch dashboard data."},
        ) from exc

    # The count is informational; the listing above already succeeded.
    try:
        total = profile_store.count()
    except Exception:
        logger.warning("Profile count failed -- reporting 0", exc_info=True)
        total = 0

    return DashboardResponse(
        admin=DashboardAdmin(email=auth.identity.email, role=auth.role),
        stats=DashboardStats(total_users=total, recent_users=len(users)),
        users=[ProfileResponse.from_profile(p) for p in users],
    )
