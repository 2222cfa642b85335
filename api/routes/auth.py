"""
api/routes/auth.py -- Registration, identity and OAuth sign-in endpoints.

Routes:
  POST /api/register                -- create account + profile (role "user")
  GET  /api/me                      -- current identity and resolved role
  GET  /api/auth/providers          -- list configured OAuth providers (public)
  GET  /api/auth/oauth/{provider}   -- start OAuth sign-in; 302 to the provider
  GET  /api/auth/callback           -- finish OAuth sign-in; 302 to the front end

Security:
  [H2] POST /register is rate-limited per IP (REGISTER_RATE_LIMIT).
  [C2] The post-sign-in landing URL only accepts relative ?next= paths.
  [M5] Cache-Control: no-store on responses that carry tokens.
  Roles are never read from request bodies. Registration always creates a
  "user" profile; promotion happens in the profiles table.

Registration is two writes on two systems (identity provider account, then
profile row). If the profile insert fails the account is deleted again so
a retry with the same email is possible.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from api.limiter import limiter
from api.models import (
    MeResponse,
    OAuthProviderInfo,
    ProfileResponse,
    RegisteredUser,
    RegisterRequest,
    RegisterResponse,
)
from auth.dependencies import get_auth_result
from auth.models import ROLE_USER, AuthResult, Profile
from auth.oauth import (
    build_error_redirect,
    build_session_redirect,
    get_enabled_providers,
    is_enabled_provider,
    safe_redirect_target,
)
from auth.store import ProfileStoreError
from auth.verifier import IdentityProviderError
from core.config import get_settings

logger = logging.getLogger("supagate.api.auth")

_SESSION_VERIFIER_KEY = "oauth_code_verifier"
_SESSION_NEXT_KEY = "oauth_next"

# Auth policy:
# - POST /api/register:                 public, rate-limited
# - GET  /api/me:                       requires identity (get_auth_result)
# - GET  /api/auth/providers:           public -- login page renders buttons from it
# - GET  /api/auth/oauth/{provider}:    public -- starts the sign-in
# - GET  /api/auth/callback:            public -- provider redirects here
router = APIRouter()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


# The route decorator stays outermost so FastAPI registers the rate-limited wrapper.
# slowapi calls the limit provider with no arguments, so it cannot reach
# request.app.state; it reads the same cached Settings the lifespan installs.
@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(lambda: get_settings().register_rate_limit)  # [H2] sign-up abuse mitigation
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an identity-provider account and its "user" profile."""
    if not body.email or not body.password:
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_request", "message": "Email and password are required."},
        )

    verifier = request.app.state.verifier
    profile_store = request.app.state.profile_store

    try:
        identity = verifier.create_account(body.email, body.password, body.full_name)
    except IdentityProviderError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "registration_failed", "message": str(exc)},
        ) from exc

    try:
        profile = profile_store.create_profile(
            Profile(
                user_id=identity.subject_id,
                email=body.email,
                full_name=body.full_name,
                role=ROLE_USER,
            )
        )
    except ProfileStoreError as exc:
        logger.error("Profile creation failed for %s: %s -- rolling back account", identity.subject_id, exc)
        try:
            verifier.delete_account(identity.subject_id)
        except Exception:
            logger.exception("Failed to roll back account %s", identity.subject_id)
        raise HTTPException(
            status_code=500,
            detail={"code": "registration_failed", "message": "Failed to create user profile."},
        ) from exc

    logger.info("Registered %s", identity.subject_id)
    return RegisterResponse(
        user=RegisteredUser(
            id=identity.subject_id,
            email=identity.email,
            profile=ProfileResponse.from_profile(profile),
        )
    )


# ---------------------------------------------------------------------------
# Authenticated identity
# ---------------------------------------------------------------------------


@router.get("/me", response_model=MeResponse)
def me(auth: AuthResult = Depends(get_auth_result)) -> MeResponse:
    """Return the verified identity and the role resolved for it."""
    return MeResponse(
        user_id=auth.identity.subject_id,
        email=auth.identity.email,
        role=auth.role,
        display_name=auth.identity.display_name,
    )


# ---------------------------------------------------------------------------
# OAuth sign-in
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers(request: Request) -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty list if none."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers(request.app.state.settings)]


@router.get("/auth/oauth/{provider}")
def oauth_start(
    request: Request,
    provider: str,
    next_path: Optional[str] = Query(None, alias="next"),
) -> RedirectResponse:
    """Redirect the browser to the identity provider's sign-in page.

    The provider name is checked against OAUTH_PROVIDERS first so a crafted
    name cannot be forwarded to the platform. The PKCE code verifier and the
    landing URL are kept in the signed session cookie for the callback.
    """
    settings = request.app.state.settings
    if not is_enabled_provider(settings, provider):
        return RedirectResponse(build_error_redirect(settings, "oauth_failed"), status_code=302)

    callback_url = str(request.url_for("oauth_callback"))
    try:
        provider_url, code_verifier = request.app.state.verifier.authorize_url(provider, callback_url)
    except IdentityProviderError:
        logger.exception("Could not start OAuth sign-in with %r", provider)
        return RedirectResponse(build_error_redirect(settings, "oauth_failed"), status_code=302)

    request.session[_SESSION_VERIFIER_KEY] = code_verifier
    request.session[_SESSION_NEXT_KEY] = safe_redirect_target(settings, next_path)  # [C2]
    return RedirectResponse(provider_url, status_code=302)


@router.get("/auth/callback", name="oauth_callback")
def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
) -> RedirectResponse:
    """Finish the OAuth sign-in and hand the tokens to the front end.

    Flow:
      1. Pop the PKCE verifier and landing URL from the session (single use).
      2. Exchange the code for a session on the identity provider.
      3. Create the profile on first sign-in (role "user"). A failure here is
         logged but does not block the sign-in: role resolution already
         treats a missing profile as "user".
      4. Redirect to the landing URL with the tokens in the fragment.
    """
    settings = request.app.state.settings
    code_verifier = request.session.pop(_SESSION_VERIFIER_KEY, None)
    target = request.session.pop(_SESSION_NEXT_KEY, None) or settings.default_redirect_url

    if error:
        logger.warning("OAuth provider returned error %r: %s", error, error_description)
        return RedirectResponse(build_error_redirect(settings, "oauth_failed"), status_code=302)
    if not code or not code_verifier:
        logger.warning("OAuth callback without code or session verifier")
        return RedirectResponse(build_error_redirect(settings, "oauth_failed"), status_code=302)

    try:
        session = request.app.state.verifier.exchange_code(code, code_verifier)
    except IdentityProviderError:
        logger.exception("OAuth code exchange failed")
        return RedirectResponse(build_error_redirect(settings, "oauth_failed"), status_code=302)

    identity = session.identity
    try:
        request.app.state.profile_store.ensure_profile(identity.subject_id, identity.email, identity.display_name)
    except Exception:
        logger.exception("Lazy profile creation failed for %s", identity.subject_id)

    resp = RedirectResponse(build_session_redirect(target, session), status_code=302)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
