"""
auth/verifier.py -- Identity provider adapter over Supabase Auth.

Everything security-relevant happens on the hosted platform: JWT signature
and expiry checks, password hashing, the OAuth handshake and PKCE code
exchange. This module calls the client library and converts its objects into
auth.models dataclasses.

  verify()                -- bearer token -> Identity, or None when invalid.
  create_account()        -- admin API; email confirmed up front.
  delete_account()        -- admin API; rollback for half-finished sign-ups.
  authorize_url()         -- start a PKCE OAuth sign-in; returns the provider
                             URL and the code verifier to keep in the session.
  exchange_code()         -- finish the OAuth sign-in.
  sign_in_with_password() -- used by the CLI to fetch a token for manual calls.

The shared anon client only ever calls auth.get_user(jwt), which does not
store a session. Flows that do store one run on a throwaway client from
core.clients.new_session_client().

Layer rule: no imports from api/ or uploads/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from supabase import AuthError, Client

from auth.models import AuthSession, Identity
from core.clients import new_session_client
from core.config import Settings

logger = logging.getLogger("supagate.auth.verifier")

_VERIFIER_SUFFIX = "-code-verifier"


class IdentityProviderError(Exception):
    """The identity provider rejected an account or sign-in operation."""


class _VerifierCapture:
    """In-memory auth storage that remembers the PKCE code verifier.

    The client library writes the verifier it generates for a PKCE sign-in
    into its storage under "<storage_key>-code-verifier". Handing it this
    object lets the caller read the verifier back and keep it in the signed
    session cookie until the callback arrives.
    """

    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    @property
    def code_verifier(self) -> str | None:
        for key, value in self.items.items():
            if key.endswith(_VERIFIER_SUFFIX):
                return value
        return None


def _to_identity(user) -> Identity:
    return Identity(
        subject_id=str(user.id),
        email=user.email,
        metadata=dict(user.user_metadata or {}),
    )


def _to_session(response) -> AuthSession:
    session = response.session
    if session is None or response.user is None:
        raise IdentityProviderError("Identity provider returned no session")
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=int(session.expires_in or 0),
        token_type=session.token_type or "bearer",
        identity=_to_identity(response.user),
    )


class SupabaseIdentityVerifier:
    """Identity verifier and account manager backed by Supabase Auth.

    Args:
        settings:       Application settings (platform URL and anon key for
                        throwaway session clients).
        anon_client:    Shared anon-key client used for token verification.
        service_client: Shared service-role client used for the admin API.
    """

    def __init__(self, settings: Settings, anon_client: Client, service_client: Client) -> None:
        self.settings = settings
        self.anon_client = anon_client
        self.service_client = service_client

    # ------------------------------------------------------------------
    # Token verification
    # ------------------------------------------------------------------

    def verify(self, token: str) -> Identity | None:
        """Return the Identity behind a bearer token, or None if the platform
        rejects it (bad signature, expired, revoked user).

        Transport failures are not an authentication verdict and propagate.
        """
        try:
            response = self.anon_client.auth.get_user(token)
        except AuthError as exc:
            logger.info("Token rejected by identity provider: %s", exc.message)
            return None
        if response is None or response.user is None:
            return None
        return _to_identity(response.user)

    # ------------------------------------------------------------------
    # Account administration
    # ------------------------------------------------------------------

    def create_account(self, email: str, password: str, full_name: str | None = None) -> Identity:
        metadata = {"full_name": full_name} if full_name else {}
        try:
            response = self.service_client.auth.admin.create_user(
                {
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": metadata,
                }
            )
        except AuthError as exc:
            raise IdentityProviderError(exc.message) from exc
        if response.user is None:
            raise IdentityProviderError("Identity provider returned no user")
        return _to_identity(response.user)

    def delete_account(self, subject_id: str) -> None:
        try:
            self.service_client.auth.admin.delete_user(subject_id)
        except AuthError as exc:
            raise IdentityProviderError(exc.message) from exc

    # ------------------------------------------------------------------
    # OAuth (PKCE)
    # ------------------------------------------------------------------

    def authorize_url(self, provider: str, redirect_to: str) -> tuple[str, str]:
        """Return (provider_url, code_verifier) for a new OAuth sign-in."""
        storage = _VerifierCapture()
        client = new_session_client(self.settings, storage=storage)
        response = client.auth.sign_in_with_oauth({"provider": provider, "options": {"redirect_to": redirect_to}})
        verifier = storage.code_verifier
        if not verifier:
            raise IdentityProviderError("Identity provider did not start a PKCE flow")
        return response.url, verifier

    def exchange_code(self, auth_code: str, code_verifier: str) -> AuthSession:
        client = new_session_client(self.settings)
        try:
            response = client.auth.exchange_code_for_session({"auth_code": auth_code, "code_verifier": code_verifier})
        except AuthError as exc:
            raise IdentityProviderError(exc.message) from exc
        return _to_session(response)

    # ------------------------------------------------------------------
    # Password sign-in (CLI)
    # ------------------------------------------------------------------

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        client = new_session_client(self.settings)
        try:
            response = client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as exc:
            raise IdentityProviderError(exc.message) from exc
        return _to_session(response)
