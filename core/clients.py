"""
core/clients.py -- Factories for hosted-platform (Supabase) clients.

Two long-lived clients are created at startup and shared by every request:

  anon client    -- public API key. Used only to verify bearer tokens
                    (auth.get_user(jwt) does not store a session).
  service client -- service-role key. Bypasses row-level security; used for
                    the profiles table, the auth admin API and signed upload
                    URLs. Never exposed to callers.

Flows that would store a user session on the client (OAuth code exchange,
password sign-in) must use new_session_client() instead, which returns a
throwaway client with session persistence disabled.

Layer rule: core/ is the kernel. No imports from api/, auth/, or uploads/.
"""

from __future__ import annotations

from supabase import Client, ClientOptions, create_client

from core.config import Settings


def create_anon_client(settings: Settings) -> Client:
    return create_client(
        settings.supabase_url,
        settings.supabase_anon_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


def create_service_client(settings: Settings) -> Client:
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        options=ClientOptions(auto_refresh_token=False, persist_session=False),
    )


def new_session_client(settings: Settings, storage=None) -> Client:
    """Return a throwaway anon client for PKCE and password flows.

    Args:
        settings: Application settings.
        storage:  Optional auth storage object (get_item/set_item/remove_item).
                  The OAuth start flow passes one in to capture the PKCE code
                  verifier the client library generates.
    """
    kwargs: dict = {"flow_type": "pkce", "auto_refresh_token": False, "persist_session": False}
    if storage is not None:
        kwargs["storage"] = storage
    return create_client(settings.supabase_url, settings.supabase_anon_key, options=ClientOptions(**kwargs))
