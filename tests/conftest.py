"""
tests/conftest.py -- Shared test fixtures for SupaGate integration tests.

This module provides:
  - FakeVerifier: in-memory stand-in for the hosted identity provider
  - make_upload_signer(): a real UploadSigner over a MagicMock platform client
  - _patch_lifespan(): wires test collaborators into app.state, bypassing
    the real startup (no platform clients are created)
  - api: ApiHarness (TestClient plus handles on the fakes for assertions)

Design: the profile store is a real SqlProfileStore on a named shared-memory
SQLite URI (not plain :memory:). TestClient runs sync route handlers in a
thread pool and plain :memory: DBs are per-connection, so each worker thread
would see a blank schema.

DEBUG and ALLOWED_HOSTS must be set before any api/core import so
get_settings() auto-generates SECRET_KEY and TrustedHostMiddleware accepts
the TestClient host.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from unittest.mock import MagicMock

# CRITICAL: set before any api/core import (settings are read at import time).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import AuthSession, Identity, Profile
from auth.store import SqlProfileStore
from auth.verifier import IdentityProviderError
from core.config import Settings
from uploads.signer import UploadSigner

ADMIN_EMAIL = "admin@example.com"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeVerifier:
    """In-memory identity provider.

    tokens maps bearer token -> Identity. Accounts created through
    create_account() get sequential subject ids and are recorded so tests
    can assert on rollbacks.
    """

    tokens: dict[str, Identity] = field(default_factory=dict)
    created: list[Identity] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    reject_create: str | None = None
    code_verifier: str = "test-code-verifier"
    codes: dict[str, Identity] = field(default_factory=dict)

    def add_token(self, token: str, subject_id: str, email: str | None, **metadata) -> Identity:
        identity = Identity(subject_id=subject_id, email=email, metadata=metadata)
        self.tokens[token] = identity
        return identity

    def verify(self, token: str) -> Identity | None:
        return self.tokens.get(token)

    def create_account(self, email: str, password: str, full_name: str | None = None) -> Identity:
        if self.reject_create:
            raise IdentityProviderError(self.reject_create)
        identity = Identity(
            subject_id=f"acct-{len(self.created) + 1}",
            email=email,
            metadata={"full_name": full_name} if full_name else {},
        )
        self.created.append(identity)
        return identity

    def delete_account(self, subject_id: str) -> None:
        self.deleted.append(subject_id)

    def authorize_url(self, provider: str, redirect_to: str) -> tuple[str, str]:
        return f"https://idp.example/authorize?provider={provider}&redirect_to={redirect_to}", self.code_verifier

    def exchange_code(self, auth_code: str, code_verifier: str) -> AuthSession:
        identity = self.codes.get(auth_code)
        if identity is None or code_verifier != self.code_verifier:
            raise IdentityProviderError("invalid grant")
        return AuthSession(
            access_token=f"access-{identity.subject_id}",
            refresh_token=f"refresh-{identity.subject_id}",
            expires_in=3600,
            identity=identity,
        )


def make_upload_signer() -> tuple[UploadSigner, MagicMock]:
    """Return a real UploadSigner whose platform client is a MagicMock."""
    client = MagicMock()
    client.storage.from_.return_value.create_signed_upload_url.return_value = {
        "signed_url": "https://project.supabase.co/storage/v1/object/upload/sign/documents/x?token=abc",
        "token": "abc",
    }
    return UploadSigner(client), client


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "super_admin_email": ADMIN_EMAIL,
        "default_redirect_url": "http://localhost:3000/",
        "oauth_providers": ["google", "github"],
        "upload_buckets": ["documents", "avatars"],
    }
    values.update(overrides)
    return Settings(**values)


def _patch_lifespan(settings: Settings, verifier: FakeVerifier, store: SqlProfileStore, signer: UploadSigner):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.verifier = verifier
        app.state.profile_store = store
        app.state.upload_signer = signer
        yield

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    verifier: FakeVerifier
    store: SqlProfileStore
    storage_client: MagicMock
    settings: Settings

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness wired to fresh fakes and an isolated profile DB.

    Pre-seeded identities:
      "admin-token" -> fail-safe admin (admin@example.com), no profile row
      "user-token"  -> carol (u-carol), profile role "user"
      "boss-token"  -> dave (u-dave), profile role "admin"
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    store = SqlProfileStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    verifier = FakeVerifier()
    signer, storage_client = make_upload_signer()
    settings = make_settings()

    verifier.add_token("admin-token", "u-root", ADMIN_EMAIL)
    verifier.add_token("user-token", "u-carol", "carol@example.com", full_name="Carol")
    verifier.add_token("boss-token", "u-dave", "dave@example.com")
    store.create_profile(Profile(user_id="u-carol", email="carol@example.com", full_name="Carol", role="user"))
    store.create_profile(Profile(user_id="u-dave", email="dave@example.com", role="admin"))

    app.router.lifespan_context = _patch_lifespan(settings, verifier, store, signer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(
            client=client,
            verifier=verifier,
            store=store,
            storage_client=storage_client,
            settings=settings,
        )

    store.close()
