"""
auth/store.py -- Persistence for Profile records.

Pattern: Repository + Data Mapper. Two repositories expose the same methods
so routes and dependencies never care which backend is active:

  SupabaseProfileStore -- PostgREST "profiles" table through the
                          service-role client (bypasses row-level security).
                          Default in production.
  SqlProfileStore      -- SQLAlchemy Core over DATABASE_URL. Talks to the
                          same Postgres database directly, or to SQLite for
                          local development and tests. Owns the table schema.

_row_to_profile is the shared mapper; both backends hand it a mapping.

Error contract:
  Read methods (get_role, get_profile, list_recent, count) let backend
  errors propagate. The role resolver maps a failed get_role to "user";
  admin routes turn other failures into a 500.
  Write methods raise ProfileStoreError, for rejected writes and for
  transport failures alike, so callers can roll back.

Security:
  All SQL queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

import httpx
from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from supabase import Client, PostgrestAPIError

from auth.models import ROLE_USER, Profile

logger = logging.getLogger("supagate.auth.store")

PROFILES_TABLE = "profiles"
_PROFILE_COLUMNS = "user_id, email, full_name, role, created_at, updated_at"


class ProfileStoreError(Exception):
    """A profile write was rejected or could not reach the backend."""


# ---------------------------------------------------------------------------
# Schema (SqlProfileStore only -- on Supabase the table is created by migration)
# ---------------------------------------------------------------------------

_metadata = MetaData()

_profiles = Table(
    PROFILES_TABLE,
    _metadata,
    Column("user_id", String(36), primary_key=True),  # identity provider subject id
    Column("email", String(255)),
    Column("full_name", Text),
    Column("role", String(20), nullable=False, server_default=ROLE_USER),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_profile(row: Mapping) -> Profile:
    created_at = row.get("created_at")
    updated_at = row.get("updated_at")
    return Profile(
        user_id=str(row["user_id"]),
        email=row.get("email"),
        full_name=row.get("full_name"),
        role=row.get("role") or ROLE_USER,
        created_at=str(created_at) if created_at is not None else None,
        updated_at=str(updated_at) if updated_at is not None else None,
    )


# ---------------------------------------------------------------------------
# SQLAlchemy repository
# ---------------------------------------------------------------------------


class SqlProfileStore:
    """Profile repository backed by SQLAlchemy Core.

    Usage:
        store = SqlProfileStore("sqlite:///profiles.db")
        store.create_profile(Profile(user_id="u1", email="a@example.com"))
        store.get_role("u1")  # -> "user"
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        _metadata.create_all(self.engine)

    def get_role(self, user_id: str) -> str | None:
        with self.engine.connect() as conn:
            return conn.execute(select(_profiles.c.role).where(_profiles.c.user_id == user_id)).scalar()

    def get_profile(self, user_id: str) -> Profile | None:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.user_id == user_id)).fetchone()
        return _row_to_profile(row._mapping) if row is not None else None

    def create_profile(self, profile: Profile) -> Profile:
        """Insert a profile. Raises ProfileStoreError on any failure, including
        a duplicate user_id."""
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _profiles.insert().values(
                        user_id=profile.user_id,
                        email=profile.email,
                        full_name=profile.full_name,
                        role=profile.role,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Could not create profile for {profile.user_id}") from exc
        created = self.get_profile(profile.user_id)
        if created is None:
            raise ProfileStoreError(f"Profile {profile.user_id} missing after insert")
        return created

    def ensure_profile(self, user_id: str, email: str | None, full_name: str | None = None) -> Profile:
        return _ensure_profile(self, user_id, email, full_name)

    def delete_profile(self, user_id: str) -> bool:
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_profiles.delete().where(_profiles.c.user_id == user_id))
                conn.commit()
        except SQLAlchemyError as exc:
            raise ProfileStoreError(f"Could not delete profile {user_id}") from exc
        return result.rowcount > 0

    def list_recent(self, limit: int = 50) -> list[Profile]:
        """Return up to `limit` profiles, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_profiles.select().order_by(_profiles.c.created_at.desc()).limit(limit)).fetchall()
        return [_row_to_profile(r._mapping) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_profiles)).scalar()
        return result or 0

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Profile database ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Supabase (PostgREST) repository
# ---------------------------------------------------------------------------


class SupabaseProfileStore:
    """Profile repository backed by the hosted platform's REST API.

    The client must be created with the service-role key; the anon key is
    subject to row-level security and cannot read other users' profiles.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    def _table(self):
        return self.client.table(PROFILES_TABLE)

    def get_role(self, user_id: str) -> str | None:
        resp = self._table().select("role").eq("user_id", user_id).limit(1).execute()
        if not resp.data:
            return None
        return resp.data[0].get("role")

    def get_profile(self, user_id: str) -> Profile | None:
        resp = self._table().select(_PROFILE_COLUMNS).eq("user_id", user_id).limit(1).execute()
        return _row_to_profile(resp.data[0]) if resp.data else None

    def create_profile(self, profile: Profile) -> Profile:
        try:
            resp = (
                self._table()
                .insert(
                    {
                        "user_id": profile.user_id,
                        "email": profile.email,
                        "full_name": profile.full_name,
                        "role": profile.role,
                    }
                )
                .execute()
            )
        except PostgrestAPIError as exc:
            raise ProfileStoreError(f"Could not create profile for {profile.user_id}: {exc.message}") from exc
        except httpx.HTTPError as exc:
            raise ProfileStoreError(f"Could not reach profiles table for {profile.user_id}: {exc}") from exc
        if not resp.data:
            raise ProfileStoreError(f"Profile insert for {profile.user_id} returned no row")
        return _row_to_profile(resp.data[0])

    def ensure_profile(self, user_id: str, email: str | None, full_name: str | None = None) -> Profile:
        return _ensure_profile(self, user_id, email, full_name)

    def delete_profile(self, user_id: str) -> bool:
        try:
            resp = self._table().delete().eq("user_id", user_id).execute()
        except PostgrestAPIError as exc:
            raise ProfileStoreError(f"Could not delete profile {user_id}: {exc.message}") from exc
        except httpx.HTTPError as exc:
            raise ProfileStoreError(f"Could not reach profiles table for {user_id}: {exc}") from exc
        return bool(resp.data)

    def list_recent(self, limit: int = 50) -> list[Profile]:
        resp = self._table().select(_PROFILE_COLUMNS).order("created_at", desc=True).limit(limit).execute()
        return [_row_to_profile(r) for r in resp.data or []]

    def count(self) -> int:
        resp = self._table().select("*", count="exact", head=True).execute()
        return resp.count or 0

    def ping(self) -> bool:
        try:
            self._table().select("user_id").limit(1).execute()
        except Exception:
            logger.warning("Profile table ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        # The client's HTTP sessions are owned by core.clients and live for
        # the whole process.
        pass


# ---------------------------------------------------------------------------
# Shared behavior
# ---------------------------------------------------------------------------


def _ensure_profile(store, user_id: str, email: str | None, full_name: str | None) -> Profile:
    """Return the existing profile or create one with the default role.

    A concurrent first sign-in can win the insert race; in that case the
    insert fails and the row written by the other request is returned.
    """
    existing = store.get_profile(user_id)
    if existing is not None:
        return existing
    try:
        return store.create_profile(Profile(user_id=user_id, email=email, full_name=full_name, role=ROLE_USER))
    except ProfileStoreError:
        existing = store.get_profile(user_id)
        if existing is None:
            raise
        return existing
