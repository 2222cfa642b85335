"""
tests/test_store.py -- Unit tests for the profile repositories in auth/store.py.

SqlProfileStore runs against a file-backed SQLite database in tmp_path.
SupabaseProfileStore runs against a MagicMock client; the PostgREST query
builder is chainable, so every builder method returns the same mock.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from supabase import PostgrestAPIError

from auth.models import Profile
from auth.store import ProfileStoreError, SqlProfileStore, SupabaseProfileStore


# ---------------------------------------------------------------------------
# SqlProfileStore
# ---------------------------------------------------------------------------


@pytest.fixture()
def sql_store(tmp_path):
    store = SqlProfileStore(f"sqlite:///{tmp_path / 'profiles.db'}")
    yield store
    store.close()


class TestSqlProfileStore:
    def test_create_and_read_back(self, sql_store):
        created = sql_store.create_profile(Profile(user_id="u1", email="a@example.com", full_name="Ann"))
        assert created.user_id == "u1"
        assert created.role == "user"
        assert created.full_name == "Ann"
        assert created.created_at is not None
        assert created.created_at == created.updated_at
        assert sql_store.get_profile("u1") == created

    def test_get_role(self, sql_store):
        sql_store.create_profile(Profile(user_id="u1", email="a@example.com", role="admin"))
        assert sql_store.get_role("u1") == "admin"
        assert sql_store.get_role("missing") is None

    def test_get_profile_missing(self, sql_store):
        assert sql_store.get_profile("missing") is None

    def test_duplicate_insert_raises(self, sql_store):
        sql_store.create_profile(Profile(user_id="u1", email="a@example.com"))
        with pytest.raises(ProfileStoreError):
            sql_store.create_profile(Profile(user_id="u1", email="other@example.com"))

    def test_ensure_profile_creates_once(self, sql_store):
        first = sql_store.ensure_profile("u1", "a@example.com", "Ann")
        second = sql_store.ensure_profile("u1", "changed@example.com", "Changed")
        assert first == second
        assert second.email == "a@example.com"
        assert sql_store.count() == 1

    def test_ensure_profile_keeps_existing_role(self, sql_store):
        sql_store.create_profile(Profile(user_id="u1", email="a@example.com", role="admin"))
        assert sql_store.ensure_profile("u1", "a@example.com").role == "admin"

    def test_delete_profile(self, sql_store):
        sql_store.create_profile(Profile(user_id="u1", email="a@example.com"))
        assert sql_store.delete_profile("u1") is True
        assert sql_store.delete_profile("u1") is False
        assert sql_store.get_profile("u1") is None

    def test_list_recent_newest_first_and_limited(self, sql_store, monkeypatch):
        stamps = iter(f"2024-01-0{i}T00:00:00+00:00" for i in range(1, 6))
        monkeypatch.setattr("auth.store._now_iso", lambda: next(stamps))
        for i in range(1, 6):
            sql_store.create_profile(Profile(user_id=f"u{i}", email=f"u{i}@example.com"))

        recent = sql_store.list_recent(limit=3)
        assert [p.user_id for p in recent] == ["u5", "u4", "u3"]
        assert sql_store.count() == 5

    def test_count_empty(self, sql_store):
        assert sql_store.count() == 0

    def test_ping(self, sql_store):
        assert sql_store.ping() is True


# ---------------------------------------------------------------------------
# SupabaseProfileStore
# ---------------------------------------------------------------------------


def _client(data=None, count=None):
    """Return (client, builder) where builder.execute() yields data/count."""
    client = MagicMock()
    builder = client.table.return_value
    for method in ("select", "eq", "limit", "insert", "delete", "order"):
        getattr(builder, method).return_value = builder
    builder.execute.return_value = MagicMock(data=data, count=count)
    return client, builder


class TestSupabaseProfileStore:
    def test_get_role_reads_profiles_table(self):
        client, builder = _client(data=[{"role": "admin"}])
        assert SupabaseProfileStore(client).get_role("u1") == "admin"
        client.table.assert_called_with("profiles")
        builder.select.assert_called_with("role")
        builder.eq.assert_called_with("user_id", "u1")

    def test_get_role_missing(self):
        client, _ = _client(data=[])
        assert SupabaseProfileStore(client).get_role("u1") is None

    def test_get_role_propagates_errors(self):
        client, builder = _client()
        builder.execute.side_effect = PostgrestAPIError({"message": "boom", "code": "500"})
        with pytest.raises(PostgrestAPIError):
            SupabaseProfileStore(client).get_role("u1")

    def test_create_profile(self):
        row = {
            "user_id": "u1",
            "email": "a@example.com",
            "full_name": None,
            "role": "user",
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-01T00:00:00+00:00",
        }
        client, builder = _client(data=[row])
        profile = SupabaseProfileStore(client).create_profile(Profile(user_id="u1", email="a@example.com"))
        assert profile.created_at == "2024-01-01T00:00:00+00:00"
        inserted = builder.insert.call_args.args[0]
        assert inserted == {"user_id": "u1", "email": "a@example.com", "full_name": None, "role": "user"}

    def test_create_profile_error_is_wrapped(self):
        client, builder = _client()
        builder.execute.side_effect = PostgrestAPIError(
            {"message": "duplicate key value violates unique constraint", "code": "23505"}
        )
        with pytest.raises(ProfileStoreError, match="duplicate key"):
            SupabaseProfileStore(client).create_profile(Profile(user_id="u1", email="a@example.com"))

    def test_create_profile_transport_error_is_wrapped(self):
        client, builder = _client()
        builder.execute.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(ProfileStoreError, match="Could not reach"):
            SupabaseProfileStore(client).create_profile(Profile(user_id="u1", email="a@example.com"))

    def test_delete_profile_transport_error_is_wrapped(self):
        client, builder = _client()
        builder.execute.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(ProfileStoreError, match="Could not reach"):
            SupabaseProfileStore(client).delete_profile("u1")

    def test_create_profile_without_row_raises(self):
        client, _ = _client(data=[])
        with pytest.raises(ProfileStoreError):
            SupabaseProfileStore(client).create_profile(Profile(user_id="u1", email="a@example.com"))

    def test_list_recent_orders_newest_first(self):
        client, builder = _client(data=[{"user_id": "u2", "role": "user"}, {"user_id": "u1", "role": "admin"}])
        profiles = SupabaseProfileStore(client).list_recent(limit=10)
        assert [p.user_id for p in profiles] == ["u2", "u1"]
        builder.order.assert_called_with("created_at", desc=True)
        builder.limit.assert_called_with(10)

    def test_count_uses_exact_head_query(self):
        client, builder = _client(data=[], count=7)
        assert SupabaseProfileStore(client).count() == 7
        builder.select.assert_called_with("*", count="exact", head=True)

    def test_ping_reports_failure(self):
        client, builder = _client()
        builder.execute.side_effect = ConnectionError("down")
        assert SupabaseProfileStore(client).ping() is False

    def test_ensure_profile_returns_winner_of_insert_race(self):
        store = SupabaseProfileStore(MagicMock())
        winner = Profile(user_id="u1", email="a@example.com", role="user")
        store.get_profile = MagicMock(side_effect=[None, winner])
        store.create_profile = MagicMock(side_effect=ProfileStoreError("duplicate"))
        assert store.ensure_profile("u1", "a@example.com") is winner
