"""
Unit tests for the in-memory session store
"""

from datetime import datetime, timedelta, timezone

import pytest

from conversation_engine.src.storage.session_store import InMemorySessionStore
from shared.exceptions import ProgrammingInvariantError
from shared.models.session import FlowState, Session


class TestInMemorySessionStore:
    """Tests for get/put/clear/merge semantics"""

    def test_get_unknown_user_returns_fresh_session(self, store):
        """Test unknown users get a NONE session with no fields"""
        session = store.get("nobody")

        assert session.user_id == "nobody"
        assert session.state == FlowState.NONE
        assert session.fields == {}
        assert len(store) == 0

    def test_put_and_get(self, store):
        """Test a stored session comes back unchanged"""
        store.put("u1", Session(user_id="u1", state=FlowState.LTE_AWAIT_ND))

        assert store.get("u1").state == FlowState.LTE_AWAIT_ND

    def test_get_returns_copy(self, store):
        """Test callers cannot mutate the stored session"""
        store.put("u1", Session(user_id="u1", state=FlowState.LTE_AWAIT_ND))

        copy = store.get("u1")
        copy.fields["nd"] = "123"
        copy.state = FlowState.ADSL_AWAIT_ND

        assert store.get("u1").fields == {}
        assert store.get("u1").state == FlowState.LTE_AWAIT_ND

    def test_put_none_state_clears(self, store):
        """Test storing a NONE session removes the entry"""
        store.put("u1", Session(user_id="u1", state=FlowState.LTE_AWAIT_ND))
        store.put("u1", Session(user_id="u1"))

        assert len(store) == 0

    def test_merge_fields_keeps_existing_keys(self, store):
        """Test shallow merge with last write wins"""
        store.put("u1", Session(user_id="u1", state=FlowState.LTE_AWAIT_ND))
        store.merge_fields("u1", {"nd": "111", "amount": 10.0})

        merged = store.merge_fields("u1", {"amount": 25.5})

        assert merged.fields == {"nd": "111", "amount": 25.5}
        assert store.get("u1").fields == {"nd": "111", "amount": 25.5}

    def test_merge_fields_without_session_fails(self, store):
        """Test fields cannot be attached to an inactive user"""
        with pytest.raises(ProgrammingInvariantError):
            store.merge_fields("u1", {"nd": "111"})

    def test_clear(self, store):
        """Test clear resets the user and tolerates unknown users"""
        store.put("u1", Session(user_id="u1", state=FlowState.LOGIN_AWAIT_ND))

        store.clear("u1")
        store.clear("u1")

        assert store.get("u1").state == FlowState.NONE

    def test_users_are_isolated(self, store):
        """Test one user's changes never touch another user's entry"""
        store.put("u1", Session(user_id="u1", state=FlowState.LTE_AWAIT_ND))
        store.put("u2", Session(user_id="u2", state=FlowState.ADSL_AWAIT_ND))
        store.merge_fields("u1", {"nd": "111"})
        store.clear("u1")

        assert store.get("u2").state == FlowState.ADSL_AWAIT_ND
        assert store.get("u2").fields == {}


class TestSessionExpiry:
    """Tests for idle-session sweeping"""

    def test_sweep_drops_idle_sessions_only(self):
        """Test sessions idle past the TTL are removed"""
        store = InMemorySessionStore()
        store.put("idle", Session(user_id="idle", state=FlowState.LTE_AWAIT_ND))
        store.put("fresh", Session(user_id="fresh", state=FlowState.ADSL_AWAIT_ND))

        later = datetime.now(timezone.utc) + timedelta(minutes=30)
        store.merge_fields("fresh", {"nd": "1"})
        store._sessions["fresh"].last_activity_at = later

        removed = store.sweep_expired(600, now=later)

        assert removed == 1
        assert store.get("idle").state == FlowState.NONE
        assert store.get("fresh").state == FlowState.ADSL_AWAIT_ND

    def test_sweep_with_nothing_expired(self, store):
        """Test sweeping active sessions removes nothing"""
        store.put("u1", Session(user_id="u1", state=FlowState.LTE_AWAIT_ND))

        assert store.sweep_expired(600) == 0
        assert len(store) == 1
