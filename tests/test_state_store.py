from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from models.slack_oauth_state import SlackOAuthState
from schemas.slack import InstallURLOptions
from services.database_state_store import DatabaseStateStore
from services.errors import StateVerificationError
from services.state_store import ClearStateStore

ISSUED_AT = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def install_options():
    return InstallURLOptions(
        scopes=["channels:read", "chat:write"],
        user_scopes=["search:read"],
        team_id="T0TEAM",
        redirect_uri="https://example.com/slack/oauth_redirect",
        metadata="some_metadata",
    )


class TestClearStateStore:
    def test_requires_secret(self):
        with pytest.raises(ValueError):
            ClearStateStore("")

    @pytest.mark.asyncio
    async def test_round_trip_returns_install_options(self, install_options):
        store = ClearStateStore("stateSecret")
        state = await store.generate_state_param(install_options, ISSUED_AT)

        result = await store.verify_state_param(ISSUED_AT + timedelta(seconds=30), state)
        assert result == install_options

    @pytest.mark.asyncio
    async def test_states_are_unique_for_identical_input(self, install_options):
        store = ClearStateStore("stateSecret")
        first = await store.generate_state_param(install_options, ISSUED_AT)
        second = await store.generate_state_param(install_options, ISSUED_AT)
        assert first != second

    @pytest.mark.asyncio
    async def test_state_is_still_valid_at_the_expiry_boundary(self, install_options):
        store = ClearStateStore("stateSecret")
        state = await store.generate_state_param(install_options, ISSUED_AT)

        result = await store.verify_state_param(ISSUED_AT + timedelta(seconds=600), state)
        assert result.scopes == install_options.scopes

    @pytest.mark.asyncio
    async def test_expired_state_is_rejected(self, install_options):
        store = ClearStateStore("stateSecret")
        state = await store.generate_state_param(install_options, ISSUED_AT)

        with pytest.raises(StateVerificationError, match="expired"):
            await store.verify_state_param(ISSUED_AT + timedelta(seconds=601), state)

    @pytest.mark.asyncio
    async def test_custom_expiration(self, install_options):
        store = ClearStateStore("stateSecret", expiration_seconds=60)
        state = await store.generate_state_param(install_options, ISSUED_AT)

        with pytest.raises(StateVerificationError):
            await store.verify_state_param(ISSUED_AT + timedelta(seconds=61), state)

    @pytest.mark.asyncio
    async def test_state_signed_with_another_secret_is_rejected(self, install_options):
        issuer = ClearStateStore("someone-elses-secret")
        state = await issuer.generate_state_param(install_options, ISSUED_AT)

        with pytest.raises(StateVerificationError):
            await ClearStateStore("stateSecret").verify_state_param(ISSUED_AT, state)

    @pytest.mark.asyncio
    async def test_tampered_state_is_rejected(self, install_options):
        store = ClearStateStore("stateSecret")
        state = await store.generate_state_param(install_options, ISSUED_AT)
        header, payload, signature = state.split(".")
        tampered = ".".join([header, payload[:-2] + ("AA" if payload[-2:] != "AA" else "BB"), signature])

        with pytest.raises(StateVerificationError):
            await store.verify_state_param(ISSUED_AT, tampered)

    @pytest.mark.asyncio
    async def test_garbage_state_is_rejected(self):
        with pytest.raises(StateVerificationError):
            await ClearStateStore("stateSecret").verify_state_param(ISSUED_AT, "not-a-state")

    @pytest.mark.asyncio
    async def test_state_without_issue_time_is_rejected(self):
        state = jwt.encode({"installOptions": {"scopes": ["chat:write"]}}, "stateSecret", algorithm="HS256")

        with pytest.raises(StateVerificationError):
            await ClearStateStore("stateSecret").verify_state_param(ISSUED_AT, state)


class TestDatabaseStateStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, session_factory, install_options):
        store = DatabaseStateStore(session_factory)
        state = await store.generate_state_param(install_options, ISSUED_AT)

        result = await store.verify_state_param(ISSUED_AT + timedelta(seconds=5), state)
        assert result == install_options

    @pytest.mark.asyncio
    async def test_state_can_only_be_used_once(self, session_factory, install_options):
        store = DatabaseStateStore(session_factory)
        state = await store.generate_state_param(install_options, ISSUED_AT)
        await store.verify_state_param(ISSUED_AT, state)

        with pytest.raises(StateVerificationError):
            await store.verify_state_param(ISSUED_AT, state)

    @pytest.mark.asyncio
    async def test_expired_state_is_rejected(self, session_factory, install_options):
        store = DatabaseStateStore(session_factory, expiration_seconds=60)
        state = await store.generate_state_param(install_options, ISSUED_AT)

        with pytest.raises(StateVerificationError):
            await store.verify_state_param(ISSUED_AT + timedelta(seconds=61), state)

    @pytest.mark.asyncio
    async def test_unknown_state_is_rejected(self, session_factory):
        store = DatabaseStateStore(session_factory)
        with pytest.raises(StateVerificationError):
            await store.verify_state_param(ISSUED_AT, "never-issued")

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired_rows(self, session_factory, install_options):
        store = DatabaseStateStore(session_factory, expiration_seconds=60)
        await store.generate_state_param(install_options, ISSUED_AT)
        fresh = await store.generate_state_param(install_options, ISSUED_AT + timedelta(seconds=300))

        deleted = store.cleanup_expired_states(ISSUED_AT + timedelta(seconds=120))

        assert deleted == 1
        db = session_factory()
        try:
            remaining = [row.state for row in db.query(SlackOAuthState).all()]
        finally:
            db.close()
        assert remaining == [fresh]
