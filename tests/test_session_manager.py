import asyncio

import pytest

from entities import AuthState, PendingLogin
from errors import (
    NoPendingLoginError,
    NotAuthorizedError,
    NotRunningError,
    PasswordRequiredError,
    PersistenceError,
    RemoteCallError,
    SessionNotFound,
    UnexpectedResponseError,
)
from helpers import VALID_CODE, authorize
from session_manager import SessionManager
from session_store import FileSessionStore


class BrokenClearStore(FileSessionStore):
    def clear(self):
        raise PersistenceError("failed to clear session: disk on fire")


@pytest.mark.asyncio
async def test_operations_fail_when_not_running(sessions, capability):
    with pytest.raises(NotRunningError):
        await sessions.request_code("+15551234")
    with pytest.raises(NotRunningError):
        await sessions.submit_code(VALID_CODE)
    with pytest.raises(NotRunningError):
        await sessions.check_status()
    with pytest.raises(NotRunningError):
        await sessions.logout()
    assert capability.calls == []
    assert sessions.capability() is None


@pytest.mark.asyncio
async def test_start_caches_auth_status_and_bounds_running(sessions, capability):
    capability.authorized = True
    seen = {}

    async def body():
        seen["running"] = sessions.is_running
        seen["authorized"] = sessions.is_authorized
        seen["capability"] = sessions.capability()
        return "done"

    assert await sessions.start(body) == "done"
    assert seen == {"running": True, "authorized": True, "capability": capability}
    assert not sessions.is_running


@pytest.mark.asyncio
async def test_running_cleared_when_continuation_fails(sessions):
    async def body():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await sessions.start(body)
    assert not sessions.is_running


@pytest.mark.asyncio
async def test_request_code_moves_to_code_sent(sessions):
    async def body():
        code_hash = await sessions.request_code("+15551234")
        assert code_hash == "abc"
        assert sessions.state.auth is AuthState.CODE_SENT
        assert sessions.state.pending == PendingLogin("+15551234", "abc")
        assert sessions.current_phone == "+15551234"

    await sessions.start(body)


@pytest.mark.asyncio
async def test_request_code_with_immediate_authorization(sessions, capability):
    capability.skip_code = True

    async def body():
        assert await sessions.request_code("+15551234") is None
        assert sessions.is_authorized
        assert sessions.state.pending is None

    await sessions.start(body)


@pytest.mark.asyncio
async def test_unexpected_code_response_leaves_state_unchanged(sessions, capability):
    capability.unexpected_response = True

    async def body():
        before = sessions.state
        with pytest.raises(UnexpectedResponseError):
            await sessions.request_code("+15551234")
        assert sessions.state == before

    await sessions.start(body)


@pytest.mark.asyncio
async def test_submit_without_request_never_contacts_remote(sessions, capability):
    async def body():
        with pytest.raises(NoPendingLoginError) as excinfo:
            await sessions.submit_code(VALID_CODE)
        assert "must request a code first" in str(excinfo.value)

    await sessions.start(body)
    assert "sign_in" not in capability.names()


@pytest.mark.asyncio
async def test_wrong_code_keeps_pending_login_for_retry(sessions, capability):
    async def body():
        await sessions.request_code("+15551234")
        with pytest.raises(RemoteCallError) as excinfo:
            await sessions.submit_code("999999")
        assert "PHONE_CODE_INVALID" in str(excinfo.value)
        assert sessions.state.pending == PendingLogin("+15551234", "abc")

        await sessions.submit_code(VALID_CODE)
        assert sessions.is_authorized

    await sessions.start(body)
    sign_ins = [call for call in capability.calls if call[0] == "sign_in"]
    assert [call[2] for call in sign_ins] == ["abc", "abc"]


@pytest.mark.asyncio
async def test_second_factor_scenario(sessions, capability):
    capability.requires_password = True

    async def body():
        assert await sessions.request_code("+15551234") == "abc"
        assert sessions.state.auth is AuthState.CODE_SENT

        with pytest.raises(PasswordRequiredError) as excinfo:
            await sessions.submit_code(VALID_CODE, "")
        assert "password required" in str(excinfo.value)
        assert sessions.state.auth is AuthState.CODE_SENT
        assert sessions.state.pending == PendingLogin("+15551234", "abc")

        await sessions.submit_code(VALID_CODE, "secret")
        assert sessions.state.auth is AuthState.AUTHORIZED
        assert sessions.state.pending is None

    await sessions.start(body)


@pytest.mark.asyncio
async def test_second_factor_recognised_from_error_text(sessions, capability):
    capability.sign_in_error = RuntimeError("RPC error 401: SESSION_PASSWORD_NEEDED")

    async def body():
        await sessions.request_code("+15551234")
        with pytest.raises(PasswordRequiredError):
            await sessions.submit_code(VALID_CODE)

    await sessions.start(body)


@pytest.mark.asyncio
async def test_wrong_password_keeps_pending_login(sessions, capability):
    capability.requires_password = True

    async def body():
        await sessions.request_code("+15551234")
        with pytest.raises(RemoteCallError) as excinfo:
            await sessions.submit_code(VALID_CODE, "nope")
        assert "failed to authenticate with password" in str(excinfo.value)
        assert sessions.state.auth is AuthState.CODE_SENT
        assert sessions.state.pending is not None

    await sessions.start(body)


@pytest.mark.asyncio
async def test_latest_request_code_wins(sessions, capability):
    async def body():
        await sessions.request_code("+15550001")
        capability.code_hash = "def"
        await sessions.request_code("+15550002")
        await sessions.submit_code(VALID_CODE)

    await sessions.start(body)
    assert ("sign_in", "+15550002", "def", VALID_CODE) in capability.calls


@pytest.mark.asyncio
async def test_check_status_sees_external_revocation(sessions, capability):
    async def body():
        await authorize(sessions, capability)
        capability.authorized = False
        assert await sessions.check_status() is False
        assert sessions.state.auth is AuthState.UNAUTHENTICATED

    await sessions.start(body)


@pytest.mark.asyncio
async def test_logout_when_unauthorized_leaves_store_alone(sessions, capability, store):
    store.store(b"keep me")

    async def body():
        with pytest.raises(NotAuthorizedError):
            await sessions.logout()

    await sessions.start(body)
    assert store.load() == b"keep me"
    assert "log_out" not in capability.names()


@pytest.mark.asyncio
async def test_logout_clears_store_and_state(sessions, capability, store):
    store.store(b"credential")

    async def body():
        await authorize(sessions, capability)
        await sessions.logout()
        assert sessions.state.auth is AuthState.UNAUTHENTICATED
        assert sessions.state.pending is None
        assert sessions.current_phone == ""

    await sessions.start(body)
    with pytest.raises(SessionNotFound):
        store.load()


@pytest.mark.asyncio
async def test_failed_remote_logout_changes_nothing(sessions, capability, store):
    store.store(b"credential")
    capability.logout_error = ConnectionError("network down")

    async def body():
        await authorize(sessions, capability)
        with pytest.raises(RemoteCallError) as excinfo:
            await sessions.logout()
        assert "failed to logout" in str(excinfo.value)
        assert sessions.is_authorized

    await sessions.start(body)
    assert store.load() == b"credential"


@pytest.mark.asyncio
async def test_store_failure_after_remote_logout_does_not_stay_authorized(capability, tmp_path):
    sessions = SessionManager(capability, BrokenClearStore(tmp_path / "session.json"))

    async def body():
        await authorize(sessions, capability)
        with pytest.raises(PersistenceError):
            await sessions.logout()
        assert not sessions.is_authorized

    await sessions.start(body)


@pytest.mark.asyncio
async def test_cancelled_request_code_leaves_state_unchanged(sessions, capability):
    capability.gate = asyncio.Event()

    async def body():
        before = sessions.state
        task = asyncio.create_task(sessions.request_code("+15551234"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sessions.state == before

        capability.gate.set()
        assert await sessions.request_code("+15551234") == "abc"

    await sessions.start(body)


@pytest.mark.asyncio
async def test_concurrent_readers_never_see_torn_state(sessions, capability):
    capability.gate = asyncio.Event()
    observed = []

    async def reader():
        for _ in range(20):
            observed.append(sessions.state)
            await asyncio.sleep(0)

    async def body():
        writer = asyncio.create_task(sessions.request_code("+15551234"))
        readers = [asyncio.create_task(reader()) for _ in range(3)]
        await asyncio.sleep(0)
        capability.gate.set()
        await asyncio.gather(writer, *readers)
        await sessions.submit_code(VALID_CODE)
        observed.append(sessions.state)

    await sessions.start(body)

    for state in observed:
        if state.auth is AuthState.AUTHORIZED:
            assert state.pending is None
        if state.auth is AuthState.CODE_SENT:
            assert state.pending == PendingLogin("+15551234", "abc")
        if state.pending is None and state.auth is not AuthState.AUTHORIZED:
            assert state.auth is AuthState.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_require_client_checks_authorization_then_running(sessions, capability):
    with pytest.raises(NotAuthorizedError):
        sessions.require_client()

    async def body():
        await authorize(sessions, capability)
        assert sessions.require_client() is capability

    await sessions.start(body)
    # Still marked authorized, but the capability is gone.
    with pytest.raises(NotRunningError):
        sessions.require_client()
