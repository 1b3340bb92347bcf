# session_manager.py
import asyncio
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional

from entities import AuthState, PendingLogin, SessionState
from errors import (
    BridgeError,
    NoPendingLoginError,
    NotAuthorizedError,
    NotRunningError,
    PasswordRequiredError,
    RemoteCallError,
    needs_second_factor,
)
from session_store import FileSessionStore


class SessionManager:
    """
    Login state machine around the live Telegram capability.

    State lives in an immutable SessionState that is swapped in one assignment,
    so readers (is_running, is_authorized, current_phone) never lock and never
    see a half-applied transition. Mutations hold ``_lock`` for their whole
    duration, remote round trip included, which gives them a single total
    order. A mutation only swaps the state after its remote call returned; a
    cancelled call leaves everything as it was.
    """

    def __init__(self, capability, store: FileSessionStore):
        self._capability = capability
        self._store = store
        self._state = SessionState()
        self._lock = asyncio.Lock()

    # --- read-only accessors ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def is_authorized(self) -> bool:
        return self._state.authorized

    @property
    def current_phone(self) -> str:
        return self._state.phone

    def capability(self):
        """The live capability, or None when the session is not running."""
        return self._capability if self._state.running else None

    def require_client(self):
        """Capability for authorized work; raises when it cannot be used."""
        state = self._state
        if not state.authorized:
            raise NotAuthorizedError(
                "Not authorized. Please use auth_send_code and auth_submit_code first."
            )
        if not state.running:
            raise NotRunningError()
        return self._capability

    # --- lifecycle ---

    async def start(self, on_ready: Callable[[], Awaitable[Any]]):
        """
        Run ``on_ready`` while the capability is connected.

        This is the only place the capability is alive; every other operation
        fails with NotRunningError outside of it.
        """
        async def ready():
            async with self._lock:
                self._state = replace(self._state, running=True)
            try:
                async with self._lock:
                    authorized = await self._remote("failed to get auth status",
                                                    self._capability.get_auth_status())
                    self._state = self._with_auth(self._state, authorized)
                print(f"Session ready (authorized={authorized})")
                return await on_ready()
            finally:
                self._state = replace(self._state, running=False)

        return await self._capability.run(ready)

    # --- transitions ---

    async def request_code(self, phone: str) -> Optional[str]:
        """
        Send a login code to ``phone``.

        Returns the code hash, or None when the service authorized the session
        without a code. The latest successful request replaces any pending login.
        """
        async with self._lock:
            self._require_running()
            sent = await self._remote("failed to send code",
                                      self._capability.send_login_code(phone))

            if sent.authorized:
                self._state = replace(self._state, auth=AuthState.AUTHORIZED,
                                      pending=None, phone=phone)
                print("Login code step skipped, session authorized")
                return None

            self._state = replace(self._state, auth=AuthState.CODE_SENT,
                                  pending=PendingLogin(phone, sent.code_hash), phone=phone)
            print("Login code sent")
            return sent.code_hash

    async def submit_code(self, code: str, password: Optional[str] = None) -> None:
        """
        Sign in with the pending phone/code hash.

        A failed attempt keeps the pending login so a mistyped code or a
        missing password can be retried without requesting a new code.
        """
        async with self._lock:
            self._require_running()
            pending = self._state.pending
            if pending is None:
                raise NoPendingLoginError()

            try:
                await self._capability.sign_in(pending.phone, pending.code_hash, code)
            except Exception as e:
                if not needs_second_factor(e):
                    raise RemoteCallError("failed to sign in", e) from e
                if not password:
                    raise PasswordRequiredError() from e
                await self._remote("failed to authenticate with password",
                                   self._capability.sign_in_with_password(password))

            self._state = replace(self._state, auth=AuthState.AUTHORIZED,
                                  pending=None, phone=pending.phone)
            print("Login successful")

    async def check_status(self) -> bool:
        async with self._lock:
            self._require_running()
            authorized = await self._remote("failed to get auth status",
                                            self._capability.get_auth_status())
            self._state = self._with_auth(self._state, authorized)
            return authorized

    async def logout(self) -> None:
        async with self._lock:
            self._require_running()
            if not self._state.authorized:
                raise NotAuthorizedError()

            await self._remote("failed to logout", self._capability.log_out())

            try:
                self._store.clear()
            finally:
                # Remote side is logged out either way; never keep showing authorized.
                self._state = SessionState(running=self._state.running)
            print("Logged out, stored session cleared")

    # --- helpers ---

    def _require_running(self):
        if not self._state.running:
            raise NotRunningError()

    @staticmethod
    def _with_auth(state: SessionState, authorized: bool) -> SessionState:
        if authorized:
            return replace(state, auth=AuthState.AUTHORIZED, pending=None)
        if state.pending is not None:
            return replace(state, auth=AuthState.CODE_SENT)
        return replace(state, auth=AuthState.UNAUTHENTICATED)

    @staticmethod
    async def _remote(context: str, call: Awaitable[Any]):
        try:
            return await call
        except BridgeError:
            raise
        except Exception as e:
            raise RemoteCallError(context, e) from e
