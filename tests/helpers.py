import asyncio
from typing import Optional

from entities import DialogEntry, DialogWindow, Entity, PeerKind, SentCode
from errors import SecondFactorRequired, UnexpectedResponseError

VALID_CODE = "000000"


def user(user_id: int, handle: Optional[str] = None, access_hash: int = 9001, raw=None) -> Entity:
    return Entity(PeerKind.USER, user_id, access_hash, handle, title=handle or str(user_id), raw=raw)


def chat(chat_id: int, title: str) -> Entity:
    return Entity(PeerKind.CHAT, chat_id, title=title)


def channel(channel_id: int, handle: Optional[str] = None, title: str = "", access_hash: int = 7007) -> Entity:
    return Entity(PeerKind.CHANNEL, channel_id, access_hash, handle, title=title)


def window(*entities: Entity, unread: int = 0) -> DialogWindow:
    result = DialogWindow()
    for entity in entities:
        if entity.kind is PeerKind.USER:
            result.users.append(entity)
        elif entity.kind is PeerKind.CHAT:
            result.chats.append(entity)
        else:
            result.channels.append(entity)
        result.dialogs.append(DialogEntry(entity.kind, entity.id, unread))
    return result


class FakeCapability:
    """In-memory stand-in for TelegramCapability that records every call."""

    def __init__(self):
        self.authorized = False
        self.code_hash = "abc"
        self.skip_code = False
        self.unexpected_response = False
        self.requires_password = False
        self.password = "secret"
        self.sign_in_error: Optional[Exception] = None
        self.logout_error: Optional[Exception] = None
        self.dialogs_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

        self.window = DialogWindow()
        self.directory = {}
        self.history = {}
        self.responses = {}

        self.calls = []
        self.invoked = []
        self.sent = []

    def names(self):
        return [call[0] if isinstance(call, tuple) else call for call in self.calls]

    async def run(self, continuation):
        self.calls.append("run")
        return await continuation()

    async def get_auth_status(self):
        self.calls.append("get_auth_status")
        return self.authorized

    async def send_login_code(self, phone):
        self.calls.append(("send_login_code", phone))
        if self.gate is not None:
            await self.gate.wait()
        if self.unexpected_response:
            raise UnexpectedResponseError("SentCodePaymentRequired")
        if self.skip_code:
            self.authorized = True
            return SentCode(authorized=True)
        return SentCode(code_hash=self.code_hash)

    async def sign_in(self, phone, code_hash, code):
        self.calls.append(("sign_in", phone, code_hash, code))
        if self.sign_in_error is not None:
            raise self.sign_in_error
        if code != VALID_CODE:
            raise ValueError("The phone code entered was invalid (PHONE_CODE_INVALID)")
        if self.requires_password:
            raise SecondFactorRequired()
        self.authorized = True

    async def sign_in_with_password(self, password):
        self.calls.append("sign_in_with_password")
        if password != self.password:
            raise ValueError("The password is invalid (PASSWORD_HASH_INVALID)")
        self.authorized = True

    async def log_out(self):
        self.calls.append("log_out")
        if self.logout_error is not None:
            raise self.logout_error
        self.authorized = False

    async def list_recent_dialogs(self, limit=200):
        self.calls.append(("list_recent_dialogs", limit))
        if self.dialogs_error is not None:
            raise self.dialogs_error
        return self.window

    async def resolve_handle(self, handle):
        self.calls.append(("resolve_handle", handle))
        return self.directory.get(handle, DialogWindow())

    async def get_history(self, peer, limit):
        self.calls.append(("get_history", peer.id, limit))
        return self.history.get(peer.id, [])[:limit]

    async def send_message(self, peer, text):
        self.sent.append((peer, text))
        return 42

    async def invoke(self, request):
        self.invoked.append(request)
        response = self.responses.get(type(request).__name__)
        if isinstance(response, Exception):
            raise response
        return response


async def authorize(sessions, capability):
    """Drive a running SessionManager through a plain code login."""
    await sessions.request_code("+15551234")
    await sessions.submit_code(VALID_CODE)
    assert sessions.is_authorized
