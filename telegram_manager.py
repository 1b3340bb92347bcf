# telegram_manager.py
from typing import Any, Awaitable, Callable, List, Optional

from telethon import TelegramClient, functions, types
from telethon.errors import (
    SessionPasswordNeededError,
    UsernameInvalidError,
    UsernameNotOccupiedError,
)
from telethon.sessions import StringSession

from entities import (
    DialogEntry,
    DialogWindow,
    Entity,
    MessageRecord,
    PeerKind,
    PeerRef,
    SentCode,
)
from errors import PersistenceError, SecondFactorRequired, SessionNotFound, UnexpectedResponseError
from identifiers import display_name, format_date
from session_store import FileSessionStore

MAX_DIALOG_PAGE = 200


# --- Custom Telethon Session backed by the session file ---
class FileSession(StringSession):
    """
    A Telethon session that restores itself from a FileSessionStore and writes
    the encoded session back every time Telethon asks it to save.
    """

    def __init__(self, store: FileSessionStore):
        self._store = store
        self._suspended = False
        try:
            raw = store.load()
        except SessionNotFound:
            raw = None
        try:
            blob = raw.decode("ascii") if raw is not None else None
            super().__init__(blob)
        except ValueError as e:
            raise PersistenceError(f"stored session is not valid: {e}") from e
        if blob:
            print(f"Loaded session from {store.path}: DC={self.dc_id}")

    def save(self):
        """Persist the session; an empty or suspended session is never written."""
        encoded = super().save()
        if encoded and not self._suspended:
            self._store.store(encoded.encode("ascii"))
        return encoded

    def suspend(self):
        """Stop writing to the store until the next successful sign-in."""
        self._suspended = True

    def resume(self):
        self._suspended = False
        return self.save()

    def delete(self):
        self._store.clear()


def _entity_from_tl(obj) -> Optional[Entity]:
    """Normalise a Telethon User/Chat/Channel; anything else is ignored."""
    if isinstance(obj, types.User):
        return Entity(
            kind=PeerKind.USER,
            id=obj.id,
            access_hash=obj.access_hash or 0,
            handle=obj.username,
            title=display_name(obj.first_name, obj.last_name),
            raw=obj,
        )
    if isinstance(obj, types.Chat):
        return Entity(kind=PeerKind.CHAT, id=obj.id, title=obj.title, raw=obj)
    if isinstance(obj, types.Channel):
        return Entity(
            kind=PeerKind.CHANNEL,
            id=obj.id,
            access_hash=obj.access_hash or 0,
            handle=obj.username,
            title=obj.title,
            raw=obj,
        )
    return None


def build_window(users, chats, dialogs=()) -> DialogWindow:
    window = DialogWindow()
    for obj in list(users or []) + list(chats or []):
        entity = _entity_from_tl(obj)
        if entity is None:
            continue
        if entity.kind is PeerKind.USER:
            window.users.append(entity)
        elif entity.kind is PeerKind.CHAT:
            window.chats.append(entity)
        else:
            window.channels.append(entity)

    for dialog in dialogs or []:
        if not isinstance(dialog, types.Dialog):
            continue
        peer = dialog.peer
        if isinstance(peer, types.PeerUser):
            entry = DialogEntry(PeerKind.USER, peer.user_id, dialog.unread_count)
        elif isinstance(peer, types.PeerChat):
            entry = DialogEntry(PeerKind.CHAT, peer.chat_id, dialog.unread_count)
        elif isinstance(peer, types.PeerChannel):
            entry = DialogEntry(PeerKind.CHANNEL, peer.channel_id, dialog.unread_count)
        else:
            continue
        window.dialogs.append(entry)
    return window


def _messages_from_tl(result) -> List[MessageRecord]:
    messages = getattr(result, "messages", None) or []
    names = {
        user.id: display_name(user.first_name, user.last_name)
        for user in (getattr(result, "users", None) or [])
        if isinstance(user, types.User)
    }

    records = []
    for message in messages:
        if not isinstance(message, types.Message):
            continue
        from_id = 0
        if isinstance(message.from_id, types.PeerUser):
            from_id = message.from_id.user_id
        records.append(MessageRecord(
            id=message.id,
            text=message.message or "",
            from_id=from_id,
            from_name=names.get(from_id, ""),
            date=format_date(message.date),
            is_out=bool(message.out),
        ))
    return records


class TelegramCapability:
    """
    The remote protocol engine, as the rest of the service sees it.

    Owns one TelegramClient for the duration of ``run``; the client does not
    exist before ``run`` starts or after it returns.
    """

    def __init__(self, api_id: int, api_hash: str, store: FileSessionStore):
        self._api_id = api_id
        self._api_hash = api_hash
        self._store = store
        self._client: Optional[TelegramClient] = None

    @property
    def client(self) -> Optional[TelegramClient]:
        return self._client

    def _require_client(self) -> TelegramClient:
        if self._client is None:
            raise RuntimeError("TelegramCapability.run() is not active")
        return self._client

    async def run(self, continuation: Callable[[], Awaitable[Any]]):
        client = TelegramClient(FileSession(self._store), self._api_id, self._api_hash)
        print("Connecting to Telegram...")
        await client.connect()
        self._client = client
        try:
            return await continuation()
        finally:
            self._client = None
            if client.is_connected():
                await client.disconnect()
            print("Telegram client disconnected")

    async def get_auth_status(self) -> bool:
        return await self._require_client().is_user_authorized()

    async def send_login_code(self, phone: str) -> SentCode:
        client = self._require_client()
        result = await client(functions.auth.SendCodeRequest(
            phone_number=phone,
            api_id=self._api_id,
            api_hash=self._api_hash,
            settings=types.CodeSettings(),
        ))

        if isinstance(result, types.auth.SentCodeSuccess):
            client.session.resume()
            return SentCode(authorized=True)
        if isinstance(result, types.auth.SentCode):
            return SentCode(code_hash=result.phone_code_hash)
        raise UnexpectedResponseError(type(result).__name__)

    async def sign_in(self, phone: str, code_hash: str, code: str) -> None:
        client = self._require_client()
        try:
            await client.sign_in(phone=phone, code=code, phone_code_hash=code_hash)
        except SessionPasswordNeededError as e:
            raise SecondFactorRequired() from e
        client.session.resume()

    async def sign_in_with_password(self, password: str) -> None:
        client = self._require_client()
        await client.sign_in(password=password)
        client.session.resume()

    async def log_out(self) -> None:
        client = self._require_client()
        await client(functions.auth.LogOutRequest())
        # The key stays usable for a new login, but must not be re-saved
        # until that login succeeds.
        client.session.suspend()

    async def list_recent_dialogs(self, limit: int = MAX_DIALOG_PAGE) -> DialogWindow:
        result = await self._require_client()(functions.messages.GetDialogsRequest(
            offset_date=None,
            offset_id=0,
            offset_peer=types.InputPeerEmpty(),
            limit=min(limit, MAX_DIALOG_PAGE),
            hash=0,
        ))
        if isinstance(result, types.messages.DialogsNotModified):
            return DialogWindow()
        return build_window(result.users, result.chats, result.dialogs)

    async def resolve_handle(self, handle: str) -> DialogWindow:
        try:
            result = await self._require_client()(
                functions.contacts.ResolveUsernameRequest(username=handle)
            )
        except (UsernameNotOccupiedError, UsernameInvalidError):
            return DialogWindow()
        return build_window(result.users, result.chats)

    async def get_history(self, peer: PeerRef, limit: int) -> List[MessageRecord]:
        result = await self._require_client()(functions.messages.GetHistoryRequest(
            peer=peer.to_input_peer(),
            offset_id=0,
            offset_date=None,
            add_offset=0,
            limit=limit,
            max_id=0,
            min_id=0,
            hash=0,
        ))
        return _messages_from_tl(result)

    async def send_message(self, peer: PeerRef, text: str) -> int:
        message = await self._require_client().send_message(peer.to_input_peer(), text)
        return message.id

    async def invoke(self, request):
        return await self._require_client()(request)
