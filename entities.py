# entities.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional

from telethon.tl.types import (
    InputChannel,
    InputPeerChannel,
    InputPeerChat,
    InputPeerUser,
    InputUser,
)


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CODE_SENT = "code_sent"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class PendingLogin:
    phone: str
    code_hash: str


@dataclass(frozen=True)
class SessionState:
    """One consistent view of the session; replaced as a whole, never edited."""
    running: bool = False
    auth: AuthState = AuthState.UNAUTHENTICATED
    pending: Optional[PendingLogin] = None
    phone: str = ""

    @property
    def authorized(self) -> bool:
        return self.auth is AuthState.AUTHORIZED


@dataclass(frozen=True)
class SentCode:
    code_hash: str = ""
    authorized: bool = False


class PeerKind(str, Enum):
    USER = "user"
    CHAT = "chat"
    CHANNEL = "channel"


@dataclass(frozen=True)
class PeerRef:
    kind: PeerKind
    id: int
    access_hash: int = 0
    handle: Optional[str] = None

    def to_input_peer(self):
        if self.kind is PeerKind.USER:
            return InputPeerUser(self.id, self.access_hash)
        if self.kind is PeerKind.CHAT:
            return InputPeerChat(self.id)
        return InputPeerChannel(self.id, self.access_hash)

    def to_input_channel(self) -> InputChannel:
        if self.kind is not PeerKind.CHANNEL:
            raise ValueError(f"{self.kind.value} {self.id} is not a channel")
        return InputChannel(self.id, self.access_hash)

    def to_input_user(self) -> InputUser:
        if self.kind is not PeerKind.USER:
            raise ValueError(f"{self.kind.value} {self.id} is not a user")
        return InputUser(self.id, self.access_hash)


@dataclass
class Entity:
    """A user, basic chat or channel as seen in a directory listing."""
    kind: PeerKind
    id: int
    access_hash: int = 0
    handle: Optional[str] = None
    title: Optional[str] = None
    raw: Any = field(default=None, repr=False, compare=False)

    def to_peer_ref(self) -> PeerRef:
        # Basic chats are addressed by ID alone.
        access_hash = 0 if self.kind is PeerKind.CHAT else (self.access_hash or 0)
        return PeerRef(self.kind, self.id, access_hash, self.handle)


@dataclass
class DialogEntry:
    kind: PeerKind
    peer_id: int
    unread_count: int = 0


@dataclass
class DialogWindow:
    dialogs: List[DialogEntry] = field(default_factory=list)
    users: List[Entity] = field(default_factory=list)
    chats: List[Entity] = field(default_factory=list)
    channels: List[Entity] = field(default_factory=list)

    def entities(self, *kinds: PeerKind) -> Iterator[Entity]:
        """Entities of the given kinds, users first, then chats, then channels."""
        kinds = kinds or tuple(PeerKind)
        if PeerKind.USER in kinds:
            yield from self.users
        if PeerKind.CHAT in kinds:
            yield from self.chats
        if PeerKind.CHANNEL in kinds:
            yield from self.channels

    def lookup(self, kind: PeerKind, peer_id: int) -> Optional[Entity]:
        for entity in self.entities(kind):
            if entity.id == peer_id:
                return entity
        return None


@dataclass
class MessageRecord:
    id: int
    text: str
    from_id: int = 0
    from_name: str = ""
    date: str = ""
    is_out: bool = False
