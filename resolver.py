# resolver.py
from dataclasses import dataclass
from enum import Enum, Flag
from typing import Optional, Tuple

from entities import Entity, PeerKind, PeerRef
from errors import PeerNotFoundError
from identifiers import normalize_handle, parse_id
from telegram_manager import MAX_DIALOG_PAGE


class Scope(Flag):
    USERS = 1
    CHATS = 2
    CHANNELS = 4
    ALL = USERS | CHATS | CHANNELS

    @property
    def kinds(self) -> Tuple[PeerKind, ...]:
        kinds = []
        if self & Scope.USERS:
            kinds.append(PeerKind.USER)
        if self & Scope.CHATS:
            kinds.append(PeerKind.CHAT)
        if self & Scope.CHANNELS:
            kinds.append(PeerKind.CHANNEL)
        return tuple(kinds)


class MatchBy(Enum):
    ID = "id"
    HANDLE = "handle"
    TITLE = "title"


@dataclass(frozen=True)
class ResolveOptions:
    """
    How to look an identifier up.

    Numeric identifiers always match on ID. Anything else matches on handle
    or title depending on ``match_by`` (MatchBy.ID rejects it outright).
    ``directory_fallback`` asks the global handle directory when a handle is
    not in the recent-dialog window; numeric IDs never fall back.
    """
    scope: Scope = Scope.ALL
    match_by: MatchBy = MatchBy.HANDLE
    directory_fallback: bool = False
    limit: int = MAX_DIALOG_PAGE
    label: str = "chat"


PEER = ResolveOptions()
CHANNEL = ResolveOptions(scope=Scope.CHANNELS, label="channel")
GROUP_BY_TITLE = ResolveOptions(scope=Scope.CHATS, match_by=MatchBy.TITLE, label="group")
MESSAGING = ResolveOptions(directory_fallback=True)
USER = ResolveOptions(scope=Scope.USERS, directory_fallback=True, label="user")


class PeerResolver:
    """Turns a user-supplied chat/user identifier into an addressable PeerRef.

    Holds no state: every call fetches a fresh dialog window.
    """

    def __init__(self, sessions):
        self._sessions = sessions

    async def resolve(self, identifier: str, options: ResolveOptions = PEER) -> PeerRef:
        entity = await self.find(identifier, options)
        return entity.to_peer_ref()

    async def find(self, identifier: str, options: ResolveOptions = PEER) -> Entity:
        client = self._sessions.require_client()
        identifier = (identifier or "").strip()
        kinds = options.scope.kinds

        numeric_id = parse_id(identifier)
        text = None
        if numeric_id is None:
            if options.match_by is MatchBy.HANDLE:
                text = normalize_handle(identifier)
            elif options.match_by is MatchBy.TITLE:
                text = identifier
            if not text:
                raise PeerNotFoundError(identifier, options.label)

        window = await client.list_recent_dialogs(options.limit)
        for entity in window.entities(*kinds):
            if self._matches(entity, numeric_id, text, options.match_by):
                return entity

        if numeric_id is None and options.directory_fallback and options.match_by is MatchBy.HANDLE:
            print(f"'{identifier}' not in recent dialogs, asking the handle directory")
            directory = await client.resolve_handle(text)
            found = self._first(directory.entities(*kinds), text)
            if found is not None:
                return found

        raise PeerNotFoundError(identifier, options.label)

    @staticmethod
    def _matches(entity: Entity, numeric_id: Optional[int], text: Optional[str], match_by: MatchBy) -> bool:
        if numeric_id is not None:
            return entity.id == numeric_id
        if match_by is MatchBy.HANDLE:
            return entity.handle is not None and entity.handle == text
        return entity.title == text

    @staticmethod
    def _first(entities, handle: str) -> Optional[Entity]:
        """Prefer the directory entry carrying the handle, else the first one in scan order."""
        candidates = list(entities)
        for entity in candidates:
            if entity.handle and entity.handle.lower() == handle.lower():
                return entity
        return candidates[0] if candidates else None
