# tools.py
from typing import List, Optional

from telethon import functions, types
from telethon.errors import RPCError

import resolver as resolution
from entities import MessageRecord, PeerKind, PeerRef
from errors import BridgeError, PeerNotFoundError, RemoteCallError
from identifiers import clamp_limit, format_date
from models import *
from resolver import PeerResolver
from session_manager import SessionManager

TOOL_DESCRIPTIONS = {
    "auth_status": "Check Telegram authorization status",
    "auth_send_code": "Send authorization code to phone number. Returns code_hash needed for auth_submit_code.",
    "auth_submit_code": "Complete authorization by submitting the code received via Telegram. If 2FA is enabled, include the password.",
    "auth_logout": "Logout from current Telegram session and clear stored credentials",
    "send_message": "Send a text message to a Telegram chat by username or ID",
    "get_messages": "Get recent messages from a Telegram chat by username or ID",
    "list_chats": "Get list of Telegram dialogs/chats with unread counts",
    "get_chats_overview": "Get all chats with their recent messages in one request. Use chats_limit (default 20, max 50) and messages_limit (default 3, max 10) to control output size.",
    "delete_chat": "Delete a chat/dialog by username or ID (removes chat history)",
    "leave_channel": "Leave a channel or group by username or ID",
    "get_user": "Get user profile information by username or ID",
    "create_channel": "Create a new channel or supergroup. Set broadcast=true for channel, false for group.",
    "edit_channel": "Edit channel/group title or description",
    "delete_channel": "Delete a channel or supergroup (irreversible)",
    "set_channel_username": "Set or change channel public username",
    "invite_to_channel": "Invite users to a channel or group by their usernames",
    "get_channel_info": "Get detailed information about a channel or group",
    "export_invite_link": "Export/create invite link for a channel or group",
    "get_channel_members": "Get channel/group members. Filter: admins, bots, banned, restricted (default: recent). Supports pagination with offset/limit.",
}

MEMBER_FILTERS = {
    "admins": lambda: types.ChannelParticipantsAdmins(),
    "bots": lambda: types.ChannelParticipantsBots(),
    "banned": lambda: types.ChannelParticipantsKicked(q=""),
    "restricted": lambda: types.ChannelParticipantsBanned(q=""),
}


def _failure(response_cls, err: Exception, context: str = None):
    """Expected failures become results, never exceptions."""
    if context and not isinstance(err, BridgeError):
        err = RemoteCallError(context, err)
    return response_cls(success=False, message=str(err))


def _message_model(record: MessageRecord) -> Message:
    return Message(
        id=record.id,
        text=record.text,
        from_id=record.from_id or None,
        from_name=record.from_name or None,
        date=record.date,
        is_out=record.is_out,
    )


def _online_status(status) -> Optional[str]:
    if isinstance(status, types.UserStatusOnline):
        return "online"
    if isinstance(status, types.UserStatusOffline):
        return format_date(status.was_online)
    if isinstance(status, types.UserStatusRecently):
        return "recently"
    if isinstance(status, types.UserStatusLastWeek):
        return "last week"
    if isinstance(status, types.UserStatusLastMonth):
        return "last month"
    return None


def _participant_user_id(participant) -> int:
    user_id = getattr(participant, "user_id", None)
    if user_id:
        return user_id
    peer = getattr(participant, "peer", None)
    if isinstance(peer, types.PeerUser):
        return peer.user_id
    return 0


class TelegramTools:
    """
    One method per exposed tool. Each takes its request model and returns its
    response model; nothing expected (not running, not authorized, not found,
    remote errors) escapes as an exception.
    """

    def __init__(self, sessions: SessionManager, resolver: PeerResolver):
        self.sessions = sessions
        self.resolver = resolver

    # --- auth ---

    async def auth_status(self, request: AuthStatusRequest) -> AuthStatusResponse:
        try:
            authorized = await self.sessions.check_status()
        except BridgeError as e:
            return _failure(AuthStatusResponse, e)
        return AuthStatusResponse(
            success=True,
            authorized=authorized,
            phone=self.sessions.current_phone or None,
        )

    async def auth_send_code(self, request: SendCodeRequest) -> SendCodeResponse:
        try:
            code_hash = await self.sessions.request_code(request.phone)
        except BridgeError as e:
            return _failure(SendCodeResponse, e)
        if code_hash is None:
            return SendCodeResponse(success=True, message="Already authorized, no code needed")
        return SendCodeResponse(success=True, code_hash=code_hash,
                                message=f"Code sent to {request.phone}")

    async def auth_submit_code(self, request: SubmitCodeRequest) -> ToolResult:
        try:
            await self.sessions.submit_code(request.code, request.password)
        except BridgeError as e:
            return _failure(ToolResult, e)
        return ToolResult(success=True, message="Successfully authorized")

    async def auth_logout(self, request: LogoutRequest) -> ToolResult:
        try:
            await self.sessions.logout()
        except BridgeError as e:
            return _failure(ToolResult, e)
        return ToolResult(success=True, message="Successfully logged out")

    # --- messages ---

    async def send_message(self, request: SendMessageRequest) -> SendMessageResponse:
        try:
            client = self.sessions.require_client()
            peer = await self.resolver.resolve(request.chat, resolution.MESSAGING)
            message_id = await client.send_message(peer, request.text)
        except Exception as e:
            return _failure(SendMessageResponse, e, "Failed to send message")
        return SendMessageResponse(success=True, message_id=message_id,
                                   message="Message sent successfully")

    async def get_messages(self, request: GetMessagesRequest) -> GetMessagesResponse:
        limit = clamp_limit(request.limit, 10, 100)
        try:
            client = self.sessions.require_client()
            peer = await self.resolver.resolve(request.chat, resolution.MESSAGING)
            records = await client.get_history(peer, limit)
        except Exception as e:
            return _failure(GetMessagesResponse, e, "Failed to get messages")
        return GetMessagesResponse(success=True, messages=[_message_model(r) for r in records])

    # --- chats ---

    async def list_chats(self, request: ListChatsRequest) -> ListChatsResponse:
        limit = clamp_limit(request.limit, 20, 100)
        try:
            window = await self.sessions.require_client().list_recent_dialogs(limit)
        except Exception as e:
            return _failure(ListChatsResponse, e, "Failed to get dialogs")

        chats = []
        for dialog in window.dialogs:
            entity = window.lookup(dialog.kind, dialog.peer_id)
            chats.append(Chat(
                id=dialog.peer_id,
                type=dialog.kind.value,
                title=(entity.title or "") if entity else "",
                username=entity.handle if entity else None,
                unread_count=dialog.unread_count,
            ))
        return ListChatsResponse(success=True, chats=chats)

    async def get_chats_overview(self, request: ChatsOverviewRequest) -> ChatsOverviewResponse:
        chats_limit = clamp_limit(request.chats_limit, 20, 50)
        messages_limit = clamp_limit(request.messages_limit, 3, 10)
        try:
            client = self.sessions.require_client()
            window = await client.list_recent_dialogs(chats_limit)
        except Exception as e:
            return _failure(ChatsOverviewResponse, e, "Failed to get dialogs")

        overview = []
        for dialog in window.dialogs:
            entity = window.lookup(dialog.kind, dialog.peer_id)
            chat = ChatOverview(
                id=dialog.peer_id,
                type=dialog.kind.value,
                title=(entity.title or "") if entity else "",
                username=entity.handle if entity else None,
                unread_count=dialog.unread_count,
            )

            peer = entity.to_peer_ref() if entity else None
            if peer is None and dialog.kind is PeerKind.CHAT:
                peer = PeerRef(PeerKind.CHAT, dialog.peer_id)

            if peer is not None:
                try:
                    records = await client.get_history(peer, messages_limit)
                    chat.messages = [_message_model(r) for r in records]
                except Exception as e:
                    print(f"History fetch failed for {dialog.kind.value} {dialog.peer_id}: {e}")

            overview.append(chat)
        return ChatsOverviewResponse(success=True, chats=overview)

    async def delete_chat(self, request: DeleteChatRequest) -> ToolResult:
        try:
            client = self.sessions.require_client()
            peer = await self.resolver.resolve(request.chat, resolution.PEER)
            await client.invoke(functions.messages.DeleteHistoryRequest(
                peer=peer.to_input_peer(), max_id=0, revoke=True,
            ))
        except Exception as e:
            return _failure(ToolResult, e, "Failed to delete chat")
        return ToolResult(success=True, message="Chat deleted")

    async def leave_channel(self, request: LeaveChannelRequest) -> ToolResult:
        try:
            client = self.sessions.require_client()
            try:
                channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)
            except PeerNotFoundError:
                channel = None

            if channel is not None:
                await client.invoke(functions.channels.LeaveChannelRequest(channel.to_input_channel()))
                return ToolResult(success=True, message="Left channel/supergroup")

            # Not a channel: try a basic group by ID or title.
            group = await self.resolver.resolve(request.channel, resolution.GROUP_BY_TITLE)
            await client.invoke(functions.messages.DeleteChatUserRequest(
                chat_id=group.id, user_id=types.InputUserSelf(), revoke_history=True,
            ))
        except Exception as e:
            return _failure(ToolResult, e, "Failed to leave channel/group")
        return ToolResult(success=True, message="Left group")

    # --- users ---

    async def get_user(self, request: GetUserRequest) -> GetUserResponse:
        try:
            client = self.sessions.require_client()
            entity = await self.resolver.find(request.user, resolution.USER)
        except Exception as e:
            return _failure(GetUserResponse, e, "Failed to resolve user")

        user = entity.raw
        profile = UserProfile(
            id=entity.id,
            first_name=getattr(user, "first_name", None) or "",
            last_name=getattr(user, "last_name", None),
            username=entity.handle,
            phone=getattr(user, "phone", None),
            bot=bool(getattr(user, "bot", False)),
            verified=bool(getattr(user, "verified", False)),
            premium=bool(getattr(user, "premium", False)),
            online=_online_status(getattr(user, "status", None)),
        )

        try:
            full = await client.invoke(functions.users.GetFullUserRequest(
                id=entity.to_peer_ref().to_input_user()
            ))
            profile.bio = full.full_user.about
        except Exception as e:
            print(f"Could not fetch bio for user {entity.id}: {e}")

        return GetUserResponse(success=True, user=profile)

    # --- channels ---

    async def create_channel(self, request: CreateChannelRequest) -> CreateChannelResponse:
        try:
            updates = await self.sessions.require_client().invoke(functions.channels.CreateChannelRequest(
                title=request.title,
                about=request.about,
                broadcast=request.broadcast,
                megagroup=not request.broadcast,
            ))
        except Exception as e:
            return _failure(CreateChannelResponse, e, "Failed to create channel")

        channel_id = None
        for chat in getattr(updates, "chats", None) or []:
            if isinstance(chat, types.Channel):
                channel_id = chat.id
                break

        kind = "channel" if request.broadcast else "group"
        return CreateChannelResponse(success=True, channel_id=channel_id,
                                     message=f"Created {kind}: {request.title}")

    async def edit_channel(self, request: EditChannelRequest) -> ToolResult:
        try:
            client = self.sessions.require_client()
            channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)
            if request.title:
                await client.invoke(functions.channels.EditTitleRequest(
                    channel=channel.to_input_channel(), title=request.title,
                ))
            if request.about:
                await client.invoke(functions.messages.EditChatAboutRequest(
                    peer=channel.to_input_peer(), about=request.about,
                ))
        except Exception as e:
            return _failure(ToolResult, e, "Failed to edit channel")
        return ToolResult(success=True, message="Channel updated")

    async def delete_channel(self, request: DeleteChannelRequest) -> ToolResult:
        try:
            client = self.sessions.require_client()
            channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)
            await client.invoke(functions.channels.DeleteChannelRequest(channel.to_input_channel()))
        except Exception as e:
            return _failure(ToolResult, e, "Failed to delete channel")
        return ToolResult(success=True, message="Channel deleted")

    async def set_channel_username(self, request: SetChannelUsernameRequest) -> ToolResult:
        username = request.username.lstrip("@")
        try:
            client = self.sessions.require_client()
            channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)
            await client.invoke(functions.channels.UpdateUsernameRequest(
                channel=channel.to_input_channel(), username=username,
            ))
        except Exception as e:
            return _failure(ToolResult, e, "Failed to set username")
        return ToolResult(success=True, message=f"Username set to @{username}")

    async def invite_to_channel(self, request: InviteToChannelRequest) -> ToolResult:
        try:
            client = self.sessions.require_client()
            channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)

            users = []
            for name in request.users:
                try:
                    user = await self.resolver.resolve(name, resolution.USER)
                except (PeerNotFoundError, RPCError) as e:
                    print(f"Skipping invite for '{name}': {e}")
                    continue
                users.append(user.to_input_user())

            if not users:
                return ToolResult(success=False, message="No valid users found")

            await client.invoke(functions.channels.InviteToChannelRequest(
                channel=channel.to_input_channel(), users=users,
            ))
        except Exception as e:
            return _failure(ToolResult, e, "Failed to invite users")
        return ToolResult(success=True, message=f"Invited {len(users)} users")

    async def get_channel_info(self, request: GetChannelInfoRequest) -> GetChannelInfoResponse:
        try:
            client = self.sessions.require_client()
            channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)
            full = await client.invoke(functions.channels.GetFullChannelRequest(channel.to_input_channel()))
        except Exception as e:
            return _failure(GetChannelInfoResponse, e, "Failed to get channel info")

        info = ChannelInfo(id=channel.id)
        full_chat = full.full_chat
        if isinstance(full_chat, types.ChannelFull):
            info.about = full_chat.about or None
            info.members = full_chat.participants_count or 0
            info.admins = full_chat.admins_count
            if isinstance(full_chat.exported_invite, types.ChatInviteExported):
                info.invite_link = full_chat.exported_invite.link

        for chat in full.chats:
            if isinstance(chat, types.Channel) and chat.id == channel.id:
                info.title = chat.title
                info.username = chat.username
                info.broadcast = bool(chat.broadcast)
                info.verified = bool(chat.verified)
                info.restricted = bool(chat.restricted)
                break

        return GetChannelInfoResponse(success=True, channel=info)

    async def export_invite_link(self, request: ExportInviteLinkRequest) -> ExportInviteLinkResponse:
        try:
            client = self.sessions.require_client()
            peer = await self.resolver.resolve(request.channel, resolution.PEER)
            exported = await client.invoke(functions.messages.ExportChatInviteRequest(
                peer=peer.to_input_peer()
            ))
        except Exception as e:
            return _failure(ExportInviteLinkResponse, e, "Failed to export invite link")

        link = exported.link if isinstance(exported, types.ChatInviteExported) else None
        return ExportInviteLinkResponse(success=True, link=link)

    async def get_channel_members(self, request: GetChannelMembersRequest) -> GetChannelMembersResponse:
        limit = clamp_limit(request.limit, 100, 200)
        make_filter = MEMBER_FILTERS.get(request.filter or "", lambda: types.ChannelParticipantsRecent())
        try:
            client = self.sessions.require_client()
            channel = await self.resolver.resolve(request.channel, resolution.CHANNEL)
            result = await client.invoke(functions.channels.GetParticipantsRequest(
                channel=channel.to_input_channel(),
                filter=make_filter(),
                offset=max(request.offset, 0),
                limit=limit,
                hash=0,
            ))
        except Exception as e:
            return _failure(GetChannelMembersResponse, e, "Failed to get members")

        if not isinstance(result, types.channels.ChannelParticipants):
            return GetChannelMembersResponse(success=False, message="Unexpected response type")

        return GetChannelMembersResponse(
            success=True,
            members=self._members(result),
            total=result.count,
        )

    @staticmethod
    def _members(result) -> List[ChannelMember]:
        users = {u.id: u for u in result.users if isinstance(u, types.User)}
        creators = {
            p.user_id for p in result.participants
            if isinstance(p, types.ChannelParticipantCreator)
        }
        admins = creators | {
            p.user_id for p in result.participants
            if isinstance(p, types.ChannelParticipantAdmin)
        }

        members = []
        for participant in result.participants:
            user_id = _participant_user_id(participant)
            user = users.get(user_id)
            if user is None:
                continue
            members.append(ChannelMember(
                id=user.id,
                first_name=user.first_name or "",
                last_name=user.last_name,
                username=user.username,
                bot=bool(user.bot),
                admin=user_id in admins,
                creator=user_id in creators,
            ))
        return members
