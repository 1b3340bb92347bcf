from pydantic import BaseModel, Field
from typing import List, Optional


class ToolResult(BaseModel):
    success: bool
    message: Optional[str] = None


# --- auth ---

class AuthStatusRequest(BaseModel):
    pass

class AuthStatusResponse(ToolResult):
    authorized: bool = False
    phone: Optional[str] = None

class SendCodeRequest(BaseModel):
    phone: str

class SendCodeResponse(ToolResult):
    code_hash: str = ""

class SubmitCodeRequest(BaseModel):
    code: str
    code_hash: Optional[str] = None  # accepted for compatibility; the pending login is authoritative
    password: Optional[str] = None

class LogoutRequest(BaseModel):
    pass


# --- messages ---

class SendMessageRequest(BaseModel):
    chat: str  # username, @handle or numeric ID
    text: str

class SendMessageResponse(ToolResult):
    message_id: Optional[int] = None

class GetMessagesRequest(BaseModel):
    chat: str
    limit: Optional[int] = None

class Message(BaseModel):
    id: int
    text: str
    from_id: Optional[int] = None
    from_name: Optional[str] = None
    date: str
    is_out: bool

class GetMessagesResponse(ToolResult):
    messages: List[Message] = Field(default_factory=list)


# --- chats ---

class ListChatsRequest(BaseModel):
    limit: Optional[int] = None

class Chat(BaseModel):
    id: int
    title: str = ""
    type: str
    username: Optional[str] = None
    unread_count: int = 0

class ListChatsResponse(ToolResult):
    chats: List[Chat] = Field(default_factory=list)

class ChatsOverviewRequest(BaseModel):
    chats_limit: Optional[int] = None
    messages_limit: Optional[int] = None

class ChatOverview(Chat):
    messages: List[Message] = Field(default_factory=list)

class ChatsOverviewResponse(ToolResult):
    chats: List[ChatOverview] = Field(default_factory=list)

class DeleteChatRequest(BaseModel):
    chat: str

class LeaveChannelRequest(BaseModel):
    channel: str


# --- users ---

class GetUserRequest(BaseModel):
    user: str

class UserProfile(BaseModel):
    id: int
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    bot: bool = False
    verified: bool = False
    premium: bool = False
    online: Optional[str] = None

class GetUserResponse(ToolResult):
    user: Optional[UserProfile] = None


# --- channels ---

class CreateChannelRequest(BaseModel):
    title: str
    about: str = ""
    broadcast: bool = False

class CreateChannelResponse(ToolResult):
    channel_id: Optional[int] = None

class EditChannelRequest(BaseModel):
    channel: str
    title: Optional[str] = None
    about: Optional[str] = None

class DeleteChannelRequest(BaseModel):
    channel: str

class SetChannelUsernameRequest(BaseModel):
    channel: str
    username: str

class InviteToChannelRequest(BaseModel):
    channel: str
    users: List[str]

class GetChannelInfoRequest(BaseModel):
    channel: str

class ChannelInfo(BaseModel):
    id: int = 0
    title: str = ""
    username: Optional[str] = None
    about: Optional[str] = None
    members: int = 0
    admins: Optional[int] = None
    broadcast: bool = False
    verified: bool = False
    restricted: bool = False
    invite_link: Optional[str] = None

class GetChannelInfoResponse(ToolResult):
    channel: Optional[ChannelInfo] = None

class ExportInviteLinkRequest(BaseModel):
    channel: str

class ExportInviteLinkResponse(ToolResult):
    link: Optional[str] = None

class GetChannelMembersRequest(BaseModel):
    channel: str
    limit: Optional[int] = None
    offset: int = 0
    filter: Optional[str] = None  # admins, bots, banned, restricted; default recent

class ChannelMember(BaseModel):
    id: int
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None
    bot: bool = False
    admin: bool = False
    creator: bool = False

class GetChannelMembersResponse(ToolResult):
    members: List[ChannelMember] = Field(default_factory=list)
    total: int = 0


class ServiceStatusResponse(BaseModel):
    status: str
    running: bool
    authorized: bool
    session_file: Optional[str] = None
