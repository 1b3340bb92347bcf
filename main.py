# main.py
import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request

from models import *
from config import Settings, load_settings
from resolver import PeerResolver
from session_manager import SessionManager
from session_store import FileSessionStore
from telegram_manager import TelegramCapability
from tools import TOOL_DESCRIPTIONS, TelegramTools

VERSION = "1.0.0"

router = APIRouter()


async def start_session(sessions: SessionManager):
    """
    Launch the task that owns the Telegram connection for the app's lifetime
    and wait until it is ready. Returns the task and the event that stops it.
    """
    stop = asyncio.Event()
    ready = asyncio.Event()

    async def serve():
        ready.set()
        await stop.wait()

    task = asyncio.create_task(sessions.start(serve))
    ready_wait = asyncio.create_task(ready.wait())
    done, _ = await asyncio.wait({task, ready_wait}, return_when=asyncio.FIRST_COMPLETED)
    if task in done:
        ready_wait.cancel()
        task.result()  # re-raises the startup failure
        raise RuntimeError("Telegram session ended during startup")
    return task, stop


def create_app(
    settings: Optional[Settings] = None,
    capability=None,
    store: Optional[FileSessionStore] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        print("🚀 Telegram tool bridge is starting up...")
        cfg = settings
        if cfg is None and (capability is None or store is None):
            cfg = load_settings()

        session_store = store or FileSessionStore(cfg.session_file)
        remote = capability or TelegramCapability(cfg.api_id, cfg.api_hash, session_store)
        sessions = SessionManager(remote, session_store)

        app.state.store = session_store
        app.state.sessions = sessions
        app.state.tools = TelegramTools(sessions, PeerResolver(sessions))

        task, stop = await start_session(sessions)
        print(f"🔄 Session running (authorized={sessions.is_authorized})")
        try:
            yield
        finally:
            print("🛑 Telegram tool bridge is shutting down...")
            stop.set()
            await task
            print("✅ Session closed")

    app = FastAPI(
        title="Telegram Tool Bridge",
        description="Tools for driving one authenticated Telegram session",
        version=VERSION,
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


def get_tools(request: Request) -> TelegramTools:
    return request.app.state.tools


def _status(request: Request, status: str) -> ServiceStatusResponse:
    sessions = request.app.state.sessions
    return ServiceStatusResponse(
        status=status,
        running=sessions.is_running,
        authorized=sessions.is_authorized,
        session_file=str(request.app.state.store.path),
    )


@router.get("/")
def read_root(request: Request):
    return _status(request, "running")


@router.get("/health")
def health_check(request: Request):
    return _status(request, "healthy" if request.app.state.sessions.is_running else "stopped")


@router.get("/tools")
def list_tools():
    return {
        "tools": [{"name": name, "description": text} for name, text in TOOL_DESCRIPTIONS.items()]
    }


# --- auth ---

@router.post("/tools/auth_status", response_model=AuthStatusResponse,
             description=TOOL_DESCRIPTIONS["auth_status"])
async def auth_status(request: AuthStatusRequest = AuthStatusRequest(), tools: TelegramTools = Depends(get_tools)):
    return await tools.auth_status(request)


@router.post("/tools/auth_send_code", response_model=SendCodeResponse,
             description=TOOL_DESCRIPTIONS["auth_send_code"])
async def auth_send_code(request: SendCodeRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.auth_send_code(request)


@router.post("/tools/auth_submit_code", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["auth_submit_code"])
async def auth_submit_code(request: SubmitCodeRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.auth_submit_code(request)


@router.post("/tools/auth_logout", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["auth_logout"])
async def auth_logout(request: LogoutRequest = LogoutRequest(), tools: TelegramTools = Depends(get_tools)):
    return await tools.auth_logout(request)


# --- messages ---

@router.post("/tools/send_message", response_model=SendMessageResponse,
             description=TOOL_DESCRIPTIONS["send_message"])
async def send_message(request: SendMessageRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.send_message(request)


@router.post("/tools/get_messages", response_model=GetMessagesResponse,
             description=TOOL_DESCRIPTIONS["get_messages"])
async def get_messages(request: GetMessagesRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.get_messages(request)


# --- chats ---

@router.post("/tools/list_chats", response_model=ListChatsResponse,
             description=TOOL_DESCRIPTIONS["list_chats"])
async def list_chats(request: ListChatsRequest = ListChatsRequest(), tools: TelegramTools = Depends(get_tools)):
    return await tools.list_chats(request)


@router.post("/tools/get_chats_overview", response_model=ChatsOverviewResponse,
             description=TOOL_DESCRIPTIONS["get_chats_overview"])
async def get_chats_overview(request: ChatsOverviewRequest = ChatsOverviewRequest(),
                             tools: TelegramTools = Depends(get_tools)):
    return await tools.get_chats_overview(request)


@router.post("/tools/delete_chat", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["delete_chat"])
async def delete_chat(request: DeleteChatRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.delete_chat(request)


@router.post("/tools/leave_channel", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["leave_channel"])
async def leave_channel(request: LeaveChannelRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.leave_channel(request)


# --- users ---

@router.post("/tools/get_user", response_model=GetUserResponse,
             description=TOOL_DESCRIPTIONS["get_user"])
async def get_user(request: GetUserRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.get_user(request)


# --- channels ---

@router.post("/tools/create_channel", response_model=CreateChannelResponse,
             description=TOOL_DESCRIPTIONS["create_channel"])
async def create_channel(request: CreateChannelRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.create_channel(request)


@router.post("/tools/edit_channel", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["edit_channel"])
async def edit_channel(request: EditChannelRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.edit_channel(request)


@router.post("/tools/delete_channel", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["delete_channel"])
async def delete_channel(request: DeleteChannelRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.delete_channel(request)


@router.post("/tools/set_channel_username", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["set_channel_username"])
async def set_channel_username(request: SetChannelUsernameRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.set_channel_username(request)


@router.post("/tools/invite_to_channel", response_model=ToolResult,
             description=TOOL_DESCRIPTIONS["invite_to_channel"])
async def invite_to_channel(request: InviteToChannelRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.invite_to_channel(request)


@router.post("/tools/get_channel_info", response_model=GetChannelInfoResponse,
             description=TOOL_DESCRIPTIONS["get_channel_info"])
async def get_channel_info(request: GetChannelInfoRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.get_channel_info(request)


@router.post("/tools/export_invite_link", response_model=ExportInviteLinkResponse,
             description=TOOL_DESCRIPTIONS["export_invite_link"])
async def export_invite_link(request: ExportInviteLinkRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.export_invite_link(request)


@router.post("/tools/get_channel_members", response_model=GetChannelMembersResponse,
             description=TOOL_DESCRIPTIONS["get_channel_members"])
async def get_channel_members(request: GetChannelMembersRequest, tools: TelegramTools = Depends(get_tools)):
    return await tools.get_channel_members(request)


app = create_app()
