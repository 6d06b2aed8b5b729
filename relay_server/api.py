"""
Relay API.

This module exposes:
- Auth: register, login, logout, current user (session cookie)
- Conversations: list, create, delete (owner only; others get 404)
- Messages: list, post (stores the user message, asks the assistant, stores the reply)
- Files: upload passthrough to the provider's Files API
- Events: structured events recorded for a conversation

Upstream failures surface as 502 with a stable category as detail.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Cookie, Depends, File, HTTPException, Query, Response, UploadFile
from pydantic import BaseModel, Field

from chat_client.parser import code_languages, parse_content
from logging_setup import get_logger, Component as LogComponent
from observability.event_store import event_store
from observability.events import Component as ObsComponent, EventEmitter, Severity
from .assistant import AssistantClient
from .auth import (
    SESSION_COOKIE,
    authenticate,
    hash_password,
    require_user,
    session_registry,
)
from .config import RelayConfig, get_config
from .errors import UpstreamErrorHandler
from .store import Conversation, Message, User, chat_store


router = APIRouter(prefix="/api", tags=["chat"])
emitter = EventEmitter(ObsComponent.RELAY_SERVER)
logger = get_logger(LogComponent.RELAY_SERVER)


def get_relay_config() -> RelayConfig:
    return get_config()


def get_assistant(config: RelayConfig = Depends(get_relay_config)) -> AssistantClient:
    return AssistantClient(config)


def _conversation_session_id(conversation_id: int) -> str:
    return f"conv_{conversation_id}"


# --- models ---


class Credentials(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    id: int
    username: str


class ConversationCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class ConversationOut(BaseModel):
    id: int
    user_id: int
    title: str
    created_at: str
    updated_at: str


class MessageCreate(BaseModel):
    role: Literal["user"] = "user"
    content: str = Field(..., min_length=1)


class SegmentOut(BaseModel):
    kind: str
    body: str
    language: Optional[str] = None


class MessageOut(BaseModel):
    id: int
    conversation_id: int
    role: str
    content: str
    created_at: str
    metadata: Optional[Dict[str, Any]] = None
    segments: List[SegmentOut] = Field(default_factory=list)


class SendMessageResponse(BaseModel):
    user_message: MessageOut
    ai_message: MessageOut


class FileUploadResponse(BaseModel):
    file_id: str
    filename: str
    size: int
    type: str
    upload_date: str


def _user_out(user: User) -> UserOut:
    return UserOut(id=user.id, username=user.username)


def _conversation_out(c: Conversation) -> ConversationOut:
    return ConversationOut(
        id=c.id,
        user_id=c.user_id,
        title=c.title,
        created_at=c.created_at.isoformat(),
        updated_at=c.updated_at.isoformat(),
    )


def _message_out(m: Message) -> MessageOut:
    return MessageOut(
        id=m.id,
        conversation_id=m.conversation_id,
        role=m.role,
        content=m.content,
        created_at=m.created_at.isoformat(),
        metadata=m.metadata,
        segments=[SegmentOut(**s.to_dict()) for s in parse_content(m.content)],
    )


def _owned_conversation(conversation_id: int, user: User) -> Conversation:
    conversation = chat_store.get_conversation(conversation_id)
    if conversation is None or conversation.user_id != user.id:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def _set_session_cookie(response: Response, user: User, config: RelayConfig) -> None:
    token = session_registry.create(user.id)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        secure=config.cookie_secure,
    )


# --- auth ---


@router.post("/register", response_model=UserOut, status_code=201)
async def register(
    creds: Credentials,
    response: Response,
    config: RelayConfig = Depends(get_relay_config),
) -> UserOut:
    if chat_store.get_user_by_username(creds.username) is not None:
        raise HTTPException(status_code=400, detail="Username already exists")

    try:
        password_hash = hash_password(creds.password)
    except ValueError:
        raise HTTPException(status_code=400, detail="Password too long")

    user = chat_store.create_user(creds.username, password_hash)
    _set_session_cookie(response, user, config)
    emitter.emit("auth.registered", f"user_{user.id}")
    return _user_out(user)


@router.post("/login", response_model=UserOut)
async def login(
    creds: Credentials,
    response: Response,
    config: RelayConfig = Depends(get_relay_config),
) -> UserOut:
    user = authenticate(creds.username, creds.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    _set_session_cookie(response, user, config)
    emitter.emit("auth.logged_in", f"user_{user.id}")
    return _user_out(user)


@router.post("/logout")
async def logout(
    response: Response,
    session: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
) -> dict:
    user_id = session_registry.resolve(session)
    session_registry.revoke(session)
    response.delete_cookie(SESSION_COOKIE)
    if user_id is not None:
        emitter.emit("auth.logged_out", f"user_{user_id}")
    return {"status": "ok"}


@router.get("/user", response_model=UserOut)
async def current_user(user: User = Depends(require_user)) -> UserOut:
    return _user_out(user)


# --- conversations ---


@router.get("/conversations", response_model=List[ConversationOut])
async def list_conversations(user: User = Depends(require_user)) -> List[ConversationOut]:
    return [_conversation_out(c) for c in chat_store.list_user_conversations(user.id)]


@router.post("/conversations", response_model=ConversationOut, status_code=201)
async def create_conversation(
    req: ConversationCreate,
    user: User = Depends(require_user),
) -> ConversationOut:
    if not req.title.strip():
        raise HTTPException(status_code=400, detail="Invalid conversation data")

    conversation = chat_store.create_conversation(user.id, req.title)
    emitter.emit("chat.conversation.created", _conversation_session_id(conversation.id))
    return _conversation_out(conversation)


@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(conversation_id: int, user: User = Depends(require_user)) -> Response:
    _owned_conversation(conversation_id, user)
    chat_store.delete_conversation(conversation_id)
    emitter.emit("chat.conversation.deleted", _conversation_session_id(conversation_id))
    return Response(status_code=204)


# --- messages ---


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageOut])
async def list_messages(conversation_id: int, user: User = Depends(require_user)) -> List[MessageOut]:
    _owned_conversation(conversation_id, user)
    return [_message_out(m) for m in chat_store.list_messages(conversation_id)]


@router.post("/conversations/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: int,
    req: MessageCreate,
    user: User = Depends(require_user),
    assistant: AssistantClient = Depends(get_assistant),
) -> SendMessageResponse:
    """
    Store the user message, ask the assistant with the full history and
    store its reply. On upstream failure the user message stays stored.
    """
    _owned_conversation(conversation_id, user)
    session_id = _conversation_session_id(conversation_id)
    log = logger.with_session(session_id)

    user_message = chat_store.create_message(conversation_id, req.role, req.content)
    emitter.emit(
        "chat.message.created",
        session_id,
        role="user",
        content_length=len(req.content),
    )

    history = [
        {"role": m.role, "content": m.content}
        for m in chat_store.list_messages(conversation_id)
    ]

    try:
        reply = await assistant.complete(history, session_id=session_id)
    except Exception as e:
        category = UpstreamErrorHandler.handle_error(session_id, e, operation="messages.create")
        log.warning("Assistant request failed", category=category, history_length=len(history))
        raise HTTPException(status_code=502, detail=category)

    ai_message = chat_store.create_message(
        conversation_id,
        "assistant",
        reply.text,
        metadata={"model": reply.model, "usage": reply.usage, "thinking": reply.thinking},
    )
    chat_store.touch_conversation(conversation_id)
    log.info("Assistant reply stored", message_id=ai_message.id, model=reply.model)

    emitter.emit(
        "chat.message.created",
        session_id,
        role="assistant",
        content_length=len(reply.text),
        code_languages=code_languages(parse_content(reply.text)),
    )

    return SendMessageResponse(
        user_message=_message_out(user_message),
        ai_message=_message_out(ai_message),
    )


@router.get("/conversations/{conversation_id}/events")
async def get_conversation_events(
    conversation_id: int,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
    user: User = Depends(require_user),
) -> dict:
    _owned_conversation(conversation_id, user)
    session_id = _conversation_session_id(conversation_id)
    events = event_store.query(session_id=session_id, event_type=event_type, limit=limit)
    return {"session_id": session_id, "events": events, "count": len(events)}


# --- files ---


@router.post("/files/upload", response_model=FileUploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    user: User = Depends(require_user),
    config: RelayConfig = Depends(get_relay_config),
    assistant: AssistantClient = Depends(get_assistant),
) -> FileUploadResponse:
    content_type = file.content_type or "application/octet-stream"
    if content_type not in config.allowed_upload_types:
        raise HTTPException(status_code=415, detail="File type not supported")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(data) > config.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    session_id = f"user_{user.id}"
    filename = file.filename or "upload"
    try:
        file_id = await assistant.upload_file(data, filename, content_type)
    except Exception as e:
        category = UpstreamErrorHandler.handle_error(session_id, e, operation="files.upload")
        raise HTTPException(status_code=502, detail=category)

    emitter.emit(
        "file.uploaded",
        session_id,
        severity=Severity.INFO,
        size=len(data),
        content_type=content_type,
    )

    return FileUploadResponse(
        file_id=file_id,
        filename=filename,
        size=len(data),
        type=content_type,
        upload_date=datetime.now(timezone.utc).isoformat(),
    )
