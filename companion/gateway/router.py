"""
API routes for the companion gateway.

``POST /chat`` authenticates inside the turn orchestrator. Every other route
here requires a bearer token, resolved by AuthenticationMiddleware into
``request.state.user_id``; all reads and writes are scoped to that user.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from companion.agent.turn import TurnRequest
from companion.storage.store import Store, StoreError

api_router = APIRouter()


def get_store(request: Request) -> Iterator[Store]:
    store = Store(request.app.state.config.database_path)
    store.open()
    try:
        yield store
    finally:
        store.close()


# ──────────────────────── Chat ────────────────────────


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    conversation_id: str = Field(alias="conversationId", min_length=1)
    last_message_at: datetime | None = Field(default=None, alias="lastMessageAt")


@api_router.post("/chat")
async def chat(request: Request, body: ChatRequest):
    """Run one companion turn. Returns {response} or a 500 with {error}."""
    orchestrator = request.app.state.orchestrator

    result = await orchestrator.handle_turn(
        request.headers.get("Authorization"),
        TurnRequest(
            message=body.message,
            conversation_id=body.conversation_id,
            last_message_at=body.last_message_at,
        ),
    )
    if not result.ok:
        return JSONResponse({"error": result.error}, status_code=500)
    return {"response": result.reply}


# ──────────────────────── Conversations ────────────────────────


class ConversationCreate(BaseModel):
    title: str | None = Field(default=None, max_length=100)


class MessageCreate(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)


@api_router.get("/conversations")
async def list_conversations(
    request: Request, limit: int = 20, store: Store = Depends(get_store)
) -> dict:
    conversations = store.list_conversations(request.state.user_id, limit=min(limit, 100))
    return {"conversations": conversations}


@api_router.post("/conversations", status_code=201)
async def create_conversation(
    request: Request, body: ConversationCreate, store: Store = Depends(get_store)
) -> dict:
    return store.create_conversation(request.state.user_id, title=body.title)


@api_router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    request: Request,
    conversation_id: str,
    limit: int = 50,
    store: Store = Depends(get_store),
) -> dict:
    user_id = request.state.user_id
    if store.get_conversation(conversation_id, user_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found.")
    messages = store.get_recent_messages(conversation_id, user_id, limit=min(limit, 200))
    return {"messages": messages}


@api_router.post("/conversations/{conversation_id}/messages", status_code=201)
async def append_message(
    request: Request,
    conversation_id: str,
    body: MessageCreate,
    store: Store = Depends(get_store),
) -> dict:
    try:
        return store.append_message(
            conversation_id, request.state.user_id, body.role, body.content
        )
    except StoreError:
        raise HTTPException(status_code=404, detail="Conversation not found.")


# ──────────────────────── Memories & tasks ────────────────────────


@api_router.get("/memories")
async def list_memories(
    request: Request, category: str | None = None, store: Store = Depends(get_store)
) -> dict:
    return {"memories": store.list_memories(request.state.user_id, category=category)}


@api_router.get("/tasks")
async def list_tasks(
    request: Request, status: str | None = None, store: Store = Depends(get_store)
) -> dict:
    return {"tasks": store.list_tasks(request.state.user_id, status=status)}
