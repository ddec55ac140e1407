"""FastAPI entry point for the chat relay."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, validator

from .config import RelayConfig
from .errors import ErrorCode, RelayError
from .llm_client import ChatLLMClient
from .prompt import RestaurantRecord
from .service import RelayService
from .store import ConversationStore
from .utils import setup_logging

logger = logging.getLogger(__name__)

CONVERSATION_HEADER = "X-Conversation-Id"


class ChatMessage(BaseModel):
    role: str = Field(..., description="'system', 'user' or 'assistant'.")
    content: str = ""

    @validator("role")
    def _known_role(cls, value: str) -> str:
        if value not in ("system", "user", "assistant"):
            raise ValueError("role must be one of system, user, assistant")
        return value


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., description="New turn(s); the last one is stored as the user message.")
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    restaurant_data: Optional[List[RestaurantRecord]] = Field(None, alias="restaurantData")
    stream: bool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    model: Optional[str] = None

    @validator("messages")
    def _not_empty(cls, value: List[ChatMessage]) -> List[ChatMessage]:
        if not value:
            raise ValueError("messages must not be empty")
        return value


class HistoryResponse(BaseModel):
    conversationId: str
    messages: List[Dict[str, str]] = Field(default_factory=list)
    messageCount: int = 0


def create_app(
    config: Optional[RelayConfig] = None,
    *,
    client: Optional[ChatLLMClient] = None,
    store: Optional[ConversationStore] = None,
    log_dir: Optional[str] = None,
) -> FastAPI:
    if log_dir:
        setup_logging(log_dir, logging.INFO)

    config = config or RelayConfig()
    store = store or ConversationStore(max_messages=config.max_history_messages)
    service = RelayService(config, client=client, store=store)

    app = FastAPI(title="Restaurant Chat Relay", version="0.1.0")
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CONVERSATION_HEADER],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = RelayError("Invalid request", code=ErrorCode.BAD_REQUEST, status_code=422, details=exc.errors())
        return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))

    prefix = config.api_prefix.strip("/")
    router = APIRouter(prefix=f"/{prefix}" if prefix else "")

    @router.get("/health")
    async def health() -> Dict[str, Any]:
        key_loaded = bool(app.state.service.config.upstream.api_key)
        # openaiKeyLoaded is the name the browser UI checks before enabling input.
        return {
            "status": "ok",
            "upstreamKeyLoaded": key_loaded,
            "openaiKeyLoaded": key_loaded,
            "conversationsActive": app.state.service.store.count(),
        }

    @router.post("/chat")
    async def chat(request: ChatRequest):
        try:
            result = await run_in_threadpool(
                app.state.service.chat,
                [msg.dict() for msg in request.messages],
                conversation_id=request.conversation_id,
                restaurants=request.restaurant_data,
                stream=request.stream,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                model=request.model,
            )
        except ValueError as exc:
            raise RelayError(str(exc), code=ErrorCode.BAD_REQUEST, status_code=400) from exc
        except RelayError:
            raise
        except Exception as exc:
            logger.exception("Chat request failed (conversation_id=%s)", request.conversation_id)
            raise RelayError("Chat request failed", details=str(exc)) from exc

        if result.streaming:
            headers = {
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                CONVERSATION_HEADER: result.conversation_id,
            }
            return StreamingResponse(result.chunks, media_type="text/event-stream", headers=headers)
        return result.body

    @router.get("/conversation/{conversation_id}", response_model=HistoryResponse)
    async def conversation(conversation_id: str):
        return app.state.service.get_history(conversation_id)

    @router.delete("/conversation/{conversation_id}")
    async def clear_conversation(conversation_id: str) -> Dict[str, Any]:
        app.state.service.clear(conversation_id)
        return {"success": True, "message": "Conversation cleared"}

    @router.get("/conversations")
    async def conversations() -> List[Dict[str, object]]:
        return app.state.service.list_conversations()

    app.include_router(router)

    if config.uploads_dir and os.path.isdir(config.uploads_dir):
        app.mount("/uploads", StaticFiles(directory=config.uploads_dir), name="uploads")
        logger.info("Serving static files from %s at /uploads", config.uploads_dir)

    return app
