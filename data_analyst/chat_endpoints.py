"""
Chat endpoints for the data analyst agent.

Broadcast replies come back as one JSON message; point-to-point replies
stream as server-sent events: ``typing``, ``chunk``*, then ``result`` (or
``error``), terminated by ``[DONE]``.
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from datetime import datetime
from typing import Any, AsyncIterator, Dict
import json
import logging
import uuid

from data_analyst.models import (
    ChatStartRequest,
    ChatStartResponse,
    ChatMessageRequest,
    ChatMessageResponse,
    ChatHistoryResponse
)
from data_analyst.agents.orchestrator import DataAnalystOrchestrator
from data_analyst.agents.session_manager import ConversationStore
from data_analyst.agents.state import DeliveryMode, TurnResult
from data_analyst.exceptions import AnalystError, UpstreamModelError
from data_analyst.prompts import GREETING_MESSAGE

logger = logging.getLogger(__name__)


def _sse(payload: Any) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


def _reply(result: TurnResult) -> ChatMessageResponse:
    return ChatMessageResponse(
        conversation_id=result.conversation_id,
        text=result.text,
        attachments=[artifact.to_dict() for artifact in result.attachments],
        ai_generated=True,
        timestamp=datetime.now()
    )


def create_chat_router(
    store: ConversationStore,
    orchestrator: DataAnalystOrchestrator
) -> APIRouter:
    """
    Create chat router with dependencies injected.

    Args:
        store: Conversation store instance
        orchestrator: Root orchestrator instance

    Returns:
        Configured APIRouter
    """
    router = APIRouter(prefix="/chat", tags=["chat"])

    @router.post("/start", response_model=ChatStartResponse)
    async def start_conversation(request: ChatStartRequest) -> ChatStartResponse:
        """
        Start a conversation and return the greeting.

        The returned conversation ID is used for subsequent messages.
        """
        conversation_id = request.conversation_id or str(uuid.uuid4())
        try:
            await store.run_io(store.get_or_create, conversation_id)
        except Exception as e:
            logger.error(f"Failed to start conversation: {e}")
            raise HTTPException(
                status_code=500,
                detail=f"Failed to start conversation: {str(e)}"
            )

        return ChatStartResponse(conversation_id=conversation_id, message=GREETING_MESSAGE)

    @router.post("/message", response_model=ChatMessageResponse)
    async def send_message(request: ChatMessageRequest):
        """
        Send a message in a conversation.

        Unknown conversation IDs are created on first use.
        """
        if request.delivery_mode == DeliveryMode.POINT_TO_POINT:
            return StreamingResponse(
                _stream_turn(request.conversation_id, request.message),
                media_type="text/event-stream"
            )

        try:
            result = await orchestrator.handle(
                request.conversation_id,
                request.message,
                DeliveryMode.BROADCAST
            )
        except UpstreamModelError as e:
            logger.error(f"Model unavailable for conversation {request.conversation_id}: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        except AnalystError as e:
            logger.error(f"Failed to process message: {e}")
            raise HTTPException(
                status_code=500,
                detail=f"Failed to process message: {str(e)}"
            )

        return _reply(result)

    async def _stream_turn(conversation_id: str, message: str) -> AsyncIterator[str]:
        yield _sse({"type": "typing"})

        events = orchestrator.stream(conversation_id, message)
        try:
            async for event in events:
                if event.type == "chunk":
                    yield _sse({"type": "chunk", "text": event.text})
                else:
                    payload: Dict[str, Any] = _reply(event.result).model_dump(mode="json")
                    yield _sse({"type": "result", "data": payload})
        except AnalystError as e:
            logger.error(f"Streaming turn failed for conversation {conversation_id}: {e}")
            yield _sse({"type": "error", "message": str(e)})
        finally:
            await events.aclose()

        yield "data: [DONE]\n\n"

    @router.get("/history/{conversation_id}", response_model=ChatHistoryResponse)
    async def get_history(conversation_id: str) -> ChatHistoryResponse:
        """
        Get conversation history.
        """
        session = await store.run_io(store.get_session, conversation_id)
        if not session:
            raise HTTPException(
                status_code=404,
                detail=f"Conversation {conversation_id} not found or expired"
            )

        return ChatHistoryResponse(
            conversation_id=session.session_id,
            messages=[msg.to_dict() for msg in session.messages],
            message_count=session.message_count,
            started_at=session.started_at,
            last_message_at=session.last_message_at
        )

    @router.post("/reset/{conversation_id}")
    async def reset_conversation(conversation_id: str):
        """
        Clear the history while keeping the conversation.
        """
        async with store.lock(conversation_id):
            session = await store.run_io(store.reset_session, conversation_id)
        if session is None:
            raise HTTPException(
                status_code=404,
                detail=f"Conversation {conversation_id} not found or expired"
            )

        return {"message": "Conversation reset successfully"}

    @router.delete("/{conversation_id}")
    async def end_conversation(conversation_id: str):
        """
        End a conversation and delete its history.
        """
        async with store.lock(conversation_id):
            deleted = await store.run_io(store.delete_session, conversation_id)
        if not deleted:
            raise HTTPException(
                status_code=404,
                detail=f"Conversation {conversation_id} not found"
            )

        return {"message": "Conversation ended successfully"}

    return router
