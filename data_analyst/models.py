"""
Pydantic models for request/response validation.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime

from data_analyst.agents.state import DeliveryMode
from data_analyst.prompts import GREETING_MESSAGE


class ChatStartRequest(BaseModel):
    """Request to start a new conversation."""
    conversation_id: Optional[str] = Field(None, description="Conversation ID assigned by the host channel (generated if omitted)")


class ChatStartResponse(BaseModel):
    """Response with the conversation ID and the greeting."""
    conversation_id: str
    message: str = GREETING_MESSAGE


class ChatMessageRequest(BaseModel):
    """Request to send a message in a conversation."""
    conversation_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, description="The user's question")
    delivery_mode: DeliveryMode = Field(
        DeliveryMode.BROADCAST,
        description="point_to_point streams the reply as server-sent events; broadcast returns one message"
    )


class ChatMessageResponse(BaseModel):
    """Single outbound reply: text and cards merged into one message."""
    conversation_id: str
    text: Optional[str] = None
    attachments: List[Dict[str, Any]] = Field(default_factory=list, description="Adaptive Card attachments")
    ai_generated: bool = True
    timestamp: datetime


class ChatHistoryResponse(BaseModel):
    """Response with conversation history."""
    conversation_id: str
    messages: List[Dict[str, Any]]
    message_count: int
    started_at: datetime
    last_message_at: datetime
