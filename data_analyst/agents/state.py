"""
Turn state models using Pydantic.

This module defines the delivery modes, capability-call traces and the
result returned to the host channel for one orchestration invocation.
"""

from typing import List, Dict, Any, Optional, Literal
from enum import Enum
from pydantic import BaseModel, Field

from data_analyst.cards import Artifact


class DeliveryMode(str, Enum):
    """How a turn's output reaches the caller."""
    POINT_TO_POINT = "point_to_point"  # streamed incrementally, 1:1 chat
    BROADCAST = "broadcast"  # single merged message, group chat


class ToolCall(BaseModel):
    """Represents a single capability call made by an agent."""

    tool_name: str
    arguments: Dict[str, Any]
    call_id: Optional[str] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    execution_time_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class TurnResult(BaseModel):
    """Output of the root orchestrator for one turn."""

    conversation_id: str
    text: Optional[str] = None
    attachments: List[Artifact] = Field(default_factory=list)
    tool_calls: List[ToolCall] = Field(default_factory=list)
    delivery_mode: DeliveryMode = DeliveryMode.BROADCAST
    execution_time_ms: int = 0


class TurnEvent(BaseModel):
    """Event produced while streaming a point-to-point turn."""

    type: Literal["chunk", "result"]
    text: Optional[str] = None
    result: Optional[TurnResult] = None
