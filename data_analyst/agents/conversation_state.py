"""
Conversation state management for multi-turn dialogue.

Handles conversation history, message conversion to and from LangChain
messages, and history bounding.
"""

from typing import List, Dict, Any, Optional
from datetime import datetime
from dataclasses import dataclass, field

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

USER = "user"
ASSISTANT = "assistant"
TOOL = "tool"  # capability result


@dataclass(frozen=True)
class ConversationMessage:
    """Single message in a conversation. Never edited after it is appended."""
    role: str  # 'user', 'assistant' or 'tool'
    content: Any
    timestamp: datetime = field(default_factory=datetime.now)
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)  # assistant only
    invalid_tool_calls: List[Dict[str, Any]] = field(default_factory=list)  # assistant only, unparseable requests
    tool_call_id: Optional[str] = None  # tool only
    name: Optional[str] = None  # tool only

    def to_langchain(self) -> BaseMessage:
        """Convert to the LangChain message type the model expects."""
        if self.role == USER:
            return HumanMessage(content=self.content)
        if self.role == ASSISTANT:
            return AIMessage(
                content=self.content,
                tool_calls=list(self.tool_calls),
                invalid_tool_calls=list(self.invalid_tool_calls),
            )
        if self.role == TOOL:
            return ToolMessage(content=self.content, tool_call_id=self.tool_call_id, name=self.name)
        raise ValueError(f"Unknown message role: {self.role}")

    @classmethod
    def from_langchain(cls, message: BaseMessage) -> 'ConversationMessage':
        """Create from a LangChain message."""
        if isinstance(message, HumanMessage):
            return cls(role=USER, content=message.content)
        if isinstance(message, AIMessage):
            return cls(
                role=ASSISTANT,
                content=message.content,
                tool_calls=[
                    {'name': tc['name'], 'args': tc['args'], 'id': tc.get('id')}
                    for tc in message.tool_calls
                ],
                invalid_tool_calls=[
                    {'name': tc.get('name'), 'args': tc.get('args'), 'id': tc.get('id'), 'error': tc.get('error')}
                    for tc in message.invalid_tool_calls
                ]
            )
        if isinstance(message, ToolMessage):
            return cls(
                role=TOOL,
                content=message.content,
                tool_call_id=message.tool_call_id,
                name=message.name
            )
        raise ValueError(f"Unsupported message type: {type(message).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'role': self.role,
            'content': self.content,
            'timestamp': self.timestamp.isoformat(),
            'tool_calls': self.tool_calls,
            'invalid_tool_calls': self.invalid_tool_calls,
            'tool_call_id': self.tool_call_id,
            'name': self.name
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationMessage':
        """Create from dictionary."""
        return cls(
            role=data['role'],
            content=data['content'],
            timestamp=datetime.fromisoformat(data['timestamp']),
            tool_calls=data.get('tool_calls') or [],
            invalid_tool_calls=data.get('invalid_tool_calls') or [],
            tool_call_id=data.get('tool_call_id'),
            name=data.get('name')
        )


@dataclass
class ConversationSession:
    """Represents a conversation and its ordered message history."""
    session_id: str
    started_at: datetime = field(default_factory=datetime.now)
    last_message_at: datetime = field(default_factory=datetime.now)
    message_count: int = 0
    messages: List[ConversationMessage] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_message(self, message: ConversationMessage) -> None:
        """Add a message to the conversation."""
        self.messages.append(message)
        self.message_count += 1
        self.last_message_at = datetime.now()

    def extend(self, messages: List[ConversationMessage]) -> None:
        """Append a whole turn at once."""
        for message in messages:
            self.add_message(message)

    def messages_by_role(self, role: str) -> List[ConversationMessage]:
        return [m for m in self.messages if m.role == role]

    def to_langchain(self) -> List[BaseMessage]:
        """Full history as LangChain messages."""
        return [m.to_langchain() for m in self.messages]

    def trim_to_turns(self, max_turns: Optional[int]) -> int:
        """
        Keep only the most recent turns.

        A turn starts at a user message, so a capability call is never
        separated from its result.

        Args:
            max_turns: Number of turns to keep (None keeps everything)

        Returns:
            Number of messages dropped
        """
        if max_turns is None:
            return 0

        turn_starts = [i for i, m in enumerate(self.messages) if m.role == USER]
        if len(turn_starts) <= max_turns:
            return 0

        cut = turn_starts[-max_turns]
        self.messages = self.messages[cut:]
        return cut

    def clear(self) -> None:
        self.messages = []
        self.message_count = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'session_id': self.session_id,
            'started_at': self.started_at.isoformat(),
            'last_message_at': self.last_message_at.isoformat(),
            'message_count': self.message_count,
            'messages': [msg.to_dict() for msg in self.messages],
            'metadata': self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationSession':
        """Create from dictionary."""
        return cls(
            session_id=data['session_id'],
            started_at=datetime.fromisoformat(data['started_at']),
            last_message_at=datetime.fromisoformat(data['last_message_at']),
            message_count=data['message_count'],
            messages=[ConversationMessage.from_dict(m) for m in data.get('messages', [])],
            metadata=data.get('metadata', {})
        )
