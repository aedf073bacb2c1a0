"""
Conversation store.

Process-wide mapping from conversation id to message history, with an
explicit lifecycle (construct / close), lazy creation on first use, an
optional capacity bound with LRU eviction, and per-conversation locks
that serialize turns on the same conversation.
"""

import asyncio
import json
import logging
import weakref
from collections import OrderedDict
from typing import Callable, List, Optional, TypeVar

import redis

from data_analyst.agents.conversation_state import ConversationSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConversationStore:
    """
    Manages conversations with an in-memory or Redis backend.

    The backend is chosen explicitly: pass ``redis_url`` to share
    conversations between processes, leave it unset for in-memory storage.
    """

    KEY_PREFIX = "conversation:"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_hours: int = 24,
        max_conversations: Optional[int] = None,
        max_history_turns: Optional[int] = None,
    ):
        """
        Initialize the conversation store.

        Args:
            redis_url: Redis connection URL (None for in-memory storage)
            ttl_hours: Conversation TTL in hours (Redis backend)
            max_conversations: Capacity bound for the in-memory backend
            max_history_turns: Turns kept per conversation when a turn is committed
        """
        self.ttl_seconds = ttl_hours * 3600
        self.max_conversations = max_conversations
        self.max_history_turns = max_history_turns
        self._in_memory_store: "OrderedDict[str, ConversationSession]" = OrderedDict()
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

        if redis_url:
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            self.use_redis = True
            logger.info(f"✓ ConversationStore initialized with Redis (TTL: {ttl_hours}h)")
        else:
            self.redis_client = None
            self.use_redis = False
            logger.info(
                f"ConversationStore using in-memory storage "
                f"(capacity: {max_conversations or 'unbounded'})"
            )

    def _key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}{conversation_id}"

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """
        Get the lock that serializes turns on one conversation.

        The lock lives as long as someone holds a reference to it.
        """
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def run_io(self, fn: Callable[..., T], *args) -> T:
        """
        Run a store operation from async code.

        Redis round trips go to a worker thread; in-memory operations run
        inline.
        """
        if self.use_redis:
            return await asyncio.to_thread(fn, *args)
        return fn(*args)

    def get_session(self, conversation_id: str) -> Optional[ConversationSession]:
        """
        Retrieve a conversation by ID.

        Args:
            conversation_id: Conversation identifier

        Returns:
            ConversationSession if found, None otherwise
        """
        if self.use_redis:
            data = self.redis_client.get(self._key(conversation_id))
            if data:
                return ConversationSession.from_dict(json.loads(data))
            return None

        session = self._in_memory_store.get(conversation_id)
        if session is not None:
            self._in_memory_store.move_to_end(conversation_id)
        return session

    def get_or_create(self, conversation_id: str) -> ConversationSession:
        """
        Look up a conversation, creating and storing an empty one on first use.

        Args:
            conversation_id: Conversation identifier

        Returns:
            Existing or newly created ConversationSession
        """
        session = self.get_session(conversation_id)
        if session is None:
            session = ConversationSession(session_id=conversation_id)
            self.save_session(session)
            logger.info(f"Created new conversation: {conversation_id}")
        return session

    def save_session(self, session: ConversationSession) -> None:
        """
        Save a conversation, applying the history bound.

        Args:
            session: ConversationSession to save
        """
        dropped = session.trim_to_turns(self.max_history_turns)
        if dropped:
            logger.debug(f"Trimmed {dropped} messages from conversation {session.session_id}")

        if self.use_redis:
            self.redis_client.setex(
                self._key(session.session_id),
                self.ttl_seconds,
                json.dumps(session.to_dict(), default=str)
            )
            return

        self._in_memory_store[session.session_id] = session
        self._in_memory_store.move_to_end(session.session_id)
        self._evict()

    def _evict(self) -> None:
        """Drop least recently used conversations beyond capacity."""
        if self.max_conversations is None:
            return
        while len(self._in_memory_store) > self.max_conversations:
            evicted_id, _ = self._in_memory_store.popitem(last=False)
            logger.info(f"Evicted conversation {evicted_id} (capacity {self.max_conversations})")

    def delete_session(self, conversation_id: str) -> bool:
        """
        Delete a conversation.

        Args:
            conversation_id: Conversation identifier

        Returns:
            True if a conversation was deleted
        """
        if self.use_redis:
            deleted = bool(self.redis_client.delete(self._key(conversation_id)))
        else:
            deleted = self._in_memory_store.pop(conversation_id, None) is not None

        if deleted:
            logger.info(f"Deleted conversation: {conversation_id}")
        return deleted

    def reset_session(self, conversation_id: str) -> Optional[ConversationSession]:
        """
        Clear a conversation's history while keeping the conversation.

        Returns:
            The cleared session, or None if it does not exist
        """
        session = self.get_session(conversation_id)
        if session is None:
            return None
        session.clear()
        self.save_session(session)
        return session

    def list_conversations(self) -> List[str]:
        """List stored conversation IDs."""
        if self.use_redis:
            return [
                key[len(self.KEY_PREFIX):]
                for key in self.redis_client.scan_iter(match=f"{self.KEY_PREFIX}*")
            ]
        return list(self._in_memory_store.keys())

    def __len__(self) -> int:
        return len(self.list_conversations())

    def close(self) -> None:
        """Release backend resources."""
        if self.redis_client is not None:
            self.redis_client.close()
            logger.info("ConversationStore Redis connection closed")
        self._in_memory_store.clear()
