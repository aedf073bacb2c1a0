"""
Root orchestrator for the data analyst.

This module runs one conversational turn: it loads the conversation,
delegates to the SQL and card sub-agents through the capability-calling
loop, commits the turn to the history and returns the reply with the
cards produced along the way.
"""

import asyncio
import time
from typing import AsyncIterator, List, Optional
import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage
from langsmith import traceable

from data_analyst.agents.attachments import AttachmentCollector
from data_analyst.agents.base_agent import BaseAgent, content_text
from data_analyst.agents.conversation_state import ConversationMessage, ConversationSession
from data_analyst.agents.session_manager import ConversationStore
from data_analyst.agents.state import DeliveryMode, TurnEvent, TurnResult
from data_analyst.agents.streaming import ChunkChannel
from data_analyst.agents.sub_agent import create_card_agent, create_sql_agent, sub_agent_tools
from data_analyst.agents.tools.chart_tools import VisualizationBuilder
from data_analyst.agents.tools.database_tools import GuardedExecutor
from data_analyst.config import AnalystSettings
from data_analyst.exceptions import AnalystError, UpstreamModelError
from data_analyst.prompts import (
    build_card_instructions,
    build_root_instructions,
    build_sql_instructions,
    load_examples,
    load_schema_text,
)

logger = logging.getLogger(__name__)


class DataAnalystOrchestrator:
    """
    Orchestrates one data analyst turn.

    Workflow:
    1. Lock and load (or lazily create) the conversation
    2. Root agent answers, calling sql_agent / card_agent as needed
    3. Commit the whole turn to the history in one step
    4. Return text plus the cards collected during this turn
    """

    def __init__(
        self,
        llm: BaseChatModel,
        store: ConversationStore,
        executor: GuardedExecutor,
        root_instructions: str,
        sql_instructions: str,
        card_instructions: Optional[str] = None,
        sql_llm: Optional[BaseChatModel] = None,
        card_llm: Optional[BaseChatModel] = None,
        max_tool_rounds: int = 10,
    ):
        """
        Initialize the orchestrator.

        Args:
            llm: Language model for the root agent (and sub-agents by default)
            store: Conversation store shared by all turns
            executor: Guarded executor for the analytics database
            root_instructions: Root system instructions (schema and examples included)
            sql_instructions: SQL agent instructions
            card_instructions: Card agent instructions
            sql_llm: Optional separate model for the SQL agent
            card_llm: Optional separate model for the card agent
            max_tool_rounds: Model round trips allowed per agent run
        """
        self.llm = llm
        self.store = store
        self.executor = executor
        self.root_instructions = root_instructions
        self.sql_instructions = sql_instructions
        self.card_instructions = card_instructions or build_card_instructions()
        self.sql_llm = sql_llm or llm
        self.card_llm = card_llm or llm
        self.max_tool_rounds = max_tool_rounds

        logger.info("DataAnalystOrchestrator initialized")

    @classmethod
    def from_settings(
        cls,
        settings: AnalystSettings,
        llm: BaseChatModel,
        store: ConversationStore,
    ) -> "DataAnalystOrchestrator":
        """Build an orchestrator from configuration, loading schema and examples."""
        schema = load_schema_text(settings.schema_path)
        examples = load_examples(settings.examples_path)
        logger.info(f"Loaded schema ({len(schema)} chars) and {len(examples)} examples")

        return cls(
            llm=llm,
            store=store,
            executor=GuardedExecutor(settings.database_path),
            root_instructions=build_root_instructions(schema, examples),
            sql_instructions=build_sql_instructions(schema, examples),
            max_tool_rounds=settings.max_tool_rounds,
        )

    def _build_root_agent(self, collector: AttachmentCollector) -> BaseAgent:
        """Fresh sub-agents and root agent bound to one turn's collector."""
        sql_agent = create_sql_agent(
            self.sql_llm, self.executor, self.sql_instructions, self.max_tool_rounds
        )
        card_agent = create_card_agent(
            self.card_llm, VisualizationBuilder(collector), self.card_instructions, self.max_tool_rounds
        )
        return BaseAgent(
            self.llm,
            name="data_analyst",
            instructions=self.root_instructions,
            tools=sub_agent_tools(sql_agent, card_agent),
            max_tool_rounds=self.max_tool_rounds,
        )

    def _commit(self, session: ConversationSession, turn: List[BaseMessage]) -> None:
        session.extend([ConversationMessage.from_langchain(m) for m in turn])
        self.store.save_session(session)

    @traceable(name="data_analyst_turn", run_type="chain")
    async def handle(
        self,
        conversation_id: str,
        user_text: str,
        delivery_mode: DeliveryMode = DeliveryMode.BROADCAST,
        channel: Optional[ChunkChannel] = None,
    ) -> TurnResult:
        """
        Run one turn.

        Args:
            conversation_id: Conversation identifier
            user_text: The user's message
            delivery_mode: point_to_point streams text chunks into ``channel``;
                broadcast never emits chunks
            channel: Chunk sink for point_to_point delivery

        Returns:
            TurnResult with the final text (None if empty) and this turn's cards

        Raises:
            UpstreamModelError: the root model call failed; nothing is committed
            ToolLoopLimitExceeded: the root model never stopped requesting capabilities
        """
        start_time = time.time()
        delivery_mode = DeliveryMode(delivery_mode)
        streaming = delivery_mode == DeliveryMode.POINT_TO_POINT and channel is not None

        async with self.store.lock(conversation_id):
            session = await self.store.run_io(self.store.get_or_create, conversation_id)

            collector = AttachmentCollector()
            root = self._build_root_agent(collector)
            user_message = HumanMessage(content=user_text)
            history = session.to_langchain() + [user_message]

            logger.info(
                f"🚀 Turn started for conversation {conversation_id} "
                f"({delivery_mode.value}, {len(session.messages)} prior messages)"
            )

            try:
                produced, traces = await root.run(history, channel.send if streaming else None)
            except AnalystError:
                raise
            except Exception as e:
                logger.error(f"Root model failed for conversation {conversation_id}: {str(e)}")
                raise UpstreamModelError(f"Model service failed: {e}") from e

            await self.store.run_io(self._commit, session, [user_message] + produced)

        text = content_text(produced[-1].content) or None
        execution_time = int((time.time() - start_time) * 1000)
        logger.info(
            f"✅ Turn completed for conversation {conversation_id} in {execution_time}ms "
            f"({len(traces)} capability calls, {len(collector)} attachments)"
        )

        return TurnResult(
            conversation_id=conversation_id,
            text=text,
            attachments=collector.artifacts,
            tool_calls=traces,
            delivery_mode=delivery_mode,
            execution_time_ms=execution_time,
        )

    async def stream(self, conversation_id: str, user_text: str) -> AsyncIterator[TurnEvent]:
        """
        Run a point-to-point turn, yielding chunk events then one result event.

        Closing the iterator early cancels the turn; nothing is committed.
        """
        channel = ChunkChannel()

        async def produce() -> TurnResult:
            try:
                return await self.handle(conversation_id, user_text, DeliveryMode.POINT_TO_POINT, channel)
            finally:
                channel.close()

        task = asyncio.create_task(produce())
        try:
            async for chunk in channel:
                yield TurnEvent(type="chunk", text=chunk)
            result = await task
            yield TurnEvent(type="result", result=result)
        finally:
            if not task.done():
                logger.info(f"Turn for conversation {conversation_id} cancelled by consumer")
                channel.close()
                task.cancel()
                await asyncio.wait([task])
