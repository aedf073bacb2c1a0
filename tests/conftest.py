"""
Shared fixtures: a scripted tool-calling chat model and a sample database.
"""

import asyncio
import json
import re
import sqlite3
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from pydantic import ConfigDict, Field

from data_analyst.agents.orchestrator import DataAnalystOrchestrator
from data_analyst.agents.session_manager import ConversationStore
from data_analyst.agents.tools.database_tools import GuardedExecutor
from data_analyst.prompts import build_root_instructions, build_sql_instructions


SCHEMA_SQL = """CREATE TABLE sales (
    id INTEGER PRIMARY KEY,
    region TEXT NOT NULL,
    product TEXT NOT NULL,
    revenue REAL NOT NULL
);"""

SALES_ROWS = [
    (1, "North", "Bikes", 1200.0),
    (2, "South", "Bikes", 800.0),
    (3, "North", "Helmets", 150.0),
    (4, "West", "Bikes", 950.0),
]


def tool_call(name: str, args: Dict[str, Any], call_id: Optional[str] = None) -> Dict[str, Any]:
    """A capability request as it appears on an AIMessage."""
    return {"name": name, "args": args, "id": call_id or f"call_{uuid.uuid4().hex[:8]}", "type": "tool_call"}


def ai(text: str = "", *calls: Dict[str, Any]) -> AIMessage:
    """Scripted model response: final text, or capability requests."""
    return AIMessage(content=text, tool_calls=list(calls))


class ScriptedChatModel(BaseChatModel):
    """
    Chat model that replays scripted responses in order.

    Records every message list it receives and the tool names it was bound
    with. Streaming splits the text on whitespace boundaries and emits
    capability requests as a trailing tool-call chunk.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    responses: List[AIMessage] = Field(default_factory=list)
    received: List[List[BaseMessage]] = Field(default_factory=list)
    bound_tools: List[List[str]] = Field(default_factory=list)
    error: Optional[Exception] = None
    delay: float = 0.0

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools, **kwargs):
        self.bound_tools.append([tool.name for tool in tools])
        return self

    def _next(self, messages: List[BaseMessage]) -> AIMessage:
        self.received.append(list(messages))
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AssertionError("ScriptedChatModel ran out of responses")
        return self.responses.pop(0)

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return ChatResult(generations=[ChatGeneration(message=self._next(messages))])

    async def _agenerate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        return ChatResult(generations=[ChatGeneration(message=self._next(messages))])

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs) -> AsyncIterator[ChatGenerationChunk]:
        message = self._next(messages)
        pieces = [piece for piece in re.split(r"(\s+)", message.content) if piece]
        for piece in pieces:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield ChatGenerationChunk(message=AIMessageChunk(content=piece))
        if not pieces and not message.tool_calls:
            yield ChatGenerationChunk(message=AIMessageChunk(content=""))
        if message.tool_calls:
            yield ChatGenerationChunk(message=AIMessageChunk(
                content="",
                tool_call_chunks=[
                    {"name": call["name"], "args": json.dumps(call["args"]), "id": call["id"], "index": i}
                    for i, call in enumerate(message.tool_calls)
                ],
            ))


@pytest.fixture
def database_path(tmp_path) -> str:
    """SQLite database with a small sales table."""
    path = tmp_path / "analytics.db"
    connection = sqlite3.connect(path)
    connection.executescript(SCHEMA_SQL)
    connection.executemany("INSERT INTO sales VALUES (?, ?, ?, ?)", SALES_ROWS)
    connection.commit()
    connection.close()
    return str(path)


@pytest.fixture
def executor(database_path) -> GuardedExecutor:
    return GuardedExecutor(database_path)


@pytest.fixture
def store() -> ConversationStore:
    store = ConversationStore(max_conversations=100, max_history_turns=20)
    yield store
    store.close()


@pytest.fixture
def root_llm() -> ScriptedChatModel:
    return ScriptedChatModel()


@pytest.fixture
def sql_llm() -> ScriptedChatModel:
    return ScriptedChatModel()


@pytest.fixture
def card_llm() -> ScriptedChatModel:
    return ScriptedChatModel()


@pytest.fixture
def orchestrator(root_llm, sql_llm, card_llm, store, executor) -> DataAnalystOrchestrator:
    return DataAnalystOrchestrator(
        llm=root_llm,
        store=store,
        executor=executor,
        root_instructions=build_root_instructions(SCHEMA_SQL, []),
        sql_instructions=build_sql_instructions(SCHEMA_SQL, []),
        sql_llm=sql_llm,
        card_llm=card_llm,
        max_tool_rounds=5,
    )
