"""
Tests for the root orchestrator, sub-agents and the capability-calling loop.
"""

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from conftest import ai, tool_call
from data_analyst.agents.attachments import AttachmentCollector
from data_analyst.agents.base_agent import BaseAgent, ToolRegistry
from data_analyst.agents.state import DeliveryMode
from data_analyst.agents.streaming import ChunkChannel
from data_analyst.agents.tools.database_tools import make_execute_sql_tool
from data_analyst.cards import ChartKind
from data_analyst.exceptions import ToolLoopLimitExceeded, UpstreamModelError

REVENUE_QUERY = "SELECT region, SUM(revenue) AS revenue FROM sales GROUP BY region ORDER BY region"
REVENUE_ROWS = [["North", 1350.0], ["South", 800.0], ["West", 950.0]]


def script_revenue_chart(root_llm, sql_llm, card_llm, answer="North leads with 1350."):
    """Root asks for data, then for a chart, then answers."""
    root_llm.responses = [
        ai("", tool_call("sql_agent", {"text": "Total revenue per region"})),
        ai("", tool_call("card_agent", {"text": f"verticalBar of {REVENUE_ROWS}"})),
        ai(answer),
    ]
    sql_llm.responses = [
        ai("", tool_call("execute_sql", {"query": REVENUE_QUERY})),
        ai(f"Rows: {REVENUE_ROWS}"),
    ]
    card_llm.responses = [
        ai("", tool_call("generate_card", {
            "chart_type": "verticalBar",
            "rows": REVENUE_ROWS,
            "options": {"title": "Revenue by region"},
        })),
        ai("Card created."),
    ]


def last_tool_result(llm, call_index):
    message = llm.received[call_index][-1]
    assert isinstance(message, ToolMessage)
    return message.content


async def collect(events):
    return [event async for event in events]


class TestBroadcastTurn:
    """Tests for a complete turn delivered as one message."""

    def test_full_turn_with_chart(self, orchestrator, root_llm, sql_llm, card_llm, store):
        """Test data is queried, a card is attached and the answer returned."""
        script_revenue_chart(root_llm, sql_llm, card_llm)

        result = asyncio.run(orchestrator.handle("conv-1", "Show revenue by region as a chart"))

        assert result.text == "North leads with 1350."
        assert result.delivery_mode == DeliveryMode.BROADCAST
        assert [call.tool_name for call in result.tool_calls] == ["sql_agent", "card_agent"]
        assert len(result.attachments) == 1
        artifact = result.attachments[0]
        assert artifact.kind == ChartKind.VERTICAL_BAR
        assert artifact.title == "Revenue by region"

    def test_query_rows_reach_sql_agent(self, orchestrator, root_llm, sql_llm, card_llm):
        """Test the executor's rows payload is handed back to the SQL agent's model."""
        script_revenue_chart(root_llm, sql_llm, card_llm)

        asyncio.run(orchestrator.handle("conv-1", "Show revenue by region"))

        payload = json.loads(last_tool_result(sql_llm, 1))
        assert payload["rows"][0] == {"region": "North", "revenue": 1350.0}
        assert last_tool_result(root_llm, 1) == f"Rows: {REVENUE_ROWS}"
        assert last_tool_result(root_llm, 2) == "Card created."

    def test_capability_descriptors_bound(self, orchestrator, root_llm, sql_llm, card_llm):
        """Test each agent is offered exactly its own capabilities."""
        script_revenue_chart(root_llm, sql_llm, card_llm)

        asyncio.run(orchestrator.handle("conv-1", "Show revenue by region"))

        assert root_llm.bound_tools[0] == ["sql_agent", "card_agent"]
        assert sql_llm.bound_tools[0] == ["execute_sql"]
        assert card_llm.bound_tools[0] == ["generate_card"]

    def test_turn_committed_to_history(self, orchestrator, root_llm, sql_llm, card_llm, store):
        """Test the user message, intermediate steps and answer are committed together."""
        script_revenue_chart(root_llm, sql_llm, card_llm)

        asyncio.run(orchestrator.handle("conv-1", "Show revenue by region"))

        messages = store.get_session("conv-1").messages
        assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant", "tool", "assistant"]
        assert messages[0].content == "Show revenue by region"
        assert messages[-1].content == "North leads with 1350."

    def test_root_instructions_include_schema(self, orchestrator, root_llm):
        """Test the schema text is injected into the root instructions."""
        root_llm.responses = [ai("Hi!")]

        asyncio.run(orchestrator.handle("conv-1", "hello"))

        system = root_llm.received[0][0]
        assert isinstance(system, SystemMessage)
        assert "CREATE TABLE sales" in system.content

    def test_broadcast_emits_no_chunks(self, orchestrator, root_llm):
        """Test broadcast mode never pushes chunks, even with a channel."""
        root_llm.responses = [ai("A plain answer with several words")]
        channel = ChunkChannel()

        result = asyncio.run(orchestrator.handle("conv-1", "hello", DeliveryMode.BROADCAST, channel))

        assert channel.sent == 0
        assert result.text == "A plain answer with several words"

    def test_empty_final_text_is_none(self, orchestrator, root_llm):
        """Test an empty answer yields no text."""
        root_llm.responses = [ai("")]

        result = asyncio.run(orchestrator.handle("conv-1", "hello"))

        assert result.text is None
        assert result.attachments == []


class TestPointToPointTurn:
    """Tests for streamed delivery."""

    def test_chunks_then_result(self, orchestrator, root_llm):
        """Test chunks arrive before the single result and join to the answer."""
        root_llm.responses = [ai("Revenue is up this quarter")]

        events = asyncio.run(collect(orchestrator.stream("conv-1", "How is revenue?")))

        chunks = [e for e in events if e.type == "chunk"]
        assert len(chunks) >= 1
        assert "".join(e.text for e in chunks) == "Revenue is up this quarter"
        assert events[-1].type == "result"
        assert [e.type for e in events].count("result") == 1
        assert events[-1].result.text == "Revenue is up this quarter"
        assert events[-1].result.delivery_mode == DeliveryMode.POINT_TO_POINT

    def test_streamed_capability_calls(self, orchestrator, root_llm, sql_llm, card_llm, store):
        """Test capability requests assembled from streamed chunks are dispatched."""
        script_revenue_chart(root_llm, sql_llm, card_llm, answer="Here is the chart.")

        events = asyncio.run(collect(orchestrator.stream("conv-1", "Chart revenue by region")))

        result = events[-1].result
        assert result.text == "Here is the chart."
        assert len(result.attachments) == 1
        assert len(store.get_session("conv-1").messages) == 6

    def test_early_close_commits_nothing(self, orchestrator, root_llm, store):
        """Test a consumer leaving mid-stream cancels the turn without touching history."""
        root_llm.responses = [ai("one two three four five six seven eight")]
        root_llm.delay = 0.02

        async def scenario():
            events = orchestrator.stream("conv-1", "count please")
            first = await events.__anext__()
            await events.aclose()
            return first

        first = asyncio.run(scenario())

        assert first.type == "chunk"
        assert store.get_session("conv-1").messages == []


class TestCapabilityErrors:
    """Tests that handler failures come back to the model as text."""

    def test_unsafe_query_rejected(self, orchestrator, root_llm, sql_llm, executor):
        """Test a mutation request is refused and the data is untouched."""
        root_llm.responses = [
            ai("", tool_call("sql_agent", {"text": "delete all sales"})),
            ai("I can only read data."),
        ]
        sql_llm.responses = [
            ai("", tool_call("execute_sql", {"query": "DELETE FROM sales"})),
            ai("Refused: only SELECT queries are allowed."),
        ]

        result = asyncio.run(orchestrator.handle("conv-1", "Delete all sales"))

        assert last_tool_result(sql_llm, 1) == "Error: Only SELECT queries are allowed"
        assert result.text == "I can only read data."
        assert executor.execute("SELECT count(*) AS n FROM sales").rows == [{"n": 4}]

    def test_empty_result_reported(self, orchestrator, root_llm, sql_llm):
        """Test the no-rows sentinel reaches the SQL agent."""
        root_llm.responses = [ai("", tool_call("sql_agent", {"text": "sales on Mars"})), ai("None found.")]
        sql_llm.responses = [
            ai("", tool_call("execute_sql", {"query": "SELECT * FROM sales WHERE region = 'Mars'"})),
            ai("No results."),
        ]

        asyncio.run(orchestrator.handle("conv-1", "Sales on Mars?"))

        assert last_tool_result(sql_llm, 1) == "No results found for your query."

    def test_unknown_capability(self, orchestrator, root_llm):
        """Test names outside the registry are reported, not dispatched."""
        root_llm.responses = [ai("", tool_call("drop_database", {})), ai("Sorry.")]

        result = asyncio.run(orchestrator.handle("conv-1", "hello"))

        output = last_tool_result(root_llm, 1)
        assert output.startswith("Error: Unknown capability 'drop_database'")
        assert "sql_agent, card_agent" in output
        assert result.tool_calls[0].error == "unknown capability"

    def test_invalid_arguments(self, orchestrator, root_llm, sql_llm):
        """Test arguments failing the schema never reach the sub-agent."""
        root_llm.responses = [ai("", tool_call("sql_agent", {"question": "revenue"})), ai("Sorry.")]

        asyncio.run(orchestrator.handle("conv-1", "revenue?"))

        assert last_tool_result(root_llm, 1).startswith("Error: Invalid arguments for 'sql_agent'")
        assert sql_llm.received == []

    def test_unparseable_arguments(self, orchestrator, root_llm, sql_llm, store):
        """Test arguments that are not valid JSON are reported back and the loop goes on."""
        root_llm.responses = [
            AIMessage(content="", invalid_tool_calls=[{
                "name": "sql_agent",
                "args": "{not json",
                "id": "call_bad",
                "error": "Expecting property name",
                "type": "invalid_tool_call",
            }]),
            ai("Recovered."),
        ]

        result = asyncio.run(orchestrator.handle("conv-1", "revenue?"))

        assert len(root_llm.received) == 2
        message = root_llm.received[1][-1]
        assert isinstance(message, ToolMessage)
        assert message.tool_call_id == "call_bad"
        assert message.content == "Error: Invalid arguments for 'sql_agent': Expecting property name"
        assert result.text == "Recovered."
        assert result.tool_calls[0].error == "invalid arguments"
        assert sql_llm.received == []

        history = store.get_session("conv-1").to_langchain()
        assert [type(m) for m in history] == [HumanMessage, AIMessage, ToolMessage, AIMessage]
        assert history[1].invalid_tool_calls[0]["id"] == "call_bad"

    def test_unsupported_chart_kind(self, orchestrator, root_llm, card_llm):
        """Test an unknown chart kind produces no artifact."""
        root_llm.responses = [ai("", tool_call("card_agent", {"text": "scatter plot"})), ai("No chart.")]
        card_llm.responses = [
            ai("", tool_call("generate_card", {"chart_type": "scatter", "rows": REVENUE_ROWS})),
            ai("Could not create that chart."),
        ]

        result = asyncio.run(orchestrator.handle("conv-1", "scatter plot please"))

        assert last_tool_result(card_llm, 1).startswith("Error: Invalid arguments for 'generate_card'")
        assert result.attachments == []

    def test_sub_agent_model_failure(self, orchestrator, root_llm, sql_llm, store):
        """Test a failing sub-agent becomes a capability result and the turn completes."""
        root_llm.responses = [ai("", tool_call("sql_agent", {"text": "revenue"})), ai("The database is unavailable.")]
        sql_llm.error = RuntimeError("connection reset")

        result = asyncio.run(orchestrator.handle("conv-1", "revenue?"))

        assert last_tool_result(root_llm, 1) == "Error: sql_agent failed: connection reset"
        assert result.text == "The database is unavailable."
        assert len(store.get_session("conv-1").messages) == 4

    def test_sub_agent_loop_limit(self, orchestrator, root_llm, sql_llm):
        """Test a sub-agent that never stops calling tools is cut off."""
        root_llm.responses = [ai("", tool_call("sql_agent", {"text": "revenue"})), ai("Gave up.")]
        sql_llm.responses = [ai("", tool_call("execute_sql", {"query": "SELECT 1 AS one"})) for _ in range(5)]

        asyncio.run(orchestrator.handle("conv-1", "revenue?"))

        assert last_tool_result(root_llm, 1).startswith("Error: sql_agent failed:")


class TestTurnFailures:
    """Tests for failures that abort the whole turn."""

    def test_root_model_failure(self, orchestrator, root_llm, store):
        """Test a failing root model raises and commits nothing."""
        root_llm.error = ConnectionError("model service down")

        with pytest.raises(UpstreamModelError, match="model service down"):
            asyncio.run(orchestrator.handle("conv-1", "hello"))

        assert store.get_session("conv-1").messages == []

    def test_root_failure_in_stream(self, orchestrator, root_llm, store):
        """Test the stream raises the failure after closing the channel."""
        root_llm.error = ConnectionError("model service down")

        with pytest.raises(UpstreamModelError):
            asyncio.run(collect(orchestrator.stream("conv-1", "hello")))

        assert store.get_session("conv-1").messages == []

    def test_root_loop_limit(self, orchestrator, root_llm, store):
        """Test the root loop bound fails the turn."""
        root_llm.responses = [ai("", tool_call("unknown", {})) for _ in range(5)]

        with pytest.raises(ToolLoopLimitExceeded):
            asyncio.run(orchestrator.handle("conv-1", "hello"))

        assert store.get_session("conv-1").messages == []

    def test_cancellation_commits_nothing(self, orchestrator, root_llm, store):
        """Test cancelling a turn mid-generation leaves the history untouched."""
        root_llm.responses = [ai("too late")]
        root_llm.delay = 1.0

        async def scenario():
            task = asyncio.create_task(orchestrator.handle("conv-1", "hello"))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert store.get_session("conv-1").messages == []


class TestConversationState:
    """Tests for history and isolation across turns."""

    def test_second_turn_sees_first(self, orchestrator, root_llm, store):
        """Test committed history is part of the next turn's model input."""
        root_llm.responses = [ai("Revenue was 3100."), ai("That is 12% more.")]

        async def scenario():
            await orchestrator.handle("conv-1", "Total revenue?")
            await orchestrator.handle("conv-1", "Compared to last year?")

        asyncio.run(scenario())

        second_input = root_llm.received[1]
        assert [type(m) for m in second_input] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
        assert second_input[2].content == "Revenue was 3100."
        assert len(store.get_session("conv-1").messages) == 4

    def test_attachments_do_not_leak_across_turns(self, orchestrator, root_llm, sql_llm, card_llm):
        """Test a later turn does not repeat an earlier turn's cards."""
        script_revenue_chart(root_llm, sql_llm, card_llm)
        root_llm.responses.append(ai("You're welcome."))

        async def scenario():
            first = await orchestrator.handle("conv-1", "Chart revenue")
            second = await orchestrator.handle("conv-1", "Thanks")
            return first, second

        first, second = asyncio.run(scenario())

        assert len(first.attachments) == 1
        assert second.attachments == []

    def test_conversations_are_isolated(self, orchestrator, root_llm, sql_llm, card_llm, store):
        """Test one conversation's cards and history never reach another."""
        script_revenue_chart(root_llm, sql_llm, card_llm)
        root_llm.responses.append(ai("Hello!"))

        async def scenario():
            first = await orchestrator.handle("conv-a", "Chart revenue")
            second = await orchestrator.handle("conv-b", "Hi")
            return first, second

        first, second = asyncio.run(scenario())

        assert second.attachments == []
        assert [m.content for m in root_llm.received[-1][1:]] == ["Hi"]
        assert len(store.get_session("conv-b").messages) == 2

    def test_sub_agents_are_stateless(self, orchestrator, root_llm, sql_llm, card_llm):
        """Test each sub-agent call starts from its instructions and the request only."""
        script_revenue_chart(root_llm, sql_llm, card_llm)
        root_llm.responses.append(ai("", tool_call("sql_agent", {"text": "count sales"})))
        root_llm.responses.append(ai("There are 4 sales."))
        sql_llm.responses.append(ai("4 sales."))

        async def scenario():
            await orchestrator.handle("conv-1", "Chart revenue")
            await orchestrator.handle("conv-1", "How many sales?")

        asyncio.run(scenario())

        latest = sql_llm.received[-1]
        assert len(latest) == 2
        assert latest[1].content == "count sales"

    def test_same_conversation_turns_serialized(self, orchestrator, root_llm):
        """Test concurrent turns on one conversation see each other's committed history."""
        root_llm.responses = [ai("first answer"), ai("second answer")]
        root_llm.delay = 0.02

        async def scenario():
            return await asyncio.gather(
                orchestrator.handle("conv-1", "first"),
                orchestrator.handle("conv-1", "second"),
            )

        asyncio.run(scenario())

        assert "first answer" in [m.content for m in root_llm.received[1]]


class TestBaseAgent:
    """Tests for the registry and loop outside the orchestrator."""

    def test_registry_rejects_duplicates(self, executor):
        """Test capability names are unique within a registry."""
        registry = ToolRegistry([make_execute_sql_tool(executor)])

        with pytest.raises(ValueError):
            registry.register(make_execute_sql_tool(executor))

    def test_registry_validation(self, executor):
        """Test validation returns the parsed arguments."""
        registry = ToolRegistry([make_execute_sql_tool(executor)])

        assert registry.validate("execute_sql", {"query": "SELECT 1"}) == {"query": "SELECT 1"}
        assert "execute_sql" in registry
        with pytest.raises(KeyError):
            registry.validate("missing", {})

    def test_agent_without_tools_answers_directly(self, root_llm):
        """Test an agent with an empty registry is invoked unbound."""
        root_llm.responses = [ai("plain")]
        agent = BaseAgent(root_llm, name="plain", instructions="Be brief.")

        produced, traces = asyncio.run(agent.run([HumanMessage(content="hi")]))

        assert produced[-1].content == "plain"
        assert traces == []
        assert root_llm.bound_tools == []

    def test_traces_record_timing_and_results(self, root_llm, executor):
        """Test each capability call is traced."""
        root_llm.responses = [ai("", tool_call("execute_sql", {"query": "SELECT 1 AS one"})), ai("done")]
        agent = BaseAgent(root_llm, name="sql", instructions="SQL", tools=[make_execute_sql_tool(executor)])

        _, traces = asyncio.run(agent.run([HumanMessage(content="one")]))

        assert traces[0].tool_name == "execute_sql"
        assert traces[0].succeeded
        assert json.loads(traces[0].result) == {"rows": [{"one": 1}]}
        assert traces[0].execution_time_ms >= 0


def test_collector_starts_empty():
    """Test a fresh collector holds nothing."""
    assert AttachmentCollector().artifacts == []
