"""
Sub-agents - specialized agents exposed to a parent as a single capability.

The SQL agent turns a question into a guarded SELECT and runs it; the card
agent turns rows into an Adaptive Card pushed into the turn's attachment
collector.
"""

from typing import List
import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field

from data_analyst.agents.base_agent import BaseAgent, content_text
from data_analyst.agents.tools.chart_tools import VisualizationBuilder, make_generate_card_tool
from data_analyst.agents.tools.database_tools import GuardedExecutor, make_execute_sql_tool

logger = logging.getLogger(__name__)


class SubAgentRequest(BaseModel):
    """Arguments of a sub-agent capability."""
    text: str = Field(..., description="The request or data for the agent, in natural language")


class SubAgent(BaseAgent):
    """
    Agent with narrow instructions and its own tools, callable by a parent.

    Every call starts from an empty message list: sub-agents keep no state
    between invocations.
    """

    async def ask(self, text: str) -> str:
        """
        Run one request to completion and return the final answer text.

        Raises whatever the loop raises; ``as_tool`` converts it to text.
        """
        produced, traces = await self.run([HumanMessage(content=text)])
        answer = content_text(produced[-1].content)
        self.logger.info(f"{self.name} finished with {len(traces)} tool call(s)")
        return answer

    def as_tool(self, name: str, description: str) -> StructuredTool:
        """
        Expose this agent as one capability for a parent agent.

        Failures inside the sub-agent (tool errors it could not recover
        from, model failures, loop limit) come back as ``Error: ...`` text.
        Cancellation is not caught.
        """

        async def delegate(text: str) -> str:
            try:
                return await self.ask(text)
            except Exception as e:
                self.logger.error(f"{self.name} failed: {str(e)}")
                return f"Error: {self.name} failed: {e}"

        return StructuredTool.from_function(
            coroutine=delegate,
            name=name,
            description=description,
            args_schema=SubAgentRequest,
        )


def create_sql_agent(
    llm: BaseChatModel,
    executor: GuardedExecutor,
    instructions: str,
    max_tool_rounds: int = 10,
) -> SubAgent:
    """SQL agent owning the execute_sql capability."""
    tools: List[BaseTool] = [make_execute_sql_tool(executor)]
    return SubAgent(llm, name="sql_agent", instructions=instructions, tools=tools, max_tool_rounds=max_tool_rounds)


def create_card_agent(
    llm: BaseChatModel,
    builder: VisualizationBuilder,
    instructions: str,
    max_tool_rounds: int = 10,
) -> SubAgent:
    """Card agent owning the generate_card capability."""
    tools: List[BaseTool] = [make_generate_card_tool(builder)]
    return SubAgent(llm, name="card_agent", instructions=instructions, tools=tools, max_tool_rounds=max_tool_rounds)


SQL_AGENT_DESCRIPTION = (
    "Executes SQL queries against the analytics database. Pass the user's "
    "question or a SELECT query; returns the matching rows or an error."
)

CARD_AGENT_DESCRIPTION = (
    "Creates an adaptive card chart or table from data rows. Pass the data "
    "and the kind of visualization wanted; the card is attached to the reply."
)


def sub_agent_tools(sql_agent: SubAgent, card_agent: SubAgent) -> List[StructuredTool]:
    """The two root capabilities, in registry order."""
    return [
        sql_agent.as_tool("sql_agent", SQL_AGENT_DESCRIPTION),
        card_agent.as_tool("card_agent", CARD_AGENT_DESCRIPTION),
    ]
