"""
Base agent class with tool-calling capabilities.

This module provides the foundation for all agents: a closed registry of
capabilities, argument validation before dispatch, the capability-calling
loop and error handling.
"""

from typing import List, Dict, Any, Optional, Awaitable, Callable, Tuple
import json
import time
import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, SystemMessage, ToolMessage
from langchain_core.messages import message_chunk_to_message
from langchain_core.tools import BaseTool
from pydantic import ValidationError

from data_analyst.agents.state import ToolCall
from data_analyst.exceptions import ToolLoopLimitExceeded

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Awaitable[None]]


class ToolRegistry:
    """
    Closed registry of the capabilities one agent may call.

    Maps capability name to tool; the tool's ``args_schema`` doubles as the
    descriptor advertised to the model and the validator for its arguments.
    """

    def __init__(self, tools: Optional[List[BaseTool]] = None):
        self.tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool):
        """Register a tool; names must be unique."""
        if tool.name in self.tools:
            raise ValueError(f"Capability '{tool.name}' is already registered")
        self.tools[tool.name] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        """Get a tool by name."""
        return self.tools.get(name)

    def get_all(self) -> List[BaseTool]:
        """Get all registered tools."""
        return list(self.tools.values())

    def names(self) -> List[str]:
        return list(self.tools.keys())

    def validate(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Check a requested invocation against the registry.

        Raises:
            KeyError: Unknown capability name
            ValidationError: Arguments do not match the input schema
        """
        tool = self.get(name)
        if tool is None:
            raise KeyError(name)
        schema = tool.get_input_schema()
        validated = schema.model_validate(arguments)
        return validated.model_dump(exclude_unset=True)

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)


def content_text(content: Any) -> str:
    """Plain text of a message or chunk content (string or content blocks)."""
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _stringify(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class BaseAgent:
    """
    Capability-calling agent.

    Each agent:
    - Has narrow instructions
    - Owns a closed registry of tools
    - Runs the model until it answers without requesting capabilities
    - Converts every tool failure into a textual result for the model
    """

    def __init__(
        self,
        llm: BaseChatModel,
        name: str,
        instructions: str,
        tools: Optional[List[BaseTool]] = None,
        max_tool_rounds: int = 10,
    ):
        """
        Initialize the agent.

        Args:
            llm: Language model for reasoning
            name: Agent name for logging and tracing
            instructions: System instructions
            tools: Capabilities this agent may call
            max_tool_rounds: Upper bound on model round trips per run
        """
        self.llm = llm
        self.name = name
        self.instructions = instructions
        self.registry = ToolRegistry(tools)
        self.max_tool_rounds = max_tool_rounds
        self.logger = logging.getLogger(f"{__name__}.{name}")

    def _bound_model(self):
        if len(self.registry) == 0:
            return self.llm
        return self.llm.bind_tools(self.registry.get_all())

    async def invoke_model(
        self,
        messages: List[BaseMessage],
        on_chunk: Optional[ChunkCallback] = None,
    ) -> AIMessage:
        """
        One model round trip.

        With ``on_chunk`` the response is streamed and every non-empty text
        chunk is forwarded; otherwise the model is invoked in one call.
        """
        model = self._bound_model()

        if on_chunk is None:
            response = await model.ainvoke(messages)
            return response if isinstance(response, AIMessage) else AIMessage(content=content_text(response.content))

        gathered: Optional[AIMessageChunk] = None
        async for chunk in model.astream(messages):
            text = content_text(chunk.content)
            if text:
                await on_chunk(text)
            gathered = chunk if gathered is None else gathered + chunk

        if gathered is None:
            return AIMessage(content="")
        return message_chunk_to_message(gathered)

    async def call_tool(self, tool_call: Dict[str, Any]) -> Tuple[ToolMessage, ToolCall]:
        """
        Dispatch one capability request through the registry.

        Unknown names, invalid arguments and handler exceptions all become
        an ``Error: ...`` result; nothing propagates to the loop.

        Args:
            tool_call: LangChain tool call dict (name, args, id)

        Returns:
            (ToolMessage for the model, ToolCall trace)
        """
        start_time = time.time()
        name = tool_call.get("name", "")
        arguments = tool_call.get("args") or {}
        trace = ToolCall(tool_name=name, arguments=arguments, call_id=tool_call.get("id"))

        validated = None
        try:
            validated = self.registry.validate(name, arguments)
        except KeyError:
            trace.error = "unknown capability"
            output = (
                f"Error: Unknown capability '{name}'. "
                f"Available capabilities: {', '.join(self.registry.names())}"
            )
            self.logger.warning(f"Model requested unknown capability: {name}")
        except ValidationError as e:
            trace.error = "invalid arguments"
            output = f"Error: Invalid arguments for '{name}': {e}"
            self.logger.warning(f"Invalid arguments for {name}: {e}")

        if validated is not None:
            try:
                self.logger.info(f"Calling tool: {name} with args: {arguments}")
                output = _stringify(await self.registry.get(name).ainvoke(validated))
                trace.result = output
            except Exception as e:
                trace.error = str(e)
                output = f"Error: {name} failed: {e}"
                self.logger.error(f"Tool {name} failed: {str(e)}")

        trace.execution_time_ms = int((time.time() - start_time) * 1000)
        self.logger.info(f"Tool {name} completed in {trace.execution_time_ms}ms")

        message = ToolMessage(content=output, tool_call_id=tool_call.get("id") or "", name=name)
        return message, trace

    def reject_invalid_call(self, invalid_call: Dict[str, Any]) -> Tuple[ToolMessage, ToolCall]:
        """
        Answer a capability request whose arguments could not be parsed.

        Args:
            invalid_call: LangChain invalid tool call dict (name, args, id, error)

        Returns:
            (ToolMessage for the model, ToolCall trace)
        """
        name = invalid_call.get("name") or ""
        raw_args = invalid_call.get("args")
        detail = invalid_call.get("error") or "arguments are not valid JSON"
        trace = ToolCall(
            tool_name=name,
            arguments={"raw": raw_args} if raw_args is not None else {},
            call_id=invalid_call.get("id"),
            error="invalid arguments",
            execution_time_ms=0,
        )
        self.logger.warning(f"Unparseable arguments for {name}: {detail}")

        output = f"Error: Invalid arguments for '{name}': {detail}"
        message = ToolMessage(content=output, tool_call_id=invalid_call.get("id") or "", name=name)
        return message, trace

    async def run(
        self,
        history: List[BaseMessage],
        on_chunk: Optional[ChunkCallback] = None,
    ) -> Tuple[List[BaseMessage], List[ToolCall]]:
        """
        Drive the capability-calling loop to a final answer.

        Args:
            history: Conversation messages, ending with the new user message
            on_chunk: Optional sink for streamed text

        Returns:
            (messages produced by this run, capability-call traces); the
            last message is the final assistant answer

        Raises:
            ToolLoopLimitExceeded: the model kept requesting capabilities
        """
        start_time = time.time()
        produced: List[BaseMessage] = []
        traces: List[ToolCall] = []
        system = [SystemMessage(content=self.instructions)]

        for round_number in range(1, self.max_tool_rounds + 1):
            response = await self.invoke_model(system + history + produced, on_chunk)
            produced.append(response)

            # unparseable requests land in invalid_tool_calls, not tool_calls
            if not response.tool_calls and not response.invalid_tool_calls:
                execution_time = int((time.time() - start_time) * 1000)
                self.logger.info(
                    f"Agent {self.name} answered after {round_number} round(s), "
                    f"{len(traces)} tool call(s), {execution_time}ms"
                )
                return produced, traces

            for tool_call in response.tool_calls:
                message, trace = await self.call_tool(tool_call)
                produced.append(message)
                traces.append(trace)

            for invalid_call in response.invalid_tool_calls:
                message, trace = self.reject_invalid_call(invalid_call)
                produced.append(message)
                traces.append(trace)

        raise ToolLoopLimitExceeded(
            f"{self.name} exceeded {self.max_tool_rounds} model round trips"
        )
