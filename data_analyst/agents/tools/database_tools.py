"""
Database query tools for agents.

These tools let the SQL agent run guarded, read-only SELECT queries
against the analytics SQLite database.
"""

from typing import List, Dict, Any, Optional
from enum import Enum
import asyncio
import json
import logging
import sqlite3
import threading

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from data_analyst.guardrails import SQLGuard

logger = logging.getLogger(__name__)

EMPTY_RESULT_MESSAGE = "No results found for your query."


class QueryStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    REJECTED = "rejected"
    ERROR = "error"


class QueryResult(BaseModel):
    """Outcome of a guarded query: rows or one of the sentinel outcomes."""
    status: QueryStatus
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    detail: Optional[str] = None

    @classmethod
    def ok(cls, rows: List[Dict[str, Any]]) -> "QueryResult":
        return cls(status=QueryStatus.OK, rows=rows)

    @classmethod
    def empty(cls) -> "QueryResult":
        return cls(status=QueryStatus.EMPTY)

    @classmethod
    def rejected(cls, reason: str) -> "QueryResult":
        return cls(status=QueryStatus.REJECTED, detail=reason)

    @classmethod
    def error(cls, message: str) -> "QueryResult":
        return cls(status=QueryStatus.ERROR, detail=message)

    def to_tool_output(self) -> str:
        """Payload handed back to the model as the capability result."""
        if self.status == QueryStatus.OK:
            return json.dumps({"rows": self.rows}, default=str)
        if self.status == QueryStatus.EMPTY:
            return EMPTY_RESULT_MESSAGE
        if self.status == QueryStatus.REJECTED:
            return f"Error: {self.detail}"
        return f"Error executing query: {self.detail}"


class ExecuteSqlInput(BaseModel):
    """Arguments of the execute_sql capability."""
    query: str = Field(..., description="SQL SELECT query to execute")


class _ActiveQuery:
    """Connection of an in-flight query, so a cancelled caller can interrupt it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connection: Optional[sqlite3.Connection] = None
        self.cancelled = False

    def attach(self, connection: sqlite3.Connection) -> None:
        with self._lock:
            # interrupt() is a no-op while no statement runs
            if self.cancelled:
                raise sqlite3.OperationalError("interrupted")
            self._connection = connection

    def detach(self) -> None:
        with self._lock:
            self._connection = None

    def interrupt(self) -> None:
        with self._lock:
            self.cancelled = True
            if self._connection is not None:
                self._connection.interrupt()


class GuardedExecutor:
    """
    Validate and run a read-only query.

    Every query opens its own read-only connection and closes it afterwards;
    there is no pool. Queries are never retried; the calling agent decides
    whether to reformulate.
    """

    def __init__(self, database_path: str, guard: Optional[SQLGuard] = None):
        """
        Args:
            database_path: Path to the SQLite database file
            guard: Guardrail applied before execution
        """
        self.database_path = database_path
        self.guard = guard or SQLGuard()

    def _connect(self) -> sqlite3.Connection:
        uri = f"file:{self.database_path}?mode=ro"
        connection = sqlite3.connect(uri, uri=True, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        return connection

    def execute(self, query: str, active: Optional[_ActiveQuery] = None) -> QueryResult:
        """
        Validate and execute a query.

        Args:
            query: SQL text
            active: Optional handle used to interrupt the query from another thread

        Returns:
            QueryResult with rows, or empty / rejected / error
        """
        verdict = self.guard.check(query)
        if not verdict.is_safe:
            return QueryResult.rejected(verdict.reason)

        try:
            connection = self._connect()
        except sqlite3.Error as e:
            logger.error(f"Could not open database {self.database_path}: {e}")
            return QueryResult.error(str(e))

        try:
            if active is not None:
                active.attach(connection)
            rows = [dict(row) for row in connection.execute(query).fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Query execution failed: {e}")
            logger.error(f"Query: {query}")
            return QueryResult.error(str(e))
        finally:
            if active is not None:
                active.detach()
            connection.close()

        if not rows:
            logger.info("Query returned no rows")
            return QueryResult.empty()

        logger.info(f"Query returned {len(rows)} rows")
        return QueryResult.ok(rows)

    async def aexecute(self, query: str) -> QueryResult:
        """
        Execute in a worker thread; cancelling the caller interrupts the query.
        """
        active = _ActiveQuery()
        try:
            return await asyncio.to_thread(self.execute, query, active)
        except asyncio.CancelledError:
            active.interrupt()
            raise


def make_execute_sql_tool(executor: GuardedExecutor) -> StructuredTool:
    """
    Create the execute_sql capability bound to an executor.

    Args:
        executor: GuardedExecutor for the analytics database

    Returns:
        LangChain StructuredTool
    """

    async def execute_sql(query: str) -> str:
        result = await executor.aexecute(query)
        return result.to_tool_output()

    return StructuredTool.from_function(
        coroutine=execute_sql,
        name="execute_sql",
        description="Executes a SQL SELECT query and returns results",
        args_schema=ExecuteSqlInput,
    )
