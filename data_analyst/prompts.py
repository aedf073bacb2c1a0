"""
Prompt templates for the data analyst agents.

The root and SQL instructions embed the database schema and the reference
examples verbatim so the model can write queries against the real tables.
"""

from typing import Any, Dict, List
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

GREETING_MESSAGE = (
    "👋 Hi! I'm your Data Analyst Agent. Ask me about your data and "
    "I'll help you explore it with SQL and visualizations!"
)

ROOT_INSTRUCTIONS = """You are an expert data analyst that helps users understand data from the analytics database.
Your goal is to provide clear, visual insights by querying data and creating appropriate visualizations.

You can produce horizontal bar charts, vertical bar charts, line charts, pie charts and tables.

Whenever you need data, call the sql_agent capability with the question or the SELECT query to run.
Every time the user wants a graph, chart or table, you MUST call the card_agent capability with the data rows
and the kind of visualization. Never return raw JSON to the user.
Look at the examples below to see how to format your input for the card_agent.

Database Schema:
```sql
{schema}
```

Examples:
{examples}

For your final response, also give a short text summary of the insights or findings.
Keep it brief and do not repeat the chart data. A plain text answer is fine when no chart is needed."""

SQL_INSTRUCTIONS = """You are an expert SQL executor. When called, write a SQL query for the request you are given
and run it with the execute_sql function.
Only SELECT queries are allowed. No mutations.
If a query fails, read the error, fix the query and try again, or explain the problem.

Database Schema:
```sql
{schema}
```

Examples:
{examples}"""

CARD_INSTRUCTIONS = (
    "You generate adaptive cards and charts from provided data. "
    "Use the generate_card function to create visualizations."
)


def load_schema_text(path: str) -> str:
    """
    Read the SQL schema (DDL) shown to the models.

    Returns an empty string if the file does not exist.
    """
    schema_file = Path(path)
    if not schema_file.exists():
        logger.warning(f"Schema file not found: {path}")
        return ""
    return schema_file.read_text(encoding="utf-8").strip()


def load_examples(path: str) -> List[Dict[str, Any]]:
    """
    Load reference examples of ``{user_message, data_analyst_response}``.

    The file may hold a single JSON array or one JSON object per line.
    Returns an empty list if the file does not exist.
    """
    examples_file = Path(path)
    if not examples_file.exists():
        logger.warning(f"Examples file not found: {path}")
        return []

    text = examples_file.read_text(encoding="utf-8").strip()
    if not text:
        return []
    if text.startswith("["):
        return json.loads(text)
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def format_examples(examples: List[Dict[str, Any]]) -> str:
    """Render examples as User/Assistant exchanges separated by ``---``."""
    return "\n".join(
        f"---\nUser: {example.get('user_message', '')}\n"
        f"Assistant: {json.dumps(example.get('data_analyst_response'), indent=2)}"
        for example in examples
    )


def build_root_instructions(schema: str, examples: List[Dict[str, Any]]) -> str:
    return ROOT_INSTRUCTIONS.format(schema=schema, examples=format_examples(examples))


def build_sql_instructions(schema: str, examples: List[Dict[str, Any]]) -> str:
    return SQL_INSTRUCTIONS.format(schema=schema, examples=format_examples(examples))


def build_card_instructions() -> str:
    return CARD_INSTRUCTIONS
