"""
Environment-bound configuration for the data analyst service.

Values are read from the process environment (optionally populated from a
.env file by python-dotenv).
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _optional_int(name: str, default: Optional[int]) -> Optional[int]:
    """Read an integer env var; empty string or 0 means "no bound"."""
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw or raw == "0":
        return None
    return int(raw)


class AnalystSettings(BaseModel):
    """Runtime settings for models, data sources and conversation storage."""

    # LLM provider
    llm_provider: str = Field("ollama", description="'ollama' or 'openai'")
    ollama_model: str = "llama3.2"
    ollama_base_url: str = "http://localhost:11434"
    openai_model: str = "gpt-4o-mini"
    openai_api_key: Optional[str] = None
    temperature: float = Field(0.3, ge=0.0, le=2.0)

    # Data sources
    database_path: str = "data/analytics.db"
    schema_path: str = "data/schema.sql"
    examples_path: str = "data/data-analyst-examples.jsonl"

    # Conversation storage
    redis_url: Optional[str] = None
    session_ttl_hours: int = Field(24, ge=1)
    max_conversations: Optional[int] = Field(1000, ge=1)
    max_history_turns: Optional[int] = Field(20, ge=1)

    # Agent loop
    max_tool_rounds: int = Field(10, ge=1, le=100)

    log_level: str = "INFO"
    langsmith_tracing: bool = False

    @classmethod
    def from_env(cls) -> "AnalystSettings":
        """Build settings from environment variables."""
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", "ollama").lower(),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3.2"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.3")),
            database_path=os.getenv("DATABASE_PATH", "data/analytics.db"),
            schema_path=os.getenv("SCHEMA_PATH", "data/schema.sql"),
            examples_path=os.getenv("EXAMPLES_PATH", "data/data-analyst-examples.jsonl"),
            redis_url=os.getenv("REDIS_URL") or None,
            session_ttl_hours=int(os.getenv("SESSION_TTL_HOURS", "24")),
            max_conversations=_optional_int("MAX_CONVERSATIONS", 1000),
            max_history_turns=_optional_int("MAX_HISTORY_TURNS", 20),
            max_tool_rounds=int(os.getenv("MAX_TOOL_ROUNDS", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            langsmith_tracing=os.getenv("LANGCHAIN_TRACING_V2", "false").lower() == "true",
        )
