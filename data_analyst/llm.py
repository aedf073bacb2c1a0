"""
Chat model construction for the configured provider.
"""

import logging
from typing import Optional

from langchain_core.language_models import BaseChatModel
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from data_analyst.config import AnalystSettings

logger = logging.getLogger(__name__)


def create_llm(settings: AnalystSettings, temperature: Optional[float] = None) -> BaseChatModel:
    """
    Create a tool-calling chat model for the configured provider.

    Args:
        settings: Service settings
        temperature: Optional override of the configured temperature

    Returns:
        LangChain chat model instance

    Raises:
        ValueError: Unknown provider or missing OpenAI credentials
    """
    temperature = settings.temperature if temperature is None else temperature

    if settings.llm_provider == "ollama":
        logger.info(f"✓ Using Ollama with model: {settings.ollama_model}")
        return ChatOllama(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            temperature=temperature,
        )

    if settings.llm_provider == "openai":
        if not settings.openai_api_key:
            raise ValueError(
                "OPENAI_API_KEY environment variable is required when using OpenAI provider"
            )
        logger.info(f"✓ Using OpenAI with model: {settings.openai_model}")
        return ChatOpenAI(
            model=settings.openai_model,
            temperature=temperature,
            api_key=settings.openai_api_key,
        )

    raise ValueError(
        f"Unsupported LLM provider: {settings.llm_provider}. Use 'ollama' or 'openai'"
    )
