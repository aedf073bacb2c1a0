from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from langchain_core.language_models import BaseChatModel
from prometheus_fastapi_instrumentator import Instrumentator

# LangSmith imports for tracing
from langsmith import Client as LangSmithClient

from data_analyst import __version__
from data_analyst.agents.orchestrator import DataAnalystOrchestrator
from data_analyst.agents.session_manager import ConversationStore
from data_analyst.chat_endpoints import create_chat_router
from data_analyst.config import AnalystSettings
from data_analyst.llm import create_llm

# Configure logging
logger = logging.getLogger(__name__)


def _init_langsmith(settings: AnalystSettings) -> Optional[LangSmithClient]:
    """LangSmith client when tracing is enabled; tracing is optional."""
    if not settings.langsmith_tracing:
        logger.info("LangSmith tracing disabled (set LANGCHAIN_TRACING_V2=true to enable)")
        return None
    try:
        client = LangSmithClient()
        logger.info("✓ LangSmith tracing enabled")
        return client
    except Exception as e:
        logger.warning(f"LangSmith initialization failed (tracing disabled): {e}")
        return None


def create_app(
    settings: Optional[AnalystSettings] = None,
    llm: Optional[BaseChatModel] = None,
    store: Optional[ConversationStore] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration (read from the environment if omitted)
        llm: Chat model (created from settings if omitted)
        store: Conversation store (created from settings if omitted)
    """
    settings = settings or AnalystSettings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    langsmith_client = _init_langsmith(settings)

    store = store or ConversationStore(
        redis_url=settings.redis_url,
        ttl_hours=settings.session_ttl_hours,
        max_conversations=settings.max_conversations,
        max_history_turns=settings.max_history_turns,
    )
    orchestrator = DataAnalystOrchestrator.from_settings(
        settings,
        llm=llm or create_llm(settings),
        store=store,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Data Analyst Agent {__version__} starting (database: {settings.database_path})")
        yield
        store.close()
        logger.info("Data Analyst Agent stopped")

    app = FastAPI(
        title="Data Analyst Agent",
        description="Answer questions about your data with SQL and Adaptive Card charts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.langsmith_client = langsmith_client

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Initialize Prometheus metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "Data Analyst Agent",
            "version": __version__,
            "llm_provider": settings.llm_provider,
            "storage": "redis" if store.use_redis else "memory",
            "conversations": await store.run_io(len, store),
        }

    app.include_router(create_chat_router(store, orchestrator), prefix="/api/ai")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
