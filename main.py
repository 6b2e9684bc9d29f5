import inspect
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI

from dal.conversation_dal import ConversationDAL
from dal.session_dal import SessionDAL
from dal.topic_metadata_dal import TopicMetadataDAL
from routes.conversation_route import router as conversation_router
from routes.exploration_route import router as exploration_router
from routes.session_route import router as session_router
from services.exploration.intent_classifier import IntentClassifier
from services.exploration.interest_aggregator import InterestAggregator
from services.exploration.orchestrator import ExplorationOrchestrator
from services.exploration.session_store import SessionStore
from services.exploration.state_machine import ExplorationStateMachine
from services.exploration.topic_groups import TopicGroupGenerator
from services.exploration.topic_selector import TopicSelector
from services.image_store import MEDIA_URL_PREFIX, MediaStorage, default_media_dir
from services.metadata_cache import TopicMetadataCache
from services.openai.generative_client import GenerativeClient
from services.thumbnail_generator import ThumbnailGenerator
from services.welcome_flow import WelcomeService
from utils.database_init import AsyncDatabaseInitializer

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
LOGGER = logging.getLogger(__name__)


def build_services(app: FastAPI, openai_client: AsyncOpenAI, db_initializer: AsyncDatabaseInitializer) -> None:
    """Wire the exploration engine and attach its parts to `app.state`."""
    client = GenerativeClient(openai_client)
    conversation_dal = ConversationDAL(db_initializer)
    metadata_cache = TopicMetadataCache(
        TopicMetadataDAL(db_initializer),
        client,
        MediaStorage(default_media_dir()),
        ThumbnailGenerator(),
    )
    machine = ExplorationStateMachine(
        TopicGroupGenerator(client),
        TopicSelector(client),
        InterestAggregator(conversation_dal),
        metadata_cache,
        client,
    )
    session_store = SessionStore(SessionDAL(db_initializer))
    app.state.conversation_dal = conversation_dal
    app.state.metadata_cache = metadata_cache
    app.state.session_store = session_store
    app.state.welcome_service = WelcomeService(client, conversation_dal)
    app.state.orchestrator = ExplorationOrchestrator(
        session_store,
        conversation_dal,
        IntentClassifier(client),
        machine,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite database (tables created if missing, at DATABASE_DIR/app.db)
      - the OpenAI async client (unless one was injected via create_app)
      - the exploration services
    and attach them to `app.state`.
    """
    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    openai_client = getattr(app.state, "openai_client", None)
    if openai_client is None:
        if not os.getenv("OPENAI_API_KEY"):
            raise RuntimeError("OPENAI_API_KEY environment variable is not set")
        try:
            openai_client = AsyncOpenAI()
        except Exception as exc:
            raise RuntimeError("Failed to initialize OpenAI Async client") from exc
        app.state.openai_client = openai_client

    build_services(app, openai_client, db_initializer)

    try:
        yield
    finally:
        # Stop metadata jobs still in flight before the client goes away.
        metadata_cache = getattr(app.state, "metadata_cache", None)
        if metadata_cache is not None:
            await metadata_cache.aclose()

        # Gracefully close the OpenAI client if it exposes a close/aclose method.
        client = getattr(app.state, "openai_client", None)
        if client is not None:
            aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
            if aclose is not None:
                try:
                    result = aclose()
                    if inspect.isawaitable(result):
                        await result
                except Exception as exc:
                    LOGGER.warning("Error while closing OpenAI client: %r", exc)


def create_app(openai_client: Optional[AsyncOpenAI] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        openai_client: Optional pre-built client; when omitted one is created
            from OPENAI_API_KEY at startup.
    """
    app = FastAPI(title="Drawing Topic Explorer", lifespan=lifespan)
    app.state.openai_client = openai_client

    # Generated reference images are served from the media directory.
    app.mount(
        MEDIA_URL_PREFIX,
        StaticFiles(directory=default_media_dir(), check_dir=False),
        name="media",
    )

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies DB initializer and OpenAI client presence.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        return {"ok": True, "db_initialized": has_db, "openai_available": has_openai}

    app.include_router(exploration_router)
    app.include_router(session_router)
    app.include_router(conversation_router)

    return app


app = create_app()
