import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from estimation.engine import EstimationEngine
from importer.orchestrator import ImportOrchestrator
from importer.writer import TimeEntryWriter
from integration.source_factory import SourceFactory
from llm.llm_client import LLMClient
from llm.providers.registry import create_provider
from storage.db import Database
from storage.google_auth import GoogleAuthStore, InMemoryGoogleAuthStore
from storage.job_store import InMemoryJobStore, PostgresJobStore
from storage.preferences_store import InMemoryPreferencesStore, PostgresPreferencesStore
from storage.project_store import InMemoryProjectStore, PostgresProjectStore
from storage.time_entry_store import InMemoryTimeEntryStore, PostgresTimeEntryStore
from timebeacon.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything the routers need, built once per process in the lifespan."""

    settings: Settings
    engine: EstimationEngine
    orchestrator: ImportOrchestrator
    entries: Any
    jobs: Any
    preferences: Any
    projects: Any
    auth_store: Any
    source_factory: SourceFactory = field(default_factory=SourceFactory)
    db: Optional[Database] = None


def build_engine(settings: Settings) -> EstimationEngine:
    provider = create_provider(settings)
    if provider is None:
        logger.info("LLM_PROVIDER=heuristic, estimates will be rule-based")
        return EstimationEngine(None)
    logger.info(f"Using LLM provider {provider.name}")
    return EstimationEngine(
        LLMClient(provider, max_attempts=settings.llm_max_attempts, backoff_s=settings.llm_backoff_s)
    )


async def build_context(
    settings: Settings,
    engine: Optional[EstimationEngine] = None,
    source_factory: Optional[SourceFactory] = None,
) -> AppContext:
    db = None
    if settings.use_database:
        db = Database(settings.database_url, min_size=settings.db_pool_min, max_size=settings.db_pool_max)
        await db.connect()
        await db.init_schema()
        entries = PostgresTimeEntryStore(db)
        jobs = PostgresJobStore(db)
        preferences = PostgresPreferencesStore(db)
        projects = PostgresProjectStore(db)
        auth_store = GoogleAuthStore(
            db,
            encryption_key=settings.google_token_encryption_key,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        )
    else:
        logger.info("USE_DATABASE=false, using in-memory stores")
        entries = InMemoryTimeEntryStore()
        jobs = InMemoryJobStore()
        preferences = InMemoryPreferencesStore()
        projects = InMemoryProjectStore()
        auth_store = InMemoryGoogleAuthStore()

    engine = engine or build_engine(settings)
    orchestrator = ImportOrchestrator(
        engine,
        TimeEntryWriter(entries),
        jobs,
        projects,
        concurrency=settings.import_concurrency,
        max_errors=settings.import_max_errors,
        source_attempts=settings.source_max_attempts,
        source_backoff_s=settings.source_backoff_s,
    )
    return AppContext(
        settings=settings,
        engine=engine,
        orchestrator=orchestrator,
        entries=entries,
        jobs=jobs,
        preferences=preferences,
        projects=projects,
        auth_store=auth_store,
        source_factory=source_factory or SourceFactory(),
        db=db,
    )


async def close_context(ctx: AppContext) -> None:
    if ctx.db is not None:
        await ctx.db.close()
