"""
EventDesk API - Main Application Entry Point

Event registration and check-in service demonstrating:
- Concurrency-safe seat admission through an atomic capacity ledger
- Waitlist promotion in arrival order when seats free up
- Exactly-once check-in from scanned, typed or kiosk-submitted tickets
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eventdesk.core.config import Settings, get_settings
from eventdesk.core.logging import setup_logging, get_logger
from eventdesk.core.metrics import metrics_endpoint
from eventdesk.api.router import api_router
from eventdesk.api.middleware import RequestLoggingMiddleware
from eventdesk.api.errors import register_exception_handlers
from eventdesk.db.base import Base
from eventdesk.db.session import create_engine, create_session_factory
from eventdesk.infrastructure import RedisClient
from eventdesk.services.container import build_services
from eventdesk.stores.interfaces import RegistrationStore
from eventdesk.stores.memory import InMemoryStore
from eventdesk.stores.sql import SqlAlchemyStore

settings = get_settings()


async def build_store(settings: Settings):
    """Returns the store and the engine backing it (None for the memory store)."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        return InMemoryStore(), None
    if backend != "sql":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

    engine = create_engine(settings)
    if settings.DB_CREATE_ALL:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    store: RegistrationStore = SqlAlchemyStore(create_session_factory(engine))
    return store, engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.STORE_BACKEND,
        ledger=settings.LEDGER_BACKEND,
    )

    store, engine = await build_store(settings)
    services = build_services(settings, store)
    app.state.services = services

    # Capacity state is rebuilt from the registrations that hold seats
    synced = await services.events.sync_all()
    logger.info("ledger_ready", events=synced)

    yield

    await services.publisher.drain()
    if settings.LEDGER_BACKEND.lower() == "redis":
        await RedisClient.close()
    if engine is not None:
        await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event registration with capacity-safe admission, waitlists and check-in",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "store": settings.STORE_BACKEND,
        "ledger": settings.LEDGER_BACKEND,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
