"""
FastAPI Application

Main FastAPI application for AskData with:
- Lifespan management for resource initialization/cleanup
- CORS middleware for frontend integration
- Exception handler mapping AskError to its status and code
- Health and chat endpoints

Usage:
    uvicorn askdata.api.main:app --reload --port 8000
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from askdata.api.routes import chat, health
from askdata.config import get_settings
from askdata.conversations.store import CoreStore, create_core_pool
from askdata.database.registry import TenantPoolRegistry
from askdata.database.schema import SchemaDescriber
from askdata.feedback.store import FeedbackStore
from askdata.knowledge.vectors import VectorStoreRegistry
from askdata.llm.factory import LLMProviderFactory
from askdata.models.errors import AskError
from askdata.pipeline.orchestrator import AskPipeline
from askdata.tenancy.directory import TenantDirectory
from askdata.tenancy.resolver import TenantContextResolver
from askdata.tenancy.tokens import IdentityTokenCodec

logger = logging.getLogger(__name__)

# Global state for pipeline and components
app_state = {
    "core_pool": None,
    "store": None,
    "feedback_store": None,
    "resolver": None,
    "tenant_registry": None,
    "vector_registry": None,
    "llm": None,
    "pipeline": None,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for startup and shutdown.

    Initializes:
    - Core database pool and stores
    - Tenant directory and identity resolver
    - Tenant data pool registry and schema describer
    - Vector store registry (Chroma)
    - LLM provider and ask pipeline
    """
    config = get_settings()
    logger.info("Starting AskData API server...")

    try:
        if not config.core_database.url:
            logger.warning("CORE_DATABASE_URL not set; chat endpoints disabled.")
            yield
            return

        logger.info("Initializing core database...")
        pool = await create_core_pool(
            str(config.core_database.url),
            min_size=config.core_database.pool_min_size,
            max_size=config.core_database.pool_max_size,
        )
        app_state["core_pool"] = pool

        store = CoreStore(pool)
        await store.initialize()
        app_state["store"] = store

        feedback_store = FeedbackStore(pool)
        await feedback_store.initialize()
        app_state["feedback_store"] = feedback_store

        logger.info("Initializing tenant directory...")
        directory = TenantDirectory(pool, default_port=config.tenant_database.default_port)
        await directory.initialize()
        app_state["resolver"] = TenantContextResolver(
            IdentityTokenCodec(config.auth.token_key, config.auth.token_ttl_seconds),
            directory,
        )

        registry = TenantPoolRegistry(
            pool_size=config.tenant_database.pool_size,
            statement_timeout=config.tenant_database.statement_timeout,
        )
        app_state["tenant_registry"] = registry

        vectors = VectorStoreRegistry(
            persist_directory=config.chroma.persist_dir,
            embedding_model=config.chroma.embedding_model,
            openai_api_key=config.llm.openai_api_key,
        )
        app_state["vector_registry"] = vectors

        logger.info("Initializing pipeline orchestrator...")
        try:
            llm = LLMProviderFactory.create_default_provider(config.llm)
            app_state["llm"] = llm
            app_state["pipeline"] = AskPipeline(
                store=store,
                resolver=app_state["resolver"],
                registry=registry,
                schema=SchemaDescriber(registry, ttl_seconds=config.chat.schema_cache_ttl_seconds),
                llm_provider=llm,
                vectors=vectors,
                chat_settings=config.chat,
                top_k=config.chroma.top_k,
            )
        except ValueError as e:
            logger.warning(f"Pipeline not initialized: {e}")
            app_state["pipeline"] = None

        logger.info("AskData API server started successfully")

        yield  # Application runs here

    finally:
        logger.info("Shutting down AskData API server...")

        if app_state["tenant_registry"]:
            try:
                await app_state["tenant_registry"].close()
                logger.info("Tenant pools closed")
            except Exception as e:
                logger.error(f"Error closing tenant pools: {e}")

        if app_state["llm"]:
            try:
                await app_state["llm"].close()
            except Exception as e:
                logger.error(f"Error closing LLM provider: {e}")

        if app_state["core_pool"]:
            try:
                await app_state["core_pool"].close()
                logger.info("Core database pool closed")
            except Exception as e:
                logger.error(f"Error closing core pool: {e}")

        for key in app_state:
            app_state[key] = None
        logger.info("AskData API server shut down complete")


# Create FastAPI app
app = FastAPI(
    title="AskData API",
    description="Multi-tenant chat with your data",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AskError)
async def ask_error_handler(request: Request, exc: AskError) -> JSONResponse:
    """Map typed errors raised by JSON endpoints to their status and code."""
    logger.info(f"Request failed: {exc.code} {exc.message}", extra={"path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=exc.to_payload())


# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(chat.router, prefix="/api/v1", tags=["chat"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "AskData API",
        "version": "0.1.0",
        "description": "Natural language questions over tenant databases",
        "docs": "/docs",
    }
