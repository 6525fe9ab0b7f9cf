"""
Terminology Store Clients

Selects and initializes the configured store backend:
- memory: in-process store, seeded from a FHIR Bundle
- postgres: asyncpg pool + PostgresTerminologyStore
"""

import asyncpg
import structlog

from tmbridge.errors import StoreUnavailable
from tmbridge.store.base import TerminologyStore
from tmbridge.store.loader import SAMPLE_BUNDLE_PATH, load_bundle_file
from tmbridge.store.memory import InMemoryTerminologyStore
from tmbridge.store.postgres import PostgresTerminologyStore

logger = structlog.get_logger(__name__)


async def init_postgres(settings) -> PostgresTerminologyStore:
    """Create the PostgreSQL pool and make sure the schema exists."""
    try:
        pool = await asyncpg.create_pool(
            host=settings.postgres.host,
            port=settings.postgres.port,
            user=settings.postgres.user,
            password=settings.postgres.password.get_secret_value(),
            database=settings.postgres.database,
            min_size=settings.postgres.min_pool_size,
            max_size=settings.postgres.max_pool_size,
        )
    except (OSError, asyncpg.PostgresError) as e:
        logger.error("PostgreSQL connection failed", error=str(e))
        raise StoreUnavailable(f"PostgreSQL connection failed: {e}") from e

    async with pool.acquire() as conn:
        version = await conn.fetchval("SELECT version()")
        logger.info("PostgreSQL connected", version=version[:50])

    store = PostgresTerminologyStore(pool)
    await store.init_schema()
    return store


async def init_memory(settings) -> InMemoryTerminologyStore:
    """Create the in-memory store and load the seed bundle, if any."""
    store = InMemoryTerminologyStore()

    seed_path = settings.terminology.seed_path
    if seed_path is None and settings.terminology.load_sample_data:
        seed_path = SAMPLE_BUNDLE_PATH
    if seed_path:
        await load_bundle_file(store, seed_path)

    return store


async def init_store(settings) -> TerminologyStore:
    """
    Initialize the configured terminology store.

    Call this during application startup.
    """
    backend = settings.terminology.store_backend
    logger.info("Initializing terminology store", backend=backend)

    if backend == "postgres":
        return await init_postgres(settings)
    return await init_memory(settings)


async def close_store(store: TerminologyStore | None) -> None:
    """Release store resources. Call this during application shutdown."""
    if store is None:
        return
    await store.close()
    logger.info("Terminology store closed")
