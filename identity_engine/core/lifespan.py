from contextlib import asynccontextmanager
import logging

from identity_engine.api.deps import get_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    store = get_store()
    store.init_schema()
    logger.info("claim_store_ready path=%s", store.db_path)
    yield
    store.close()
    get_store.cache_clear()
