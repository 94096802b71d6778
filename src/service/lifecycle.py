import logging
import asyncio
from typing import AsyncGenerator
from fastapi import FastAPI
from contextlib import asynccontextmanager

from .config import AdmissionComponents, get_operation_max_age_minutes
from .redis_client import close_redis_clients

logger = logging.getLogger("cvboost.service.lifecycle")


async def periodic_operation_cleanup(components: AdmissionComponents, interval_seconds: int = 300):
    """Periodically abort operations that never reported an outcome"""
    max_age_minutes = get_operation_max_age_minutes()

    while True:
        try:
            logger.debug("Running scheduled cleanup of stale operations")
            removed = await components.operation_registry.cleanup_stale(max_age_minutes=max_age_minutes)
            if removed > 0:
                logger.info(f"Operation cleanup completed: removed {removed} stale operations")
        except Exception as e:
            logger.error(f"Error during operation cleanup: {e}", exc_info=True)

        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    components: AdmissionComponents = app.state.components

    cleanup_task = asyncio.create_task(periodic_operation_cleanup(components))

    yield

    # Cleanup during shutdown
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        logger.info("Operation cleanup task cancelled during shutdown")

    await components.auth_config.close()
    await close_redis_clients()
