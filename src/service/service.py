"""
cvboost API service.

Builds the FastAPI application: admission components, global rate limiting,
middleware and the resume, user and status routers.
"""
import logging
from typing import Optional

from fastapi import FastAPI

from .config import AdmissionComponents, components_from_env, get_cors_config, setup_rate_limiting
from .lifecycle import lifespan
from .middleware import setup_middleware
from .routers import misc, resume, user

logger = logging.getLogger('cvboost.service')


def create_app(components: Optional[AdmissionComponents] = None) -> FastAPI:
    """
    Create the application.

    Args:
        components: Pre-built admission components. Built from the environment when omitted.
    """
    app = FastAPI(title="cvboost API", lifespan=lifespan)
    app.state.components = components or components_from_env()

    limiter = setup_rate_limiting(app)

    cors_allowed_origins, cors_allowed_methods, cors_allowed_headers = get_cors_config()
    setup_middleware(app, cors_allowed_origins, cors_allowed_methods, cors_allowed_headers)

    app.include_router(resume.router)
    app.include_router(user.router)
    app.include_router(misc.router)

    limiter.exempt(misc.get_status)

    logger.info("cvboost service initialized")
    return app


app = create_app()
