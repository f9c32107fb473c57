import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response

from . import listings  # noqa: F401  registers the listings table
from .auth import AuthService, build_auth_service, init_auth_storage, set_session_cookie
from .config import settings
from .routes_api import router as api_router
from .routes_pages import router as pages_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(auth: Optional[AuthService] = None) -> FastAPI:
    """Build the application; ``auth`` replaces the service built from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        service = auth or build_auth_service(settings)
        init_auth_storage(service)
        app.state.auth = service
        logger.info("Pawboard started with database %s", settings.DATABASE_URL)
        try:
            yield
        finally:
            app.state.auth = None

    app = FastAPI(title="Pawboard", version="1.0", lifespan=lifespan)

    @app.middleware("http")
    async def renew_session_cookie(request: Request, call_next) -> Response:
        response = await call_next(request)
        renewed = getattr(request.state, "renewed_session", None)
        if renewed is None:
            return response
        cookie_prefix = f"{settings.SESSION_COOKIE_NAME}="
        if any(
            header.startswith(cookie_prefix)
            for header in response.headers.getlist("set-cookie")
        ):
            return response
        set_session_cookie(response, renewed, request=request)
        return response

    app.include_router(pages_router)
    app.include_router(api_router)
    return app


configure_logging()
app = create_app()
