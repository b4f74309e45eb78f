from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notifier.config.settings import settings
from notifier.db.session import engine
from notifier.utils.logging import get_logger
from notifier.routers import main_router
from notifier.utils.errors import setup_error_handlers
from notifier.middlewares import REQUEST_ID_HEADER, RequestIDMiddleware

logger = get_logger()


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("Notifier API starting", service=settings.NAME, environment=settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("Notifier API stopped", service=settings.NAME)


def create_application() -> FastAPI:
    """Initialize the FastAPI application with settings and lifespan events."""
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    setup_error_handlers(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )
    application.add_middleware(RequestIDMiddleware)

    # Routers
    application.include_router(main_router, prefix=settings.API_PREFIX, tags=["APIs"])

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "notifier.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
        log_level=None,
    )
