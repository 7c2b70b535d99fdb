import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .auth.router import router as auth_router
from .config import settings
from .db import Base, engine
from .logging import RequestIdMiddleware, setup_logging, structlog
from .routes.admin import router as admin_router
from .routes.assessments import router as assessments_router
from .routes.events import router as events_router
from .routes.files import router as files_router
from .routes.reports import router as reports_router
from .routes.vehicles import router as vehicles_router
from .services.errors import DomainError


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    logger = structlog.get_logger("autonostalgia")

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error("domain_error", path=request.url.path, detail=exc.detail, error_type=type(exc).__name__)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # Routers
    app.include_router(auth_router)
    app.include_router(vehicles_router)
    app.include_router(assessments_router)
    app.include_router(reports_router)
    app.include_router(admin_router)
    app.include_router(files_router)
    app.include_router(events_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "app": settings.app_name}

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs(os.path.dirname(settings.database_url.replace("sqlite:///", "")) or ".", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
        logger.info("startup", environment=settings.environment, storage=settings.storage_provider)

    return app


app = create_app()


def run() -> None:
    uvicorn.run("autonostalgia.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
