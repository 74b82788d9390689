import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import settings
from src.core.exceptions import SoWServiceError
from src.core.logging import configure_logging
from src.llm.factory import get_primary_model_name

logger = logging.getLogger(__name__)


async def sow_error_handler(request: Request, exc: SoWServiceError) -> JSONResponse:
    # Routers map the expected cases; anything reaching here is unplanned
    logger.error(f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "errors": [str(exc)], "warnings": []})


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    from src.routes.v1.api import api_router

    app.include_router(api_router, prefix=settings.API_V1_STR)
    app.add_exception_handler(SoWServiceError, sow_error_handler)

    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    def health_check():
        return {
            "status": "ok",
            "version": settings.VERSION,
            "llmProvider": settings.LLM_PROVIDER_PRIMARY,
            "llmModel": get_primary_model_name(),
        }

    return app

app = create_app()
