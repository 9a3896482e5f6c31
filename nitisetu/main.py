import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nitisetu.config import Settings, get_settings
from nitisetu.exceptions import (
    ExtractionError,
    NotFound,
    SchemeServiceError,
    ServiceUnavailableError,
    ValidationError
)
from nitisetu.routes import eligibility_router, schemes_router, upload_router
from nitisetu.services import (
    BaseEmbeddingClient,
    BaseSchemeRepository,
    EmbeddingClient,
    IngestionPipeline,
    LLMService,
    RetrievalService,
    create_repository
)

logger = logging.getLogger(__name__)


async def scheme_service_error_handler(request: Request, exc: SchemeServiceError) -> JSONResponse:
    """Render a domain error as ``{"success": false, "error": ...}``"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "details": exc.details}
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request fields in the same shape as ``ValidationError``"""
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"success": False, "error": "Invalid request", "details": {"errors": errors}}
    )


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[BaseSchemeRepository] = None,
    embedding_client: Optional[BaseEmbeddingClient] = None,
    llm_service: Optional[LLMService] = None
) -> FastAPI:
    """
    Build the FastAPI application

    Collaborators not passed in are built from settings at startup and
    closed at shutdown.
    """
    settings = settings or get_settings()

    # Configure logging
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        repo = repository or create_repository(settings)
        embedder = embedding_client or EmbeddingClient(settings)
        llm = llm_service or LLMService(settings)

        await repo.connect()
        app.state.settings = settings
        app.state.repository = repo
        app.state.ingestion_pipeline = IngestionPipeline(settings, repo, embedder, llm)
        app.state.retrieval_service = RetrievalService(settings, repo, embedder, llm)
        logger.info(f"{settings.app_name} started ({settings.vector_store_backend} backend)")
        yield
        # Shutdown
        if embedding_client is None:
            await embedder.close()
        if llm_service is None:
            await llm.close()
        if repository is None:
            await repo.close()
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Ingestion and retrieval backend for government scheme eligibility",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_class in (SchemeServiceError, ValidationError, NotFound, ExtractionError, ServiceUnavailableError):
        app.add_exception_handler(exc_class, scheme_service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.include_router(upload_router, prefix=settings.api_prefix)
    app.include_router(schemes_router, prefix=settings.api_prefix)
    app.include_router(eligibility_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"message": f"{settings.app_name} is running", "version": settings.app_version}

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        store_ok = await request.app.state.repository.health_check()
        return {
            "status": "healthy" if store_ok else "degraded",
            "service": "niti-setu-backend",
            "database": "connected" if store_ok else "disconnected"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("nitisetu.main:app", host="0.0.0.0", port=8000, reload=True)
