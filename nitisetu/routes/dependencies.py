"""
FastAPI dependencies resolving the services built at application startup
"""
from fastapi import Request

from ..config import Settings
from ..exceptions import EmbeddingUnavailable
from ..services.ingestion_service import IngestionPipeline
from ..services.retrieval_service import RetrievalService

SEARCH_UNAVAILABLE_MESSAGE = "Search temporarily unavailable"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline


def get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def search_unavailable(error: EmbeddingUnavailable) -> EmbeddingUnavailable:
    """User-facing form of an embedding failure on the search path"""
    return EmbeddingUnavailable(SEARCH_UNAVAILABLE_MESSAGE, details=error.details)
