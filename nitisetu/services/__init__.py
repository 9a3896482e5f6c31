"""
Services package for the Niti-Setu scheme retrieval service
"""

from .pdf_service import PDFService, PageText
from .text_splitter import ChunkSplitter
from .embedding_service import BaseEmbeddingClient, EmbeddingClient
from .filters import ProfileFilterBuilder, SchemePredicate, AxisFilter
from .scheme_repository import (
    BaseSchemeRepository,
    MongoSchemeRepository,
    InMemorySchemeRepository,
    VectorMatch,
    create_repository
)
from .llm_service import LLMService
from .ingestion_service import IngestionPipeline
from .retrieval_service import RetrievalService

__all__ = [
    "PDFService",
    "PageText",
    "ChunkSplitter",
    "BaseEmbeddingClient",
    "EmbeddingClient",
    "ProfileFilterBuilder",
    "SchemePredicate",
    "AxisFilter",
    "BaseSchemeRepository",
    "MongoSchemeRepository",
    "InMemorySchemeRepository",
    "VectorMatch",
    "create_repository",
    "LLMService",
    "IngestionPipeline",
    "RetrievalService"
]
