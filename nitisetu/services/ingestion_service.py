"""
Ingestion pipeline: PDF bytes -> text -> chunks -> vectors -> one stored scheme
"""
import asyncio
import logging
import time
from bisect import bisect_right
from typing import List, Optional, Sequence, Tuple

from ..exceptions import EmbeddingUnavailable, ServiceUnavailableError, ValidationError
from ..models.scheme import Benefits, Chunk, IngestResult, Scheme, SchemeFilters
from .embedding_service import BaseEmbeddingClient
from .llm_service import LLMService
from .pdf_service import PDFService, PDFSource
from .scheme_repository import BaseSchemeRepository
from .text_splitter import ChunkSplitter

logger = logging.getLogger(__name__)

DEFAULT_FILTERS = {"state": ["Pan-India"], "gender": ["All"], "caste": ["All"]}

NO_TEXT_WARNING = "No extractable text found; the scheme was stored but will not appear in search results"


def page_for_offset(offset: int, page_offsets: Sequence[Tuple[int, int]]) -> int:
    """Page number whose text contains ``offset`` (1 when pages are unknown)"""
    starts = [start for start, _ in page_offsets]
    index = bisect_right(starts, offset) - 1
    if index < 0:
        return 1
    return page_offsets[index][1]


class IngestionPipeline:
    """Turns one uploaded scheme document into a searchable Scheme record"""

    def __init__(
        self,
        settings,
        repository: BaseSchemeRepository,
        embedding_client: BaseEmbeddingClient,
        llm_service: Optional[LLMService] = None,
        pdf_service: Optional[PDFService] = None,
        splitter: Optional[ChunkSplitter] = None
    ):
        self.repository = repository
        self.embedding_client = embedding_client
        self.llm_service = llm_service
        self.pdf_service = pdf_service or PDFService()
        self.splitter = splitter or ChunkSplitter.from_settings(settings)
        self.ingest_timeout = settings.ingest_timeout_seconds
        self.auto_extract_filters = settings.auto_extract_filters

    async def ingest(
        self,
        document: PDFSource,
        name: str,
        benefits: Optional[Benefits] = None,
        filters: Optional[SchemeFilters] = None,
        required_documents: Optional[List[str]] = None,
        source_ref: Optional[str] = None
    ) -> IngestResult:
        """
        Extract, split, embed and store one scheme document

        The ingestion deadline bounds extraction, filter resolution and
        embedding. The single repository write comes after it and is not
        subject to the deadline.

        Args:
            document: PDF bytes or the path of a staged upload
            name: Scheme title
            benefits: Benefit metadata (defaults to an empty Financial benefit)
            filters: Demographic allow-lists; None lets the language model
                propose them when auto extraction is enabled
            required_documents: Document names an applicant must provide
            source_ref: Name of the uploaded file; the stored reference also
                carries the document fingerprint

        Returns:
            IngestResult with the new scheme id and chunk count

        Raises:
            ValidationError: missing name or empty document
            ExtractionError: the document is not a readable PDF
            EmbeddingUnavailable: the embedding provider failed
            StorageError: the store write failed
            ServiceUnavailableError: the deadline passed before the write
        """
        if not name or not name.strip():
            raise ValidationError("Scheme name is required", field="schemeName")
        if not document or self.pdf_service.source_size(document) == 0:
            raise ValidationError("A PDF document is required", field="pdf")

        name = name.strip()
        start_time = time.time()
        try:
            scheme, warnings = await asyncio.wait_for(
                self._prepare(document, name, benefits, filters, required_documents, source_ref),
                timeout=self.ingest_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Ingestion of '{name}' exceeded {self.ingest_timeout}s")
            raise ServiceUnavailableError(
                "Ingestion timed out",
                details={"timeout_seconds": self.ingest_timeout}
            ) from e

        stored = await self.repository.create_scheme(scheme)

        elapsed = time.time() - start_time
        logger.info(f"Ingested scheme '{name}' as {stored.id}: {scheme.chunk_count} chunks in {elapsed:.2f}s")

        return IngestResult(
            id=stored.id,
            name=stored.name,
            chunks_processed=scheme.chunk_count,
            warnings=warnings
        )

    async def _prepare(
        self,
        document: PDFSource,
        name: str,
        benefits: Optional[Benefits],
        filters: Optional[SchemeFilters],
        required_documents: Optional[List[str]],
        source_ref: Optional[str]
    ) -> Tuple[Scheme, List[str]]:
        """Build the complete Scheme record without touching the repository"""
        # PDF parsing and hashing are CPU and disk bound
        fingerprint = await asyncio.to_thread(self.pdf_service.compute_sha256, document)
        logger.info(f"Ingesting scheme '{name}' (sha256 {fingerprint[:12]})")

        pages = await asyncio.to_thread(self.pdf_service.extract_pages, document)
        text = self.pdf_service.join_pages(pages)
        page_offsets = self.pdf_service.page_offsets(pages)

        passages = [
            (offset, passage)
            for offset, passage in self.splitter.split_with_offsets(text)
            if passage.strip()
        ]

        if filters is None:
            filters = await self._resolve_filters(text)

        vectors = await self.embedding_client.embed_many([passage for _, passage in passages])
        if len(vectors) != len(passages):
            raise EmbeddingUnavailable(
                "Embedding provider returned the wrong number of vectors",
                details={"expected": len(passages), "received": len(vectors)}
            )

        chunks = [
            Chunk(content=passage, vector=vector, source_page=page_for_offset(offset, page_offsets))
            for (offset, passage), vector in zip(passages, vectors)
        ]

        warnings = []
        if not chunks:
            logger.warning(f"Scheme '{name}' has no extractable text; storing metadata only")
            warnings.append(NO_TEXT_WARNING)

        scheme = Scheme(
            name=name,
            benefits=benefits or Benefits(),
            required_documents=required_documents or [],
            filters=filters,
            original_source_ref=f"{source_ref}#sha256={fingerprint}" if source_ref else f"sha256={fingerprint}",
            text_chunks=chunks
        )
        return scheme, warnings

    async def _resolve_filters(self, text: str) -> SchemeFilters:
        """Ask the language model for filters; fall back to unrestricted defaults"""
        if not self.auto_extract_filters or self.llm_service is None or not text:
            return SchemeFilters(**DEFAULT_FILTERS)

        try:
            details = await self.llm_service.extract_scheme_details(text)
        except ServiceUnavailableError as e:
            logger.warning(f"Filter extraction failed, using defaults: {e}")
            return SchemeFilters(**DEFAULT_FILTERS)

        resolved = {}
        for axis, default in DEFAULT_FILTERS.items():
            value = details.get(axis)
            if isinstance(value, list):
                value = [str(v) for v in value if v]
            elif value:
                value = [str(value)]
            resolved[axis] = value or default
        return SchemeFilters(**resolved)
