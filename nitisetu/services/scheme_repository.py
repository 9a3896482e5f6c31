"""
Scheme storage and filtered vector search.

Two backends share one contract:

- ``MongoSchemeRepository``: MongoDB Atlas, one document per scheme with its
  chunks embedded, searched with ``$vectorSearch``.
- ``InMemorySchemeRepository``: process-local exact search, for development
  and tests.

``create_repository`` picks one from ``VECTOR_STORE_BACKEND``.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError
from pymongo.operations import SearchIndexModel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..exceptions import StorageError, ValidationError
from ..models.scheme import Scheme, SchemeFilters, SchemeSummary
from ..utils.similarity import cosine_scores
from .filters import FILTER_TOKENS_FIELD, SchemePredicate, filter_tokens_document

logger = logging.getLogger(__name__)

VECTOR_PATH = "text_chunks.vector"
ELIGIBILITY_CHECK_EVENT = "eligibility_check"


@dataclass
class VectorMatch:
    """A scheme returned by vector search, scored by its best chunk"""
    scheme: Scheme
    score: float


def rank_matches(matches: List[VectorMatch], limit: int) -> List[VectorMatch]:
    """Descending score, ties broken by ascending scheme id"""
    return sorted(matches, key=lambda m: (-m.score, m.scheme.id or ""))[:limit]


def check_chunk_dimensions(scheme: Scheme, expected: Optional[int] = None) -> Optional[int]:
    """
    Make sure every chunk vector of ``scheme`` has the same length

    Returns:
        The common dimension, or None for a scheme without chunks

    Raises:
        ValidationError: chunk vectors disagree with each other or with ``expected``
    """
    dimensions = {len(chunk.vector) for chunk in scheme.text_chunks}
    if not dimensions:
        return None
    if len(dimensions) > 1:
        raise ValidationError(
            "Chunk vectors have heterogeneous dimensions",
            field="text_chunks",
            details={"dimensions": sorted(dimensions)}
        )
    dimension = dimensions.pop()
    if expected is not None and dimension != expected:
        raise ValidationError(
            f"Chunk vectors have {dimension} dimensions, repository expects {expected}",
            field="text_chunks",
            details={"expected": expected, "received": dimension}
        )
    return dimension


class BaseSchemeRepository(ABC):
    """Storage boundary for schemes, their chunks and eligibility-check analytics"""

    async def connect(self):
        """Open connections to the backing store"""

    async def close(self):
        """Release connections to the backing store"""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def create_scheme(self, scheme: Scheme) -> Scheme:
        """Persist a new scheme with all of its chunks in one atomic write"""

    @abstractmethod
    async def get_scheme(self, scheme_id: str) -> Optional[Scheme]:
        """Scheme with its full chunk list, or None if absent"""

    @abstractmethod
    async def list_schemes(self) -> List[SchemeSummary]:
        """Every stored scheme, including ones without chunks"""

    @abstractmethod
    async def count_schemes(self) -> int:
        ...

    @abstractmethod
    async def vector_search(
        self,
        query_vector: List[float],
        predicate: SchemePredicate,
        limit: int,
        num_candidates: int
    ) -> List[VectorMatch]:
        """Top ``limit`` distinct schemes passing ``predicate``, nearest chunk first"""

    @abstractmethod
    async def record_eligibility_check(self, response_time_ms: float, scheme_id: Optional[str] = None):
        ...

    @abstractmethod
    async def get_metrics(self) -> Dict[str, Any]:
        """Counts and average eligibility-check response time in milliseconds"""


class MongoSchemeRepository(BaseSchemeRepository):
    """Scheme repository backed by MongoDB Atlas Vector Search"""

    def __init__(self, settings, client: Optional[AsyncIOMotorClient] = None):
        self.mongodb_url = settings.mongodb_url
        self.db_name = settings.mongodb_db_name
        self.schemes_collection_name = settings.schemes_collection
        self.analytics_collection_name = settings.analytics_collection
        self.index_name = settings.vector_index_name
        self.dimension = settings.embedding_dimension
        self.max_attempts = settings.retry_max_attempts
        self.backoff_seconds = settings.retry_backoff_seconds

        self.client: Optional[AsyncIOMotorClient] = client
        self.db = None
        self.schemes = None
        self.analytics = None
        if client is not None:
            self._bind(client)

    def _bind(self, client: AsyncIOMotorClient):
        self.client = client
        self.db = client[self.db_name]
        self.schemes = self.db[self.schemes_collection_name]
        self.analytics = self.db[self.analytics_collection_name]

    async def connect(self):
        """Connect to MongoDB and make sure the vector index exists"""
        try:
            if self.client is None:
                self._bind(AsyncIOMotorClient(self.mongodb_url))

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Connected to MongoDB successfully")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise StorageError("Failed to connect to MongoDB", details={"reason": str(e)}) from e

        await self.ensure_vector_index()

    async def ensure_vector_index(self):
        """Create the Atlas vector search index; non-Atlas deployments only get a warning"""
        definition = {
            "fields": [
                {"type": "vector", "path": VECTOR_PATH, "numDimensions": self.dimension, "similarity": "cosine"},
            ] + [
                {"type": "filter", "path": f"{FILTER_TOKENS_FIELD}.{axis}"} for axis in SchemeFilters.model_fields
            ]
        }
        try:
            existing = await self.schemes.list_search_indexes(self.index_name).to_list(length=None)
            if existing:
                return
            await self.schemes.create_search_index(
                SearchIndexModel(definition=definition, name=self.index_name, type="vectorSearch")
            )
            logger.info(f"Created vector search index: {self.index_name}")
        except PyMongoError as e:
            logger.warning(f"Could not create vector search index {self.index_name}: {e}")

    async def close(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    async def health_check(self) -> bool:
        """Check MongoDB connection health"""
        try:
            await self.client.admin.command('ping')
            return True
        except Exception:
            return False

    async def _with_retry(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ConnectionFailure),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=5),
            before_sleep=lambda retry_state: logger.warning(
                f"MongoDB operation failed, retry {retry_state.attempt_number}/{self.max_attempts}: "
                f"{retry_state.outcome.exception()}"
            ),
            reraise=True
        )
        async for attempt in retrying:
            with attempt:
                return await operation()

    @staticmethod
    def _to_document(scheme: Scheme) -> Dict[str, Any]:
        document = scheme.model_dump(exclude={"id"})
        document["_id"] = ObjectId(scheme.id)
        document[FILTER_TOKENS_FIELD] = filter_tokens_document(scheme.filters)
        return document

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> Scheme:
        document.pop(FILTER_TOKENS_FIELD, None)
        document.pop("score", None)
        return Scheme.model_validate(document)

    async def create_scheme(self, scheme: Scheme) -> Scheme:
        """
        Insert a scheme document with all of its chunks

        The ``_id`` is assigned before the first attempt, so a retried insert
        that hits a duplicate key means an earlier attempt already committed.
        """
        check_chunk_dimensions(scheme, expected=self.dimension)
        if scheme.id is None:
            scheme = scheme.model_copy(update={"id": str(ObjectId())})
        document = self._to_document(scheme)
        attempts = 0

        async def insert():
            nonlocal attempts
            attempts += 1
            try:
                await self.schemes.insert_one(document)
            except DuplicateKeyError:
                if attempts == 1:
                    raise
                logger.info(f"Scheme {scheme.id} was committed by an earlier attempt")

        try:
            await self._with_retry(insert)
        except DuplicateKeyError as e:
            raise ValidationError(f"Scheme id already exists: {scheme.id}", field="id") from e
        except PyMongoError as e:
            logger.error(f"Failed to create scheme: {e}")
            raise StorageError("Failed to store scheme", details={"reason": str(e)}) from e

        logger.info(f"Scheme created: {scheme.id} ({scheme.chunk_count} chunks)")
        return scheme

    async def get_scheme(self, scheme_id: str) -> Optional[Scheme]:
        """Get scheme by ID; malformed ids are simply not found"""
        if not scheme_id or not ObjectId.is_valid(scheme_id):
            return None
        try:
            doc = await self._with_retry(
                lambda: self.schemes.find_one({"_id": ObjectId(scheme_id)}, {FILTER_TOKENS_FIELD: 0})
            )
        except PyMongoError as e:
            logger.error(f"Failed to get scheme: {e}")
            raise StorageError("Failed to read scheme", details={"reason": str(e)}) from e

        if doc:
            return self._from_document(doc)
        return None

    async def list_schemes(self) -> List[SchemeSummary]:
        """Get all schemes without their chunk bodies"""
        pipeline = [
            {"$project": {
                "name": 1,
                "benefits": 1,
                "required_documents": 1,
                "filters": 1,
                "original_source_ref": 1,
                "created_at": 1,
                "chunk_count": {"$size": {"$ifNull": ["$text_chunks", []]}}
            }},
            {"$sort": {"_id": 1}}
        ]
        try:
            docs = await self._with_retry(
                lambda: self.schemes.aggregate(pipeline).to_list(length=None)
            )
        except PyMongoError as e:
            logger.error(f"Failed to list schemes: {e}")
            raise StorageError("Failed to list schemes", details={"reason": str(e)}) from e

        summaries = []
        for doc in docs:
            doc["id"] = str(doc.pop("_id"))
            summaries.append(SchemeSummary.model_validate(doc))
        return summaries

    async def count_schemes(self) -> int:
        try:
            return await self._with_retry(lambda: self.schemes.count_documents({}))
        except PyMongoError as e:
            raise StorageError("Failed to count schemes", details={"reason": str(e)}) from e

    def build_search_pipeline(
        self,
        query_vector: List[float],
        predicate: SchemePredicate,
        limit: int,
        num_candidates: int
    ) -> List[Dict[str, Any]]:
        vector_search = {
            "index": self.index_name,
            "path": VECTOR_PATH,
            "queryVector": query_vector,
            "numCandidates": max(num_candidates, limit),
            "limit": limit
        }
        mongo_filter = predicate.to_mongo()
        if mongo_filter:
            vector_search["filter"] = mongo_filter

        return [
            {"$vectorSearch": vector_search},
            {"$project": {
                FILTER_TOKENS_FIELD: 0,
                "score": {"$meta": "vectorSearchScore"}
            }}
        ]

    async def vector_search(
        self,
        query_vector: List[float],
        predicate: SchemePredicate,
        limit: int,
        num_candidates: int
    ) -> List[VectorMatch]:
        """Run ``$vectorSearch`` with the demographic filter pushed into the index query"""
        if len(query_vector) != self.dimension:
            raise ValidationError(
                f"Query vector has {len(query_vector)} dimensions, repository expects {self.dimension}",
                field="query_vector"
            )

        pipeline = self.build_search_pipeline(query_vector, predicate, limit, num_candidates)
        try:
            docs = await self._with_retry(
                lambda: self.schemes.aggregate(pipeline).to_list(length=None)
            )
        except PyMongoError as e:
            logger.error(f"Vector search failed: {e}")
            raise StorageError("Vector search failed", details={"reason": str(e)}) from e

        matches = {}
        for doc in docs:
            score = float(doc.get("score", 0.0))
            scheme = self._from_document(doc)
            if scheme.id not in matches or matches[scheme.id].score < score:
                matches[scheme.id] = VectorMatch(scheme=scheme, score=score)

        return rank_matches(list(matches.values()), limit)

    async def record_eligibility_check(self, response_time_ms: float, scheme_id: Optional[str] = None):
        event = {
            "event_type": ELIGIBILITY_CHECK_EVENT,
            "scheme_id": scheme_id,
            "response_time_ms": response_time_ms,
            "created_at": datetime.now(timezone.utc)
        }
        try:
            await self._with_retry(lambda: self.analytics.insert_one(dict(event)))
        except PyMongoError as e:
            logger.error(f"Failed to record eligibility check: {e}")
            raise StorageError("Failed to record analytics event", details={"reason": str(e)}) from e

    async def get_metrics(self) -> Dict[str, Any]:
        pipeline = [
            {"$match": {"event_type": ELIGIBILITY_CHECK_EVENT}},
            {"$group": {"_id": None, "count": {"$sum": 1}, "avg": {"$avg": "$response_time_ms"}}}
        ]
        try:
            schemes_count = await self.count_schemes()
            stats = await self._with_retry(
                lambda: self.analytics.aggregate(pipeline).to_list(length=None)
            )
        except PyMongoError as e:
            raise StorageError("Failed to read metrics", details={"reason": str(e)}) from e

        stats = stats[0] if stats else {}
        return {
            "schemes_analyzed": schemes_count,
            "eligibility_checks_performed": stats.get("count", 0),
            "average_response_time_ms": stats.get("avg") or 0.0
        }


class InMemorySchemeRepository(BaseSchemeRepository):
    """
    Process-local repository with exact cosine search.

    Scores follow the Atlas convention ``(1 + cos) / 2``; ``num_candidates``
    is accepted for interface parity but the search is exhaustive.
    """

    def __init__(self, expected_dimension: Optional[int] = None):
        self.dimension = expected_dimension
        self._schemes: Dict[str, Scheme] = {}
        self._events: List[Dict[str, Any]] = []

    async def create_scheme(self, scheme: Scheme) -> Scheme:
        dimension = check_chunk_dimensions(scheme, expected=self.dimension)
        if scheme.id is None:
            scheme = scheme.model_copy(update={"id": str(ObjectId())})
        if scheme.id in self._schemes:
            raise ValidationError(f"Scheme id already exists: {scheme.id}", field="id")

        if dimension is not None and self.dimension is None:
            self.dimension = dimension
        self._schemes[scheme.id] = scheme.model_copy(deep=True)
        logger.info(f"Scheme created: {scheme.id} ({scheme.chunk_count} chunks)")
        return scheme

    async def get_scheme(self, scheme_id: str) -> Optional[Scheme]:
        scheme = self._schemes.get(scheme_id)
        return scheme.model_copy(deep=True) if scheme else None

    async def list_schemes(self) -> List[SchemeSummary]:
        return [self._schemes[key].summary() for key in sorted(self._schemes)]

    async def count_schemes(self) -> int:
        return len(self._schemes)

    async def vector_search(
        self,
        query_vector: List[float],
        predicate: SchemePredicate,
        limit: int,
        num_candidates: int
    ) -> List[VectorMatch]:
        if self.dimension is not None and len(query_vector) != self.dimension:
            raise ValidationError(
                f"Query vector has {len(query_vector)} dimensions, repository expects {self.dimension}",
                field="query_vector"
            )

        matches = []
        for scheme in self._schemes.values():
            if not scheme.text_chunks or not predicate.matches(scheme.filters):
                continue
            scores = cosine_scores(query_vector, [chunk.vector for chunk in scheme.text_chunks])
            best = float(scores.max())
            matches.append(VectorMatch(scheme=scheme.model_copy(deep=True), score=best))

        return rank_matches(matches, limit)

    async def record_eligibility_check(self, response_time_ms: float, scheme_id: Optional[str] = None):
        self._events.append({
            "event_type": ELIGIBILITY_CHECK_EVENT,
            "scheme_id": scheme_id,
            "response_time_ms": response_time_ms,
            "created_at": datetime.now(timezone.utc)
        })

    async def get_metrics(self) -> Dict[str, Any]:
        timings = [e["response_time_ms"] for e in self._events if e["event_type"] == ELIGIBILITY_CHECK_EVENT]
        return {
            "schemes_analyzed": len(self._schemes),
            "eligibility_checks_performed": len(timings),
            "average_response_time_ms": sum(timings) / len(timings) if timings else 0.0
        }


def create_repository(settings) -> BaseSchemeRepository:
    """
    Build the repository selected by ``VECTOR_STORE_BACKEND``

    Raises:
        ValueError: unknown backend name
    """
    backend = settings.vector_store_backend.lower()

    if backend == "atlas":
        logger.info("Using MongoDB Atlas vector search repository")
        return MongoSchemeRepository(settings)

    elif backend == "memory":
        logger.info("Using in-memory scheme repository (development mode)")
        return InMemorySchemeRepository(expected_dimension=settings.embedding_dimension)

    else:
        raise ValueError(
            f"Invalid VECTOR_STORE_BACKEND: {backend}. Must be 'atlas' or 'memory'."
        )
