"""
Retrieval service: filtered semantic search and eligibility judgement
"""
import asyncio
import logging
import time
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import NotFound, ReasoningUnavailable, ServiceUnavailableError, StorageError, ValidationError
from ..models.scheme import Scheme, SchemeSummary, SearchHit
from ..models.user import ChatResponse, MetricsResponse, UserProfile
from ..utils.similarity import cosine_similarities
from .embedding_service import BaseEmbeddingClient
from .filters import ProfileFilterBuilder
from .llm_service import LLMService
from .scheme_repository import BaseSchemeRepository, VectorMatch

logger = logging.getLogger(__name__)


def build_profile_query(profile: UserProfile) -> str:
    """Deterministic recommendation query for a profile"""
    parts = [
        "Government schemes for",
        profile.gender or "",
        profile.occupation or "citizens",
        "in",
        profile.state or "India",
    ]
    if profile.category:
        parts.append(f"category {profile.category}")
    return " ".join(" ".join(parts).split())


def describe_scheme(scheme: Scheme) -> str:
    """Metadata-only text for schemes that have no chunks"""
    lines = [
        f"Scheme: {scheme.name}",
        f"Benefits: {scheme.benefits.type}, up to INR {scheme.benefits.max_value_inr:g}. {scheme.benefits.description}".strip(),
    ]
    if scheme.required_documents:
        lines.append(f"Required documents: {', '.join(scheme.required_documents)}")
    return "\n".join(lines)


class RetrievalService:
    """Search and judge operations over the scheme repository"""

    def __init__(
        self,
        settings,
        repository: BaseSchemeRepository,
        embedding_client: BaseEmbeddingClient,
        llm_service: Optional[LLMService] = None,
        filter_builder: Optional[ProfileFilterBuilder] = None
    ):
        self.repository = repository
        self.embedding_client = embedding_client
        self.llm_service = llm_service
        self.filter_builder = filter_builder or ProfileFilterBuilder()
        self.top_k = settings.search_top_k
        self.num_candidates = settings.search_num_candidates
        self.search_timeout = settings.search_timeout_seconds
        self.judge_context_chars = settings.judge_context_chars

    async def search(
        self,
        query: str,
        profile: Optional[UserProfile] = None,
        top_k: Optional[int] = None
    ) -> List[SearchHit]:
        """
        Rank schemes by semantic similarity to ``query`` among those the
        profile passes the demographic filters for

        Args:
            query: Natural language query
            profile: Optional user profile; absent axes impose no constraint
            top_k: Number of distinct schemes to return

        Returns:
            Hits in descending score order, ties by ascending scheme id

        Raises:
            ValidationError: blank query
            EmbeddingUnavailable: query could not be embedded
            StorageError: vector search failed
        """
        if not query or not query.strip():
            raise ValidationError("Search query is required", field="query")

        limit = top_k or self.top_k
        try:
            return await asyncio.wait_for(
                self._search(query.strip(), profile, limit),
                timeout=self.search_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Search exceeded {self.search_timeout}s")
            raise ServiceUnavailableError(
                "Search timed out",
                details={"timeout_seconds": self.search_timeout}
            ) from e

    async def _search(self, query: str, profile: Optional[UserProfile], limit: int) -> List[SearchHit]:
        query_vector = await self.embedding_client.embed(query)
        predicate = self.filter_builder.build(profile)

        matches = await self.repository.vector_search(
            query_vector,
            predicate,
            limit=limit,
            num_candidates=max(self.num_candidates, limit)
        )

        hits = [self._to_hit(match, query_vector) for match in matches]
        logger.info(f"Search for '{query[:50]}' returned {len(hits)} results")
        return hits

    @staticmethod
    def _to_hit(match: VectorMatch, query_vector: List[float]) -> SearchHit:
        """Project a match, using the chunk closest to the query as snippet"""
        scheme = match.scheme
        snippet, source_page = "", 1
        if scheme.text_chunks:
            similarities = cosine_similarities(query_vector, [chunk.vector for chunk in scheme.text_chunks])
            best = scheme.text_chunks[int(similarities.argmax())]
            snippet, source_page = best.content, best.source_page

        return SearchHit(
            id=scheme.id,
            name=scheme.name,
            benefits=scheme.benefits,
            snippet=snippet,
            source_page=source_page,
            score=match.score
        )

    def scheme_context(self, scheme: Scheme) -> str:
        """All chunk text of a scheme in order, truncated for the judge"""
        if not scheme.text_chunks:
            return describe_scheme(scheme)
        text = "\n\n".join(chunk.content for chunk in scheme.text_chunks)
        return text[:self.judge_context_chars]

    async def judge(self, scheme_id: str, profile: UserProfile) -> str:
        """
        Strict eligibility verdict for one profile against one scheme

        Returns:
            The reasoning collaborator's literal text

        Raises:
            ValidationError: missing scheme id or profile
            NotFound: no scheme with that id
            ReasoningUnavailable: the language model failed
        """
        if not scheme_id or not scheme_id.strip():
            raise ValidationError("schemeId is required", field="schemeId")
        if profile is None:
            raise ValidationError("userProfile is required", field="userProfile")

        start_time = time.time()
        scheme = await self.repository.get_scheme(scheme_id.strip())
        if scheme is None:
            raise NotFound(scheme_id)

        verdict = await self._require_llm().check_eligibility(self.scheme_context(scheme), profile)

        elapsed_ms = (time.time() - start_time) * 1000
        try:
            await self.repository.record_eligibility_check(elapsed_ms, scheme_id=scheme.id)
        except StorageError as e:
            logger.warning(f"Failed to record eligibility check analytics: {e}")

        logger.info(f"Eligibility check for scheme {scheme.id} completed in {elapsed_ms:.0f}ms")
        return verdict

    async def recommend(self, profile: UserProfile, top_k: Optional[int] = None) -> List[SearchHit]:
        """Search with a query generated from the profile itself"""
        if profile is None:
            raise ValidationError("userProfile is required", field="userProfile")
        query = build_profile_query(profile)
        logger.info(f"Recommendation query: {query}")
        return await self.search(query, profile, top_k)

    async def chat(self, query: str, profile: Optional[UserProfile] = None) -> ChatResponse:
        """Answer a question from the best matching scheme passages"""
        hits = await self.search(query, profile)
        answer = await self._require_llm().generate_answer(query.strip(), [hit.snippet for hit in hits])
        return ChatResponse(answer=answer, sources=hits)

    async def extract_profile(self, spoken_text: str) -> UserProfile:
        """Structured profile from free spoken text (Hindi, English or mixed)"""
        if not spoken_text or not spoken_text.strip():
            raise ValidationError("spokenText is required", field="spokenText")

        data = await self._require_llm().extract_profile(spoken_text.strip())
        try:
            return UserProfile.model_validate({k: v for k, v in data.items() if v is not None})
        except PydanticValidationError as e:
            raise ReasoningUnavailable(
                "Language model returned an invalid profile",
                details={"errors": e.error_count()}
            ) from e

    async def list_schemes(self) -> List[SchemeSummary]:
        return await self.repository.list_schemes()

    async def get_scheme(self, scheme_id: str) -> SchemeSummary:
        scheme = await self.repository.get_scheme(scheme_id)
        if scheme is None:
            raise NotFound(scheme_id)
        return scheme.summary()

    async def metrics(self) -> MetricsResponse:
        metrics = await self.repository.get_metrics()
        average_seconds = metrics.get("average_response_time_ms", 0.0) / 1000
        return MetricsResponse(
            schemes_analyzed=metrics.get("schemes_analyzed", 0),
            eligibility_checks_performed=metrics.get("eligibility_checks_performed", 0),
            average_response_time_seconds=f"{average_seconds:.2f}s"
        )

    def _require_llm(self) -> LLMService:
        if self.llm_service is None:
            raise ReasoningUnavailable("No language model is configured")
        return self.llm_service
