"""Tests for search, judge and the supplementary retrieval operations."""
import pytest
from bson import ObjectId

from nitisetu.exceptions import (
    EmbeddingUnavailable,
    NotFound,
    ReasoningUnavailable,
    ServiceUnavailableError,
    ValidationError
)
from nitisetu.models.user import UserProfile
from nitisetu.services.ingestion_service import IngestionPipeline
from nitisetu.services.retrieval_service import RetrievalService, build_profile_query
from tests.conftest import FailingEmbeddingClient, SlowEmbeddingClient, StubLLMService, store_scheme

KISAN_PASSAGES = [
    "Income support of six thousand rupees per year for small farmer families.",
    "Farmers must link their Aadhaar card to the bank account to receive instalments.",
]
SOLAR_PASSAGES = [
    "Subsidy for installing solar water pumps on agricultural land.",
]


@pytest.fixture
def service(settings, repository, embedder, llm_stub):
    return RetrievalService(settings, repository, embedder, llm_stub)


class TestSearch:

    @pytest.mark.asyncio
    async def test_identical_chunk_embedding_is_top_result(self, service, repository, embedder):
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)
        await store_scheme(repository, embedder, "Solar Pump Scheme", SOLAR_PASSAGES)

        hits = await service.search(KISAN_PASSAGES[1])

        assert hits[0].id == kisan.id
        assert hits[0].score == pytest.approx(1.0)
        assert hits[0].snippet == KISAN_PASSAGES[1]

    @pytest.mark.asyncio
    async def test_results_are_ordered_by_descending_score(self, service, repository, embedder):
        await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)
        await store_scheme(repository, embedder, "Solar Pump Scheme", SOLAR_PASSAGES)
        await store_scheme(repository, embedder, "Housing Scheme", ["Interest subsidy on urban housing loans."])

        hits = await service.search("solar pumps subsidy for farmers")

        scores = [hit.score for hit in hits]
        assert scores == sorted(scores, reverse=True)
        assert len({hit.id for hit in hits}) == len(hits)

    @pytest.mark.asyncio
    async def test_snippet_is_the_chunk_closest_to_the_query(self, service, repository, embedder):
        await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)

        hits = await service.search("Aadhaar card bank account instalments")

        assert hits[0].snippet == KISAN_PASSAGES[1]

    @pytest.mark.asyncio
    async def test_demographic_filter(self, service, repository, embedder):
        punjab = await store_scheme(repository, embedder, "Punjab Farm Scheme", ["farm support"], {"state": ["Punjab"]})
        open_scheme = await store_scheme(repository, embedder, "Open Farm Scheme", ["farm support"])

        kerala_hits = await service.search("farm support", UserProfile(state="Kerala"))
        punjab_hits = await service.search("farm support", UserProfile(state="Punjab"))

        assert [hit.id for hit in kerala_hits] == [open_scheme.id]
        assert {hit.id for hit in punjab_hits} == {punjab.id, open_scheme.id}

    @pytest.mark.asyncio
    async def test_top_k_limits_results(self, service, repository, embedder):
        for i in range(7):
            await store_scheme(repository, embedder, f"Scheme {i}", [f"farm support programme {i}"])

        assert len(await service.search("farm support")) == 5
        assert len(await service.search("farm support", top_k=2)) == 2

    @pytest.mark.asyncio
    async def test_schemes_without_chunks_never_match(self, service, repository, embedder):
        await store_scheme(repository, embedder, "Scanned Scheme", [])

        assert await service.search("Scanned Scheme") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [None, "", "   "])
    async def test_blank_query_is_rejected(self, service, query):
        with pytest.raises(ValidationError):
            await service.search(query)

    @pytest.mark.asyncio
    async def test_embedding_failure_is_not_an_empty_result(self, settings, repository, embedder, llm_stub):
        await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)
        service = RetrievalService(settings, repository, FailingEmbeddingClient(), llm_stub)

        with pytest.raises(EmbeddingUnavailable):
            await service.search("income support")

    @pytest.mark.asyncio
    async def test_search_timeout(self, settings, repository, llm_stub):
        fast_settings = settings.model_copy(update={"search_timeout_seconds": 0.05})
        service = RetrievalService(fast_settings, repository, SlowEmbeddingClient(delay=1.0), llm_stub)

        with pytest.raises(ServiceUnavailableError, match="timed out"):
            await service.search("income support")


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_ingested_pdf_is_found(self, settings, repository, embedder, llm_stub, service, scheme_pdf):
        pipeline = IngestionPipeline(settings, repository, embedder, llm_stub)
        result = await pipeline.ingest(scheme_pdf, "PM Test Yojana")

        hits = await service.search("test yojana benefits", UserProfile())

        assert result.chunks_processed >= 1
        assert result.id in [hit.id for hit in hits[:5]]
        assert all(hit.score >= 0 for hit in hits)


class TestJudge:

    @pytest.mark.asyncio
    async def test_returns_literal_verdict(self, service, repository, embedder, llm_stub):
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)
        profile = UserProfile(state="Punjab", occupation="Farmer", land_holding_acres=1.5)

        verdict = await service.judge(kisan.id, profile)

        call = llm_stub.eligibility_calls[0]
        assert verdict == llm_stub.verdict
        assert call["scheme_text"] == "\n\n".join(KISAN_PASSAGES)
        assert call["profile"] == profile

    @pytest.mark.asyncio
    async def test_scheme_text_is_truncated(self, settings, repository, embedder, llm_stub):
        short = settings.model_copy(update={"judge_context_chars": 20})
        service = RetrievalService(short, repository, embedder, llm_stub)
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)

        await service.judge(kisan.id, UserProfile())

        assert llm_stub.eligibility_calls[0]["scheme_text"] == KISAN_PASSAGES[0][:20]

    @pytest.mark.asyncio
    async def test_scheme_without_chunks_is_judged_on_metadata(self, service, repository, embedder, llm_stub):
        scanned = await store_scheme(repository, embedder, "Scanned Scheme", [])

        await service.judge(scanned.id, UserProfile())

        scheme_text = llm_stub.eligibility_calls[0]["scheme_text"]
        assert "Scanned Scheme" in scheme_text
        assert "5000" in scheme_text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scheme_id", [str(ObjectId()), "not-an-object-id"])
    async def test_unknown_scheme(self, service, scheme_id):
        with pytest.raises(NotFound):
            await service.judge(scheme_id, UserProfile())

    @pytest.mark.asyncio
    async def test_missing_arguments(self, service):
        with pytest.raises(ValidationError):
            await service.judge("", UserProfile())
        with pytest.raises(ValidationError):
            await service.judge(str(ObjectId()), None)

    @pytest.mark.asyncio
    async def test_eligibility_checks_are_counted(self, service, repository, embedder):
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)

        await service.judge(kisan.id, UserProfile())
        await service.judge(kisan.id, UserProfile())
        metrics = await service.metrics()

        assert metrics.schemes_analyzed == 1
        assert metrics.eligibility_checks_performed == 2
        assert metrics.average_response_time_seconds.endswith("s")

    @pytest.mark.asyncio
    async def test_language_model_failure(self, settings, repository, embedder):
        llm = StubLLMService(verdict=ReasoningUnavailable("model down"))
        service = RetrievalService(settings, repository, embedder, llm)
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)

        with pytest.raises(ReasoningUnavailable):
            await service.judge(kisan.id, UserProfile())

    @pytest.mark.asyncio
    async def test_no_language_model_configured(self, settings, repository, embedder):
        service = RetrievalService(settings, repository, embedder, llm_service=None)
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)

        with pytest.raises(ReasoningUnavailable):
            await service.judge(kisan.id, UserProfile())


class TestRecommendAndChat:

    def test_profile_query(self):
        profile = UserProfile(gender="Female", occupation="Farmer", state="Punjab", caste="SC")

        assert build_profile_query(profile) == "Government schemes for Female Farmer in Punjab category SC"
        assert build_profile_query(UserProfile()) == "Government schemes for citizens in India"

    @pytest.mark.asyncio
    async def test_recommend_applies_profile_filters(self, service, repository, embedder):
        await store_scheme(repository, embedder, "Kerala Scheme", ["schemes for farmer in Kerala"], {"state": ["Kerala"]})
        punjab = await store_scheme(repository, embedder, "Punjab Scheme", ["schemes for farmer in Punjab"], {"state": ["Punjab"]})

        hits = await service.recommend(UserProfile(state="Punjab", occupation="Farmer"))

        assert [hit.id for hit in hits] == [punjab.id]

    @pytest.mark.asyncio
    async def test_recommend_requires_profile(self, service):
        with pytest.raises(ValidationError):
            await service.recommend(None)

    @pytest.mark.asyncio
    async def test_chat_answers_from_matched_snippets(self, service, repository, embedder, llm_stub):
        kisan = await store_scheme(repository, embedder, "PM Kisan", KISAN_PASSAGES)

        response = await service.chat("How do I receive the instalments?")

        assert response.answer == llm_stub.answer
        assert [source.id for source in response.sources] == [kisan.id]
        assert llm_stub.answer_calls[0]["context_chunks"] == [response.sources[0].snippet]


class TestExtractProfile:

    @pytest.mark.asyncio
    async def test_spoken_text_becomes_profile(self, service):
        profile = await service.extract_profile("Main Pune, Maharashtra se hoon, 2.5 acre kapas ugata hoon")

        assert profile.state == "Maharashtra"
        assert profile.district == "Pune"
        assert profile.land_holding_acres == 2.5
        assert profile.category == "OBC"

    @pytest.mark.asyncio
    async def test_blank_text_is_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.extract_profile("  ")

    @pytest.mark.asyncio
    async def test_invalid_model_output(self, settings, repository, embedder):
        llm = StubLLMService(profile={"land_holding_acres": -3})
        service = RetrievalService(settings, repository, embedder, llm)

        with pytest.raises(ReasoningUnavailable):
            await service.extract_profile("some text")

    @pytest.mark.asyncio
    async def test_metrics_without_checks(self, service):
        metrics = await service.metrics()

        assert metrics.eligibility_checks_performed == 0
        assert metrics.average_response_time_seconds == "0.00s"
