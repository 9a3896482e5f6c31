"""
Shared test fixtures: deterministic embedding and language-model doubles,
an in-memory repository, and PDFs generated with PyMuPDF.
"""
import asyncio
import hashlib
import re
from typing import Dict, List, Optional

import fitz
import pytest

from nitisetu.config import Settings
from nitisetu.exceptions import EmbeddingUnavailable
from nitisetu.models.scheme import Benefits, Chunk, Scheme, SchemeFilters
from nitisetu.services.embedding_service import BaseEmbeddingClient
from nitisetu.services.scheme_repository import InMemorySchemeRepository

TEST_DIMENSION = 64

PAGE_TEXTS = [
    (
        "PM Test Yojana is a central government scheme that supports small and marginal farmers. "
        "The scheme provides direct income support to eligible farmer families across the country. "
        "Farmers owning cultivable land up to two hectares can apply through the common service centre. "
        "The benefits are transferred directly into the bank account of the beneficiary. "
        "Applicants must hold a valid Aadhaar card linked to their bank account. "
        "State governments identify eligible families based on land records. "
    ),
    (
        "Benefits of the PM Test Yojana include an annual payment of five thousand rupees. "
        "The amount is released in three equal instalments every four months. "
        "Institutional land holders and farmers who pay income tax are excluded from the scheme. "
        "Serving or retired government employees are also not eligible to receive the benefits. "
        "Women farmers are encouraged to register in their own name to receive the instalments. "
        "The scheme is implemented by the Department of Agriculture and Farmers Welfare. "
    ),
    (
        "Required documents for the PM Test Yojana are the Aadhaar card, land ownership papers, "
        "and bank account details with the branch IFSC code. "
        "Applications can be submitted online through the scheme portal or offline at the village office. "
        "A grievance helpline is available for farmers whose instalments have been delayed. "
        "Beneficiaries must complete electronic KYC verification once every year. "
        "The district agriculture officer verifies the application before the first payment. "
    ),
]


def make_pdf(pages: List[str], **save_options) -> bytes:
    """Text-only PDF with one page per entry of ``pages``"""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_textbox(fitz.Rect(50, 50, 550, 800), text, fontsize=11)
    data = doc.tobytes(**save_options)
    doc.close()
    return data


class HashingEmbeddingClient(BaseEmbeddingClient):
    """Bag-of-words hashing embedder: identical text gives identical vectors"""

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def vector_for(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in re.findall(r"\w+", text.lower()):
            index = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dimension
            vector[index] += 1.0
        return vector

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        self._require_text(texts)
        self.calls.append(list(texts))
        return [self.vector_for(text) for text in texts]


class FailingEmbeddingClient(BaseEmbeddingClient):
    """Embedder whose provider is always down"""

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.dimension = dimension

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        raise EmbeddingUnavailable("Embedding provider unavailable", details={"attempts": 3})


class SlowEmbeddingClient(HashingEmbeddingClient):
    """Embedder that takes ``delay`` seconds per call"""

    def __init__(self, delay: float, dimension: int = TEST_DIMENSION):
        super().__init__(dimension)
        self.delay = delay

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        await asyncio.sleep(self.delay)
        return await super().embed_many(texts)


class StubLLMService:
    """Scripted reasoning collaborator recording what it was asked"""

    def __init__(
        self,
        verdict: str = '{"isEligible": true, "reason": "Meets all criteria"}',
        answer: str = "You can apply at the common service centre.",
        scheme_details=None,
        profile=None
    ):
        self.verdict = verdict
        self.answer = answer
        self.scheme_details = scheme_details if scheme_details is not None else {
            "state": "Punjab", "gender": "All", "caste": "SC", "benefits_type": "Financial", "max_value": 5000
        }
        self.profile = profile if profile is not None else {
            "state": "Maharashtra",
            "district": "Pune",
            "land_holding_acres": 2.5,
            "crop_type": "Cotton",
            "caste": "OBC"
        }
        self.eligibility_calls: List[Dict] = []
        self.answer_calls: List[Dict] = []
        self.details_calls: List[str] = []
        self.closed = False

    @staticmethod
    def _reply(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def check_eligibility(self, scheme_text, profile):
        self.eligibility_calls.append({"scheme_text": scheme_text, "profile": profile})
        return self._reply(self.verdict)

    async def generate_answer(self, query, context_chunks):
        self.answer_calls.append({"query": query, "context_chunks": list(context_chunks)})
        return self._reply(self.answer)

    async def extract_scheme_details(self, text):
        self.details_calls.append(text)
        return self._reply(self.scheme_details)

    async def extract_profile(self, text):
        return self._reply(self.profile)

    async def close(self):
        self.closed = True


async def store_scheme(
    repository,
    embedder: HashingEmbeddingClient,
    name: str,
    passages: List[str],
    filters: Optional[Dict[str, List[str]]] = None
) -> Scheme:
    """Persist a scheme whose chunks are ``passages`` embedded with ``embedder``"""
    vectors = await embedder.embed_many(passages) if passages else []
    scheme = Scheme(
        name=name,
        benefits=Benefits(type="Financial", max_value_inr=5000, description=f"{name} benefit"),
        filters=SchemeFilters(**(filters or {})),
        text_chunks=[
            Chunk(content=passage, vector=vector, source_page=1)
            for passage, vector in zip(passages, vectors)
        ]
    )
    return await repository.create_scheme(scheme)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        vector_store_backend="memory",
        embedding_dimension=TEST_DIMENSION,
        retry_backoff_seconds=0,
        openrouter_api_key="test-key",
        upload_dir=str(tmp_path / "uploads"),
        log_level="DEBUG"
    )


@pytest.fixture
def repository():
    return InMemorySchemeRepository(expected_dimension=TEST_DIMENSION)


@pytest.fixture
def embedder():
    return HashingEmbeddingClient()


@pytest.fixture
def llm_stub():
    return StubLLMService()


@pytest.fixture
def scheme_pdf():
    return make_pdf(PAGE_TEXTS)


@pytest.fixture
def blank_pdf():
    return make_pdf(["", ""])
