"""
API routes for eligibility checking, recommendations and chat
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..exceptions import EmbeddingUnavailable, SchemeServiceError
from ..models.user import (
    ChatRequest,
    ChatResponse,
    ExtractProfileRequest,
    JudgeRequest,
    JudgeResponse,
    RecommendRequest,
    SearchResponse
)
from ..services.retrieval_service import RetrievalService
from .dependencies import get_retrieval_service, search_unavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schemes", tags=["eligibility"])


@router.post("/eligibility", response_model=JudgeResponse)
async def check_eligibility(
    payload: JudgeRequest,
    service: RetrievalService = Depends(get_retrieval_service)
):
    """
    Strict eligibility verdict of one user profile against one scheme
    """
    try:
        verdict = await service.judge(payload.scheme_id, payload.user_profile)
        return JudgeResponse(scheme_id=payload.scheme_id, verdict=verdict)

    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error checking eligibility: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to check eligibility: {str(e)}")


@router.post("/recommend", response_model=SearchResponse)
async def recommend_schemes(
    payload: RecommendRequest,
    service: RetrievalService = Depends(get_retrieval_service)
):
    """
    Schemes ranked for a profile, without a typed query
    """
    try:
        hits = await service.recommend(payload.user_profile)
        return SearchResponse(count=len(hits), data=hits)

    except EmbeddingUnavailable as e:
        raise search_unavailable(e) from e
    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error recommending schemes: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to recommend schemes: {str(e)}")


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    service: RetrievalService = Depends(get_retrieval_service)
):
    """
    Answer a question using the best matching scheme passages
    """
    try:
        return await service.chat(payload.query, payload.user_profile)

    except EmbeddingUnavailable as e:
        raise search_unavailable(e) from e
    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error answering chat query: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to answer query: {str(e)}")


@router.post("/extract-profile")
async def extract_profile(
    payload: ExtractProfileRequest,
    service: RetrievalService = Depends(get_retrieval_service)
):
    """
    Turn spoken Hindi/English text into a structured user profile
    """
    try:
        profile = await service.extract_profile(payload.spoken_text)
        return {"success": True, "profile": profile.model_dump(exclude_none=True)}

    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error extracting profile: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to extract profile: {str(e)}")
