"""
API routes for scheme search and listing
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..exceptions import EmbeddingUnavailable, SchemeServiceError
from ..models.user import MetricsResponse, SearchRequest, SearchResponse
from ..services.retrieval_service import RetrievalService
from .dependencies import get_retrieval_service, search_unavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schemes", tags=["schemes"])


@router.post("/search", response_model=SearchResponse)
async def search_schemes(
    payload: SearchRequest,
    service: RetrievalService = Depends(get_retrieval_service)
):
    """
    Semantic search over ingested schemes, restricted by the user's profile
    """
    try:
        hits = await service.search(payload.query, payload.user_profile, payload.top_k)
        return SearchResponse(count=len(hits), data=hits)

    except EmbeddingUnavailable as e:
        raise search_unavailable(e) from e
    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error searching schemes: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to search schemes: {str(e)}")


@router.get("/debug")
async def list_schemes(service: RetrievalService = Depends(get_retrieval_service)):
    """
    List every stored scheme, including ones without searchable chunks
    """
    try:
        schemes = await service.list_schemes()
        return {
            "success": True,
            "count": len(schemes),
            "data": [scheme.model_dump(mode="json") for scheme in schemes]
        }

    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing schemes: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to retrieve schemes: {str(e)}")


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(service: RetrievalService = Depends(get_retrieval_service)):
    """
    Dashboard metrics: schemes stored and eligibility checks performed
    """
    try:
        return await service.metrics()

    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error reading metrics: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to retrieve metrics: {str(e)}")


@router.get("/{scheme_id}")
async def get_scheme(scheme_id: str, service: RetrievalService = Depends(get_retrieval_service)):
    """
    Get a specific scheme by ID
    """
    try:
        scheme = await service.get_scheme(scheme_id)
        return {"success": True, "data": scheme.model_dump(mode="json")}

    except (SchemeServiceError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error retrieving scheme {scheme_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to retrieve scheme: {str(e)}")
