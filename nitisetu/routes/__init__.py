"""
API routes for the Niti-Setu scheme retrieval service
"""

from .upload import router as upload_router
from .schemes import router as schemes_router
from .eligibility import router as eligibility_router

__all__ = [
    "upload_router",
    "schemes_router",
    "eligibility_router"
]
