"""API router for version 1."""
from fastapi import APIRouter

from vocab_srs.api.v1.endpoints import srs


api_router = APIRouter()
api_router.include_router(srs.router)

__all__ = ["api_router"]
