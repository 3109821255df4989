from fastapi import APIRouter
from .sports import router as sports_router
from .matches import router as matches_router
from .streams import router as streams_router
from .images import router as images_router

api_router = APIRouter()
api_router.include_router(sports_router)
api_router.include_router(matches_router)
api_router.include_router(streams_router)
api_router.include_router(images_router)

__all__ = ["api_router"]
