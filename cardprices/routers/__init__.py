from fastapi import APIRouter

from .health import router as health_router
from .jobs import router as jobs_router
from .prices import router as prices_router
from .exchange import router as exchange_router
from .scheduler import router as scheduler_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["Health"])
api_router.include_router(jobs_router, prefix="/jobs", tags=["Jobs"])
api_router.include_router(prices_router, prefix="/cards", tags=["Prices"])
api_router.include_router(exchange_router, tags=["Exchange Rate"])
api_router.include_router(scheduler_router)

__all__ = ["api_router"]
