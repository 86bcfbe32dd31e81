from fastapi import APIRouter

from .orders import router as orders_router
from .webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(orders_router, prefix="/orders", tags=["orders"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
