"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from app.api.products import router as products_router
from app.api.stores import router as stores_router

api_router = APIRouter(tags=["API"])

api_router.include_router(products_router)
api_router.include_router(stores_router)


@api_router.get("/status")
async def api_status():
    return {"status": "ok", "version": "1.0.0", "timestamp": datetime.now().isoformat()}
