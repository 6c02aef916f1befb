"""
API Router - JSON Endpoints
"""
from fastapi import APIRouter

# Import sub-routers
from stockledger.api.stock import router as stock_router

api_router = APIRouter(tags=["API"])

# Include sub-routers
api_router.include_router(stock_router)
