"""
API router registration
"""
from fastapi import APIRouter
from app.api.code import router as code_router
from app.api.orders import router as orders_router

api_router = APIRouter(prefix="/api")

api_router.include_router(orders_router)
api_router.include_router(code_router)
