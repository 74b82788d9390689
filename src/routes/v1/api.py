from fastapi import APIRouter

from src.sow.router import router as sow_router

api_router = APIRouter()

api_router.include_router(sow_router)
