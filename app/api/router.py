from fastapi import APIRouter

from app.api.v1 import billing, organizations

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(organizations.router)
api_router.include_router(billing.router)
