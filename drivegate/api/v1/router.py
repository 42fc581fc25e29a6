from fastapi import APIRouter

from drivegate.api.v1.endpoints import uploads

api_router = APIRouter()
api_router.include_router(uploads.router)
