# File: backend/app/api/api.py
from fastapi import APIRouter

from app.api.endpoints import templates, signing

api_router = APIRouter(prefix="/api")
api_router.include_router(templates.router, prefix="/templates", tags=["templates"])
api_router.include_router(signing.router, prefix="/signing", tags=["signing"])
