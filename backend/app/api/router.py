from fastapi import APIRouter
from app.api.routes import analysis, catalog, upload

api_router = APIRouter()

api_router.include_router(upload.router, prefix="/upload", tags=["Upload"])
api_router.include_router(analysis.router, tags=["Analysis"])
api_router.include_router(catalog.router, prefix="/catalog", tags=["Catalog"])
