import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.router import api_router
from app.core.logging import configure_logging
from app.services.llm.base import get_text_service
from app.services.pharmacogenomics.catalog_loader import get_catalog
from app.services.pipeline.errors import AnalysisError, ContractViolationError, UploadNotFoundError

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="PGx Report API",
    description="Pharmacogenomic analysis pipeline: VCF in, contract-validated drug-gene report out",
    version="1.0.0"
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API Routers
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    if isinstance(exc, UploadNotFoundError):
        status_code = 404
    else:
        status_code = 500
    if isinstance(exc, ContractViolationError):
        logger.error("Contract violation on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": exc.code})


@app.on_event("startup")
async def startup_event():
    # Preload catalog
    catalog = get_catalog()
    logger.info("Catalog %s ready (%d drugs)", catalog.catalog_version, len(catalog.drugs))

    # Probe text generation (non-blocking: server starts regardless)
    service = get_text_service()
    if await service.probe():
        logger.info("Text generation available via %s", service.name)
    else:
        logger.warning("Text generation unavailable (%s); explanations will use fallback", service.name)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "pgx-report"}
