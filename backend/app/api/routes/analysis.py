import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from app.services.pipeline.analysis_pipeline import AnalysisPipeline, get_pipeline
from app.services.storage.upload_store import LocalUploadStore, UnsupportedUploadError, get_upload_store

router = APIRouter()
logger = logging.getLogger(__name__)


class AnalyzeRequest(BaseModel):
    drugs: List[str] = Field(default_factory=list, description="Drugs to evaluate; empty means the full catalog")
    subject_id: Optional[str] = None


def _split_drugs(values: Optional[List[str]]) -> List[str]:
    """Accept repeated form fields and comma-separated lists alike."""
    drugs: List[str] = []
    for value in values or []:
        drugs.extend(d.strip() for d in value.split(",") if d.strip())
    return drugs


async def _run(pipeline: AnalysisPipeline, store: LocalUploadStore, handle: str,
               drugs: List[str], subject_id: Optional[str]) -> dict:
    with store.open_stream(handle) as stream:
        report = await pipeline.analyze_lines_async(stream, drugs, subject_id)
    return pipeline.render(report)


@router.post(
    "/analyze",
    status_code=status.HTTP_200_OK,
    summary="Analyze Pharmacogenomic Risk",
    description="Upload a VCF file and optionally a list of drugs to receive a contract-validated report."
)
async def analyze_upload(
    file: UploadFile = File(..., description="Patient's VCF file (.vcf or .vcf.gz)"),
    drugs: Optional[List[str]] = Form(None, description="Drug names; omit for the full catalog"),
    subject_id: Optional[str] = Form(None, description="Overrides the sample name from the VCF"),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    store: LocalUploadStore = Depends(get_upload_store),
):
    content = await file.read()
    try:
        handle = store.save(file.filename, content)
    except UnsupportedUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        return await _run(pipeline, store, handle, _split_drugs(drugs), subject_id)
    finally:
        store.delete(handle)


@router.post("/analyze/{handle}", status_code=status.HTTP_200_OK)
async def analyze_stored(
    handle: str,
    request: Optional[AnalyzeRequest] = None,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
    store: LocalUploadStore = Depends(get_upload_store),
):
    """Analyze a file previously stored through /upload."""
    request = request or AnalyzeRequest()
    return await _run(pipeline, store, handle, _split_drugs(request.drugs), request.subject_id)
