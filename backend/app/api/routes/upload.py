from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.services.pipeline.errors import UploadNotFoundError
from app.services.storage.upload_store import LocalUploadStore, UnsupportedUploadError, get_upload_store

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def upload_vcf(
    file: UploadFile = File(..., description="Uncompressed .vcf or gzip .vcf.gz"),
    store: LocalUploadStore = Depends(get_upload_store),
):
    """
    Store a VCF file and return an opaque handle for /analyze/{handle}.
    """
    content = await file.read()
    try:
        handle = store.save(file.filename, content)
    except UnsupportedUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"handle": handle, "filename": file.filename, "size": len(content)}


@router.delete("/{handle}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_upload(handle: str, store: LocalUploadStore = Depends(get_upload_store)):
    if not store.delete(handle):
        raise UploadNotFoundError(f"Unknown upload handle '{handle}'")
