from fastapi import APIRouter

from app.services.pharmacogenomics.catalog_loader import get_catalog

router = APIRouter()


@router.get("/drugs")
async def list_drugs():
    """Supported drugs and the panel genes each one is evaluated against."""
    catalog = get_catalog()
    return {
        "catalog_version": catalog.catalog_version,
        "genome_build": catalog.genome_build,
        "panel": list(catalog.panel),
        "drugs": [
            {"drug": drug, "genes": catalog.genes_for_drug(drug)}
            for drug in catalog.supported_drugs()
        ],
    }
