import asyncio
import os
from datetime import datetime, timezone
from typing import List, Optional, Sequence

# Never reach a real text-generation backend from the test suite
os.environ["PGX_TEXT_PROVIDER"] = "disabled"

import pytest

from app.services.llm.base import DisabledTextService, TextGenerationService
from app.services.pharmacogenomics.catalog_loader import get_catalog, reload_catalog
from app.services.pharmacogenomics.config import PipelineConfig
from app.services.pharmacogenomics.models import (
    Interaction,
    PhenotypeCall,
    PhenotypeLabel,
    RiskTier,
    Variant,
)
from app.services.pipeline.analysis_pipeline import AnalysisPipeline
from app.services.storage.upload_store import LocalUploadStore

SAMPLE_ID = "PATIENT_001"
FIXED_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def vcf_record(chrom, pos, rsid, ref, alt, gt="0/1", qual="60", flt="PASS", info="."):
    return "\t".join([chrom, str(pos), rsid or ".", ref, alt, qual, flt, info, "GT", gt])


def vcf_lines(records: Sequence[str], sample: str = SAMPLE_ID) -> List[str]:
    header = [
        "##fileformat=VCFv4.2",
        "##reference=GRCh38",
        f"#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\t{sample}",
    ]
    return [line + "\n" for line in header + list(records)]


# Known allele-defining records (GRCh38)
CYP2D6_STAR4_HOM = [
    vcf_record("chr22", 42128945, "rs3892097", "C", "T", gt="1/1"),
    vcf_record("chr22", 42130692, "rs1065852", "G", "A", gt="1/1"),
]
CYP2C19_STAR2 = vcf_record("chr10", 94781859, "rs4244285", "G", "A")
CYP2C19_STAR17 = vcf_record("chr10", 94761900, "rs12248560", "C", "T")
CYP2C9_STAR3 = vcf_record("chr10", 94981296, "rs1057910", "A", "C", gt="1/1")
OFF_TARGET = vcf_record("chr7", 117559590, "rs113993960", "A", "G")


class FakeTextService(TextGenerationService):
    """In-test text service with scripted behaviour."""

    name = "fake"

    def __init__(self, reply: Optional[str] = "Generated explanation.", delay: float = 0.0,
                 error: Optional[Exception] = None, fail_when: Optional[str] = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.fail_when = fail_when
        self.prompts: List[str] = []

    async def generate_text(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail_when and self.fail_when in prompt:
            return None
        return self.reply


def make_variant(gene, position, alt, rsid=None, chrom=None, ref="N"):
    chroms = {"CYP2D6": "chr22", "CYP2C19": "chr10", "CYP2C9": "chr10",
              "SLCO1B1": "chr12", "TPMT": "chr6", "DPYD": "chr1"}
    return Variant(
        chromosome=chrom or chroms[gene],
        position=position,
        reference_allele=ref,
        alternate_allele=alt,
        gene=gene,
        external_id=rsid,
    )


def make_interaction(gene="CYP2D6", drug="CODEINE", phenotype=PhenotypeLabel.POOR,
                     tier=RiskTier.HIGH, evidence="1A"):
    return Interaction(gene=gene, drug=drug, phenotype=phenotype, risk_tier=tier, evidence_tier=evidence)


@pytest.fixture
def catalog():
    return get_catalog()


@pytest.fixture
def restore_catalog():
    yield
    reload_catalog()


@pytest.fixture
def wildtype_phenotypes(catalog):
    return [
        PhenotypeCall(gene=g, diplotype="*1/*1", phenotype=PhenotypeLabel.NORMAL, activity_score=None)
        for g in catalog.panel
    ]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME


@pytest.fixture
def offline_config():
    config = PipelineConfig()
    return config.model_copy(update={
        "narrative": config.narrative.model_copy(update={"provider": "disabled", "timeout_seconds": 0.5})
    })


@pytest.fixture
def upload_store(tmp_path):
    return LocalUploadStore(str(tmp_path / "uploads"))


@pytest.fixture
def pipeline(catalog, offline_config, fixed_clock, upload_store):
    return AnalysisPipeline(
        catalog=catalog,
        config=offline_config,
        text_service=DisabledTextService(),
        clock=fixed_clock,
        upload_store=upload_store,
    )
