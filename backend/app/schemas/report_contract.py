from datetime import datetime
from typing import List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from app.services.pharmacogenomics.config import ContractConfig
from app.services.pharmacogenomics.models import PhenotypeLabel

_DEFAULT_VOCAB = ContractConfig()
PHENOTYPE_LABELS = {p.value for p in PhenotypeLabel}


def _allowed(info: ValidationInfo, key: str) -> Set[str]:
    context = info.context or {}
    if key in context:
        return set(context[key])
    return set(getattr(_DEFAULT_VOCAB, key).values())


class _Contract(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GeneEntry(_Contract):
    name: str = Field(..., min_length=1)
    diplotype: str = Field(..., min_length=1)
    phenotype: str
    activity_score: Optional[float]

    @field_validator('phenotype')
    @classmethod
    def validate_phenotype(cls, v):
        if v not in PHENOTYPE_LABELS:
            raise ValueError(f"phenotype '{v}' is not a recognised metabolizer label")
        return v


class DrugInteractionEntry(_Contract):
    gene_name: str = Field(..., min_length=1)
    drug_name: str = Field(..., min_length=1)
    risk_level: str
    phenotype: str
    evidence_level: str = Field(..., min_length=1)

    @field_validator('risk_level')
    @classmethod
    def validate_risk_level(cls, v, info: ValidationInfo):
        if v not in _allowed(info, 'risk_levels'):
            raise ValueError(f"risk_level '{v}' is not in the contract vocabulary")
        return v

    @field_validator('phenotype')
    @classmethod
    def validate_phenotype(cls, v):
        if v not in PHENOTYPE_LABELS:
            raise ValueError(f"phenotype '{v}' is not a recognised metabolizer label")
        return v


class RecommendationEntry(_Contract):
    gene_name: str = Field(..., min_length=1)
    drug_name: str = Field(..., min_length=1)
    recommendation: str = Field(..., min_length=1)
    strength: str
    alternatives: List[str]

    @field_validator('strength')
    @classmethod
    def validate_strength(cls, v, info: ValidationInfo):
        if v not in _allowed(info, 'strengths'):
            raise ValueError(f"strength '{v}' is not in the contract vocabulary")
        return v


class ExplanationEntry(_Contract):
    gene_name: str = Field(..., min_length=1)
    drug_name: str = Field(..., min_length=1)
    explanation: str = Field(..., min_length=1)


class ReportContract(_Contract):
    """
    Output contract for one analysis report. Validation context may carry
    ``panel``, ``risk_levels`` and ``strengths``; without it the default
    vocabulary applies and the gene panel is not enforced.
    """

    subject_id: str = Field(..., min_length=1)
    analysis_date: str
    genes: List[GeneEntry]
    drug_interactions: List[DrugInteractionEntry]
    recommendations: List[RecommendationEntry]
    explanations: List[ExplanationEntry]

    @field_validator('analysis_date')
    @classmethod
    def validate_analysis_date(cls, v):
        try:
            datetime.fromisoformat(v.replace('Z', '+00:00'))
            return v
        except ValueError:
            raise ValueError("analysis_date must be a valid ISO 8601 string")

    @model_validator(mode='after')
    def validate_coverage(self, info: ValidationInfo):
        names = [g.name for g in self.genes]
        if len(set(names)) != len(names):
            raise ValueError("a gene appears more than once in genes")

        panel = (info.context or {}).get('panel')
        if panel is not None and sorted(names) != sorted(panel):
            raise ValueError(f"genes {names} do not match the panel {list(panel)}")

        keys: List[Tuple[str, str]] = [(i.gene_name, i.drug_name) for i in self.drug_interactions]
        if len(set(keys)) != len(keys):
            raise ValueError("a (gene, drug) pair appears more than once in drug_interactions")
        if not set(g for g, _ in keys) <= set(names):
            raise ValueError("drug_interactions reference a gene missing from genes")

        for label, entries in (("recommendations", self.recommendations),
                               ("explanations", self.explanations)):
            entry_keys = [(e.gene_name, e.drug_name) for e in entries]
            if sorted(entry_keys) != sorted(keys):
                raise ValueError(f"{label} do not pair 1:1 with drug_interactions")
        return self
