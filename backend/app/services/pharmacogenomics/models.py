"""
Internal data models for the pharmacogenomics pipeline.
Each stage produces one of these frozen structures; later stages never
mutate what an earlier stage produced, they build new values.
"""

from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class PhenotypeLabel(str, Enum):
    """Fixed metabolizer phenotype vocabulary."""
    POOR = "Poor Metabolizer"
    INTERMEDIATE = "Intermediate Metabolizer"
    NORMAL = "Normal Metabolizer"
    RAPID = "Rapid Metabolizer"
    ULTRARAPID = "Ultrarapid Metabolizer"
    UNKNOWN = "Unknown Metabolizer"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskTier(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    NONE = "none"


class Strength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    OPTIONAL = "optional"


class ExplanationSource(str, Enum):
    GENERATED = "generated"
    FALLBACK = "fallback"


class ExtractionStatus(str, Enum):
    """Outcome of a full pass over the variant stream."""
    OK = "ok"
    NO_TARGET_VARIANTS = "no_target_variants"


# Lowest evidence tier; used when a (drug, gene, phenotype) lookup misses.
EVIDENCE_NONE = "none"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Variant(_Frozen):
    """A variant record retained because it lies inside a panel gene region."""
    chromosome: str = Field(..., description="Normalised chromosome (chr-prefixed)")
    position: int = Field(..., description="1-based position")
    reference_allele: str
    alternate_allele: str
    gene: str = Field(..., description="Panel gene whose region contains the position")
    external_id: Optional[str] = Field(None, description="dbSNP rsID when present")
    quality: Optional[float] = None
    filter_status: str = Field("PASS", description="FILTER column, '.' when missing")


class RejectedRecord(_Frozen):
    line_number: int
    reason: str


class ExtractionResult(_Frozen):
    subject_id: Optional[str] = None
    variants: Tuple[Variant, ...] = ()
    status: ExtractionStatus = ExtractionStatus.NO_TARGET_VARIANTS
    records_seen: int = 0
    rejected: Tuple[RejectedRecord, ...] = ()

    def variants_for(self, gene: str) -> List[Variant]:
        return [v for v in self.variants if v.gene == gene]


class AlleleCall(_Frozen):
    gene: str
    allele1: str
    allele2: str
    notation: str = Field(..., description="Canonical diplotype, e.g. *1/*4")
    confidence: Confidence


class PhenotypeCall(_Frozen):
    gene: str
    diplotype: str
    phenotype: PhenotypeLabel
    activity_score: Optional[float] = None


class Interaction(_Frozen):
    gene: str
    drug: str
    phenotype: PhenotypeLabel
    risk_tier: RiskTier
    evidence_tier: str = EVIDENCE_NONE

    @property
    def key(self) -> Tuple[str, str]:
        return (self.gene, self.drug)


class Recommendation(_Frozen):
    gene: str
    drug: str
    risk_tier: RiskTier
    text: str = Field(..., min_length=1)
    strength: Strength
    guideline_reference: str = ""
    alternatives: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, str]:
        return (self.gene, self.drug)


class Explanation(_Frozen):
    gene: str
    drug: str
    text: str = Field(..., min_length=1)
    source: ExplanationSource

    @property
    def key(self) -> Tuple[str, str]:
        return (self.gene, self.drug)


class Report(_Frozen):
    """One analysis result. Immutable once the validation gate accepts it."""
    subject_id: str
    analysis_timestamp: str = Field(..., description="ISO-8601 timestamp")
    catalog_version: str = ""
    genes: Tuple[PhenotypeCall, ...]
    interactions: Tuple[Interaction, ...]
    recommendations: Tuple[Recommendation, ...]
    explanations: Tuple[Explanation, ...]


# ---------------------------------------------------------------------------
# Allele matching outcome (tagged result)
# ---------------------------------------------------------------------------

class AlleleCandidate(_Frozen):
    allele: str
    satisfied: int
    required: int
    order: int = Field(0, description="Position of the allele in the catalog")

    @property
    def complete(self) -> bool:
        return self.satisfied == self.required

    def rank_key(self) -> Tuple[int, int, int]:
        # Sort ascending: more satisfied elements first, then complete before partial, then catalog order
        return (-self.satisfied, 0 if self.complete else 1, self.order)


class Wildtype(_Frozen):
    kind: str = "wildtype"


class Homozygous(_Frozen):
    kind: str = "homozygous"
    allele: AlleleCandidate


class Heterozygous(_Frozen):
    kind: str = "heterozygous"
    first: AlleleCandidate
    second: AlleleCandidate


class Ambiguous(_Frozen):
    kind: str = "ambiguous"
    candidates: Tuple[AlleleCandidate, ...]


MatchOutcome = Union[Wildtype, Homozygous, Heterozygous, Ambiguous]
