"""
Catalog Loader - process-wide, read-only access to the pharmacogenomic
reference tables (gene regions, allele signatures, phenotype maps, drug risk
matrices and recommendation templates).

The catalog is a single versioned JSON document. It is parsed once into
frozen models and shared by every analysis; updating clinical guidance means
editing the JSON and calling ``reload_catalog()``, never changing code.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .models import PhenotypeLabel, RiskTier, Strength, Variant, EVIDENCE_NONE

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "pgx_catalog.json"

# Keywords a template must carry for its tier (checked by audit_catalog)
DIRECTIVE_KEYWORDS = ("avoid", "switch", "alternative")
DOSING_KEYWORDS = ("dose", "dosing", "reduce")


class CatalogError(ValueError):
    """The catalog document is missing, unreadable or structurally invalid."""


class _CatalogModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class SignatureElement(_CatalogModel):
    """One requirement of an allele signature: an rsID and/or a position+ALT."""
    rsid: Optional[str] = None
    pos: Optional[int] = None
    alt: Optional[str] = None

    @model_validator(mode="after")
    def _check_identifier(self):
        if not self.rsid and (self.pos is None or not self.alt):
            raise ValueError("signature element needs an rsid or a pos/alt pair")
        return self

    def matches(self, variant: Variant) -> bool:
        if self.rsid and variant.external_id == self.rsid:
            return True
        if self.pos is not None and self.alt:
            return (variant.position == self.pos
                    and variant.alternate_allele.upper() == self.alt.upper())
        return False


class GeneRegion(_CatalogModel):
    chrom: str
    start: int = Field(..., ge=1)
    end: int = Field(..., ge=1)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.end < self.start:
            raise ValueError(f"region end {self.end} precedes start {self.start}")
        return self


class PhenotypeEntry(_CatalogModel):
    phenotype: str
    activity_score: Optional[float] = None


class GeneEntry(_CatalogModel):
    region: GeneRegion
    wildtype: str = "*1"
    alleles: Dict[str, Tuple[SignatureElement, ...]] = Field(default_factory=dict)
    phenotypes: Dict[str, PhenotypeEntry] = Field(default_factory=dict)


class RecommendationTemplate(_CatalogModel):
    tier: RiskTier
    phenotype: Optional[str] = None
    text: str = Field(..., min_length=1)
    strength: Strength
    guideline: str = ""
    alternatives: Tuple[str, ...] = ()


class DrugGeneEntry(_CatalogModel):
    evidence: str = EVIDENCE_NONE
    risk: Dict[str, RiskTier] = Field(default_factory=dict)
    recommendations: Tuple[RecommendationTemplate, ...] = ()


class DrugEntry(_CatalogModel):
    genes: Dict[str, DrugGeneEntry]


class Catalog(_CatalogModel):
    """Immutable reference tables for one catalog version."""

    catalog_version: str
    genome_build: str = "GRCh38"
    source: str = ""
    panel: Tuple[str, ...] = Field(..., min_length=1)
    genes: Dict[str, GeneEntry]
    drugs: Dict[str, DrugEntry] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_panel(self):
        if len(set(self.panel)) != len(self.panel):
            raise ValueError("panel lists a gene more than once")
        missing = [g for g in self.panel if g not in self.genes]
        if missing:
            raise ValueError(f"panel genes without a gene entry: {missing}")
        return self

    # ===== Gene Data Access =====

    def gene(self, gene: str) -> GeneEntry:
        return self.genes[gene]

    def lookup_phenotype(self, gene: str, diplotype: str) -> Optional[PhenotypeEntry]:
        """Exact lookup of a diplotype, tried as given and in canonical order."""
        entry = self.genes.get(gene)
        if entry is None:
            return None
        if diplotype in entry.phenotypes:
            return entry.phenotypes[diplotype]
        return entry.phenotypes.get(normalize_diplotype(diplotype, entry.wildtype))

    # ===== Drug Data Access =====

    def supported_drugs(self) -> List[str]:
        """Drug names in catalog order."""
        return list(self.drugs)

    def is_drug_supported(self, drug: str) -> bool:
        return drug.strip().upper() in self.drugs

    def genes_for_drug(self, drug: str) -> List[str]:
        """Panel genes the catalog associates with a drug, in catalog order."""
        entry = self.drugs.get(drug.strip().upper())
        if entry is None:
            return []
        return [g for g in entry.genes if g in self.panel]

    def drug_gene(self, drug: str, gene: str) -> Optional[DrugGeneEntry]:
        entry = self.drugs.get(drug.strip().upper())
        if entry is None:
            return None
        return entry.genes.get(gene)

    def lookup_risk(self, drug: str, gene: str, phenotype: str) -> Optional[Tuple[RiskTier, str]]:
        """Return (risk tier, evidence tier) or None on a miss."""
        entry = self.drug_gene(drug, gene)
        if entry is None or phenotype not in entry.risk:
            return None
        return entry.risk[phenotype], entry.evidence

    def find_template(
        self, drug: str, gene: str, tier: RiskTier, phenotype: Optional[str] = None
    ) -> Optional[RecommendationTemplate]:
        """
        Template for (drug, gene, tier). A template scoped to the phenotype
        wins over the tier-wide one.
        """
        entry = self.drug_gene(drug, gene)
        if entry is None:
            return None
        fallback = None
        for template in entry.recommendations:
            if template.tier != tier:
                continue
            if template.phenotype is None:
                if fallback is None:
                    fallback = template
            elif template.phenotype == phenotype:
                return template
        return fallback


def _allele_sort_key(allele: str, wildtype: str) -> Tuple[int, int, str]:
    if allele == wildtype:
        return (0, 0, "")
    match = re.match(r'\*(\d+)', allele)
    if match:
        return (1, int(match.group(1)), allele)
    return (2, 0, allele)


def normalize_diplotype(diplotype: str, wildtype: str = "*1") -> str:
    """
    Normalize diplotype notation (e.g., "*2/*1" -> "*1/*2", "*10/*4" -> "*4/*10").
    Wild-type first, then by the numeric part of the star name, then lexically.
    """
    if '/' not in diplotype:
        return diplotype
    alleles = [a.strip() for a in diplotype.split('/')]
    return '/'.join(sorted(alleles, key=lambda a: _allele_sort_key(a, wildtype)))


def audit_catalog(catalog: Catalog) -> List[str]:
    """
    Report integrity defects of a loaded catalog. Never raises; an empty list
    means every (drug, gene, tier) the risk tables can produce has a usable
    recommendation template.
    """
    defects: List[str] = []
    labels = {p.value for p in PhenotypeLabel}
    panel = set(catalog.panel)

    for gene, entry in catalog.genes.items():
        if gene not in panel:
            defects.append(f"gene {gene}: phenotype table outside the panel")
        for diplotype, phen in entry.phenotypes.items():
            if phen.phenotype not in labels:
                defects.append(f"gene {gene}: {diplotype} maps to unknown label '{phen.phenotype}'")
            if normalize_diplotype(diplotype, entry.wildtype) != diplotype:
                defects.append(f"gene {gene}: diplotype {diplotype} is not in canonical order")

    for drug, drug_entry in catalog.drugs.items():
        for gene, dg in drug_entry.genes.items():
            where = f"{drug}/{gene}"
            if gene not in panel:
                defects.append(f"{where}: risk table references a gene outside the panel")
            for phenotype in dg.risk:
                if phenotype not in labels:
                    defects.append(f"{where}: risk table uses unknown label '{phenotype}'")

            # Lookup misses classify as 'none' for any phenotype, so it needs a tier-wide template
            if catalog.find_template(drug, gene, RiskTier.NONE) is None:
                defects.append(f"{where}: no recommendation template for tier 'none'")
            for phenotype, tier in dg.risk.items():
                if catalog.find_template(drug, gene, tier, phenotype) is None:
                    defects.append(
                        f"{where}: no recommendation template for tier '{tier.value}' ({phenotype})"
                    )

            for template in dg.recommendations:
                text = template.text.lower()
                if template.tier == RiskTier.HIGH:
                    if not any(k in text for k in DIRECTIVE_KEYWORDS):
                        defects.append(f"{where}: high-tier template lacks an actionable directive")
                    if template.strength == Strength.OPTIONAL:
                        defects.append(f"{where}: high-tier template has optional strength")
                elif template.tier == RiskTier.MODERATE:
                    if not any(k in text for k in DOSING_KEYWORDS):
                        defects.append(f"{where}: moderate-tier template lacks dosing guidance")

    return defects


def load_catalog(path: Optional[str] = None) -> Catalog:
    """Parse and validate a catalog document; defects found by the audit are logged."""
    catalog_file = Path(path) if path else DEFAULT_CATALOG_PATH
    try:
        with open(catalog_file, 'r') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(f"Cannot read catalog at {catalog_file}: {e}") from e

    try:
        catalog = Catalog.model_validate(raw)
    except ValidationError as e:
        raise CatalogError(f"Invalid catalog at {catalog_file}: {e}") from e

    for defect in audit_catalog(catalog):
        logger.warning("Catalog defect: %s", defect)

    logger.info(
        "Catalog %s loaded: %d genes, %d drugs (%s)",
        catalog.catalog_version, len(catalog.panel), len(catalog.drugs), catalog.genome_build,
    )
    return catalog


# Global instance
_catalog: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Get the process-wide catalog, loading it on first use."""
    global _catalog
    if _catalog is None:
        from .config import get_config
        _catalog = load_catalog(get_config().catalog_path)
    return _catalog


def reload_catalog(path: Optional[str] = None) -> Catalog:
    """Replace the process-wide catalog (tests, updated guidance)."""
    global _catalog
    if path is None:
        from .config import get_config
        path = get_config().catalog_path
    _catalog = load_catalog(path)
    return _catalog
