"""
Risk Engine - (drug, gene, phenotype) risk classification.

For every requested drug the catalog knows, and every panel gene the catalog
associates with it, exactly one Interaction is produced. A risk-table miss
classifies as tier 'none' with the lowest evidence tier.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
import logging

from .catalog_loader import Catalog, get_catalog
from .models import EVIDENCE_NONE, Interaction, PhenotypeCall, PhenotypeLabel, RiskTier

logger = logging.getLogger(__name__)


class RiskClassifier:
    """Evaluates drug-gene interactions for one patient's phenotypes."""

    # Drug name normalization: map common synonyms to catalog names.
    _DRUG_ALIASES: Dict[str, str] = {
        "5-FLUOROURACIL": "FLUOROURACIL",
        "5-FU": "FLUOROURACIL",
        "ZOCOR": "SIMVASTATIN",
        "PLAVIX": "CLOPIDOGREL",
        "COUMADIN": "WARFARIN",
    }

    def __init__(self, catalog: Optional[Catalog] = None):
        self.catalog = catalog or get_catalog()

    def resolve_drug(self, drug: str) -> str:
        """Resolve drug aliases and normalize casing."""
        d = drug.strip().upper()
        return self._DRUG_ALIASES.get(d, d)

    def drugs_in_scope(self, drugs: Optional[Iterable[str]] = None) -> List[str]:
        """
        Requested drugs the catalog supports, de-duplicated in request order.
        An empty or missing request means the whole catalog.
        """
        requested = [d for d in (drugs or []) if d and d.strip()]
        if not requested:
            return self.catalog.supported_drugs()

        in_scope: List[str] = []
        for raw in requested:
            drug = self.resolve_drug(raw)
            if not self.catalog.is_drug_supported(drug):
                logger.info("Drug '%s' is not in the catalog; no interactions evaluated", raw)
                continue
            if drug not in in_scope:
                in_scope.append(drug)
        return in_scope

    def classify(
        self,
        phenotypes: Sequence[PhenotypeCall],
        drugs: Optional[Iterable[str]] = None,
    ) -> List[Interaction]:
        by_gene = {p.gene: p for p in phenotypes}
        interactions: List[Interaction] = []
        seen: Set[Tuple[str, str]] = set()

        for drug in self.drugs_in_scope(drugs):
            for gene in self.catalog.genes_for_drug(drug):
                if (gene, drug) in seen:
                    continue
                seen.add((gene, drug))
                interactions.append(self._classify_pair(drug, gene, by_gene.get(gene)))

        return interactions

    def _classify_pair(self, drug: str, gene: str, call: Optional[PhenotypeCall]) -> Interaction:
        if call is None:
            logger.warning("%s: no phenotype call supplied; treating as Unknown for %s", gene, drug)
            phenotype = PhenotypeLabel.UNKNOWN
        else:
            phenotype = call.phenotype

        hit = self.catalog.lookup_risk(drug, gene, phenotype.value)
        if hit is None:
            logger.info("No risk entry for %s/%s/%s; tier none", drug, gene, phenotype.value)
            risk_tier, evidence = RiskTier.NONE, EVIDENCE_NONE
        else:
            risk_tier, evidence = hit

        return Interaction(
            gene=gene,
            drug=drug,
            phenotype=phenotype,
            risk_tier=risk_tier,
            evidence_tier=evidence,
        )
