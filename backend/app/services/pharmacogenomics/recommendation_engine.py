"""
Recommendation Engine - clinical recommendation per interaction.

Templates come from the catalog, keyed by (drug, gene, risk tier) with an
optional phenotype refinement. A missing template is a catalog defect: it is
logged and a generic tier-aware statement is substituted so that every
interaction still carries a recommendation.
"""

from typing import List, Optional, Sequence
import logging

from .catalog_loader import Catalog, get_catalog
from .models import Interaction, Recommendation, RiskTier, Strength

logger = logging.getLogger(__name__)


INSUFFICIENT_DATA_TEXT = {
    RiskTier.HIGH: (
        "Insufficient guideline data for {drug} with {gene} {phenotype}. "
        "Consider an alternative agent, or avoid {drug} until specialist review confirms dosing."
    ),
    RiskTier.MODERATE: (
        "Insufficient guideline data for {drug} with {gene} {phenotype}. "
        "Consider a reduced starting dose and adjust dosing to clinical response."
    ),
    RiskTier.LOW: (
        "Insufficient guideline data for {drug} with {gene} {phenotype}. "
        "Use standard-of-care dosing with routine monitoring."
    ),
    RiskTier.NONE: (
        "Insufficient guideline data for {drug} with {gene} {phenotype}. "
        "Use standard-of-care dosing with routine monitoring."
    ),
}

INSUFFICIENT_DATA_STRENGTH = {
    RiskTier.HIGH: Strength.MODERATE,
    RiskTier.MODERATE: Strength.OPTIONAL,
    RiskTier.LOW: Strength.OPTIONAL,
    RiskTier.NONE: Strength.OPTIONAL,
}


class RecommendationBuilder:
    """Builds one Recommendation per Interaction."""

    def __init__(self, catalog: Optional[Catalog] = None):
        self.catalog = catalog or get_catalog()

    def build(self, interaction: Interaction) -> Recommendation:
        template = self.catalog.find_template(
            interaction.drug,
            interaction.gene,
            interaction.risk_tier,
            interaction.phenotype.value,
        )
        if template is None:
            logger.warning(
                "Missing recommendation template for %s/%s tier %s; using generic statement",
                interaction.drug, interaction.gene, interaction.risk_tier.value,
            )
            return self._insufficient_data(interaction)

        return Recommendation(
            gene=interaction.gene,
            drug=interaction.drug,
            risk_tier=interaction.risk_tier,
            text=template.text,
            strength=template.strength,
            guideline_reference=template.guideline,
            alternatives=template.alternatives,
        )

    def build_all(self, interactions: Sequence[Interaction]) -> List[Recommendation]:
        return [self.build(i) for i in interactions]

    @staticmethod
    def _insufficient_data(interaction: Interaction) -> Recommendation:
        tier = interaction.risk_tier
        text = INSUFFICIENT_DATA_TEXT[tier].format(
            drug=interaction.drug.lower(),
            gene=interaction.gene,
            phenotype=interaction.phenotype.value,
        )
        return Recommendation(
            gene=interaction.gene,
            drug=interaction.drug,
            risk_tier=tier,
            text=text,
            strength=INSUFFICIENT_DATA_STRENGTH[tier],
        )
