"""
Phenotype Mapper - diplotype to metabolizer phenotype lookup.

Pure table lookup against the catalog's phenotype maps. A diplotype that has
no entry resolves to Unknown Metabolizer with no activity score; nothing is
inferred from partial matches or neighbouring entries.
"""

from typing import List, Optional, Sequence
import logging

from .catalog_loader import Catalog, get_catalog
from .models import AlleleCall, PhenotypeCall, PhenotypeLabel

logger = logging.getLogger(__name__)

# Short code -> CPIC long name, accepted on input only
PHENOTYPE_SHORT_TO_LONG = {
    "PM": PhenotypeLabel.POOR,
    "IM": PhenotypeLabel.INTERMEDIATE,
    "NM": PhenotypeLabel.NORMAL,
    "RM": PhenotypeLabel.RAPID,
    "UM": PhenotypeLabel.ULTRARAPID,
}


def to_phenotype_label(value: str) -> Optional[PhenotypeLabel]:
    """Parse a long label or a short code; None when it is not in the vocabulary."""
    value = value.strip()
    if value.upper() in PHENOTYPE_SHORT_TO_LONG:
        return PHENOTYPE_SHORT_TO_LONG[value.upper()]
    try:
        return PhenotypeLabel(value)
    except ValueError:
        return None


class PhenotypeResolver:
    """Maps AlleleCalls to PhenotypeCalls."""

    def __init__(self, catalog: Optional[Catalog] = None):
        self.catalog = catalog or get_catalog()

    def resolve(self, call: AlleleCall) -> PhenotypeCall:
        entry = self.catalog.lookup_phenotype(call.gene, call.notation)
        if entry is None:
            logger.info("%s: no phenotype mapping for %s", call.gene, call.notation)
            return PhenotypeCall(
                gene=call.gene,
                diplotype=call.notation,
                phenotype=PhenotypeLabel.UNKNOWN,
                activity_score=None,
            )

        label = to_phenotype_label(entry.phenotype)
        if label is None:
            logger.warning(
                "%s: %s maps to unrecognised phenotype '%s'; reporting Unknown",
                call.gene, call.notation, entry.phenotype,
            )
            return PhenotypeCall(
                gene=call.gene,
                diplotype=call.notation,
                phenotype=PhenotypeLabel.UNKNOWN,
                activity_score=None,
            )

        return PhenotypeCall(
            gene=call.gene,
            diplotype=call.notation,
            phenotype=label,
            activity_score=entry.activity_score,
        )

    def resolve_all(self, calls: Sequence[AlleleCall]) -> List[PhenotypeCall]:
        """One PhenotypeCall per AlleleCall, same order."""
        return [self.resolve(call) for call in calls]
