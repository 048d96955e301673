import logging
from typing import Dict, List, Sequence, Tuple, TypeVar

from app.services.pharmacogenomics.models import (
    Explanation,
    Interaction,
    PhenotypeCall,
    Recommendation,
    Report,
)
from app.services.pipeline.errors import ASSEMBLY_MISMATCH, ContractViolationError

logger = logging.getLogger(__name__)

T = TypeVar("T", Recommendation, Explanation)


def _index_by_key(entries: Sequence[T], label: str) -> Dict[Tuple[str, str], T]:
    indexed: Dict[Tuple[str, str], T] = {}
    for entry in entries:
        if entry.key in indexed:
            raise ContractViolationError(
                f"duplicate {label} for {entry.key[0]}/{entry.key[1]}", code=ASSEMBLY_MISMATCH
            )
        indexed[entry.key] = entry
    return indexed


def assemble_report(
    *,
    subject_id: str,
    analysis_timestamp: str,
    catalog_version: str,
    phenotypes: Sequence[PhenotypeCall],
    interactions: Sequence[Interaction],
    recommendations: Sequence[Recommendation],
    explanations: Sequence[Explanation],
) -> Report:
    """
    Merge stage outputs into one Report. Recommendations and explanations are
    re-ordered to follow their interactions; any interaction without exactly
    one of each, or any orphan entry, rejects the assembly.
    """
    recs = _index_by_key(recommendations, "recommendation")
    expls = _index_by_key(explanations, "explanation")

    ordered_recs: List[Recommendation] = []
    ordered_expls: List[Explanation] = []
    seen = set()

    for interaction in interactions:
        key = interaction.key
        if key in seen:
            raise ContractViolationError(
                f"duplicate interaction for {key[0]}/{key[1]}", code=ASSEMBLY_MISMATCH
            )
        seen.add(key)
        if key not in recs:
            raise ContractViolationError(
                f"interaction {key[0]}/{key[1]} has no recommendation", code=ASSEMBLY_MISMATCH
            )
        if key not in expls:
            raise ContractViolationError(
                f"interaction {key[0]}/{key[1]} has no explanation", code=ASSEMBLY_MISMATCH
            )
        ordered_recs.append(recs[key])
        ordered_expls.append(expls[key])

    orphans = (set(recs) | set(expls)) - seen
    if orphans:
        raise ContractViolationError(
            f"entries without an interaction: {sorted(orphans)}", code=ASSEMBLY_MISMATCH
        )

    return Report(
        subject_id=subject_id,
        analysis_timestamp=analysis_timestamp,
        catalog_version=catalog_version,
        genes=tuple(phenotypes),
        interactions=tuple(interactions),
        recommendations=tuple(ordered_recs),
        explanations=tuple(ordered_expls),
    )
