"""
Allele Matcher - star allele calling from gene-scoped variants.

Each named allele in the catalog carries a signature (rsIDs and/or
position+ALT pairs). A gene's variants are scored against every signature,
candidates explained by a more specific allele are dropped, and the survivors
are reduced to a tagged outcome (Wildtype, Homozygous, Heterozygous or
Ambiguous) that is finally rendered as one AlleleCall per panel gene.
"""

from typing import Dict, FrozenSet, List, Optional, Sequence
import logging

from .catalog_loader import Catalog, get_catalog, normalize_diplotype
from .models import (
    AlleleCall,
    AlleleCandidate,
    Ambiguous,
    Confidence,
    ExtractionResult,
    Heterozygous,
    Homozygous,
    MatchOutcome,
    Variant,
    Wildtype,
)

logger = logging.getLogger(__name__)


class AlleleMatcher:
    """Matches variants against the catalog's allele signatures."""

    def __init__(self, catalog: Optional[Catalog] = None):
        self.catalog = catalog or get_catalog()

    def candidates(self, gene: str, variants: Sequence[Variant]) -> List[AlleleCandidate]:
        """
        Alleles with at least one satisfied signature element, ranked.
        Subsumed candidates are removed.
        """
        entry = self.catalog.gene(gene)
        scored: List[AlleleCandidate] = []
        evidence: Dict[str, FrozenSet[int]] = {}

        for order, (allele, signature) in enumerate(entry.alleles.items()):
            # An empty signature is the wild-type definition, never a candidate
            if allele == entry.wildtype or not signature:
                continue
            satisfied = 0
            matched_variants = set()
            for element in signature:
                hits = [i for i, v in enumerate(variants) if element.matches(v)]
                if hits:
                    satisfied += 1
                    matched_variants.update(hits)
            if satisfied:
                scored.append(AlleleCandidate(
                    allele=allele, satisfied=satisfied, required=len(signature), order=order
                ))
                evidence[allele] = frozenset(matched_variants)

        kept = [c for c in scored if not self._is_subsumed(c, scored, evidence)]
        for c in scored:
            if c not in kept:
                logger.debug("%s: %s subsumed by a more specific allele", gene, c.allele)
        return sorted(kept, key=lambda c: c.rank_key())

    @staticmethod
    def _is_subsumed(
        candidate: AlleleCandidate,
        others: Sequence[AlleleCandidate],
        evidence: Dict[str, FrozenSet[int]],
    ) -> bool:
        mine = evidence[candidate.allele]
        for other in others:
            if other.allele == candidate.allele:
                continue
            theirs = evidence[other.allele]
            if mine < theirs:
                return True
            if mine == theirs and not candidate.complete and other.complete:
                return True
        return False

    def match(self, gene: str, variants: Sequence[Variant]) -> MatchOutcome:
        ranked = self.candidates(gene, variants)

        if not ranked:
            return Wildtype()
        if len(ranked) == 1:
            return Homozygous(allele=ranked[0])

        first, second = ranked[0], ranked[1]
        # A tie for second place leaves the pairing undecided
        if len(ranked) > 2 and _same_score(ranked[2], second):
            return Ambiguous(candidates=tuple(ranked))
        return Heterozygous(first=first, second=second)

    def to_call(self, gene: str, outcome: MatchOutcome) -> AlleleCall:
        wildtype = self.catalog.gene(gene).wildtype

        if isinstance(outcome, Wildtype):
            a1, a2, confidence = wildtype, wildtype, Confidence.HIGH
        elif isinstance(outcome, Homozygous):
            a1 = a2 = outcome.allele.allele
            confidence = Confidence.HIGH if outcome.allele.complete else Confidence.MEDIUM
        elif isinstance(outcome, Heterozygous):
            a1, a2 = outcome.first.allele, outcome.second.allele
            both_complete = outcome.first.complete and outcome.second.complete
            confidence = Confidence.HIGH if both_complete else Confidence.MEDIUM
        elif isinstance(outcome, Ambiguous):
            a1, a2 = outcome.candidates[0].allele, outcome.candidates[1].allele
            confidence = Confidence.LOW
            logger.warning(
                "%s: ambiguous allele evidence among %s; reporting %s/%s",
                gene, [c.allele for c in outcome.candidates], a1, a2,
            )
        else:
            raise TypeError(f"Unhandled match outcome: {outcome!r}")

        notation = normalize_diplotype(f"{a1}/{a2}", wildtype)
        left, right = notation.split("/")
        return AlleleCall(gene=gene, allele1=left, allele2=right, notation=notation, confidence=confidence)

    def call(self, gene: str, variants: Sequence[Variant]) -> AlleleCall:
        return self.to_call(gene, self.match(gene, variants))

    def call_all(self, extraction: ExtractionResult) -> List[AlleleCall]:
        """One AlleleCall per panel gene, in panel order."""
        return [self.call(gene, extraction.variants_for(gene)) for gene in self.catalog.panel]


def _same_score(a: AlleleCandidate, b: AlleleCandidate) -> bool:
    return a.complete == b.complete and a.satisfied == b.satisfied
