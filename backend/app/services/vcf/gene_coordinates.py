from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.services.pharmacogenomics.catalog_loader import Catalog


@dataclass(frozen=True)
class GeneInterval:
    chrom: str
    start_1based: int
    end_1based: int

    def contains(self, chrom: str, pos_1based: int) -> bool:
        if chrom != self.chrom:
            return False
        return self.start_1based <= pos_1based <= self.end_1based


def normalize_chrom(chrom: str) -> str:
    c = chrom.strip()
    if not c:
        return c
    if c.lower().startswith("chr"):
        c = c[3:]
    if c.upper() in ("M", "MT"):
        return "chrM"
    return f"chr{c.upper() if c.isalpha() else c}"


class GeneRegionIndex:
    """
    Static gene -> coordinate range table for the configured panel.
    Regions are 1-based inclusive and must not overlap.
    """

    def __init__(self, intervals: Dict[str, GeneInterval]):
        self._intervals: Dict[str, GeneInterval] = dict(intervals)
        by_chrom: Dict[str, List[Tuple[str, GeneInterval]]] = {}
        for gene, interval in self._intervals.items():
            by_chrom.setdefault(interval.chrom, []).append((gene, interval))
        self._by_chrom = {c: tuple(items) for c, items in by_chrom.items()}
        self._check_overlaps()

    @classmethod
    def from_catalog(cls, catalog: Catalog) -> "GeneRegionIndex":
        intervals = {}
        for gene in catalog.panel:
            region = catalog.gene(gene).region
            intervals[gene] = GeneInterval(
                chrom=normalize_chrom(region.chrom),
                start_1based=region.start,
                end_1based=region.end,
            )
        return cls(intervals)

    def _check_overlaps(self) -> None:
        for chrom, items in self._by_chrom.items():
            ordered = sorted(items, key=lambda item: item[1].start_1based)
            for (g1, a), (g2, b) in zip(ordered, ordered[1:]):
                if b.start_1based <= a.end_1based:
                    raise ValueError(f"Gene regions {g1} and {g2} overlap on {chrom}")

    def gene_at(self, chrom: str, pos_1based: int) -> Optional[str]:
        """Return the panel gene whose region contains the position, if any."""
        chrom = normalize_chrom(chrom)
        for gene, interval in self._by_chrom.get(chrom, ()):
            if interval.contains(chrom, pos_1based):
                return gene
        return None
