from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from app.services.pharmacogenomics.catalog_loader import get_catalog
from app.services.pharmacogenomics.config import ExtractionConfig, get_extraction_config
from app.services.pharmacogenomics.models import (
    ExtractionResult,
    ExtractionStatus,
    RejectedRecord,
    Variant,
)

from .gene_coordinates import GeneRegionIndex, normalize_chrom
from .parser import VcfHeaderInfo, VcfParseError, parse_header_line, parse_record_line

logger = logging.getLogger(__name__)

_PASSING_FILTERS = ("PASS", ".", "")


def extract_variants(
    lines: Iterable[str],
    *,
    region_index: Optional[GeneRegionIndex] = None,
    config: Optional[ExtractionConfig] = None,
) -> ExtractionResult:
    """
    Stream VCF lines and keep only records that fall inside a panel gene region.

    Malformed records are logged and quarantined with their line number; they
    never abort the stream. A stream with no record inside any region yields
    status NO_TARGET_VARIANTS rather than an error.
    """
    index = region_index or GeneRegionIndex.from_catalog(get_catalog())
    cfg = config or get_extraction_config()

    header = VcfHeaderInfo(patient_id=None, vcf_version=None, samples=[])
    variants: List[Variant] = []
    rejected: List[RejectedRecord] = []
    records_seen = 0

    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        if line.startswith("#"):
            header = parse_header_line(line, header)
            continue

        records_seen += 1
        if cfg.max_records is not None and records_seen > cfg.max_records:
            logger.info("Record cap of %d reached at line %d; stopping scan", cfg.max_records, line_number)
            records_seen -= 1
            break

        try:
            record = parse_record_line(line)
        except VcfParseError as e:
            logger.warning("Skipping malformed VCF record at line %d: %s", line_number, e)
            rejected.append(RejectedRecord(line_number=line_number, reason=str(e)))
            continue

        gene = index.gene_at(record.chrom, record.pos)
        if gene is None:
            continue

        filter_status = record.filter or "."
        if cfg.require_pass_filter and filter_status.upper() not in _PASSING_FILTERS:
            logger.debug("Line %d (%s) dropped: FILTER=%s", line_number, gene, filter_status)
            continue
        if cfg.exclude_reference_calls and record.is_reference_call:
            logger.debug("Line %d (%s) dropped: homozygous reference call", line_number, gene)
            continue

        for alt in record.alts:
            # Symbolic and spanning-deletion ALTs carry no matchable allele
            if alt == "*" or alt.startswith("<"):
                continue
            variants.append(
                Variant(
                    chromosome=normalize_chrom(record.chrom),
                    position=record.pos,
                    reference_allele=record.ref,
                    alternate_allele=alt.upper(),
                    gene=gene,
                    external_id=record.rsid,
                    quality=record.qual,
                    filter_status=filter_status,
                )
            )

    status = ExtractionStatus.OK if variants else ExtractionStatus.NO_TARGET_VARIANTS
    if status == ExtractionStatus.NO_TARGET_VARIANTS:
        logger.info("No target-gene variants among %d records", records_seen)
    else:
        logger.info(
            "Extracted %d target-gene variants from %d records (%d malformed)",
            len(variants), records_seen, len(rejected),
        )

    return ExtractionResult(
        subject_id=header.patient_id,
        variants=tuple(variants),
        status=status,
        records_seen=records_seen,
        rejected=tuple(rejected),
    )
