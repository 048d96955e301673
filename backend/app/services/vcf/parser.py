"""
Line-level VCF parsing.

Only the fields the extractor needs are interpreted: position, alleles,
identifiers, FILTER and the first sample's GT. Anything that cannot be
read raises VcfParseError so the caller can quarantine that one line.
"""
from __future__ import annotations

import gzip
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union


_BASES_RE = re.compile(r"^[ACGTNacgtn]+$")
_SYMBOLIC_RE = re.compile(r"^<[^<>]+>$")

# INFO keys some callers use for dbSNP ids when the ID column is empty
_INFO_RSID_KEYS = ("RS", "RSID", "rs")


class VcfParseError(ValueError):
    pass


@dataclass(frozen=True)
class VcfRecord:
    """One VCF data line, before gene assignment."""
    chrom: str
    pos: int
    ref: str
    alts: Tuple[str, ...]
    vid: Optional[str] = None
    qual: Optional[float] = None
    filter: Optional[str] = None
    info: Dict[str, str] = field(default_factory=dict)
    gt: Optional[str] = None

    @property
    def rsid(self) -> Optional[str]:
        if self.vid:
            ids = [t for t in self.vid.split(";") if t.startswith("rs")]
            if ids:
                return ids[0]
        for key in _INFO_RSID_KEYS:
            first = self.info.get(key, "").split(",")[0]
            if not _missing(first):
                return first if first.startswith("rs") else "rs" + first
        return None

    @property
    def is_reference_call(self) -> bool:
        """True when every called allele of the first sample is REF (0/0, 0|0, 0)."""
        if not self.gt:
            return False
        called = [a for a in re.split(r"[/|]", self.gt) if a not in ("", ".")]
        return bool(called) and all(a == "0" for a in called)


@dataclass(frozen=True)
class VcfHeaderInfo:
    patient_id: Optional[str]
    vcf_version: Optional[str]
    samples: List[str]


def iter_lines(content: Union[str, bytes, Iterable[str], Path]) -> Iterator[str]:
    """Yield text lines from a path (.gz is decompressed), raw text or bytes, or any line iterable."""
    if isinstance(content, Path):
        opener = gzip.open if content.name.endswith(".gz") else open
        with opener(content, "rt", encoding="utf-8", errors="replace") as f:
            yield from f
    elif isinstance(content, (str, bytes)):
        text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else content
        yield from text.splitlines(True)
    else:
        yield from content


def parse_header_line(line: str, header: VcfHeaderInfo) -> VcfHeaderInfo:
    """Fold one '#' line into the header seen so far."""
    if line.lower().startswith("##fileformat="):
        return VcfHeaderInfo(
            patient_id=header.patient_id,
            vcf_version=line.split("=", 1)[1].strip(),
            samples=header.samples,
        )
    if line.startswith("#CHROM"):
        cols = line.lstrip("#").split("\t")
        samples = [s.strip() for s in cols[9:] if s.strip()]
        return VcfHeaderInfo(
            patient_id=samples[0] if samples else None,
            vcf_version=header.vcf_version,
            samples=samples,
        )
    return header


def _missing(value: str) -> bool:
    return value in (".", "")


def parse_record_line(line: str) -> VcfRecord:
    """
    Parse one tab-separated data line.

    Raises VcfParseError with a short reason when the record is malformed.
    """
    cols = line.split("\t")
    if len(cols) < 8:
        raise VcfParseError(f"expected at least 8 tab-separated fields, got {len(cols)}")
    chrom, pos_col, id_col, ref, alt_col, qual_col, filter_col, info_col = cols[:8]

    if not chrom.strip():
        raise VcfParseError("empty CHROM")
    if not (pos_col.isascii() and pos_col.isdigit()):
        raise VcfParseError(f"non-numeric POS '{pos_col}'")
    try:
        pos = int(pos_col)
    except ValueError:
        raise VcfParseError(f"non-numeric POS '{pos_col}'")
    if pos < 1:
        raise VcfParseError(f"POS must be >= 1, got {pos}")
    if not _BASES_RE.match(ref):
        raise VcfParseError(f"invalid REF '{ref}'")

    alts = () if _missing(alt_col) else tuple(alt_col.split(","))
    bad = [a for a in alts if not (_BASES_RE.match(a) or _SYMBOLIC_RE.match(a) or a == "*")]
    if bad:
        raise VcfParseError(f"invalid ALT '{bad[0]}'")

    qual = None
    if not _missing(qual_col):
        try:
            qual = float(qual_col)
        except ValueError:
            raise VcfParseError(f"non-numeric QUAL '{qual_col}'")

    return VcfRecord(
        chrom=chrom,
        pos=pos,
        ref=ref.upper(),
        alts=alts,
        vid=None if _missing(id_col) else id_col,
        qual=qual,
        filter=None if _missing(filter_col) else filter_col,
        info=_parse_info(info_col),
        gt=_first_sample_gt(cols[8:10]),
    )


def _parse_info(info_col: str) -> Dict[str, str]:
    """KEY=VALUE pairs as raw strings; flags map to an empty string."""
    if _missing(info_col):
        return {}
    pairs = (item.partition("=") for item in info_col.split(";") if item)
    return {key: value for key, _, value in pairs}


def _first_sample_gt(format_and_sample: List[str]) -> Optional[str]:
    if len(format_and_sample) < 2 or _missing(format_and_sample[0]):
        return None
    keys = format_and_sample[0].split(":")
    values = format_and_sample[1].split(":")
    if "GT" not in keys:
        return None
    i = keys.index("GT")
    return values[i] if i < len(values) else None
