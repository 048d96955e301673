import json

import pytest

from conftest import make_variant
from app.services.pharmacogenomics.allele_matcher import AlleleMatcher
from app.services.pharmacogenomics.catalog_loader import DEFAULT_CATALOG_PATH, Catalog
from app.services.pharmacogenomics.models import (
    Ambiguous,
    Confidence,
    ExtractionResult,
    Heterozygous,
    Homozygous,
    Wildtype,
)

STAR4_A = make_variant("CYP2D6", 42128945, "T", "rs3892097")
STAR4_B = make_variant("CYP2D6", 42130692, "A", "rs1065852")


class TestAlleleMatcher:
    @pytest.fixture
    def matcher(self, catalog):
        return AlleleMatcher(catalog)

    def test_no_variants_is_wildtype(self, matcher):
        assert isinstance(matcher.match("CYP2D6", []), Wildtype)
        call = matcher.call("CYP2D6", [])
        assert call.notation == "*1/*1"
        assert call.confidence == Confidence.HIGH

    def test_every_panel_gene_gets_one_call(self, matcher, catalog):
        calls = matcher.call_all(ExtractionResult())
        assert [c.gene for c in calls] == list(catalog.panel)
        assert all(c.notation == "*1/*1" and c.confidence == Confidence.HIGH for c in calls)

    def test_complete_signature_single_match_is_homozygous(self, matcher):
        outcome = matcher.match("CYP2D6", [STAR4_A, STAR4_B])
        assert isinstance(outcome, Homozygous)
        assert outcome.allele.allele == "*4"

        call = matcher.to_call("CYP2D6", outcome)
        assert call.notation == "*4/*4"
        assert call.confidence == Confidence.HIGH

    def test_more_specific_allele_subsumes(self, matcher):
        # rs1065852 alone fully defines *10 and only half of *4
        call = matcher.call("CYP2D6", [STAR4_B])
        assert call.notation == "*10/*10"
        assert call.confidence == Confidence.HIGH

    def test_composite_allele_subsumes_its_parts(self, matcher):
        variants = [
            make_variant("TPMT", 18138997, "T", "rs1800460"),
            make_variant("TPMT", 18130687, "C", "rs1142345"),
        ]
        assert matcher.call("TPMT", variants).notation == "*3A/*3A"

    def test_partial_signature_is_medium_confidence(self, matcher):
        call = matcher.call("CYP2D6", [STAR4_A])
        assert call.notation == "*4/*4"
        assert call.confidence == Confidence.MEDIUM

    def test_two_distinct_alleles_are_heterozygous(self, matcher):
        variants = [
            make_variant("CYP2C19", 94781859, "A", "rs4244285"),
            make_variant("CYP2C19", 94761900, "T", "rs12248560"),
        ]
        outcome = matcher.match("CYP2C19", variants)
        assert isinstance(outcome, Heterozygous)

        call = matcher.to_call("CYP2C19", outcome)
        assert (call.allele1, call.allele2) == ("*2", "*17")
        assert call.notation == "*2/*17"
        assert call.confidence == Confidence.HIGH

    def test_three_equally_scored_alleles_are_ambiguous(self, matcher):
        variants = [
            make_variant("CYP2D6", 42127941, "A", "rs16947"),
            make_variant("CYP2D6", 42129084, "-", "rs5030655"),
            make_variant("CYP2D6", 42127803, "T", "rs28371725"),
        ]
        outcome = matcher.match("CYP2D6", variants)
        assert isinstance(outcome, Ambiguous)
        assert len(outcome.candidates) == 3

        call = matcher.to_call("CYP2D6", outcome)
        assert call.notation == "*2/*6"
        assert call.confidence == Confidence.LOW

    def test_matches_by_position_and_alt_without_rsid(self, matcher):
        call = matcher.call("CYP2C19", [make_variant("CYP2C19", 94781859, "A")])
        assert call.notation == "*2/*2"

    def test_wrong_alt_does_not_match(self, matcher):
        call = matcher.call("CYP2C19", [make_variant("CYP2C19", 94781859, "C")])
        assert call.notation == "*1/*1"

    def test_equal_evidence_prefers_complete_signature(self, matcher):
        variants = [
            make_variant("CYP2D6", 42128945, "T", "rs3892097"),
            make_variant("CYP2D6", 42127803, "T", "rs28371725"),
        ]
        ranked = matcher.candidates("CYP2D6", variants)
        assert [c.allele for c in ranked] == ["*41", "*4"]
        assert ranked[0].complete and not ranked[1].complete
        assert matcher.call("CYP2D6", variants).confidence == Confidence.MEDIUM


STAR8_SITES = (94942300, 94942310, 94942320)
CYP2C9_STAR2 = make_variant("CYP2C9", 94942290, "T", "rs1799853")
CYP2C9_STAR3 = make_variant("CYP2C9", 94981296, "C", "rs1057910")


class TestMultiElementSignatures:
    @pytest.fixture
    def matcher(self):
        with open(DEFAULT_CATALOG_PATH) as f:
            raw = json.load(f)
        raw["genes"]["CYP2C9"]["alleles"]["*8"] = [{"pos": p, "alt": "T"} for p in STAR8_SITES]
        return AlleleMatcher(Catalog.model_validate(raw))

    def test_more_satisfied_elements_rank_first(self, matcher):
        variants = [make_variant("CYP2C9", p, "T") for p in STAR8_SITES[:2]] + [CYP2C9_STAR2]
        ranked = matcher.candidates("CYP2C9", variants)
        assert [c.allele for c in ranked] == ["*8", "*2"]
        assert ranked[0].satisfied == 2 and not ranked[0].complete

        call = matcher.call("CYP2C9", variants)
        assert call.notation == "*2/*8"
        assert call.confidence == Confidence.MEDIUM

    def test_tie_for_second_place_is_ambiguous(self, matcher):
        variants = [make_variant("CYP2C9", p, "T") for p in STAR8_SITES[:2]] + [CYP2C9_STAR2, CYP2C9_STAR3]
        outcome = matcher.match("CYP2C9", variants)
        assert isinstance(outcome, Ambiguous)
        assert [c.allele for c in outcome.candidates] == ["*8", "*2", "*3"]

        call = matcher.to_call("CYP2C9", outcome)
        assert call.notation == "*2/*8"
        assert call.confidence == Confidence.LOW
