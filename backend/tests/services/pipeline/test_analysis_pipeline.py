import gzip
import json
import threading

import pytest

from conftest import (
    CYP2C9_STAR3,
    CYP2C19_STAR2,
    CYP2C19_STAR17,
    CYP2D6_STAR4_HOM,
    FIXED_TIME,
    OFF_TARGET,
    SAMPLE_ID,
    FakeTextService,
    vcf_lines,
    vcf_record,
)
from app.services.pharmacogenomics.catalog_loader import DIRECTIVE_KEYWORDS
from app.services.pharmacogenomics.models import ExplanationSource, PhenotypeLabel, RiskTier
from app.services.pharmacogenomics.recommendation_engine import RecommendationBuilder
from app.services.pharmacogenomics.risk_engine import RiskClassifier
from app.services.pipeline import analysis_pipeline
from app.services.pipeline.analysis_pipeline import AnalysisPipeline
from app.services.pipeline.errors import ASSEMBLY_MISMATCH, INTERNAL_ERROR, AnalysisError, UploadNotFoundError


def gene_of(report, gene):
    return next(g for g in report.genes if g.gene == gene)


class DroppingRecommender(RecommendationBuilder):
    """Loses the recommendation of the first interaction."""

    def build_all(self, interactions):
        return super().build_all(interactions)[1:]


class BrokenClassifier(RiskClassifier):
    def classify(self, phenotypes, drugs=None):
        raise RuntimeError("risk table corrupted")


class TestScenarios:
    def test_no_target_variants_gives_wildtype_panel(self, pipeline, catalog):
        report = pipeline.analyze_lines(vcf_lines([OFF_TARGET]))

        assert [g.gene for g in report.genes] == list(catalog.panel)
        for g in report.genes:
            assert g.diplotype == "*1/*1"
            assert g.phenotype == PhenotypeLabel.NORMAL
        assert all(i.phenotype == PhenotypeLabel.NORMAL for i in report.interactions)
        assert all(i.risk_tier == RiskTier.NONE for i in report.interactions)

    def test_empty_stream(self, pipeline, catalog):
        report = pipeline.analyze_lines([])
        assert len(report.genes) == len(catalog.panel)
        assert report.subject_id == pipeline.config.default_subject_id

    def test_homozygous_poor_function_allele(self, pipeline):
        report = pipeline.analyze_lines(vcf_lines(CYP2D6_STAR4_HOM))

        cyp2d6 = gene_of(report, "CYP2D6")
        assert cyp2d6.diplotype == "*4/*4"
        assert cyp2d6.phenotype == PhenotypeLabel.POOR

        high = [i for i in report.interactions if i.gene == "CYP2D6" and i.risk_tier == RiskTier.HIGH]
        assert {i.drug for i in high} == {"CODEINE", "AMITRIPTYLINE"}
        recs = {r.key: r for r in report.recommendations}
        for interaction in high:
            text = recs[interaction.key].text.lower()
            assert any(k in text for k in DIRECTIVE_KEYWORDS)

    def test_text_service_disabled(self, pipeline):
        report = pipeline.analyze_lines(vcf_lines([CYP2C19_STAR2, CYP2C9_STAR3]))
        assert len(report.explanations) == len(report.interactions)
        assert all(e.source == ExplanationSource.FALLBACK and e.text for e in report.explanations)
        assert pipeline.gate.check(report) is report

    def test_unknown_drug_and_full_catalog(self, pipeline, catalog):
        report = pipeline.analyze_lines(vcf_lines([]), ["aspirin"])
        assert report.interactions == ()

        full = pipeline.analyze_lines(vcf_lines([]), [])
        assert {i.drug for i in full.interactions} == set(catalog.supported_drugs())

    def test_malformed_record_among_valid_ones(self, pipeline):
        records = [
            vcf_record("chr10", 94762000 + i, None, "A", "G") for i in range(50)
        ]
        records.insert(25, "chr10\tnot-a-position\t.\tA\tG\t60\tPASS\t.\tGT\t0/1")
        report = pipeline.analyze_lines(vcf_lines(records + [CYP2C19_STAR17]))

        assert gene_of(report, "CYP2C19").diplotype == "*17/*17"

    def test_non_ascii_position_does_not_abort(self, pipeline):
        bad = CYP2C19_STAR2.replace("94781859", "9478185\u00b2")
        report = pipeline.analyze_lines(vcf_lines([bad, CYP2C19_STAR17]), ["clopidogrel"])
        assert gene_of(report, "CYP2C19").diplotype == "*17/*17"

    def test_assembly_mismatch_is_classified(self, catalog, offline_config, fixed_clock, upload_store):
        pipeline = AnalysisPipeline(
            catalog=catalog,
            config=offline_config,
            clock=fixed_clock,
            upload_store=upload_store,
            recommender=DroppingRecommender(catalog),
        )
        with pytest.raises(AnalysisError) as exc_info:
            pipeline.analyze_lines(vcf_lines([CYP2C19_STAR2]))
        assert exc_info.value.code == ASSEMBLY_MISMATCH


class TestPipeline:
    def test_idempotent(self, pipeline):
        lines = vcf_lines(CYP2D6_STAR4_HOM + [CYP2C19_STAR2, CYP2C9_STAR3])
        first = pipeline.render(pipeline.analyze_lines(lines))
        second = pipeline.render(pipeline.analyze_lines(lines))
        assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
        assert first["analysis_date"] == FIXED_TIME.isoformat()

    def test_subject_id_from_header_and_override(self, pipeline):
        assert pipeline.analyze_lines(vcf_lines([])).subject_id == SAMPLE_ID
        assert pipeline.analyze_lines(vcf_lines([]), subject_id="P-42").subject_id == "P-42"

    def test_analyze_stored_upload(self, pipeline, upload_store):
        handle = upload_store.save("patient.vcf", "".join(vcf_lines([CYP2C19_STAR2])).encode())
        report = pipeline.analyze(handle, ["clopidogrel"])
        (interaction,) = report.interactions
        assert interaction.key == ("CYP2C19", "CLOPIDOGREL")
        assert interaction.risk_tier == RiskTier.HIGH

    def test_analyze_gzip_upload(self, pipeline, upload_store):
        content = gzip.compress("".join(vcf_lines(CYP2D6_STAR4_HOM)).encode())
        handle = upload_store.save("patient.vcf.gz", content)
        report = pipeline.analyze(handle, ["codeine"])
        assert gene_of(report, "CYP2D6").diplotype == "*4/*4"

    def test_unknown_handle(self, pipeline):
        with pytest.raises(UploadNotFoundError):
            pipeline.analyze("0" * 32)

    def test_unexpected_failure_is_internal_error(self, catalog, offline_config, fixed_clock):
        pipeline = AnalysisPipeline(
            catalog=catalog,
            config=offline_config,
            clock=fixed_clock,
            classifier=BrokenClassifier(catalog),
        )
        with pytest.raises(AnalysisError) as exc_info:
            pipeline.analyze_lines(vcf_lines([]))
        assert exc_info.value.code == INTERNAL_ERROR

    def test_generated_explanations(self, catalog, offline_config, fixed_clock):
        service = FakeTextService(reply="Reduced CYP2C19 activity lowers active metabolite levels.")
        pipeline = AnalysisPipeline(
            catalog=catalog, config=offline_config, text_service=service, clock=fixed_clock,
        )
        report = pipeline.analyze_lines(vcf_lines([CYP2C19_STAR2]), ["clopidogrel", "warfarin"])
        assert len(service.prompts) == 2
        assert all(e.source == ExplanationSource.GENERATED for e in report.explanations)

    def test_extraction_runs_off_the_event_loop_thread(self, pipeline, monkeypatch):
        threads = []
        real_extract = analysis_pipeline.extract_variants

        def recording_extract(*args, **kwargs):
            threads.append(threading.get_ident())
            return real_extract(*args, **kwargs)

        monkeypatch.setattr(analysis_pipeline, "extract_variants", recording_extract)
        report = pipeline.analyze_lines(vcf_lines([CYP2C19_STAR2]))

        assert gene_of(report, "CYP2C19").diplotype == "*2/*2"
        assert threads and threads[0] != threading.get_ident()

    def test_module_level_analyze(self, pipeline, upload_store, monkeypatch):
        monkeypatch.setattr(analysis_pipeline, "_pipeline", pipeline)
        handle = upload_store.save("patient.vcf", "".join(vcf_lines([CYP2C9_STAR3])).encode())
        report = analysis_pipeline.analyze(handle, ["warfarin"])
        assert gene_of(report, "CYP2C9").diplotype == "*3/*3"
