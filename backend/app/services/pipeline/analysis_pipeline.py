"""
Analysis Pipeline - variant stream -> validated Report.

Extractor -> Allele Matcher -> Phenotype Resolver -> Risk Classifier ->
Recommendation Builder -> Narrative Generator -> Assembler -> Validation Gate.
Each stage consumes only the previous stage's output. The only internal
fan-out is narrative generation, which is joined before assembly.
"""
import asyncio
import functools
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from app.services.llm.base import TextGenerationService
from app.services.llm.explanation_service import NarrativeGenerator
from app.services.pharmacogenomics.allele_matcher import AlleleMatcher
from app.services.pharmacogenomics.catalog_loader import Catalog, get_catalog
from app.services.pharmacogenomics.config import PipelineConfig, get_config
from app.services.pharmacogenomics.models import Report
from app.services.pharmacogenomics.phenotype_mapper import PhenotypeResolver
from app.services.pharmacogenomics.recommendation_engine import RecommendationBuilder
from app.services.pharmacogenomics.risk_engine import RiskClassifier
from app.services.pipeline.errors import INTERNAL_ERROR, AnalysisError
from app.services.pipeline.report_assembler import assemble_report
from app.services.pipeline.validation_gate import ValidationGate
from app.services.storage.upload_store import LocalUploadStore, get_upload_store
from app.services.vcf.gene_coordinates import GeneRegionIndex
from app.services.vcf.variant_extractor import extract_variants

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class AnalysisPipeline:
    """
    One configured pipeline. Holds only read-only collaborators, so a single
    instance can serve concurrent analyses.
    """

    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        config: Optional[PipelineConfig] = None,
        text_service: Optional[TextGenerationService] = None,
        clock: Optional[Clock] = None,
        upload_store: Optional[LocalUploadStore] = None,
        matcher: Optional[AlleleMatcher] = None,
        resolver: Optional[PhenotypeResolver] = None,
        classifier: Optional[RiskClassifier] = None,
        recommender: Optional[RecommendationBuilder] = None,
        narrator: Optional[NarrativeGenerator] = None,
    ):
        self.catalog = catalog or get_catalog()
        self.config = config or get_config()
        self.clock = clock or utc_now
        self._upload_store = upload_store

        self.region_index = GeneRegionIndex.from_catalog(self.catalog)
        self.matcher = matcher or AlleleMatcher(self.catalog)
        self.resolver = resolver or PhenotypeResolver(self.catalog)
        self.classifier = classifier or RiskClassifier(self.catalog)
        self.recommender = recommender or RecommendationBuilder(self.catalog)
        self.narrator = narrator or NarrativeGenerator(text_service, self.config.narrative)
        self.gate = ValidationGate(self.catalog.panel, self.config.contract)

    @property
    def upload_store(self) -> LocalUploadStore:
        return self._upload_store or get_upload_store()

    async def analyze_lines_async(
        self,
        lines: Iterable[str],
        requested_drugs: Optional[Sequence[str]] = None,
        subject_id: Optional[str] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> Report:
        """Run every stage over a line stream. Raises AnalysisError on contract failure."""
        try:
            # Line iteration and extraction are blocking; keep them off the event loop
            extraction = await asyncio.get_running_loop().run_in_executor(
                None,
                functools.partial(
                    extract_variants, lines,
                    region_index=self.region_index, config=self.config.extraction,
                ),
            )
            allele_calls = self.matcher.call_all(extraction)
            phenotypes = self.resolver.resolve_all(allele_calls)
            interactions = self.classifier.classify(phenotypes, requested_drugs)
            recommendations = self.recommender.build_all(interactions)
            explanations = await self.narrator.explain_all(
                interactions, recommendations, phenotypes, abort=abort
            )

            report = assemble_report(
                subject_id=subject_id or extraction.subject_id or self.config.default_subject_id,
                analysis_timestamp=self.clock().isoformat(),
                catalog_version=self.catalog.catalog_version,
                phenotypes=phenotypes,
                interactions=interactions,
                recommendations=recommendations,
                explanations=explanations,
            )
            accepted = self.gate.check(report)
        except AnalysisError as e:
            logger.error("Analysis rejected (%s): %s", e.code, e)
            raise
        except Exception as e:
            logger.exception("Unexpected error in analysis pipeline")
            raise AnalysisError(f"analysis failed: {e}", code=INTERNAL_ERROR) from e

        logger.info(
            "Analysis complete for %s: %d genes, %d interactions",
            accepted.subject_id, len(accepted.genes), len(accepted.interactions),
        )
        return accepted

    async def analyze_async(
        self,
        handle: str,
        requested_drugs: Optional[Sequence[str]] = None,
        subject_id: Optional[str] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> Report:
        """Analyze an upload by its store handle."""
        with self.upload_store.open_stream(handle) as stream:
            return await self.analyze_lines_async(stream, requested_drugs, subject_id, abort)

    def analyze_lines(
        self,
        lines: Iterable[str],
        requested_drugs: Optional[Sequence[str]] = None,
        subject_id: Optional[str] = None,
    ) -> Report:
        return asyncio.run(self.analyze_lines_async(lines, requested_drugs, subject_id))

    def analyze(
        self,
        handle: str,
        requested_drugs: Optional[Sequence[str]] = None,
        subject_id: Optional[str] = None,
    ) -> Report:
        """Synchronous entry point; must not be called from inside a running event loop."""
        return asyncio.run(self.analyze_async(handle, requested_drugs, subject_id))

    def render(self, report: Report) -> dict:
        return self.gate.render(report)


_pipeline: Optional[AnalysisPipeline] = None


def get_pipeline() -> AnalysisPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = AnalysisPipeline()
    return _pipeline


def analyze(handle: str, requested_drugs: Optional[Sequence[str]] = None, **kwargs) -> Report:
    """Analyze an uploaded variant file: returns a validated Report or raises AnalysisError."""
    return get_pipeline().analyze(handle, requested_drugs, **kwargs)


async def analyze_async(handle: str, requested_drugs: Optional[Sequence[str]] = None, **kwargs) -> Report:
    return await get_pipeline().analyze_async(handle, requested_drugs, **kwargs)
