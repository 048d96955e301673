import logging
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from app.schemas.report_contract import ReportContract
from app.services.pharmacogenomics.config import ContractConfig, get_contract_config
from app.services.pharmacogenomics.models import Report
from app.services.pipeline.errors import VALIDATION_FAILED, ContractViolationError

logger = logging.getLogger(__name__)


def render_report(report: Report, contract: ContractConfig) -> Dict[str, Any]:
    """Render a Report in the output contract's shape (no internal-only fields)."""
    return {
        "subject_id": report.subject_id,
        "analysis_date": report.analysis_timestamp,
        "genes": [
            {
                "name": g.gene,
                "diplotype": g.diplotype,
                "phenotype": g.phenotype.value,
                "activity_score": g.activity_score,
            }
            for g in report.genes
        ],
        "drug_interactions": [
            {
                "gene_name": i.gene,
                "drug_name": i.drug,
                "risk_level": contract.risk_levels.get(i.risk_tier.value, i.risk_tier.value),
                "phenotype": i.phenotype.value,
                "evidence_level": i.evidence_tier,
            }
            for i in report.interactions
        ],
        "recommendations": [
            {
                "gene_name": r.gene,
                "drug_name": r.drug,
                "recommendation": r.text,
                "strength": contract.strengths.get(r.strength.value, r.strength.value),
                "alternatives": list(r.alternatives),
            }
            for r in report.recommendations
        ],
        "explanations": [
            {
                "gene_name": e.gene,
                "drug_name": e.drug,
                "explanation": e.text,
            }
            for e in report.explanations
        ],
    }


class ValidationGate:
    """
    Terminal check of the output contract. Stateless: the same report is
    accepted or rejected the same way every time.
    """

    def __init__(self, panel: Sequence[str], contract: Optional[ContractConfig] = None):
        self.panel = tuple(panel)
        self.contract = contract or get_contract_config()

    def _context(self) -> Dict[str, Any]:
        return {
            "panel": self.panel,
            "risk_levels": set(self.contract.risk_levels.values()),
            "strengths": set(self.contract.strengths.values()),
        }

    def check(self, report: Report) -> Report:
        """Return the report unchanged if it satisfies the contract, else raise."""
        self.validate_payload(render_report(report, self.contract))
        return report

    def validate_payload(self, payload: Dict[str, Any]) -> ReportContract:
        try:
            return ReportContract.model_validate(payload, context=self._context())
        except ValidationError as e:
            logger.error("Report rejected by validation gate: %d error(s)", e.error_count())
            raise ContractViolationError(
                f"report violates the output contract: {e}", code=VALIDATION_FAILED
            ) from e

    def render(self, report: Report) -> Dict[str, Any]:
        """Contract payload of an accepted report."""
        payload = render_report(report, self.contract)
        return self.validate_payload(payload).model_dump()
