import asyncio
import logging
import re
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from app.services.llm.base import TextGenerationService, get_text_service
from app.services.llm.prompt_builder import build_prompt
from app.services.pharmacogenomics.config import NarrativeConfig, get_narrative_config
from app.services.pharmacogenomics.models import (
    Explanation,
    ExplanationSource,
    Interaction,
    PhenotypeCall,
    Recommendation,
    RiskTier,
)

logger = logging.getLogger(__name__)


class NarrativeState(str, Enum):
    """Lifecycle of one interaction's narrative request."""
    PENDING = "pending"
    REQUESTED = "requested"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    RESOLVED = "resolved"


# One deterministic template per risk tier
FALLBACK_TEMPLATES: Dict[RiskTier, str] = {
    RiskTier.HIGH: (
        "{gene} {phenotype} status is associated with a high-risk interaction with {drug}. "
        "Guideline-based recommendations suggest avoiding standard therapy or selecting an "
        "alternative; review the recommendation before prescribing."
    ),
    RiskTier.MODERATE: (
        "{gene} {phenotype} status may alter exposure to {drug}. "
        "Guideline-based recommendations suggest a dosing adjustment with clinical monitoring."
    ),
    RiskTier.LOW: (
        "{gene} {phenotype} status has a minor expected effect on response to {drug}. "
        "Standard dosing with routine monitoring is generally appropriate."
    ),
    RiskTier.NONE: (
        "No clinically actionable interaction is known between {gene} {phenotype} status "
        "and {drug}. Standard dosing applies."
    ),
}


def apply_clinical_safety(text: str) -> str:
    """
    Applies clinical safety rules to the explanation text.
    Replaces prescriptive language with cautious phrasing.
    """
    replacements = {
        r"\bmust\b": "may",
        r"\bshould\b": "may be considered to",
        r"\bwill cause\b": "is associated with",
        r"\bcauses\b": "is associated with",
        r"\bdefinitely\b": "likely",
        r"\bguarantees?\b": "supports",
    }

    safe_text = text
    for pattern, replacement in replacements.items():
        safe_text = re.sub(pattern, replacement, safe_text, flags=re.IGNORECASE)

    return safe_text.strip()


def fallback_explanation(interaction: Interaction) -> Explanation:
    text = FALLBACK_TEMPLATES[interaction.risk_tier].format(
        gene=interaction.gene,
        drug=interaction.drug.lower(),
        phenotype=interaction.phenotype.value,
    )
    return Explanation(
        gene=interaction.gene,
        drug=interaction.drug,
        text=text,
        source=ExplanationSource.FALLBACK,
    )


class NarrativeGenerator:
    """
    Produces one Explanation per Interaction.

    Requests for different interactions run concurrently, each with its own
    bounded wait; any failure, timeout or abort resolves that interaction to
    its fallback template. Nothing raised by the text service escapes.
    """

    def __init__(
        self,
        service: Optional[TextGenerationService] = None,
        config: Optional[NarrativeConfig] = None,
    ):
        self.config = config or get_narrative_config()
        self.service = service or get_text_service(self.config)

    async def explain_all(
        self,
        interactions: Sequence[Interaction],
        recommendations: Sequence[Recommendation],
        phenotypes: Sequence[PhenotypeCall] = (),
        abort: Optional[asyncio.Event] = None,
    ) -> List[Explanation]:
        """Fan out one request per interaction and join them, keeping interaction order."""
        recs = {r.key: r for r in recommendations}
        diplotypes = {p.gene: p.diplotype for p in phenotypes}

        tasks = [
            self.explain(i, recs.get(i.key), diplotypes.get(i.gene), abort=abort)
            for i in interactions
        ]
        return list(await asyncio.gather(*tasks))

    async def explain(
        self,
        interaction: Interaction,
        recommendation: Optional[Recommendation],
        diplotype: Optional[str] = None,
        abort: Optional[asyncio.Event] = None,
    ) -> Explanation:
        key = f"{interaction.gene}/{interaction.drug}"
        self._log_state(key, NarrativeState.PENDING)

        if abort is not None and abort.is_set():
            self._log_state(key, NarrativeState.FAILED, "analysis aborted")
            return self._resolve_fallback(key, interaction)

        prompt = build_prompt(
            gene=interaction.gene,
            drug=interaction.drug,
            phenotype=interaction.phenotype.value,
            risk_tier=interaction.risk_tier.value,
            recommendation=recommendation.text if recommendation else "",
            diplotype=diplotype,
        )

        self._log_state(key, NarrativeState.REQUESTED)
        state, raw = await self._request(prompt, abort)

        if state == NarrativeState.COMPLETED:
            text = self._clean(raw)
            if text is None:
                state = NarrativeState.FAILED
                self._log_state(key, state, "empty or over-length text")
            else:
                self._log_state(key, state)
                self._log_state(key, NarrativeState.RESOLVED, "generated")
                return Explanation(
                    gene=interaction.gene,
                    drug=interaction.drug,
                    text=text,
                    source=ExplanationSource.GENERATED,
                )
        else:
            self._log_state(key, state, raw)

        return self._resolve_fallback(key, interaction)

    async def _request(
        self, prompt: str, abort: Optional[asyncio.Event]
    ) -> Tuple[NarrativeState, Optional[str]]:
        """
        Single bounded attempt. Returns (COMPLETED, text) or
        (TIMED_OUT | FAILED, reason).
        """
        generation = asyncio.ensure_future(self.service.generate_text(prompt))
        waiters = {generation}
        stopper = None
        if abort is not None:
            stopper = asyncio.ensure_future(abort.wait())
            waiters.add(stopper)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.config.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if stopper is not None:
                stopper.cancel()

        if generation not in done:
            generation.cancel()
            if stopper is not None and stopper in done:
                return NarrativeState.FAILED, "analysis aborted"
            return NarrativeState.TIMED_OUT, f"no response within {self.config.timeout_seconds}s"

        try:
            text = generation.result()
        except Exception as e:
            return NarrativeState.FAILED, f"text service error: {e}"

        if text is None:
            return NarrativeState.FAILED, "text service returned nothing"
        return NarrativeState.COMPLETED, text

    def _clean(self, raw: Optional[str]) -> Optional[str]:
        """Normalise whitespace and apply the safety rewrite; None if outside the bound."""
        if not raw:
            return None
        text = apply_clinical_safety(" ".join(raw.split()))
        if not text or len(text) >= self.config.max_chars:
            return None
        return text

    def _resolve_fallback(self, key: str, interaction: Interaction) -> Explanation:
        self._log_state(key, NarrativeState.RESOLVED, "fallback")
        return fallback_explanation(interaction)

    @staticmethod
    def _log_state(key: str, state: NarrativeState, detail: Optional[str] = None) -> None:
        if state in (NarrativeState.TIMED_OUT, NarrativeState.FAILED):
            logger.warning("Narrative %s -> %s (%s)", key, state.value, detail)
        elif detail:
            logger.debug("Narrative %s -> %s (%s)", key, state.value, detail)
        else:
            logger.debug("Narrative %s -> %s", key, state.value)
