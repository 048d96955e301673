from typing import Optional


def build_prompt(
    gene: str,
    drug: str,
    phenotype: str,
    risk_tier: str,
    recommendation: str,
    diplotype: Optional[str] = None,
    max_words: int = 60,
) -> str:
    """
    Constructs a prompt for the LLM to generate a clinical explanation.

    Args:
        gene: The gene symbol.
        drug: The drug name.
        phenotype: The metabolizer status.
        risk_tier: Internal risk tier (high/moderate/low/none).
        recommendation: The clinical recommendation text.
        diplotype: The detected diplotype, when known.
        max_words: Word budget given to the model.

    Returns:
        A formatted prompt string.
    """
    diplotype_line = f"Diplotype={diplotype}\n" if diplotype else ""
    return (
        "SYSTEM:\n"
        "You are a pharmacogenomics clinical assistant.\n"
        "Follow CPIC guidance strictly.\n\n"
        "Rules:\n"
        "- Only use provided context.\n"
        "- Do NOT invent biology.\n"
        "- Maximum 2 sentences.\n"
        f"- Maximum {max_words} words.\n"
        "- Clinician tone only.\n\n"
        f"Gene={gene}\n"
        f"{diplotype_line}"
        f"Phenotype={phenotype}\n"
        f"Drug={drug}\n"
        f"Risk={risk_tier}\n"
        f"Recommendation={recommendation}\n\n"
        "Explain in plain language how this phenotype affects enzyme activity and response to the drug.\n\n"
        "ANSWER:"
    )
