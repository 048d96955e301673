"""
Configuration for the pharmacogenomics pipeline.
Centralizes tunable parameters for extraction, narrative generation and the
output contract vocabulary.
"""

import os
from typing import Dict, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

# Load .env file (walks up directories to find it)
load_dotenv(find_dotenv())


class ExtractionConfig(BaseModel):
    """Configuration for the variant extractor."""

    require_pass_filter: bool = Field(
        default=False,
        description="If True, records whose FILTER is not PASS/. are discarded"
    )

    exclude_reference_calls: bool = Field(
        default=False,
        description="If True, records whose first-sample GT is homozygous reference are discarded"
    )

    max_records: Optional[int] = Field(
        default=None,
        ge=1,
        description="Optional cap on data records scanned"
    )


class NarrativeConfig(BaseModel):
    """Configuration for the narrative (explanation) generator."""

    provider: str = Field(
        default_factory=lambda: os.environ.get("PGX_TEXT_PROVIDER", "ollama"),
        description="Text generation provider: ollama, groq or disabled"
    )

    timeout_seconds: float = Field(
        default_factory=lambda: float(os.environ.get("PGX_NARRATIVE_TIMEOUT", "10")),
        gt=0.0,
        description="Bounded wait for a single generation request"
    )

    max_chars: int = Field(
        default=600,
        ge=300,
        description="Generated text must be strictly shorter than this"
    )

    ollama_base_url: str = Field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://127.0.0.1:11434")
    )

    ollama_model: str = Field(
        default_factory=lambda: os.environ.get("OLLAMA_MODEL", "llama3")
    )

    groq_model: str = Field(
        default_factory=lambda: os.environ.get("GROQ_MODEL", "llama-3.1-8b-instant")
    )

    probe_max_tries: int = Field(
        default=3,
        ge=1,
        description="Attempts made by the startup availability probe"
    )


class ContractConfig(BaseModel):
    """Output vocabulary of the report contract."""

    risk_levels: Dict[str, str] = Field(
        default_factory=lambda: {
            "high": "high_risk",
            "moderate": "moderate_risk",
            "low": "low_risk",
            "none": "no_known_interaction",
        },
        description="Internal risk tier -> output risk_level"
    )

    strengths: Dict[str, str] = Field(
        default_factory=lambda: {
            "strong": "Strong",
            "moderate": "Moderate",
            "optional": "Optional",
        },
        description="Internal strength -> output strength"
    )


class PipelineConfig(BaseModel):
    """Main configuration for the analysis pipeline."""

    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)

    narrative: NarrativeConfig = Field(default_factory=NarrativeConfig)

    contract: ContractConfig = Field(default_factory=ContractConfig)

    catalog_path: Optional[str] = Field(
        default_factory=lambda: os.environ.get("PGX_CATALOG_PATH"),
        description="Path to the reference catalog JSON (None = packaged catalog)"
    )

    upload_dir: str = Field(
        default_factory=lambda: os.environ.get("PGX_UPLOAD_DIR", "data/uploads"),
        description="Directory used by the local upload store"
    )

    default_subject_id: str = Field(default="anonymous")


# Global configuration instance
_config: PipelineConfig = PipelineConfig()


def get_config() -> PipelineConfig:
    """Get the global configuration instance."""
    return _config


def update_config(**kwargs) -> PipelineConfig:
    """Update configuration parameters.

    Nested keys use dots, e.g. ``update_config(**{"narrative.timeout_seconds": 2})``.
    """
    global _config
    current_dict = _config.model_dump()

    for key, value in kwargs.items():
        if '.' in key:
            parts = key.split('.')
            current = current_dict
            for part in parts[:-1]:
                current = current[part]
            current[parts[-1]] = value
        else:
            current_dict[key] = value

    _config = PipelineConfig(**current_dict)
    return _config


def reset_config() -> PipelineConfig:
    """Restore defaults (re-reading the environment)."""
    global _config
    _config = PipelineConfig()
    return _config


def load_config_from_file(filepath: str) -> PipelineConfig:
    """Load configuration from a JSON file."""
    import json
    global _config

    with open(filepath, 'r') as f:
        config_dict = json.load(f)

    _config = PipelineConfig(**config_dict)
    return _config


def save_config_to_file(filepath: str):
    """Save current configuration to a JSON file."""
    import json

    with open(filepath, 'w') as f:
        json.dump(_config.model_dump(), f, indent=2)


def get_extraction_config() -> ExtractionConfig:
    return _config.extraction


def get_narrative_config() -> NarrativeConfig:
    return _config.narrative


def get_contract_config() -> ContractConfig:
    return _config.contract
