"""
Pharmacogenomics Service

Catalog-driven pharmacogenomic decision stages: allele matching, phenotype
resolution, risk classification and clinical recommendations.
"""

from .models import (
    AlleleCall,
    Explanation,
    ExtractionResult,
    Interaction,
    PhenotypeCall,
    PhenotypeLabel,
    Recommendation,
    Report,
    RiskTier,
    Variant,
)
from .catalog_loader import Catalog, CatalogError, audit_catalog, get_catalog, reload_catalog
from .allele_matcher import AlleleMatcher
from .phenotype_mapper import PhenotypeResolver
from .risk_engine import RiskClassifier
from .recommendation_engine import RecommendationBuilder
from .config import (
    get_config,
    update_config,
    reset_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Models
    'AlleleCall',
    'Explanation',
    'ExtractionResult',
    'Interaction',
    'PhenotypeCall',
    'PhenotypeLabel',
    'Recommendation',
    'Report',
    'RiskTier',
    'Variant',

    # Catalog
    'Catalog',
    'CatalogError',
    'audit_catalog',
    'get_catalog',
    'reload_catalog',

    # Stages
    'AlleleMatcher',
    'PhenotypeResolver',
    'RiskClassifier',
    'RecommendationBuilder',

    # Config
    'get_config',
    'update_config',
    'reset_config',
    'load_config_from_file',
    'save_config_to_file',
]
