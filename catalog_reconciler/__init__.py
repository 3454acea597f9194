"""
Catalog Reconciler - supplier feed ingestion into a canonical product catalog.

This package streams delimited supplier feeds into a staging area, resolves
supplier-local keys into canonical identities and merges variant data into
the catalog, writing only what changed.
"""

from catalog_reconciler.exceptions import (
    ConfigurationError,
    FeedReadError,
    IdentityResolutionError,
    IngestionError,
    MergeError,
    RowValidationError,
    StagingWriteError,
    StoreError,
)
from catalog_reconciler.models import CanonicalProduct, StagingProduct, StagingVariant, Variant
from catalog_reconciler.normalizer import Rejection, normalize_row
from catalog_reconciler.pipeline import CatalogPipeline, build_memory_pipeline, build_pipeline
from catalog_reconciler.settings import PipelineSettings

__all__ = [
    "CatalogPipeline",
    "build_pipeline",
    "build_memory_pipeline",
    "PipelineSettings",
    "normalize_row",
    "Rejection",
    "CanonicalProduct",
    "StagingProduct",
    "StagingVariant",
    "Variant",
    "IngestionError",
    "RowValidationError",
    "StagingWriteError",
    "IdentityResolutionError",
    "MergeError",
    "FeedReadError",
    "StoreError",
    "ConfigurationError",
]

__version__ = "1.0.0"
