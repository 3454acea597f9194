"""
Run-scoped statistics and context passed explicitly through every stage.
"""

from dataclasses import dataclass, field
from typing import Optional

from catalog_reconciler.exceptions import IngestionError
from catalog_reconciler.normalizer import Rejection
from catalog_reconciler.settings import PipelineSettings


@dataclass
class RunStats:
    """Counters and error records for one full run."""
    max_invalid_row_samples: int = 1000
    valid_rows: int = 0
    invalid_rows: int = 0
    invalid_row_samples: list[dict] = field(default_factory=list)
    staging_writes: int = 0
    staging_products_processed: int = 0
    new_manufacturers: int = 0
    new_vendors: int = 0
    new_base_products: int = 0
    new_products: int = 0
    new_variants: int = 0
    updated_variants: int = 0
    unchanged_variants: int = 0
    errors: list[dict] = field(default_factory=list)

    def record_rejection(self, rejection: Rejection) -> None:
        self.invalid_rows += 1
        if len(self.invalid_row_samples) < self.max_invalid_row_samples:
            self.invalid_row_samples.append(rejection.to_dict())

    def record_error(self, stage: str, error: Exception) -> None:
        if isinstance(error, IngestionError):
            detail = error.to_dict()
        else:
            detail = {"error_type": type(error).__name__, "message": str(error)}
        self.errors.append({"stage": stage, "error": detail})

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def ingestion_summary(self) -> dict:
        return {
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "invalid_row_samples": list(self.invalid_row_samples),
            "staging_writes": self.staging_writes,
        }

    def to_dict(self) -> dict:
        return {
            **self.ingestion_summary(),
            "staging_products_processed": self.staging_products_processed,
            "new_manufacturers": self.new_manufacturers,
            "new_vendors": self.new_vendors,
            "new_base_products": self.new_base_products,
            "new_products": self.new_products,
            "new_variants": self.new_variants,
            "updated_variants": self.updated_variants,
            "unchanged_variants": self.unchanged_variants,
            "error_count": self.error_count,
            "errors": list(self.errors),
        }


@dataclass
class RunContext:
    """Everything a stage needs to know about the current run."""
    run_id: str
    settings: PipelineSettings
    stats: RunStats

    @classmethod
    def create(
        cls,
        run_id: str,
        settings: Optional[PipelineSettings] = None,
    ) -> "RunContext":
        settings = settings or PipelineSettings()
        return cls(
            run_id=run_id,
            settings=settings,
            stats=RunStats(max_invalid_row_samples=settings.max_invalid_row_samples),
        )
