"""
Streaming ingestion: feed chunks to normalized rows to staging.
"""

import logging
from enum import Enum

from catalog_reconciler.exceptions import (
    ErrorContext,
    FeedReadError,
    StagingWriteError,
)
from catalog_reconciler.feed import FeedReader
from catalog_reconciler.models import StagingVariant
from catalog_reconciler.normalizer import Rejection, RowValidator, normalize_row, product_id_of
from catalog_reconciler.stats import RunContext
from catalog_reconciler.stores import StagingStore

logger = logging.getLogger(__name__)


class IngestionState(Enum):
    """Lifecycle of one ingestion pass."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionController:
    """
    Pulls chunks from a FeedReader and stages every valid row.

    The reader does not produce the next chunk until the current one has
    been fully normalized and written, so memory stays bounded by one chunk.
    """

    def __init__(self, staging: StagingStore, context: RunContext):
        self.staging = staging
        self.context = context
        self.validator = RowValidator()
        self.state = IngestionState.PENDING

    def run(self, reader: FeedReader) -> dict:
        """
        Ingest the whole feed.

        Returns:
            Ingestion summary from the run statistics

        Raises:
            FeedReadError: If the feed cannot be read; the run is aborted
        """
        self.state = IngestionState.RUNNING
        stats = self.context.stats

        try:
            for chunk in reader.iter_chunks(self.context.settings.chunk_size):
                logger.debug(f"Processing chunk of {len(chunk)} rows")
                self.process_chunk(chunk)
                logger.info(
                    "Chunk processed",
                    extra={
                        "metrics": {
                            "staging_writes": stats.staging_writes,
                            "invalid_rows": stats.invalid_rows,
                        }
                    },
                )
        except FeedReadError as e:
            self.state = IngestionState.FAILED
            e.context.run_id = self.context.run_id
            stats.record_error("feed", e)
            logger.error(f"Feed read failed: {e.message}", extra={"error": e.to_dict()})
            raise

        self.state = IngestionState.COMPLETED
        summary = stats.ingestion_summary()
        logger.info(
            f"Feed {reader.source_name} ingested",
            extra={"metrics": summary, "source": reader.source_name},
        )
        return summary

    def process_chunk(self, rows: list[dict]) -> None:
        """Normalize and stage each row in arrival order."""
        for index, raw_row in enumerate(rows):
            try:
                result = normalize_row(raw_row, self.validator)
            except Exception as e:
                self.context.stats.record_rejection(
                    Rejection(row={"ProductID": product_id_of(raw_row)}, invalid_fields=["row"])
                )
                logger.warning(f"Unparseable row at index {index}: {e}")
                continue

            if isinstance(result, Rejection):
                self.context.stats.record_rejection(result)
                logger.debug(
                    f"Rejected row: {result.invalid_fields}",
                    extra={"product_id": result.row.get("ProductID")},
                )
                continue

            self.context.stats.valid_rows += 1
            self.stage_variant(result)

    def stage_variant(self, variant: StagingVariant) -> bool:
        """Write one variant to staging; failures are recorded, not raised."""
        try:
            self.staging.append_variant(
                product_id=variant.product_id,
                manufacturer_id=variant.manufacturer_id,
                manufacturer_name=variant.manufacturer_name or "",
                variant=variant,
            )
        except Exception as e:
            error = StagingWriteError(
                message=f"Failed to stage variant {variant.sku}: {e}",
                product_id=variant.product_id,
                manufacturer_id=variant.manufacturer_id,
                sku=variant.sku,
                context=ErrorContext(run_id=self.context.run_id, item_id=variant.item_id),
                original_exception=e,
            )
            self.context.stats.record_error("staging", error)
            logger.error(error.message, extra={"error": error.to_dict()})
            return False

        self.context.stats.staging_writes += 1
        return True
