"""
Catalog reconciliation run: ingest a supplier feed into staging, then merge
every staging product into the canonical catalog.

Only FeedReadError escapes a run. Every other failure is recorded in the
run report at the smallest unit of work it affects.
"""

import logging
import time
from typing import Optional

from catalog_reconciler.aws import AWSClientFactory
from catalog_reconciler.exceptions import ErrorContext, IngestionError, MergeError
from catalog_reconciler.feed import FeedReader
from catalog_reconciler.identity import (
    BASE_PRODUCT_KEY_FIELDS,
    MANUFACTURER_KEY_FIELDS,
    VENDOR_KEY_FIELDS,
    IdentityResolver,
)
from catalog_reconciler.ingestion import IngestionController
from catalog_reconciler.logging_config import (
    configure_logging,
    log_execution_time,
    set_run_id,
    set_stage,
)
from catalog_reconciler.merge import MergeEngine
from catalog_reconciler.models import StagingProduct
from catalog_reconciler.settings import PipelineSettings
from catalog_reconciler.stats import RunContext
from catalog_reconciler.stores import CanonicalStore, IdentityStore, StagingStore
from catalog_reconciler.stores.dynamodb import (
    DynamoCanonicalStore,
    DynamoIdentityStore,
    DynamoStagingStore,
)
from catalog_reconciler.stores.memory import (
    MemoryCanonicalStore,
    MemoryIdentityStore,
    MemoryStagingStore,
)

logger = logging.getLogger(__name__)


class CatalogPipeline:
    """Runs the ingest pass and the merge pass for one feed."""

    def __init__(
        self,
        staging: StagingStore,
        manufacturers: IdentityStore,
        vendors: IdentityStore,
        base_products: IdentityStore,
        products: CanonicalStore,
        settings: Optional[PipelineSettings] = None,
    ):
        self.staging = staging
        self.manufacturers = manufacturers
        self.vendors = vendors
        self.base_products = base_products
        self.products = products
        self.settings = settings or PipelineSettings()
        self.last_context: Optional[RunContext] = None

    @log_execution_time(logger)
    def run(self, source, run_id: Optional[str] = None) -> dict:
        """
        Reconcile one feed into the catalog.

        Args:
            source: Local path, ``s3://`` URI or iterable of feed lines
            run_id: Identifier for log correlation; generated when omitted

        Returns:
            The final run report

        Raises:
            FeedReadError: If the feed cannot be read
        """
        start_time = time.perf_counter()
        context = RunContext.create(set_run_id(run_id), self.settings)
        self.last_context = context

        logger.info("Catalog run started", extra={"source": str(source)})

        self.clear_staging(context)

        set_stage("ingest")
        IngestionController(self.staging, context).run(
            FeedReader(source, self.settings)
        )
        logger.info(
            "Ingestion report",
            extra={"metrics": context.stats.ingestion_summary()},
        )

        set_stage("merge")
        self.merge_staging(context)

        report = context.stats.to_dict()
        report["run_id"] = context.run_id
        report["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info("Catalog run complete", extra={"metrics": report})
        set_stage("")
        return report

    def clear_staging(self, context: RunContext) -> None:
        """Drop the previous run's staging data; a failure is recorded only."""
        set_stage("staging")
        logger.info("Deleting previous staging products")
        try:
            self.staging.reset()
        except Exception as e:
            context.stats.record_error("staging", e)
            logger.error(f"Failed to clear staging: {e}", exc_info=True)

    def merge_staging(self, context: RunContext) -> None:
        """Stream staging products one at a time and merge each of them."""
        resolver = IdentityResolver(
            self.manufacturers, self.vendors, self.base_products, context.stats
        )
        engine = MergeEngine(self.products, self.settings, context.stats)

        try:
            for staging_product in self.staging.iter_products():
                self.merge_staging_product(staging_product, resolver, engine, context)
        except Exception as e:
            context.stats.record_error("merge", e)
            logger.error(f"Staging stream failed: {e}", exc_info=True)

        logger.info("Finished merging staging products")

    def merge_staging_product(
        self,
        staging_product: StagingProduct,
        resolver: IdentityResolver,
        engine: MergeEngine,
        context: RunContext,
    ) -> None:
        stats = context.stats
        stats.staging_products_processed += 1
        product_id = staging_product.product_id

        try:
            identity = resolver.resolve(
                staging_product.manufacturer_id,
                staging_product.manufacturer_name,
                product_id,
                run_id=context.run_id,
            )
            product = engine.merge_product(staging_product, identity, context.run_id)
        except IngestionError as e:
            stats.record_error(e.category.value, e)
            logger.error(
                e.message,
                extra={"error": e.to_dict(), "product_id": product_id},
            )
            return
        except Exception as e:
            error = MergeError(
                message=f"Unexpected error merging product {product_id}: {e}",
                internal_product_id=None,
                scope="product",
                context=ErrorContext(
                    run_id=context.run_id,
                    product_id=product_id,
                    manufacturer_id=staging_product.manufacturer_id,
                ),
                original_exception=e,
            )
            stats.record_error("merge", error)
            logger.error(error.message, exc_info=True)
            return

        for staging_variant in staging_product.variants:
            try:
                engine.merge_variant(staging_variant, product, context.run_id)
            except MergeError as e:
                stats.record_error("merge", e)
                logger.error(
                    e.message,
                    extra={"error": e.to_dict(), "sku": staging_variant.sku},
                )


def build_pipeline(settings: Optional[PipelineSettings] = None) -> CatalogPipeline:
    """Pipeline backed by the DynamoDB tables named in ``settings``."""
    settings = settings or PipelineSettings.from_env()
    configure_logging(settings.log_level, settings.log_format)
    dynamodb = AWSClientFactory.get_dynamodb_resource(settings)
    return CatalogPipeline(
        staging=DynamoStagingStore(dynamodb, settings.staging_table),
        manufacturers=DynamoIdentityStore(
            dynamodb, settings.manufacturers_table, MANUFACTURER_KEY_FIELDS
        ),
        vendors=DynamoIdentityStore(
            dynamodb, settings.vendors_table, VENDOR_KEY_FIELDS
        ),
        base_products=DynamoIdentityStore(
            dynamodb,
            settings.base_products_table,
            BASE_PRODUCT_KEY_FIELDS,
            id_field="internal_product_id",
        ),
        products=DynamoCanonicalStore(dynamodb, settings.products_table),
        settings=settings,
    )


def build_memory_pipeline(settings: Optional[PipelineSettings] = None) -> CatalogPipeline:
    """Pipeline backed by in-process stores."""
    if settings is not None:
        configure_logging(settings.log_level, settings.log_format)
    return CatalogPipeline(
        staging=MemoryStagingStore(),
        manufacturers=MemoryIdentityStore("manufacturers", MANUFACTURER_KEY_FIELDS),
        vendors=MemoryIdentityStore("vendors", VENDOR_KEY_FIELDS),
        base_products=MemoryIdentityStore(
            "base_products",
            BASE_PRODUCT_KEY_FIELDS,
            id_field="internal_product_id",
        ),
        products=MemoryCanonicalStore(),
        settings=settings or PipelineSettings(),
    )
