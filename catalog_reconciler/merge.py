"""
Incremental merge of staging data into the canonical catalog.

Variants are matched by sku. New skus are appended; matched skus receive a
targeted update of only the fields that changed; unchanged variants cause no
write at all, which keeps repeated imports idempotent.
"""

import logging
import random
import string
from enum import Enum
from typing import Callable, Optional

from catalog_reconciler.exceptions import ErrorContext, MergeError
from catalog_reconciler.identity import ResolvedIdentity
from catalog_reconciler.models import (
    CanonicalProduct,
    ProductMetadata,
    StagingProduct,
    StagingVariant,
    Variant,
    VariantImage,
)
from catalog_reconciler.normalizer import sanitize_text
from catalog_reconciler.settings import PipelineSettings
from catalog_reconciler.stats import RunStats
from catalog_reconciler.stores import CanonicalStore

logger = logging.getLogger(__name__)

IMMUTABLE_VARIANT_FIELDS = frozenset({"id"})


class MergeOutcome(Enum):
    """What merging one staging variant did to the catalog."""
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def random_variant_id(length: int = 12) -> str:
    """Random lowercase id for a new variant."""
    return "".join(random.choices(string.ascii_lowercase, k=length))


def calculate_price(cost: Optional[float], markup_percent: float) -> Optional[float]:
    """Apply the markup percentage to a cost."""
    if cost is None:
        return None
    return cost * (1 + markup_percent / 100)


def derive_product_name(staging_product: StagingProduct) -> Optional[str]:
    """Name of the first variant, in arrival order, that has one."""
    for variant in staging_product.variants:
        if variant.product_name:
            return sanitize_text(variant.product_name)
    return None


def build_option_name(package: Optional[str], description: Optional[str]) -> Optional[str]:
    parts = [part for part in (package, description) if part]
    return ", ".join(parts) if parts else None


def images_differ(candidate: list[dict], stored: list[dict]) -> bool:
    """
    Incoming images replace stored ones only when there are incoming images
    and any field of any image differs.
    """
    if not candidate:
        return False
    if not stored or len(candidate) != len(stored):
        return True
    return any(new != old for new, old in zip(candidate, stored))


def diff_variant(candidate: Variant, stored: Variant) -> dict:
    """
    Field-level diff of a candidate against the stored variant.

    Returns:
        camelCase field name to new value, for changed fields only
    """
    candidate_doc = candidate.to_document()
    stored_doc = stored.to_document()
    changes = {}

    for key, value in candidate_doc.items():
        if key in IMMUTABLE_VARIANT_FIELDS:
            continue
        if key == "images":
            if images_differ(value, stored_doc.get("images") or []):
                changes[key] = value
            continue
        if value is None:
            continue
        if value != stored_doc.get(key):
            changes[key] = value

    return changes


class MergeEngine:
    """Merges resolved staging products into the canonical store."""

    def __init__(
        self,
        products: CanonicalStore,
        settings: Optional[PipelineSettings] = None,
        stats: Optional[RunStats] = None,
        variant_id_factory: Callable[[], str] = random_variant_id,
    ):
        self.products = products
        self.settings = settings or PipelineSettings()
        self.stats = stats or RunStats()
        self.variant_id_factory = variant_id_factory

    def merge_product(
        self,
        staging_product: StagingProduct,
        identity: ResolvedIdentity,
        run_id: Optional[str] = None,
    ) -> CanonicalProduct:
        """
        Fetch the canonical product, creating it on first sight.

        Raises:
            MergeError: With scope ``product`` if the product is unavailable
        """
        try:
            candidate = CanonicalProduct(
                doc_id=identity.internal_product_id,
                name=derive_product_name(staging_product),
                manufacturer_id=identity.manufacturer_id,
                vendor_id=identity.vendor_id,
                metadata=ProductMetadata(run_id=run_id),
            )
            product, created = self.products.get_or_create(candidate)
        except Exception as e:
            raise MergeError(
                message=f"Failed to get or create product {identity.internal_product_id}: {e}",
                internal_product_id=identity.internal_product_id,
                scope="product",
                context=ErrorContext(
                    run_id=run_id,
                    product_id=staging_product.product_id,
                    manufacturer_id=staging_product.manufacturer_id,
                ),
                original_exception=e,
            ) from e

        if created:
            self.stats.new_products += 1
            logger.info(
                f"Created catalog product {product.doc_id}",
                extra={"product_id": staging_product.product_id},
            )
        return product

    def build_variant(
        self,
        staging_variant: StagingVariant,
        variant_id: Optional[str] = None,
    ) -> Variant:
        """Candidate catalog variant for a staging variant."""
        images = []
        if staging_variant.item_image_url:
            images.append(VariantImage(
                cdn_link=staging_variant.item_image_url,
                file_name=staging_variant.image_file_name or "",
            ))

        return Variant(
            id=variant_id or self.variant_id_factory(),
            cost=staging_variant.unit_price,
            price=calculate_price(staging_variant.unit_price, self.settings.markup_percent),
            sku=staging_variant.sku,
            manufacturer_item_id=staging_variant.item_id,
            packaging=staging_variant.package,
            option_name=build_option_name(
                staging_variant.package, staging_variant.item_description
            ),
            manufacturer_item_code=staging_variant.manufacturer_item_code,
            item_code=staging_variant.ndc_item_code,
            description=staging_variant.item_description,
            available=bool(staging_variant.availability),
            images=images,
        )

    def merge_variant(
        self,
        staging_variant: StagingVariant,
        product: CanonicalProduct,
        run_id: Optional[str] = None,
    ) -> MergeOutcome:
        """
        Merge one staging variant into ``product`` and keep ``product`` in
        step with what was written.

        Raises:
            MergeError: With scope ``variant`` if the write fails
        """
        try:
            match = product.find_variant(staging_variant.sku)

            if match is None:
                candidate = self.build_variant(staging_variant)
                self.products.append_variant(product.doc_id, candidate)
                product.variants.append(candidate)
                self.stats.new_variants += 1
                return MergeOutcome.CREATED

            position, stored = match
            candidate = self.build_variant(staging_variant, variant_id=stored.id)
            changes = diff_variant(candidate, stored)
            if not changes:
                self.stats.unchanged_variants += 1
                return MergeOutcome.UNCHANGED

            self.products.update_variant(product.doc_id, position, stored.sku, changes)
            product.variants[position] = Variant.model_validate(
                {**stored.to_document(), **changes}
            )
            self.stats.updated_variants += 1
            logger.debug(
                f"Updated variant {stored.sku}: {sorted(changes)}",
                extra={"sku": stored.sku},
            )
            return MergeOutcome.UPDATED
        except Exception as e:
            raise MergeError(
                message=f"Failed to merge variant {staging_variant.sku} into {product.doc_id}: {e}",
                internal_product_id=product.doc_id,
                scope="variant",
                sku=staging_variant.sku,
                context=ErrorContext(run_id=run_id, item_id=staging_variant.item_id),
                original_exception=e,
            ) from e
