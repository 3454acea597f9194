"""
Identity resolution: supplier-local keys to canonical ids.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from catalog_reconciler.exceptions import ErrorContext, IdentityResolutionError
from catalog_reconciler.stats import RunStats
from catalog_reconciler.stores import IdentityStore

logger = logging.getLogger(__name__)

MANUFACTURER_KEY_FIELDS = ("manufacturer_id", "manufacturer_name")
VENDOR_KEY_FIELDS = ("vendor_id", "vendor_name")
BASE_PRODUCT_KEY_FIELDS = ("manufacturer_id", "vendor_id", "vendor_product_id")


@dataclass(frozen=True)
class ResolvedIdentity:
    """Canonical ids for one staging product."""
    manufacturer_id: str
    vendor_id: str
    internal_product_id: str


class IdentityResolver:
    """
    Resolves manufacturer, vendor and base product identities.

    Every step is a get-or-create on its store. Existing identities are
    returned as-is and never updated.
    """

    def __init__(
        self,
        manufacturers: IdentityStore,
        vendors: IdentityStore,
        base_products: IdentityStore,
        stats: Optional[RunStats] = None,
    ):
        self.manufacturers = manufacturers
        self.vendors = vendors
        self.base_products = base_products
        self.stats = stats or RunStats()

    def resolve(
        self,
        manufacturer_id: str,
        manufacturer_name: str,
        product_id: str,
        run_id: Optional[str] = None,
    ) -> ResolvedIdentity:
        """
        Resolve the canonical ids for a supplier product.

        Raises:
            IdentityResolutionError: If any identity cannot be resolved
        """
        context = ErrorContext(run_id=run_id)
        try:
            canonical_manufacturer_id, created = self.manufacturers.get_or_create({
                "manufacturer_id": manufacturer_id,
                "manufacturer_name": manufacturer_name,
            })
            if created:
                self.stats.new_manufacturers += 1

            canonical_vendor_id, created = self.vendors.get_or_create({
                "vendor_id": manufacturer_id,
                "vendor_name": manufacturer_name,
            })
            if created:
                self.stats.new_vendors += 1
        except Exception as e:
            raise IdentityResolutionError(
                message=f"Failed to resolve manufacturer/vendor {manufacturer_id} ({manufacturer_name}): {e}",
                manufacturer_id=manufacturer_id,
                product_id=product_id,
                manufacturer_name=manufacturer_name,
                context=context,
                original_exception=e,
            ) from e

        if not canonical_manufacturer_id or not canonical_vendor_id:
            raise IdentityResolutionError(
                message=(
                    "Error while getting vendor or manufacturer id for manufacturer "
                    f"name: {manufacturer_name} and id: {manufacturer_id}"
                ),
                manufacturer_id=manufacturer_id,
                manufacturer_name=manufacturer_name,
                context=context,
            )

        try:
            internal_product_id, created = self.base_products.get_or_create({
                "manufacturer_id": canonical_manufacturer_id,
                "vendor_id": canonical_vendor_id,
                "vendor_product_id": product_id,
            })
            if created:
                self.stats.new_base_products += 1
        except Exception as e:
            raise IdentityResolutionError(
                message=f"Failed to resolve base product {product_id}: {e}",
                manufacturer_id=manufacturer_id,
                product_id=product_id,
                context=context,
                original_exception=e,
            ) from e

        if not internal_product_id:
            raise IdentityResolutionError(
                message=(
                    "Error while getting internal product id for product id: "
                    f"{product_id} and manufacturer id: {manufacturer_id}"
                ),
                manufacturer_id=manufacturer_id,
                product_id=product_id,
                context=context,
            )

        logger.debug(
            f"Resolved product {product_id} to {internal_product_id}",
            extra={"product_id": product_id, "manufacturer_id": manufacturer_id},
        )
        return ResolvedIdentity(
            manufacturer_id=canonical_manufacturer_id,
            vendor_id=canonical_vendor_id,
            internal_product_id=internal_product_id,
        )
