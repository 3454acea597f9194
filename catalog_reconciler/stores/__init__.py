"""
Document store interfaces consumed by the pipeline.

Implementations must provide get-or-create as a single atomic operation
keyed on a uniqueness constraint; the pipeline holds no locks of its own.
"""

from typing import Iterator, Protocol

from catalog_reconciler.models import (
    CanonicalProduct,
    StagingProduct,
    StagingVariant,
    Variant,
)


class StagingStore(Protocol):
    """Per-run staging area keyed by (product id, manufacturer id)."""

    def reset(self) -> None:
        """Drop all staging records from a previous run."""
        ...

    def append_variant(
        self,
        product_id: str,
        manufacturer_id: str,
        manufacturer_name: str,
        variant: StagingVariant,
    ) -> None:
        """Upsert the staging product and append one variant to it."""
        ...

    def iter_products(self) -> Iterator[StagingProduct]:
        """Stream every staging product, forward only."""
        ...


class IdentityStore(Protocol):
    """Canonical identities keyed by a natural key."""

    def get_or_create(self, natural_key: dict[str, str]) -> tuple[str, bool]:
        """Return (canonical id, created)."""
        ...


class CanonicalStore(Protocol):
    """Canonical products keyed by internal product id."""

    def get_or_create(self, product: CanonicalProduct) -> tuple[CanonicalProduct, bool]:
        """Insert ``product`` unless its doc id exists; return the stored one."""
        ...

    def append_variant(self, doc_id: str, variant: Variant) -> None:
        """Append one variant to the product's variant list."""
        ...

    def update_variant(
        self,
        doc_id: str,
        position: int,
        sku: str,
        changes: dict,
    ) -> None:
        """Set only ``changes`` (camelCase keys) on the variant at ``position``."""
        ...


__all__ = ["StagingStore", "IdentityStore", "CanonicalStore"]
