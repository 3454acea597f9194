"""
In-process store implementations.

Documents are kept in plain dicts shaped like the DynamoDB items, so the
same pipeline code runs against either backend.
"""

import copy
import uuid
from typing import Callable, Iterator, Optional

from catalog_reconciler.exceptions import StoreError
from catalog_reconciler.models import (
    CanonicalProduct,
    StagingProduct,
    StagingVariant,
    Variant,
)


class MemoryStagingStore:
    """Staging records keyed by (product id, manufacturer id)."""

    def __init__(self):
        self._records: dict[tuple[str, str], dict] = {}

    def reset(self) -> None:
        self._records = {}

    def append_variant(
        self,
        product_id: str,
        manufacturer_id: str,
        manufacturer_name: str,
        variant: StagingVariant,
    ) -> None:
        record = self._records.setdefault(
            (product_id, manufacturer_id),
            {
                "product_id": product_id,
                "manufacturer_id": manufacturer_id,
                "manufacturer_name": manufacturer_name,
                "variants": [],
            },
        )
        record["variants"].append(variant.model_dump())

    def iter_products(self) -> Iterator[StagingProduct]:
        for key in list(self._records):
            yield StagingProduct.model_validate(copy.deepcopy(self._records[key]))

    def __len__(self) -> int:
        return len(self._records)


class MemoryIdentityStore:
    """
    Identities keyed by a natural key.

    ``setdefault`` keeps get-or-create a single dict operation, so a key is
    never assigned two ids.
    """

    def __init__(
        self,
        name: str,
        key_fields: tuple[str, ...],
        id_field: str = "id",
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.name = name
        self.key_fields = key_fields
        self.id_field = id_field
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._documents: dict[tuple, dict] = {}

    def get_or_create(self, natural_key: dict[str, str]) -> tuple[str, bool]:
        try:
            key = tuple(natural_key[field] for field in self.key_fields)
        except KeyError as e:
            raise StoreError(
                message=f"Natural key for {self.name} is missing {e}",
                store_name=self.name,
                operation="get_or_create",
                original_exception=e,
            )
        candidate = {**natural_key, self.id_field: self.id_factory()}
        document = self._documents.setdefault(key, candidate)
        return document[self.id_field], document is candidate

    def __len__(self) -> int:
        return len(self._documents)


class MemoryCanonicalStore:
    """Canonical product documents keyed by doc id."""

    name = "products"

    def __init__(self):
        self._documents: dict[str, dict] = {}

    def get_or_create(self, product: CanonicalProduct) -> tuple[CanonicalProduct, bool]:
        candidate = product.to_document()
        document = self._documents.setdefault(product.doc_id, candidate)
        return (
            CanonicalProduct.model_validate(copy.deepcopy(document)),
            document is candidate,
        )

    def get(self, doc_id: str) -> Optional[CanonicalProduct]:
        document = self._documents.get(doc_id)
        if document is None:
            return None
        return CanonicalProduct.model_validate(copy.deepcopy(document))

    def append_variant(self, doc_id: str, variant: Variant) -> None:
        document = self._document(doc_id, "append_variant")
        document["variants"].append(variant.to_document())

    def update_variant(
        self,
        doc_id: str,
        position: int,
        sku: str,
        changes: dict,
    ) -> None:
        document = self._document(doc_id, "update_variant")
        variants = document["variants"]
        if position >= len(variants) or variants[position].get("sku") != sku:
            raise StoreError(
                message=f"Variant {sku} is not at position {position} of {doc_id}",
                store_name=self.name,
                operation="update_variant",
            )
        variants[position].update(copy.deepcopy(changes))

    def _document(self, doc_id: str, operation: str) -> dict:
        document = self._documents.get(doc_id)
        if document is None:
            raise StoreError(
                message=f"Product {doc_id} does not exist",
                store_name=self.name,
                operation=operation,
            )
        return document

    def __len__(self) -> int:
        return len(self._documents)
