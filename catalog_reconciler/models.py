"""
Data models for the catalog reconciliation pipeline.

FeedRow is the loosely-typed edge of the system; staging models are the
normalized per-run intermediate; Variant and CanonicalProduct are the
durable catalog documents.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class FeedRow(BaseModel):
    """One line of a supplier feed, keyed by the feed's column names."""
    item_id: Optional[str] = Field(None, alias="ItemID")
    manufacturer_id: Optional[str] = Field(None, alias="ManufacturerID")
    manufacturer_name: Optional[str] = Field(None, alias="ManufacturerName")
    product_id: Optional[str] = Field(None, alias="ProductID")
    product_name: Optional[str] = Field(None, alias="ProductName")
    package: Optional[str] = Field(None, alias="PKG")
    item_description: Optional[str] = Field(None, alias="ItemDescription")
    unit_price: Optional[str] = Field(None, alias="UnitPrice")
    manufacturer_item_code: Optional[str] = Field(None, alias="ManufacturerItemCode")
    ndc_item_code: Optional[str] = Field(None, alias="NDCItemCode")
    item_image_url: Optional[str] = Field(None, alias="ItemImageURL")
    image_file_name: Optional[str] = Field(None, alias="ImageFileName")
    availability: Optional[str] = Field(None, alias="Availability")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        """Coerce to string; blank values mean "not provided"."""
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def identity(self) -> dict:
        """Key fields kept in the invalid-row trace."""
        return {
            "ItemID": self.item_id,
            "ManufacturerID": self.manufacturer_id,
            "ProductID": self.product_id,
            "UnitPrice": self.unit_price,
        }


class StagingVariant(BaseModel):
    """Normalized feed row as kept in staging."""
    sku: str
    item_id: str
    product_id: str
    manufacturer_id: str
    manufacturer_name: Optional[str] = None
    product_name: Optional[str] = None
    package: Optional[str] = None
    item_description: Optional[str] = None
    unit_price: Optional[float] = None
    manufacturer_item_code: Optional[str] = None
    ndc_item_code: Optional[str] = None
    item_image_url: Optional[str] = None
    image_file_name: Optional[str] = None
    availability: Optional[str] = None

    class Config:
        frozen = True


class StagingProduct(BaseModel):
    """All variants seen for one (product id, manufacturer id) pair in a run."""
    product_id: str
    manufacturer_id: str
    manufacturer_name: str = ""
    variants: list[StagingVariant] = Field(default_factory=list)


class VariantImage(BaseModel):
    """Image reference attached to a catalog variant."""
    cdn_link: str = Field(..., alias="cdnLink")
    file_name: str = Field("", alias="fileName")

    class Config:
        populate_by_name = True


class Variant(BaseModel):
    """Catalog variant, unique by sku within its product."""
    id: str
    cost: Optional[float] = None
    price: Optional[float] = None
    sku: str
    manufacturer_item_id: str = Field(..., alias="manufacturerItemId")
    packaging: Optional[str] = None
    option_name: Optional[str] = Field(None, alias="optionName")
    manufacturer_item_code: Optional[str] = Field(None, alias="manufacturerItemCode")
    item_code: Optional[str] = Field(None, alias="itemCode")
    description: Optional[str] = None
    available: bool = False
    images: list[VariantImage] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    def to_document(self) -> dict:
        """Stored representation with camelCase keys."""
        return self.model_dump(by_alias=True)


class ProductMetadata(BaseModel):
    """Creation and audit metadata for a catalog product."""
    source: str = "supplier-feed"
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="createdAt"
    )
    run_id: Optional[str] = Field(None, alias="runId")

    class Config:
        populate_by_name = True


class CanonicalProduct(BaseModel):
    """
    Canonical catalog product keyed by internal product id.
    Created once, then only merged into.
    """
    doc_id: str = Field(..., alias="docId")
    name: Optional[str] = None
    manufacturer_id: str = Field(..., alias="manufacturerId")
    vendor_id: str = Field(..., alias="vendorId")
    variants: list[Variant] = Field(default_factory=list)
    options: list[dict] = Field(default_factory=list)
    images: list[dict] = Field(default_factory=list)
    metadata: ProductMetadata = Field(default_factory=ProductMetadata)

    class Config:
        populate_by_name = True

    def to_document(self) -> dict:
        """Stored representation with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def find_variant(self, sku: str) -> Optional[tuple[int, Variant]]:
        """Return (position, variant) for the sku, or None."""
        for position, variant in enumerate(self.variants):
            if variant.sku == sku:
                return position, variant
        return None
