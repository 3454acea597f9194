"""
Row validation and normalization.
Converts one raw feed row into a StagingVariant, or a Rejection naming the
offending columns.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from catalog_reconciler.exceptions import ErrorContext, RowValidationError
from catalog_reconciler.models import FeedRow, StagingVariant

logger = logging.getLogger(__name__)

NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9 ]")


@dataclass
class Rejection:
    """A row that failed validation."""
    row: dict
    invalid_fields: list[str]
    errors: list[RowValidationError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"row": self.row, "invalid_fields": self.invalid_fields}


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip everything outside ASCII letters, digits and spaces."""
    if value is None:
        return None
    return NON_ALPHANUMERIC.sub("", value)


def parse_unit_price(value: Optional[str]) -> Optional[float]:
    """
    Parse a unit price column.

    Returns None when the column is unset.

    Raises:
        ValueError: If the value is not a finite, non-negative number
    """
    if value is None:
        return None
    amount = float(value)
    if not math.isfinite(amount) or amount < 0:
        raise ValueError(f"unit price out of range: {value}")
    return amount


def build_sku(item_id: str, product_id: str, package: Optional[str]) -> str:
    """sku = item id + product id + package code; a missing package adds nothing."""
    return f"{item_id}{product_id}{package or ''}"


class RowValidator:
    """Validates feed rows before normalization."""

    REQUIRED_FIELDS = {
        "ItemID": "item_id",
        "ManufacturerID": "manufacturer_id",
        "ProductID": "product_id",
    }

    def __init__(self):
        self.validation_errors: list[RowValidationError] = []

    @property
    def invalid_fields(self) -> list[str]:
        return [error.field_name for error in self.validation_errors]

    def validate(self, row: FeedRow) -> bool:
        """
        Validate a parsed feed row.

        Args:
            row: Feed row with blank columns already mapped to None

        Returns:
            True if valid, False otherwise
        """
        self.validation_errors.clear()
        for column, attribute in self.REQUIRED_FIELDS.items():
            if getattr(row, attribute) is None:
                self.validation_errors.append(
                    RowValidationError(
                        message=f"Missing required field: {column}",
                        field_name=column,
                        actual=None,
                        context=ErrorContext(item_id=row.item_id, product_id=row.product_id),
                    )
                )

        try:
            parse_unit_price(row.unit_price)
        except ValueError:
            self.validation_errors.append(
                RowValidationError(
                    message=f"Invalid unit price: {row.unit_price}",
                    field_name="UnitPrice",
                    actual=row.unit_price,
                    context=ErrorContext(item_id=row.item_id, product_id=row.product_id),
                )
            )

        return len(self.validation_errors) == 0


def normalize_row(
    raw_row: dict[str, Any],
    validator: Optional[RowValidator] = None,
) -> Union[StagingVariant, Rejection]:
    """
    Normalize one raw feed row.

    Args:
        raw_row: Column name to value mapping as read from the feed
        validator: Validator to reuse across rows

    Returns:
        StagingVariant for a valid row, Rejection otherwise
    """
    validator = validator or RowValidator()
    row = FeedRow.model_validate(
        {key: value for key, value in raw_row.items() if isinstance(key, str)}
    )

    if not validator.validate(row):
        return Rejection(
            row=row.identity(),
            invalid_fields=validator.invalid_fields,
            errors=list(validator.validation_errors),
        )

    package = row.package.upper() if row.package else None

    return StagingVariant(
        sku=build_sku(row.item_id, row.product_id, package),
        item_id=row.item_id,
        product_id=row.product_id,
        manufacturer_id=row.manufacturer_id,
        manufacturer_name=row.manufacturer_name,
        product_name=row.product_name,
        package=package,
        item_description=sanitize_text(row.item_description),
        unit_price=parse_unit_price(row.unit_price),
        manufacturer_item_code=row.manufacturer_item_code,
        ndc_item_code=row.ndc_item_code,
        item_image_url=row.item_image_url,
        image_file_name=row.image_file_name,
        availability=row.availability,
    )


def product_id_of(raw_row: dict[str, Any]) -> Optional[str]:
    """Safely pull the product id out of a raw row for error reporting."""
    if not isinstance(raw_row, dict):
        return None
    value = raw_row.get("ProductID")
    return str(value) if value not in (None, "") else None
