"""Feed builders shared by the test modules."""

FEED_COLUMNS = [
    "ItemID",
    "ManufacturerID",
    "ManufacturerName",
    "ProductID",
    "ProductName",
    "PKG",
    "ItemDescription",
    "UnitPrice",
    "ManufacturerItemCode",
    "NDCItemCode",
    "ItemImageURL",
    "ImageFileName",
    "Availability",
]


def make_feed(rows: list[dict], delimiter: str = "\t") -> list[str]:
    """Render rows as feed lines with a header."""
    lines = [delimiter.join(FEED_COLUMNS) + "\n"]
    for row in rows:
        lines.append(
            delimiter.join(str(row.get(column) or "") for column in FEED_COLUMNS) + "\n"
        )
    return lines
