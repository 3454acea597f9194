"""Pytest fixtures and configuration."""

import logging
import os

import pytest

from catalog_reconciler.normalizer import normalize_row
from catalog_reconciler.pipeline import build_memory_pipeline
from catalog_reconciler.settings import PipelineSettings
from tests.helpers import make_feed

os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo any logging configuration a test applies."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    root.handlers = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def sample_row():
    """Return a complete, valid feed row."""
    return {
        "ItemID": "item123",
        "ManufacturerID": "manu456",
        "ManufacturerName": "Acme Corp",
        "ProductID": "prod789",
        "ProductName": "Super Widget",
        "PKG": "bx",
        "ItemDescription": "A high-quality widget for various purposes.",
        "UnitPrice": "19.99",
        "ManufacturerItemCode": "ACME-123",
        "NDCItemCode": "NDC-456",
        "ItemImageURL": "http://example.com/images/item123.jpg",
        "ImageFileName": "item123.jpg",
        "Availability": "In Stock",
    }


@pytest.fixture
def sample_minimal_row():
    """Return a row with only the required columns."""
    return {
        "ItemID": "item1",
        "ManufacturerID": "manu1",
        "ProductID": "prod1",
    }


@pytest.fixture
def sample_invalid_row():
    """Return a row missing its manufacturer and with a negative price."""
    return {
        "ItemID": "item9",
        "ManufacturerID": "",
        "ProductID": "prod9",
        "UnitPrice": "-4",
    }


@pytest.fixture
def staging_variant(sample_row):
    """Return the normalized form of the sample row."""
    return normalize_row(sample_row)


@pytest.fixture
def settings():
    """Return settings with a small chunk size."""
    return PipelineSettings(chunk_size=2, markup_percent=20)


@pytest.fixture
def pipeline(settings):
    """Return a pipeline backed by in-memory stores."""
    return build_memory_pipeline(settings)


@pytest.fixture
def sample_feed(sample_row, sample_minimal_row, sample_invalid_row):
    """Return feed lines for a mixed batch of rows."""
    second_variant = {
        **sample_row,
        "ItemID": "item124",
        "PKG": "cs",
        "UnitPrice": "199.90",
        "ProductName": "",
    }
    return make_feed([sample_row, sample_invalid_row, second_variant, sample_minimal_row])
