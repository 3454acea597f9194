"""End-to-end tests for the catalog pipeline on in-memory stores."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from catalog_reconciler.exceptions import FeedReadError, StoreError
from catalog_reconciler.logging_config import StructuredJsonFormatter
from catalog_reconciler.pipeline import build_memory_pipeline, build_pipeline
from catalog_reconciler.settings import PipelineSettings
from tests.helpers import make_feed


def catalog_product(pipeline, product_id: str, manufacturer_id: str, manufacturer_name: str):
    """Look up a canonical product through the identity stores."""
    manufacturer, _ = pipeline.manufacturers.get_or_create({
        "manufacturer_id": manufacturer_id,
        "manufacturer_name": manufacturer_name,
    })
    vendor, _ = pipeline.vendors.get_or_create({
        "vendor_id": manufacturer_id,
        "vendor_name": manufacturer_name,
    })
    internal_id, _ = pipeline.base_products.get_or_create({
        "manufacturer_id": manufacturer,
        "vendor_id": vendor,
        "vendor_product_id": product_id,
    })
    return pipeline.products.get(internal_id)


class TestCatalogPipeline:
    """Tests for CatalogPipeline.run."""

    def test_run_report(self, pipeline, sample_feed):
        """Test the report of a first import."""
        report = pipeline.run(sample_feed, run_id="run-1")

        assert report["run_id"] == "run-1"
        assert report["valid_rows"] == 3
        assert report["invalid_rows"] == 1
        assert report["staging_writes"] == 3
        assert report["staging_products_processed"] == 2
        assert report["new_manufacturers"] == 2
        assert report["new_vendors"] == 2
        assert report["new_base_products"] == 2
        assert report["new_products"] == 2
        assert report["new_variants"] == 3
        assert report["updated_variants"] == 0
        assert report["error_count"] == 0
        assert report["duration_ms"] >= 0

    def test_run_writes_catalog_documents(self, pipeline, sample_feed):
        """Test the sample row ends up as a catalog variant."""
        pipeline.run(sample_feed)

        product = catalog_product(pipeline, "prod789", "manu456", "Acme Corp")
        assert product.name == "Super Widget"
        assert [v.sku for v in product.variants] == ["item123prod789BX", "item124prod789CS"]

        variant = product.variants[0]
        assert variant.cost == 19.99
        assert variant.manufacturer_item_id == "item123"
        assert variant.manufacturer_item_code == "ACME-123"
        assert variant.packaging == "BX"
        assert variant.description == "A highquality widget for various purposes"

        minimal = catalog_product(pipeline, "prod1", "manu1", "")
        (variant,) = minimal.variants
        assert variant.sku == "item1prod1"
        assert variant.cost is None
        assert variant.images == []

    def test_second_run_is_idempotent(self, pipeline, sample_feed):
        """Test re-importing the same feed creates and updates nothing."""
        pipeline.run(sample_feed, run_id="run-1")
        before = catalog_product(pipeline, "prod789", "manu456", "Acme Corp")

        report = pipeline.run(sample_feed, run_id="run-2")

        assert report["new_manufacturers"] == 0
        assert report["new_vendors"] == 0
        assert report["new_base_products"] == 0
        assert report["new_products"] == 0
        assert report["new_variants"] == 0
        assert report["updated_variants"] == 0
        assert report["unchanged_variants"] == 3
        assert catalog_product(pipeline, "prod789", "manu456", "Acme Corp") == before

    def test_price_change_updates_one_variant(self, pipeline, sample_row):
        """Test a changed price in a later feed updates only that variant."""
        pipeline.run(make_feed([sample_row]))

        report = pipeline.run(make_feed([{**sample_row, "UnitPrice": "25.00"}]))

        assert report["updated_variants"] == 1
        assert report["new_variants"] == 0
        (variant,) = catalog_product(pipeline, "prod789", "manu456", "Acme Corp").variants
        assert variant.cost == 25.0
        assert variant.price == pytest.approx(30.0)

    def test_staging_is_cleared_between_runs(self, pipeline, sample_row, sample_minimal_row):
        """Test a run only merges rows from its own feed."""
        pipeline.run(make_feed([sample_row, sample_minimal_row]))

        report = pipeline.run(make_feed([sample_minimal_row]))

        assert report["staging_products_processed"] == 1
        assert report["unchanged_variants"] == 1

    def test_unreadable_feed_aborts_run(self, pipeline, tmp_path):
        """Test a feed read failure propagates out of the run."""
        with pytest.raises(FeedReadError):
            pipeline.run(str(tmp_path / "missing.txt"))

        assert pipeline.last_context.stats.errors[0]["stage"] == "feed"

    def test_bom_prefixed_feed_file(self, pipeline, sample_row, tmp_path):
        """Test a feed exported with a byte-order mark imports normally."""
        path = tmp_path / "feed.txt"
        path.write_text("".join(make_feed([sample_row])), encoding="utf-8-sig")

        report = pipeline.run(str(path))

        assert report["valid_rows"] == 1
        assert report["invalid_rows"] == 0
        assert report["new_variants"] == 1

    def test_mis_encoded_row_does_not_abort_run(
        self, pipeline, sample_row, sample_minimal_row, tmp_path
    ):
        """Test one latin-1 byte in a description still merges both rows."""
        row = {**sample_row, "ItemDescription": "CAFE widget"}
        data = "".join(make_feed([sample_minimal_row, row])).encode("utf-8")
        path = tmp_path / "feed.txt"
        path.write_bytes(data.replace(b"CAFE", b"Caf\xe9"))

        report = pipeline.run(str(path))

        assert report["valid_rows"] == 2
        assert report["new_variants"] == 2
        assert report["error_count"] == 0
        variant = catalog_product(pipeline, "prod789", "manu456", "Acme Corp").variants[0]
        assert variant.description == "Caf widget"

    def test_unexpected_identity_failure_is_reported_as_identity(self, pipeline, sample_feed):
        """Test a non-store exception during resolution is recorded under identity."""
        with patch.object(
            pipeline.base_products, "get_or_create", side_effect=RuntimeError("boom")
        ):
            report = pipeline.run(sample_feed)

        assert report["new_products"] == 0
        assert [e["stage"] for e in report["errors"]] == ["identity", "identity"]
        assert report["errors"][0]["error"]["error_type"] == "IdentityResolutionError"

    def test_identity_failure_skips_only_that_product(self, pipeline, sample_feed):
        """Test a product whose identity cannot be resolved is skipped and reported."""
        real_get_or_create = pipeline.vendors.get_or_create

        def flaky(natural_key):
            if natural_key["vendor_id"] == "manu1":
                raise StoreError(message="throttled", store_name="vendors", operation="put_item")
            return real_get_or_create(natural_key)

        with patch.object(pipeline.vendors, "get_or_create", side_effect=flaky):
            report = pipeline.run(sample_feed)

        assert report["new_products"] == 1
        assert report["new_variants"] == 2
        (error,) = report["errors"]
        assert error["stage"] == "identity"
        assert error["error"]["error_type"] == "IdentityResolutionError"

    def test_variant_failure_skips_only_that_variant(self, pipeline, sample_feed):
        """Test a failed variant write is reported and the next variant still merges."""
        real_append = pipeline.products.append_variant
        calls = []

        def flaky(doc_id, variant):
            calls.append(variant.sku)
            if variant.sku == "item123prod789BX":
                raise StoreError(message="throttled", store_name="products", operation="update_item")
            return real_append(doc_id, variant)

        with patch.object(pipeline.products, "append_variant", side_effect=flaky):
            report = pipeline.run(sample_feed)

        assert "item124prod789CS" in calls
        assert report["new_variants"] == 2
        (error,) = report["errors"]
        assert error["stage"] == "merge"
        assert error["error"]["context"]["scope"] == "variant"

    def test_staging_reset_failure_is_recorded(self, pipeline, sample_feed):
        """Test a failed staging reset does not abort the run."""
        with patch.object(pipeline.staging, "reset", side_effect=RuntimeError("denied")):
            report = pipeline.run(sample_feed)

        assert report["errors"][0]["stage"] == "staging"
        assert report["new_variants"] == 3


def test_build_memory_pipeline_defaults():
    """Test the memory pipeline uses default settings."""
    pipeline = build_memory_pipeline()
    assert pipeline.settings.chunk_size == 50000
    assert pipeline.settings.markup_percent == 20.0


def test_build_pipeline_configures_logging():
    """Test the DynamoDB pipeline applies the configured log level and format."""
    settings = PipelineSettings(log_level="DEBUG", log_format="json")

    with patch(
        "catalog_reconciler.pipeline.AWSClientFactory.get_dynamodb_resource",
        return_value=MagicMock(),
    ):
        pipeline = build_pipeline(settings)

    root = logging.getLogger()
    assert pipeline.settings is settings
    assert root.level == logging.DEBUG
    (handler,) = root.handlers
    assert isinstance(handler.formatter, StructuredJsonFormatter)


def test_build_memory_pipeline_configures_logging():
    """Test explicit settings configure logging for the memory pipeline."""
    build_memory_pipeline(PipelineSettings(log_level="WARNING"))

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert not isinstance(root.handlers[0].formatter, StructuredJsonFormatter)
