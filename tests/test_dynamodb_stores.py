"""Tests for the DynamoDB stores against mocked tables."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from catalog_reconciler.exceptions import StoreError
from catalog_reconciler.identity import BASE_PRODUCT_KEY_FIELDS, MANUFACTURER_KEY_FIELDS
from catalog_reconciler.models import CanonicalProduct, Variant
from catalog_reconciler.stores.dynamodb import (
    DynamoCanonicalStore,
    DynamoIdentityStore,
    DynamoStagingStore,
    from_dynamo,
    to_dynamo,
)


def client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "mocked"}}, operation)


@pytest.fixture
def table():
    return MagicMock()


@pytest.fixture
def dynamodb(table):
    resource = MagicMock()
    resource.Table.return_value = table
    return resource


class TestConversions:
    """Tests for DynamoDB type conversion."""

    def test_floats_become_decimals(self):
        """Test floats are converted to Decimal and back."""
        item = to_dynamo({"cost": 19.99, "images": [{"size": 1.5}]})

        assert item["cost"] == Decimal("19.99")
        assert item["images"][0]["size"] == Decimal("1.5")
        assert from_dynamo(item) == {"cost": 19.99, "images": [{"size": 1.5}]}

    def test_integral_decimals_become_ints(self):
        """Test whole-number Decimals come back as ints."""
        assert from_dynamo({"count": Decimal("3")}) == {"count": 3}


class TestDynamoIdentityStore:
    """Tests for DynamoIdentityStore."""

    def test_get_or_create_inserts(self, dynamodb, table):
        """Test a new key is inserted conditionally."""
        store = DynamoIdentityStore(
            dynamodb, "manufacturers", MANUFACTURER_KEY_FIELDS, id_factory=lambda: "new-id"
        )

        result = store.get_or_create({"manufacturer_id": "m1", "manufacturer_name": "Acme"})

        assert result == ("new-id", True)
        kwargs = table.put_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_not_exists(natural_key)"
        assert kwargs["Item"] == {
            "natural_key": '["m1", "Acme"]',
            "manufacturer_id": "m1",
            "manufacturer_name": "Acme",
            "id": "new-id",
        }
        table.get_item.assert_not_called()

    def test_get_or_create_returns_existing(self, dynamodb, table):
        """Test a lost insert race reads back the winner's id."""
        table.put_item.side_effect = client_error("ConditionalCheckFailedException")
        table.get_item.return_value = {"Item": {"internal_product_id": "existing-id"}}
        store = DynamoIdentityStore(
            dynamodb, "base-products", BASE_PRODUCT_KEY_FIELDS, id_field="internal_product_id"
        )

        result = store.get_or_create({
            "manufacturer_id": "cm", "vendor_id": "cv", "vendor_product_id": "p1",
        })

        assert result == ("existing-id", False)
        table.get_item.assert_called_once_with(
            Key={"natural_key": '["cm", "cv", "p1"]'},
            ConsistentRead=True,
        )

    def test_get_or_create_other_error(self, dynamodb, table):
        """Test other client errors become StoreError."""
        table.put_item.side_effect = client_error("ProvisionedThroughputExceededException")
        store = DynamoIdentityStore(dynamodb, "manufacturers", MANUFACTURER_KEY_FIELDS)

        with pytest.raises(StoreError) as exc_info:
            store.get_or_create({"manufacturer_id": "m1", "manufacturer_name": "Acme"})
        assert exc_info.value.operation == "put_item"

    def test_get_or_create_missing_item(self, dynamodb, table):
        """Test a conflict with no readable item is a StoreError."""
        table.put_item.side_effect = client_error("ConditionalCheckFailedException")
        table.get_item.return_value = {}
        store = DynamoIdentityStore(dynamodb, "manufacturers", MANUFACTURER_KEY_FIELDS)

        with pytest.raises(StoreError, match="vanished"):
            store.get_or_create({"manufacturer_id": "m1", "manufacturer_name": "Acme"})


class TestDynamoStagingStore:
    """Tests for DynamoStagingStore."""

    def test_append_variant(self, dynamodb, table, staging_variant):
        """Test a staging append is a single list_append update."""
        store = DynamoStagingStore(dynamodb, "staging")

        store.append_variant("prod789", "manu456", "Acme Corp", staging_variant)

        kwargs = table.update_item.call_args.kwargs
        assert kwargs["Key"] == {"product_id": "prod789", "manufacturer_id": "manu456"}
        assert "list_append(if_not_exists(variants, :empty), :variant)" in kwargs["UpdateExpression"]
        (variant,) = kwargs["ExpressionAttributeValues"][":variant"]
        assert variant["sku"] == "item123prod789BX"
        assert variant["unit_price"] == Decimal("19.99")

    def test_iter_products_paginates(self, dynamodb, table, staging_variant):
        """Test the scan follows LastEvaluatedKey."""
        variant = to_dynamo(staging_variant.model_dump())
        table.scan.side_effect = [
            {
                "Items": [{"product_id": "p1", "manufacturer_id": "m1", "variants": [variant]}],
                "LastEvaluatedKey": {"product_id": "p1", "manufacturer_id": "m1"},
            },
            {"Items": [{"product_id": "p2", "manufacturer_id": "m1", "variants": []}]},
        ]
        store = DynamoStagingStore(dynamodb, "staging")

        products = list(store.iter_products())

        assert [p.product_id for p in products] == ["p1", "p2"]
        assert products[0].variants[0].unit_price == 19.99
        assert table.scan.call_args_list[1].kwargs == {
            "ExclusiveStartKey": {"product_id": "p1", "manufacturer_id": "m1"}
        }

    def test_reset_recreates_table(self, dynamodb):
        """Test reset drops and recreates the table."""
        client = dynamodb.meta.client
        store = DynamoStagingStore(dynamodb, "staging")

        store.reset()

        client.delete_table.assert_called_once_with(TableName="staging")
        assert client.create_table.call_args.kwargs["BillingMode"] == "PAY_PER_REQUEST"

    def test_reset_missing_table(self, dynamodb):
        """Test a missing table is created without error."""
        client = dynamodb.meta.client
        client.delete_table.side_effect = client_error("ResourceNotFoundException", "DeleteTable")
        store = DynamoStagingStore(dynamodb, "staging")

        store.reset()

        client.create_table.assert_called_once()


class TestDynamoCanonicalStore:
    """Tests for DynamoCanonicalStore."""

    @pytest.fixture
    def product(self):
        return CanonicalProduct(
            doc_id="internal-1",
            name="Super Widget",
            manufacturer_id="cm",
            vendor_id="cv",
        )

    def test_get_or_create_new(self, dynamodb, table, product):
        """Test a new product is written conditionally."""
        store = DynamoCanonicalStore(dynamodb, "products")

        result, created = store.get_or_create(product)

        assert created is True
        assert result.doc_id == "internal-1"
        assert table.put_item.call_args.kwargs["ConditionExpression"] == "attribute_not_exists(docId)"

    def test_get_or_create_existing(self, dynamodb, table, product):
        """Test an existing product is read back unchanged."""
        existing = {**product.to_document(), "name": "Original Name"}
        existing["variants"] = [{
            "id": "abcdefghijkl",
            "sku": "SKU1",
            "manufacturerItemId": "item1",
            "cost": Decimal("19.99"),
            "available": True,
            "images": [],
        }]
        table.put_item.side_effect = client_error("ConditionalCheckFailedException")
        table.get_item.return_value = {"Item": existing}
        store = DynamoCanonicalStore(dynamodb, "products")

        result, created = store.get_or_create(product)

        assert created is False
        assert result.name == "Original Name"
        assert result.variants[0].cost == 19.99

    def test_update_variant_targets_changed_fields(self, dynamodb, table):
        """Test the update expression sets only the changed fields at the position."""
        store = DynamoCanonicalStore(dynamodb, "products")

        store.update_variant("internal-1", 2, "SKU1", {"price": 12.0, "cost": 10.0})

        kwargs = table.update_item.call_args.kwargs
        assert kwargs["UpdateExpression"] == "SET variants[2].#f0 = :v0, variants[2].#f1 = :v1"
        assert kwargs["ConditionExpression"] == "variants[2].#sku = :sku"
        assert kwargs["ExpressionAttributeNames"] == {"#sku": "sku", "#f0": "cost", "#f1": "price"}
        assert kwargs["ExpressionAttributeValues"] == {
            ":sku": "SKU1",
            ":v0": Decimal("10.0"),
            ":v1": Decimal("12.0"),
        }

    def test_append_variant_failure(self, dynamodb, table):
        """Test a failed append is a StoreError."""
        table.update_item.side_effect = client_error("ConditionalCheckFailedException", "UpdateItem")
        store = DynamoCanonicalStore(dynamodb, "products")
        variant = Variant(id="abcdefghijkl", sku="SKU1", manufacturer_item_id="item1")

        with pytest.raises(StoreError):
            store.append_variant("missing", variant)
