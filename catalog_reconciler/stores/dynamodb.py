"""
DynamoDB store implementations.

Get-or-create is a conditional ``put_item`` followed, on conflict, by a
consistent read of the existing item. The uniqueness constraint is the
table key, so concurrent writers never produce two identities for one key.
"""

import json
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional

from botocore.exceptions import ClientError

from catalog_reconciler.exceptions import StoreError
from catalog_reconciler.models import (
    CanonicalProduct,
    StagingProduct,
    StagingVariant,
    Variant,
)

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def to_dynamo(value: Any) -> Any:
    """Convert a JSON-compatible value into DynamoDB-safe types."""
    return json.loads(json.dumps(value, default=str), parse_float=Decimal)


def _decimal_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def from_dynamo(item: dict) -> dict:
    """Convert a DynamoDB item back into plain Python numbers."""
    return json.loads(json.dumps(item, default=_decimal_default))


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class DynamoStagingStore:
    """Staging table with (product_id, manufacturer_id) as its primary key."""

    KEY_SCHEMA = [
        {"AttributeName": "product_id", "KeyType": "HASH"},
        {"AttributeName": "manufacturer_id", "KeyType": "RANGE"},
    ]
    ATTRIBUTE_DEFINITIONS = [
        {"AttributeName": "product_id", "AttributeType": "S"},
        {"AttributeName": "manufacturer_id", "AttributeType": "S"},
    ]

    def __init__(self, dynamodb, table_name: str):
        self.dynamodb = dynamodb
        self.table_name = table_name
        self.table = dynamodb.Table(table_name)

    def reset(self) -> None:
        """Drop and recreate the staging table."""
        client = self.dynamodb.meta.client
        try:
            client.delete_table(TableName=self.table_name)
            client.get_waiter("table_not_exists").wait(TableName=self.table_name)
        except ClientError as e:
            if _error_code(e) != "ResourceNotFoundException":
                raise StoreError(
                    message=f"Failed to drop staging table: {e}",
                    store_name=self.table_name,
                    operation="delete_table",
                    original_exception=e,
                )

        try:
            client.create_table(
                TableName=self.table_name,
                KeySchema=self.KEY_SCHEMA,
                AttributeDefinitions=self.ATTRIBUTE_DEFINITIONS,
                BillingMode="PAY_PER_REQUEST",
            )
            client.get_waiter("table_exists").wait(TableName=self.table_name)
        except ClientError as e:
            raise StoreError(
                message=f"Failed to create staging table: {e}",
                store_name=self.table_name,
                operation="create_table",
                original_exception=e,
            )
        logger.info(f"Staging table {self.table_name} recreated")

    def append_variant(
        self,
        product_id: str,
        manufacturer_id: str,
        manufacturer_name: str,
        variant: StagingVariant,
    ) -> None:
        try:
            self.table.update_item(
                Key={"product_id": product_id, "manufacturer_id": manufacturer_id},
                UpdateExpression=(
                    "SET manufacturer_name = if_not_exists(manufacturer_name, :name), "
                    "variants = list_append(if_not_exists(variants, :empty), :variant)"
                ),
                ExpressionAttributeValues={
                    ":name": manufacturer_name,
                    ":empty": [],
                    ":variant": [to_dynamo(variant.model_dump())],
                },
            )
        except ClientError as e:
            raise StoreError(
                message=f"Failed to append staging variant {variant.sku}: {e}",
                store_name=self.table_name,
                operation="update_item",
                original_exception=e,
            )

    def iter_products(self) -> Iterator[StagingProduct]:
        """Scan the table page by page, yielding one product at a time."""
        kwargs: dict = {}
        while True:
            try:
                response = self.table.scan(**kwargs)
            except ClientError as e:
                raise StoreError(
                    message=f"Failed to scan staging table: {e}",
                    store_name=self.table_name,
                    operation="scan",
                    original_exception=e,
                )
            for item in response.get("Items", []):
                yield StagingProduct.model_validate(from_dynamo(item))

            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            kwargs["ExclusiveStartKey"] = last_key


class DynamoIdentityStore:
    """
    Identity table keyed by ``natural_key``, a JSON array of the key fields.
    """

    def __init__(
        self,
        dynamodb,
        table_name: str,
        key_fields: tuple[str, ...],
        id_field: str = "id",
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.table_name = table_name
        self.table = dynamodb.Table(table_name)
        self.key_fields = key_fields
        self.id_field = id_field
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def natural_key(self, key: dict[str, str]) -> str:
        return json.dumps([key[field] for field in self.key_fields])

    def get_or_create(self, natural_key: dict[str, str]) -> tuple[str, bool]:
        partition_key = self.natural_key(natural_key)
        new_id = self.id_factory()

        try:
            self.table.put_item(
                Item={"natural_key": partition_key, **natural_key, self.id_field: new_id},
                ConditionExpression="attribute_not_exists(natural_key)",
            )
            return new_id, True
        except ClientError as e:
            if _error_code(e) != CONDITIONAL_CHECK_FAILED:
                raise StoreError(
                    message=f"Failed to insert into {self.table_name}: {e}",
                    store_name=self.table_name,
                    operation="put_item",
                    original_exception=e,
                )

        try:
            response = self.table.get_item(
                Key={"natural_key": partition_key},
                ConsistentRead=True,
            )
        except ClientError as e:
            raise StoreError(
                message=f"Failed to read from {self.table_name}: {e}",
                store_name=self.table_name,
                operation="get_item",
                original_exception=e,
            )

        item = response.get("Item")
        if not item or not item.get(self.id_field):
            raise StoreError(
                message=f"Identity for {partition_key} vanished from {self.table_name}",
                store_name=self.table_name,
                operation="get_item",
            )
        return item[self.id_field], False


class DynamoCanonicalStore:
    """Canonical products table keyed by ``docId``."""

    def __init__(self, dynamodb, table_name: str):
        self.table_name = table_name
        self.table = dynamodb.Table(table_name)

    def get_or_create(self, product: CanonicalProduct) -> tuple[CanonicalProduct, bool]:
        document = product.to_document()
        try:
            self.table.put_item(
                Item=to_dynamo(document),
                ConditionExpression="attribute_not_exists(docId)",
            )
            return CanonicalProduct.model_validate(document), True
        except ClientError as e:
            if _error_code(e) != CONDITIONAL_CHECK_FAILED:
                raise StoreError(
                    message=f"Failed to insert product {product.doc_id}: {e}",
                    store_name=self.table_name,
                    operation="put_item",
                    original_exception=e,
                )

        try:
            response = self.table.get_item(
                Key={"docId": product.doc_id},
                ConsistentRead=True,
            )
        except ClientError as e:
            raise StoreError(
                message=f"Failed to read product {product.doc_id}: {e}",
                store_name=self.table_name,
                operation="get_item",
                original_exception=e,
            )

        item = response.get("Item")
        if not item:
            raise StoreError(
                message=f"Product {product.doc_id} vanished from {self.table_name}",
                store_name=self.table_name,
                operation="get_item",
            )
        return CanonicalProduct.model_validate(from_dynamo(item)), False

    def append_variant(self, doc_id: str, variant: Variant) -> None:
        try:
            self.table.update_item(
                Key={"docId": doc_id},
                UpdateExpression="SET variants = list_append(variants, :variant)",
                ConditionExpression="attribute_exists(docId)",
                ExpressionAttributeValues={":variant": [to_dynamo(variant.to_document())]},
            )
        except ClientError as e:
            raise StoreError(
                message=f"Failed to append variant {variant.sku} to {doc_id}: {e}",
                store_name=self.table_name,
                operation="update_item",
                original_exception=e,
            )

    def update_variant(
        self,
        doc_id: str,
        position: int,
        sku: str,
        changes: dict,
    ) -> None:
        names = {"#sku": "sku"}
        values = {":sku": sku}
        assignments = []
        for index, (field_name, value) in enumerate(sorted(changes.items())):
            names[f"#f{index}"] = field_name
            values[f":v{index}"] = to_dynamo(value)
            assignments.append(f"variants[{position}].#f{index} = :v{index}")

        try:
            self.table.update_item(
                Key={"docId": doc_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression=f"variants[{position}].#sku = :sku",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            raise StoreError(
                message=f"Failed to update variant {sku} of {doc_id}: {e}",
                store_name=self.table_name,
                operation="update_item",
                original_exception=e,
            )
