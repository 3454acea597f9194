"""
AWS client construction shared by the feed reader and DynamoDB stores.
"""

from typing import Optional

import boto3
from botocore.config import Config

from catalog_reconciler.settings import PipelineSettings

boto_config = Config(
    retries={"max_attempts": 3, "mode": "adaptive"},
    connect_timeout=10,
    read_timeout=60,
)


class AWSClientFactory:
    """Factory for creating AWS clients with proper configuration."""

    _s3_client = None
    _dynamodb_resource = None

    @staticmethod
    def _client_kwargs(settings: Optional[PipelineSettings]) -> dict:
        settings = settings or PipelineSettings()
        kwargs = {"config": boto_config, "region_name": settings.aws_region}
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url
        return kwargs

    @classmethod
    def get_s3_client(cls, settings: Optional[PipelineSettings] = None):
        """Get or create S3 client."""
        if cls._s3_client is None:
            cls._s3_client = boto3.client("s3", **cls._client_kwargs(settings))
        return cls._s3_client

    @classmethod
    def get_dynamodb_resource(cls, settings: Optional[PipelineSettings] = None):
        """Get or create DynamoDB resource."""
        if cls._dynamodb_resource is None:
            cls._dynamodb_resource = boto3.resource(
                "dynamodb", **cls._client_kwargs(settings)
            )
        return cls._dynamodb_resource

    @classmethod
    def reset(cls):
        """Reset clients (useful for testing)."""
        cls._s3_client = None
        cls._dynamodb_resource = None
