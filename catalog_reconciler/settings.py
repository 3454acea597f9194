"""
Pipeline settings loaded from environment variables.
"""

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from catalog_reconciler.exceptions import ConfigurationError

ENV_MAP = {
    "chunk_size": "CHUNK_SIZE",
    "markup_percent": "MARKUP_PERCENT",
    "feed_delimiter": "FEED_DELIMITER",
    "feed_encoding": "FEED_ENCODING",
    "feed_decode_errors": "FEED_DECODE_ERRORS",
    "max_invalid_row_samples": "MAX_INVALID_ROW_SAMPLES",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
    "aws_region": "AWS_REGION",
    "aws_endpoint_url": "AWS_ENDPOINT_URL",
    "staging_table": "STAGING_TABLE",
    "manufacturers_table": "MANUFACTURERS_TABLE",
    "vendors_table": "VENDORS_TABLE",
    "base_products_table": "BASE_PRODUCTS_TABLE",
    "products_table": "PRODUCTS_TABLE",
}


class PipelineSettings(BaseModel):
    """Runtime configuration for one pipeline run."""
    chunk_size: int = Field(50000, gt=0)
    markup_percent: float = Field(20.0, ge=0)
    feed_delimiter: Optional[str] = Field(None, min_length=1, max_length=1)
    feed_encoding: str = "utf-8-sig"
    feed_decode_errors: Literal["strict", "replace", "ignore"] = "replace"
    max_invalid_row_samples: int = Field(1000, ge=0)
    log_level: str = "INFO"
    log_format: str = "text"
    aws_region: str = "us-east-1"
    aws_endpoint_url: Optional[str] = None
    staging_table: str = "catalog-staging-products"
    manufacturers_table: str = "catalog-manufacturers"
    vendors_table: str = "catalog-vendors"
    base_products_table: str = "catalog-base-products"
    products_table: str = "catalog-products"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Unset or blank variables fall back to the model defaults.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field_name, env_key in ENV_MAP.items():
            raw = environ.get(env_key)
            if raw is None or raw == "":
                continue
            if field_name == "feed_delimiter" and raw in ("\\t", "tab"):
                raw = "\t"
            values[field_name] = raw

        try:
            return cls.model_validate(values)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field_name = str(first["loc"][0]) if first["loc"] else "settings"
            raise ConfigurationError(
                message=f"Invalid configuration for {field_name}: {first['msg']}",
                config_key=ENV_MAP.get(field_name, field_name),
                original_exception=e,
            ) from e
