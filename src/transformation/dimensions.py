"""
Dimension Builder

Builds the customer, product and seller dimensions from conformed frames.

Every dimension:
- numbers its members from 1 in ascending natural-key order
- carries exactly one sentinel member with key -1 for unresolved references
- is rebuilt from scratch on every run
"""

from typing import Any, Dict

import polars as pl
import structlog

from .cleaners import UNKNOWN_CATEGORY
from .schemas import DIM_CUSTOMER_SCHEMA, DIM_PRODUCT_SCHEMA, DIM_SELLER_SCHEMA

logger = structlog.get_logger(__name__)

SENTINEL_KEY = -1
SENTINEL_ID = "UNKNOWN"
NOT_AVAILABLE = "N/A"

CUSTOMER_SENTINEL: Dict[str, Any] = {
    "customer_key": SENTINEL_KEY,
    "customer_id": SENTINEL_ID,
    "customer_unique_id": SENTINEL_ID,
    "zip_code": NOT_AVAILABLE,
    "city": NOT_AVAILABLE,
    "state": NOT_AVAILABLE,
    "latitude": None,
    "longitude": None,
}

PRODUCT_SENTINEL: Dict[str, Any] = {
    "product_key": SENTINEL_KEY,
    "product_id": SENTINEL_ID,
    "category_portuguese": UNKNOWN_CATEGORY,
    "category_english": UNKNOWN_CATEGORY,
    "name_length": 0,
    "description_length": 0,
    "photos_qty": 0,
    "weight_grams": 0.0,
    "length_cm": 0.0,
    "height_cm": 0.0,
    "width_cm": 0.0,
    "volume_cm3": 0.0,
}

SELLER_SENTINEL: Dict[str, Any] = {
    "seller_key": SENTINEL_KEY,
    "seller_id": SENTINEL_ID,
    "zip_code": NOT_AVAILABLE,
    "city": NOT_AVAILABLE,
    "state": NOT_AVAILABLE,
}


class DimensionBuilder:
    """
    Builds star-schema dimensions with stable surrogate keys.

    Example:
        builder = DimensionBuilder()
        dim_customer = builder.build_customer_dimension(customers, geolocation)
        lookup = builder.key_lookup(dim_customer, "customer_id", "customer_key")
    """

    @staticmethod
    def assign_surrogate_keys(
        df: pl.DataFrame,
        natural_key: str,
        key_name: str,
    ) -> pl.DataFrame:
        """
        Number rows from 1 by ascending natural key.

        The natural key must already be unique and non-null.
        """
        return (
            df.sort(natural_key)
            .with_row_index(key_name, offset=1)
            .with_columns(pl.col(key_name).cast(pl.Int64))
        )

    @staticmethod
    def append_sentinel(
        df: pl.DataFrame,
        sentinel: Dict[str, Any],
        schema: Dict[str, pl.DataType],
    ) -> pl.DataFrame:
        """Cast to the dimension contract and add the -1 member last"""
        members = df.select([pl.col(name).cast(dtype) for name, dtype in schema.items()])
        sentinel_row = pl.DataFrame([sentinel], schema=schema)
        return pl.concat([members, sentinel_row], how="vertical")

    @staticmethod
    def key_lookup(dim: pl.DataFrame, natural_key: str, key_name: str) -> pl.DataFrame:
        """Natural key -> surrogate key mapping, sentinel excluded"""
        return dim.filter(pl.col(key_name) != SENTINEL_KEY).select(natural_key, key_name)

    def build_customer_dimension(
        self,
        customers: pl.DataFrame,
        geolocation: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Build ``dim_customer``.

        Customers are enriched with averaged coordinates by ZIP prefix;
        customers without a geolocation match keep null coordinates.
        """
        coordinates = geolocation.select(
            pl.col("geolocation_zip_code_prefix").alias("customer_zip_code_prefix"),
            pl.col("geolocation_lat").alias("latitude"),
            pl.col("geolocation_lng").alias("longitude"),
        )
        enriched = customers.join(coordinates, on="customer_zip_code_prefix", how="left").select(
            "customer_id",
            "customer_unique_id",
            pl.col("customer_zip_code_prefix").alias("zip_code"),
            pl.col("customer_city").alias("city"),
            pl.col("customer_state").alias("state"),
            "latitude",
            "longitude",
        )

        keyed = self.assign_surrogate_keys(enriched, "customer_id", "customer_key")
        dim = self.append_sentinel(keyed, CUSTOMER_SENTINEL, DIM_CUSTOMER_SCHEMA)
        logger.info(
            "Built dimension",
            dimension="dim_customer",
            rows=len(dim),
            without_coordinates=keyed.filter(pl.col("latitude").is_null()).height,
        )
        return dim

    def build_product_dimension(
        self,
        products: pl.DataFrame,
        translations: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Build ``dim_product``.

        Adds ``volume_cm3`` and the English category name, matched
        case-insensitively and defaulting to ``Unknown``.
        """
        english = translations.select(
            pl.col("product_category_name").str.to_lowercase().alias("_category_key"),
            pl.col("product_category_name_english").alias("category_english"),
        ).unique(subset=["_category_key"], keep="first", maintain_order=True)

        enriched = (
            products.with_columns(
                pl.col("product_category_name").str.to_lowercase().alias("_category_key")
            )
            .join(english, on="_category_key", how="left")
            .select(
                "product_id",
                pl.col("product_category_name").alias("category_portuguese"),
                pl.col("category_english").fill_null(UNKNOWN_CATEGORY),
                pl.col("product_name_lenght").alias("name_length"),
                pl.col("product_description_lenght").alias("description_length"),
                pl.col("product_photos_qty").alias("photos_qty"),
                pl.col("product_weight_g").alias("weight_grams"),
                pl.col("product_length_cm").alias("length_cm"),
                pl.col("product_height_cm").alias("height_cm"),
                pl.col("product_width_cm").alias("width_cm"),
                (
                    pl.col("product_length_cm")
                    * pl.col("product_height_cm")
                    * pl.col("product_width_cm")
                ).alias("volume_cm3"),
            )
        )

        keyed = self.assign_surrogate_keys(enriched, "product_id", "product_key")
        dim = self.append_sentinel(keyed, PRODUCT_SENTINEL, DIM_PRODUCT_SCHEMA)
        logger.info(
            "Built dimension",
            dimension="dim_product",
            rows=len(dim),
            untranslated=keyed.filter(pl.col("category_english") == UNKNOWN_CATEGORY).height,
        )
        return dim

    def build_seller_dimension(self, sellers: pl.DataFrame) -> pl.DataFrame:
        """Build ``dim_seller``"""
        renamed = sellers.select(
            "seller_id",
            pl.col("seller_zip_code_prefix").alias("zip_code"),
            pl.col("seller_city").alias("city"),
            pl.col("seller_state").alias("state"),
        )
        keyed = self.assign_surrogate_keys(renamed, "seller_id", "seller_key")
        dim = self.append_sentinel(keyed, SELLER_SENTINEL, DIM_SELLER_SCHEMA)
        logger.info("Built dimension", dimension="dim_seller", rows=len(dim))
        return dim
