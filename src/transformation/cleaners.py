"""
Record Conformance Module

Turns raw Olist extracts into the conformed (silver) layer.
Handles:
- Quote stripping, trimming and NULL-marker removal
- Casing normalization (cities, state codes, statuses, payment types)
- Typed casting of numeric and timestamp fields
- Natural-key validation and deduplication
- Entity-specific quality rules (customer dedup, geolocation averaging,
  order timestamp sequencing, review score range)

Rejected rows are dropped and counted, never raised.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import polars as pl
import structlog

from src.config import get_settings
from src.config.settings import ConformanceSettings
from .schemas import CONFORMED_SCHEMAS, TIMESTAMP, Source

logger = structlog.get_logger(__name__)

DATETIME_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S%.f",
    "%Y-%m-%d %H:%M",
]

UNKNOWN_CATEGORY = "Unknown"

LEGACY_VALUE_REMAP = {"not_defined": "unknown"}

REVIEW_CATEGORIES = {
    5: "Excellent",
    4: "Good",
    3: "Average",
    2: "Poor",
    1: "Very Poor",
}

# Translations missing from the public translation extract
SUPPLEMENTARY_TRANSLATIONS = [
    ("portateis_cozinha_e_preparadores_de_alimentos", "portable_kitchen_food_processors"),
    ("pc_gamer", "gaming_computers"),
    (UNKNOWN_CATEGORY, UNKNOWN_CATEGORY),
]


def parse_timestamp(text: pl.Expr) -> pl.Expr:
    """Parse cleaned timestamp text against every accepted format; unparseable -> null"""
    candidates = [
        text.str.to_datetime(fmt, time_unit="us", strict=False)
        for fmt in DATETIME_FORMATS
    ]
    candidates.append(text.str.to_date("%Y-%m-%d", strict=False).cast(TIMESTAMP))
    return pl.coalesce(candidates)


@dataclass
class ConformanceStats:
    """Row accounting for one conformed entity"""
    entity: str
    input_rows: int
    output_rows: int
    rejected_rows: int
    duplicates_removed: int = 0
    rejections: Dict[str, int] = field(default_factory=dict)


class RecordConformer:
    """
    Conforms raw entity collections into validated, deduplicated frames.

    Raw frames are expected to carry the raw column contract as strings;
    every ``conform_*`` method returns the conformed frame together with
    its ``ConformanceStats``.

    Example:
        conformer = RecordConformer()
        customers, stats = conformer.conform_customers(raw_customers)
        orders, _ = conformer.conform_orders(raw_orders, customers)
    """

    def __init__(self, settings: Optional[ConformanceSettings] = None):
        self.settings = settings or get_settings().conformance
        self._entity_rules: Dict[str, Callable] = {}
        self._register_default_rules()

    def _register_default_rules(self) -> None:
        """Register the per-entity conformance rules"""
        self._entity_rules = {
            Source.CUSTOMERS: self.conform_customers,
            Source.GEOLOCATION: self.conform_geolocation,
            Source.SELLERS: self.conform_sellers,
            Source.PRODUCTS: self.conform_products,
            Source.CATEGORY_TRANSLATION: self.conform_category_translation,
            Source.ORDERS: self.conform_orders,
            Source.ORDER_ITEMS: self.conform_order_items,
            Source.ORDER_PAYMENTS: self.conform_payments,
            Source.ORDER_REVIEWS: self.conform_reviews,
        }

    def conform(self, entity: str, df: pl.DataFrame, **context) -> Tuple[pl.DataFrame, ConformanceStats]:
        """Dispatch to the rule registered for ``entity``"""
        rule = self._entity_rules.get(entity)
        if rule is None:
            raise ValueError(f"Unknown entity: {entity}")
        return rule(df, **context)

    # ------------------------------------------------------------------
    # Field-level expressions
    # ------------------------------------------------------------------

    def _clean_str(self, column: str) -> pl.Expr:
        """Strip quotes, trim, and null out NULL markers"""
        cleaned = (
            pl.col(column)
            .cast(pl.Utf8)
            .str.replace_all('"', "", literal=True)
            .str.strip_chars()
        )
        return (
            pl.when(cleaned.is_in(self.settings.null_markers))
            .then(pl.lit(None, dtype=pl.Utf8))
            .otherwise(cleaned)
            .alias(column)
        )

    @staticmethod
    def _clean_text(column: str) -> pl.Expr:
        """Strip quotes and trim free text; only empty strings become null"""
        cleaned = (
            pl.col(column)
            .cast(pl.Utf8)
            .str.replace_all('"', "", literal=True)
            .str.strip_chars()
        )
        return pl.when(cleaned == "").then(pl.lit(None, dtype=pl.Utf8)).otherwise(cleaned).alias(column)

    def _proper_case(self, column: str) -> pl.Expr:
        return self._clean_str(column).str.to_titlecase()

    def _upper(self, column: str) -> pl.Expr:
        return self._clean_str(column).str.to_uppercase()

    def _lower_remapped(self, column: str) -> pl.Expr:
        """Lowercase enumerations and map legacy values"""
        lowered = self._clean_str(column).str.to_lowercase()
        expr = lowered
        for legacy, canonical in LEGACY_VALUE_REMAP.items():
            expr = pl.when(lowered == legacy).then(pl.lit(canonical)).otherwise(expr)
        return expr

    def _to_float(self, column: str) -> pl.Expr:
        return self._clean_str(column).cast(pl.Float64, strict=False)

    def _to_int(self, column: str) -> pl.Expr:
        return self._to_float(column).cast(pl.Int64, strict=False)

    def _to_timestamp(self, column: str) -> pl.Expr:
        """Parse a timestamp against the accepted formats; unparseable -> null"""
        return parse_timestamp(self._clean_str(column)).alias(column)

    # ------------------------------------------------------------------
    # Row-level helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(df: pl.DataFrame, keys: List[str]) -> pl.DataFrame:
        """Drop rows with a null natural key component"""
        return df.filter(pl.all_horizontal([pl.col(k).is_not_null() for k in keys]))

    @staticmethod
    def _deduplicate(
        df: pl.DataFrame,
        subset: List[str],
        order_by: Optional[List[str]] = None,
    ) -> pl.DataFrame:
        """Keep the first row per ``subset`` after a stable sort"""
        order_by = order_by or df.columns
        return (
            df.sort(order_by, nulls_last=True, maintain_order=True)
            .unique(subset=subset, keep="first", maintain_order=True)
        )

    @staticmethod
    def _cast_to_contract(df: pl.DataFrame, entity: str) -> pl.DataFrame:
        schema = CONFORMED_SCHEMAS[entity]
        return df.select([pl.col(name).cast(dtype) for name, dtype in schema.items()])

    def _finish(
        self,
        entity: str,
        df: pl.DataFrame,
        input_rows: int,
        rejections: Dict[str, int],
        duplicates_removed: int = 0,
    ) -> Tuple[pl.DataFrame, ConformanceStats]:
        stats = ConformanceStats(
            entity=entity,
            input_rows=input_rows,
            output_rows=len(df),
            rejected_rows=sum(rejections.values()),
            duplicates_removed=duplicates_removed,
            rejections={k: v for k, v in rejections.items() if v},
        )
        logger.info(
            "Conformed entity",
            entity=entity,
            input_rows=stats.input_rows,
            output_rows=stats.output_rows,
            rejected_rows=stats.rejected_rows,
            duplicates_removed=stats.duplicates_removed,
        )
        if stats.rejections:
            logger.debug("Rejection breakdown", entity=entity, **stats.rejections)
        return df, stats

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def conform_customers(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """
        Conform customers, keeping one row per ``customer_unique_id``.

        ``customer_id`` is issued per order while ``customer_unique_id``
        identifies the person; the row with the smallest ``customer_id``
        is retained.
        """
        input_rows = len(df)
        df = df.select(
            self._clean_str("customer_id").alias("customer_id"),
            self._clean_str("customer_unique_id").alias("customer_unique_id"),
            self._clean_str("customer_zip_code_prefix").alias("customer_zip_code_prefix"),
            self._proper_case("customer_city").alias("customer_city"),
            self._upper("customer_state").alias("customer_state"),
        )

        valid = self._require(df, ["customer_id", "customer_unique_id"])
        missing_key = input_rows - len(valid)

        deduped = self._deduplicate(
            valid,
            subset=["customer_unique_id"],
            order_by=["customer_id", "customer_zip_code_prefix", "customer_city", "customer_state"],
        ).sort("customer_id")

        return self._finish(
            Source.CUSTOMERS,
            self._cast_to_contract(deduped, Source.CUSTOMERS),
            input_rows,
            {"missing_key": missing_key},
            duplicates_removed=len(valid) - len(deduped),
        )

    def conform_geolocation(
        self,
        df: pl.DataFrame,
        customers: Optional[pl.DataFrame] = None,
    ) -> Tuple[pl.DataFrame, ConformanceStats]:
        """
        Collapse geolocation rows to one per ZIP prefix.

        Only rows with a 5-digit ZIP and coordinates inside the configured
        bounding box contribute to the averaged latitude/longitude. The city
        label prefers a customer city for the same ZIP. ``customers`` should
        be the raw customer rows, not the deduplicated set, so ZIPs that only
        belong to merged-away customer rows still get a customer city.

        Args:
            df: Raw geolocation rows
            customers: Raw (or conformed) customers used for the city label
        """
        s = self.settings
        input_rows = len(df)
        df = df.select(
            self._clean_str("geolocation_zip_code_prefix").alias("geolocation_zip_code_prefix"),
            self._to_float("geolocation_lat").alias("geolocation_lat"),
            self._to_float("geolocation_lng").alias("geolocation_lng"),
            self._proper_case("geolocation_city").alias("geolocation_city"),
            self._upper("geolocation_state").alias("geolocation_state"),
        )

        zip_ok = df.filter(
            pl.col("geolocation_zip_code_prefix").is_not_null()
            & pl.col("geolocation_zip_code_prefix").str.contains(s.zip_pattern)
        )
        plausible = zip_ok.filter(
            pl.col("geolocation_lat").is_not_null()
            & pl.col("geolocation_lng").is_not_null()
            & pl.col("geolocation_lat").is_between(s.lat_min, s.lat_max)
            & pl.col("geolocation_lng").is_between(s.lng_min, s.lng_max)
        )

        grouped = plausible.group_by("geolocation_zip_code_prefix").agg(
            pl.col("geolocation_lat").mean(),
            pl.col("geolocation_lng").mean(),
            pl.col("geolocation_city").max().alias("_geo_city"),
            pl.col("geolocation_state").max(),
        )

        if customers is not None and len(customers) > 0:
            customer_cities = (
                customers.select(
                    self._clean_str("customer_zip_code_prefix"),
                    self._proper_case("customer_city"),
                )
                .filter(pl.col("customer_city").is_not_null())
                .group_by("customer_zip_code_prefix")
                .agg(pl.col("customer_city").max().alias("_customer_city"))
            )
            grouped = grouped.join(
                customer_cities,
                left_on="geolocation_zip_code_prefix",
                right_on="customer_zip_code_prefix",
                how="left",
            )
        else:
            grouped = grouped.with_columns(pl.lit(None, dtype=pl.Utf8).alias("_customer_city"))

        result = grouped.with_columns(
            pl.coalesce(["_customer_city", "_geo_city"]).alias("geolocation_city")
        ).sort("geolocation_zip_code_prefix")

        return self._finish(
            Source.GEOLOCATION,
            self._cast_to_contract(result, Source.GEOLOCATION),
            input_rows,
            {
                "invalid_zip": input_rows - len(zip_ok),
                "implausible_coordinates": len(zip_ok) - len(plausible),
            },
            duplicates_removed=len(plausible) - len(result),
        )

    def conform_sellers(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """Conform sellers"""
        input_rows = len(df)
        df = df.select(
            self._clean_str("seller_id").alias("seller_id"),
            self._clean_str("seller_zip_code_prefix").alias("seller_zip_code_prefix"),
            self._proper_case("seller_city").alias("seller_city"),
            self._upper("seller_state").alias("seller_state"),
        )
        valid = self._require(df, ["seller_id"])
        deduped = self._deduplicate(valid, subset=["seller_id"]).sort("seller_id")

        return self._finish(
            Source.SELLERS,
            self._cast_to_contract(deduped, Source.SELLERS),
            input_rows,
            {"missing_key": input_rows - len(valid)},
            duplicates_removed=len(valid) - len(deduped),
        )

    def conform_products(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """Conform products; a blank category becomes ``Unknown``"""
        input_rows = len(df)
        df = df.select(
            self._clean_str("product_id").alias("product_id"),
            self._clean_str("product_category_name")
            .str.to_lowercase()
            .fill_null(UNKNOWN_CATEGORY)
            .alias("product_category_name"),
            self._to_int("product_name_lenght").alias("product_name_lenght"),
            self._to_int("product_description_lenght").alias("product_description_lenght"),
            self._to_int("product_photos_qty").fill_null(0).alias("product_photos_qty"),
            self._to_float("product_weight_g").alias("product_weight_g"),
            self._to_float("product_length_cm").alias("product_length_cm"),
            self._to_float("product_height_cm").alias("product_height_cm"),
            self._to_float("product_width_cm").alias("product_width_cm"),
        )
        valid = self._require(df, ["product_id"])
        deduped = self._deduplicate(valid, subset=["product_id"]).sort("product_id")

        return self._finish(
            Source.PRODUCTS,
            self._cast_to_contract(deduped, Source.PRODUCTS),
            input_rows,
            {"missing_key": input_rows - len(valid)},
            duplicates_removed=len(valid) - len(deduped),
        )

    def conform_category_translation(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """Conform category translations and append the supplementary entries"""
        input_rows = len(df)
        df = df.select(
            self._clean_str("product_category_name").alias("product_category_name"),
            self._clean_str("product_category_name_english").alias("product_category_name_english"),
        )
        valid = self._require(df, ["product_category_name"])

        extra = pl.DataFrame(
            {
                "product_category_name": [name for name, _ in SUPPLEMENTARY_TRANSLATIONS],
                "product_category_name_english": [english for _, english in SUPPLEMENTARY_TRANSLATIONS],
            },
            schema={"product_category_name": pl.Utf8, "product_category_name_english": pl.Utf8},
        )
        combined = pl.concat([valid, extra], how="vertical")

        # Source rows win over supplementary ones for the same category
        deduped = (
            combined.with_columns(pl.col("product_category_name").str.to_lowercase().alias("_match_key"))
            .unique(subset=["_match_key"], keep="first", maintain_order=True)
            .drop("_match_key")
            .sort("product_category_name")
        )

        return self._finish(
            Source.CATEGORY_TRANSLATION,
            self._cast_to_contract(deduped, Source.CATEGORY_TRANSLATION),
            input_rows,
            {"missing_key": input_rows - len(valid)},
            duplicates_removed=len(combined) - len(deduped),
        )

    def conform_orders(
        self,
        df: pl.DataFrame,
        customers: pl.DataFrame,
    ) -> Tuple[pl.DataFrame, ConformanceStats]:
        """
        Conform order headers.

        An order is rejected when its keys or purchase timestamp are missing,
        when its customer is absent from the conformed customer set, or when
        any adjacent pair of present stage timestamps runs backwards
        (purchase <= approval <= carrier hand-off <= customer delivery).
        Out-of-order rows are dropped as a whole, not repaired.

        Args:
            df: Raw order rows
            customers: Conformed customers
        """
        input_rows = len(df)
        df = df.select(
            self._clean_str("order_id").alias("order_id"),
            self._clean_str("customer_id").alias("customer_id"),
            self._lower_remapped("order_status").alias("order_status"),
            self._to_timestamp("order_purchase_timestamp").alias("order_purchase_timestamp"),
            self._to_timestamp("order_approved_at").alias("order_approved_at"),
            self._to_timestamp("order_delivered_carrier_date").alias("order_delivered_carrier_date"),
            self._to_timestamp("order_delivered_customer_date").alias("order_delivered_customer_date"),
            self._to_timestamp("order_estimated_delivery_date").alias("order_estimated_delivery_date"),
        )

        keyed = self._require(df, ["order_id", "customer_id", "order_purchase_timestamp"])

        known = keyed.join(
            customers.select("customer_id").unique(),
            on="customer_id",
            how="semi",
        )

        purchase = pl.col("order_purchase_timestamp")
        approved = pl.col("order_approved_at")
        carrier = pl.col("order_delivered_carrier_date")
        delivered = pl.col("order_delivered_customer_date")
        sequenced = known.filter(
            (approved.is_null() | (purchase <= approved))
            & (carrier.is_null() | approved.is_null() | (approved <= carrier))
            & (delivered.is_null() | carrier.is_null() | (carrier <= delivered))
        )

        deduped = self._deduplicate(sequenced, subset=["order_id"]).sort("order_id")

        return self._finish(
            Source.ORDERS,
            self._cast_to_contract(deduped, Source.ORDERS),
            input_rows,
            {
                "missing_key": input_rows - len(keyed),
                "unknown_customer": len(keyed) - len(known),
                "timestamp_sequence": len(known) - len(sequenced),
            },
            duplicates_removed=len(sequenced) - len(deduped),
        )

    def conform_order_items(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """Conform order line items"""
        input_rows = len(df)
        df = df.select(
            self._clean_str("order_id").alias("order_id"),
            self._to_int("order_item_id").alias("order_item_id"),
            self._clean_str("product_id").alias("product_id"),
            self._clean_str("seller_id").alias("seller_id"),
            self._to_timestamp("shipping_limit_date").alias("shipping_limit_date"),
            self._to_float("price").alias("price"),
            self._to_float("freight_value").alias("freight_value"),
        )
        valid = self._require(df, ["order_id", "order_item_id", "product_id", "seller_id"])
        deduped = self._deduplicate(valid, subset=["order_id", "order_item_id"]).sort(
            ["order_id", "order_item_id"]
        )

        return self._finish(
            Source.ORDER_ITEMS,
            self._cast_to_contract(deduped, Source.ORDER_ITEMS),
            input_rows,
            {"missing_key": input_rows - len(valid)},
            duplicates_removed=len(valid) - len(deduped),
        )

    def conform_payments(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """Conform payments; ``not_defined`` payment types become ``unknown``"""
        input_rows = len(df)
        df = df.select(
            self._clean_str("order_id").alias("order_id"),
            self._to_int("payment_sequential").alias("payment_sequential"),
            self._lower_remapped("payment_type").alias("payment_type"),
            self._to_int("payment_installments").alias("payment_installments"),
            self._to_float("payment_value").alias("payment_value"),
        )
        valid = self._require(df, ["order_id"])
        deduped = self._deduplicate(
            valid.filter(pl.col("payment_sequential").is_not_null()),
            subset=["order_id", "payment_sequential"],
        )
        # Payments without a sequence number cannot collide on the natural key
        unsequenced = valid.filter(pl.col("payment_sequential").is_null())
        result = pl.concat([deduped, unsequenced], how="vertical").sort(
            ["order_id", "payment_sequential"], nulls_last=True
        )

        return self._finish(
            Source.ORDER_PAYMENTS,
            self._cast_to_contract(result, Source.ORDER_PAYMENTS),
            input_rows,
            {"missing_key": input_rows - len(valid)},
            duplicates_removed=len(valid) - len(result),
        )

    def conform_reviews(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, ConformanceStats]:
        """
        Conform reviews and derive their quality attributes.

        Scores outside [1, 5] are rejected. Each kept row gets a category
        label, a free-text flag and two flags telling whether the raw date
        strings parse as dates.
        """
        input_rows = len(df)
        df = df.select(
            self._clean_str("review_id").alias("review_id"),
            self._clean_str("order_id").alias("order_id"),
            self._to_float("review_score").alias("_score"),
            self._clean_text("review_comment_title").alias("review_comment_title"),
            self._clean_text("review_comment_message").alias("review_comment_message"),
            self._clean_str("review_creation_date").alias("review_creation_date"),
            self._clean_str("review_answer_timestamp").alias("review_answer_timestamp"),
            self._to_timestamp("review_creation_date").is_not_null().alias("is_creation_date_valid"),
            self._to_timestamp("review_answer_timestamp").is_not_null().alias("is_answer_date_valid"),
        )

        keyed = self._require(df, ["review_id", "order_id"])
        scored = keyed.filter(
            pl.col("_score").is_not_null()
            & pl.col("_score").is_between(1, 5)
            & (pl.col("_score") == pl.col("_score").floor())
        )

        category = pl.lit(UNKNOWN_CATEGORY)
        for score, label in sorted(REVIEW_CATEGORIES.items()):
            category = pl.when(pl.col("review_score") == score).then(pl.lit(label)).otherwise(category)

        derived = (
            scored.with_columns(pl.col("_score").cast(pl.Int64).alias("review_score"))
            .drop("_score")
            .with_columns(
                category.alias("review_category"),
                (
                    pl.col("review_comment_title").is_not_null()
                    | pl.col("review_comment_message").is_not_null()
                ).alias("has_comment"),
            )
        )
        deduped = self._deduplicate(derived, subset=["review_id", "order_id"]).sort(
            ["order_id", "review_id"]
        )

        return self._finish(
            Source.ORDER_REVIEWS,
            self._cast_to_contract(deduped, Source.ORDER_REVIEWS),
            input_rows,
            {
                "missing_key": input_rows - len(keyed),
                "invalid_score": len(keyed) - len(scored),
            },
            duplicates_removed=len(derived) - len(deduped),
        )


def conform_dataframe(
    df: pl.DataFrame,
    entity: str,
    **context,
) -> pl.DataFrame:
    """
    Convenience function to conform a single raw frame.

    Args:
        df: Raw frame
        entity: Source key, e.g. "customers" or "orders"
        **context: Extra frames the rule needs (``customers`` for orders
            and geolocation)

    Returns:
        Conformed DataFrame
    """
    conformer = RecordConformer()
    conformed, _ = conformer.conform(entity, df, **context)
    return conformed
