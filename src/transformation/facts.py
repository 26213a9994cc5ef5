"""
Fact Assembler

Builds ``fact_sales`` at the grain of one row per order line item. Orders
without items keep a single placeholder row (``order_item_id = 0``,
product and seller key -1), so every conformed order reaches the fact.

Payment and review metrics are aggregated once per order and repeated on
each of its line-item rows. Summing ``total_payment_value`` across rows
of the same order double-counts.
"""

from datetime import datetime
from typing import Optional

import polars as pl
import structlog

from .cleaners import parse_timestamp
from .dates import date_key_expr
from .dimensions import SENTINEL_KEY, DimensionBuilder
from .schemas import FACT_SALES_COLUMNS, TIMESTAMP

logger = structlog.get_logger(__name__)

NO_ITEM_ID = 0

STATUS_DELIVERED = "delivered"
STATUS_CANCELED = "canceled"
STATUS_SHIPPED = "shipped"

PAYMENT_CREDIT_CARD = "credit_card"
PAYMENT_BOLETO = "boleto"


def _day_delta(start: str, end: str) -> pl.Expr:
    """Calendar days between two timestamps; null when either is absent"""
    return (pl.col(end).dt.date() - pl.col(start).dt.date()).dt.total_days().cast(pl.Int64)


class FactAssembler:
    """
    Assembles the sales fact from conformed orders and built dimensions.

    Args:
        reference_time: "Now" for the not-yet-delivered late flag. Pin it
            to make repeated runs produce identical output.

    Example:
        assembler = FactAssembler(reference_time=datetime(2018, 10, 1))
        fact = assembler.assemble(orders, items, payments, reviews,
                                  dim_customer, dim_product, dim_seller)
    """

    def __init__(self, reference_time: Optional[datetime] = None):
        self.reference_time = reference_time or datetime.now()

    def aggregate_payments(self, payments: pl.DataFrame) -> pl.DataFrame:
        """
        One row per order with payment totals.

        ``primary_payment_type`` is the type of the payment with sequence
        number 1 (null when the order has none).
        """
        return payments.group_by("order_id").agg(
            pl.len().cast(pl.Int64).alias("payment_count"),
            pl.col("payment_value").sum().alias("total_payment_value"),
            pl.col("payment_installments").sum().cast(pl.Int64).alias("total_installments"),
            pl.col("payment_type")
            .filter(pl.col("payment_sequential") == 1)
            .sort()
            .first()
            .alias("primary_payment_type"),
            (pl.col("payment_type") == PAYMENT_CREDIT_CARD).any().alias("has_credit_card_payment"),
            (pl.col("payment_type") == PAYMENT_BOLETO).any().alias("has_boleto_payment"),
        )

    def aggregate_reviews(self, reviews: pl.DataFrame) -> pl.DataFrame:
        """
        One row per order with review metrics.

        The order's ``review_category`` is taken from its most recently
        created review; reviews with an unparseable creation date rank
        first, and equal dates fall back to the larger ``review_id``.
        """
        created = parse_timestamp(pl.col("review_creation_date").str.strip_chars())
        ranked = reviews.with_columns(created.alias("_created_at")).sort(
            ["order_id", "_created_at", "review_id"], nulls_last=False
        )
        return ranked.group_by("order_id", maintain_order=True).agg(
            pl.len().cast(pl.Int64).alias("review_count"),
            pl.col("review_score").cast(pl.Float64).mean().alias("avg_review_score"),
            pl.col("review_category").last().alias("review_category"),
            pl.col("has_comment").any().alias("has_review_comment"),
        )

    def assemble(
        self,
        orders: pl.DataFrame,
        order_items: pl.DataFrame,
        payments: pl.DataFrame,
        reviews: pl.DataFrame,
        dim_customer: pl.DataFrame,
        dim_product: pl.DataFrame,
        dim_seller: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Build ``fact_sales``.

        Args:
            orders: Conformed orders (drives the fact; every order is kept)
            order_items: Resolved order items
            payments: Resolved payments
            reviews: Resolved reviews
            dim_customer: Customer dimension
            dim_product: Product dimension
            dim_seller: Seller dimension

        Returns:
            Fact DataFrame in the published column order
        """
        customer_keys = DimensionBuilder.key_lookup(dim_customer, "customer_id", "customer_key")
        product_keys = DimensionBuilder.key_lookup(dim_product, "product_id", "product_key")
        seller_keys = DimensionBuilder.key_lookup(dim_seller, "seller_id", "seller_key")

        items = order_items.select(
            "order_id",
            "order_item_id",
            "product_id",
            "seller_id",
            "shipping_limit_date",
            pl.col("price").alias("item_price"),
            pl.col("freight_value").alias("item_freight"),
        )

        base = (
            orders.join(items, on="order_id", how="left")
            .join(customer_keys, on="customer_id", how="left")
            .join(product_keys, on="product_id", how="left")
            .join(seller_keys, on="seller_id", how="left")
            .join(self.aggregate_payments(payments), on="order_id", how="left")
            .join(self.aggregate_reviews(reviews), on="order_id", how="left")
        )

        status = pl.col("order_status").str.to_lowercase()
        delivered = pl.col("order_delivered_customer_date")
        estimated = pl.col("order_estimated_delivery_date")

        fact = base.with_columns(
            pl.col("order_item_id").is_null().alias("is_order_without_items"),
            (pl.col("payment_count").is_null() | (pl.col("payment_count") == 0)).alias("is_order_without_payment"),
            (pl.col("review_count").is_null() | (pl.col("review_count") == 0)).alias("is_order_without_review"),
        ).with_columns(
            pl.col("order_item_id").fill_null(NO_ITEM_ID),
            pl.col("customer_key").fill_null(SENTINEL_KEY),
            pl.col("product_key").fill_null(SENTINEL_KEY),
            pl.col("seller_key").fill_null(SENTINEL_KEY),
            date_key_expr(pl.col("order_purchase_timestamp")).alias("order_date_key"),
            pl.col("order_purchase_timestamp").alias("order_date"),
            pl.col("order_approved_at").alias("approval_date"),
            pl.col("order_delivered_carrier_date").alias("shipped_date"),
            delivered.alias("delivery_date"),
            estimated.alias("estimated_delivery_date"),
            pl.col("item_price").fill_null(0.0).alias("item_price_clean"),
            pl.col("item_freight").fill_null(0.0).alias("item_freight_clean"),
            pl.col("total_payment_value").fill_null(0.0),
            pl.col("payment_count").fill_null(0),
            pl.col("total_installments").fill_null(0),
            pl.col("has_credit_card_payment").fill_null(False),
            pl.col("has_boleto_payment").fill_null(False),
            pl.col("avg_review_score").fill_null(0.0),
            pl.col("review_count").fill_null(0),
            pl.col("has_review_comment").fill_null(False),
            _day_delta("order_purchase_timestamp", "order_approved_at").alias("days_to_approval"),
            _day_delta("order_purchase_timestamp", "order_delivered_carrier_date").alias("days_to_shipping"),
            _day_delta("order_purchase_timestamp", "order_delivered_customer_date").alias("days_to_delivery"),
            _day_delta("order_estimated_delivery_date", "order_delivered_customer_date").alias(
                "delivery_vs_estimate_days"
            ),
            (
                (delivered > estimated).fill_null(False)
                | (delivered.is_null() & (pl.lit(self.reference_time).cast(TIMESTAMP) > estimated)).fill_null(False)
            ).alias("is_late_delivery"),
            (status == STATUS_DELIVERED).fill_null(False).alias("is_delivered"),
            (status == STATUS_CANCELED).fill_null(False).alias("is_canceled"),
            status.is_in([STATUS_SHIPPED, STATUS_DELIVERED]).fill_null(False).alias("is_shipped"),
        ).with_columns(
            (pl.col("item_price_clean") + pl.col("item_freight_clean")).alias("total_item_value"),
        )

        fact = (
            fact.sort(["order_id", "order_item_id"])
            .with_row_index("sales_key", offset=1)
            .with_columns(pl.col("sales_key").cast(pl.Int64))
            .select(FACT_SALES_COLUMNS)
        )

        logger.info(
            "Assembled fact",
            fact="fact_sales",
            rows=len(fact),
            orders=fact.get_column("order_id").n_unique(),
            orders_without_items=fact.filter(pl.col("is_order_without_items")).height,
            unknown_customer_rows=fact.filter(pl.col("customer_key") == SENTINEL_KEY).height,
        )
        return fact
