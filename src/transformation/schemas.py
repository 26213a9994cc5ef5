"""
Column Contracts

Raw source columns, conformed (silver) dtypes and star-schema column order.
The star-schema names are consumed by the BI layer and must not change.
"""

from typing import Dict, List

import polars as pl


class Source:
    """Raw source keys"""
    CUSTOMERS = "customers"
    GEOLOCATION = "geolocation"
    ORDER_ITEMS = "order_items"
    ORDER_PAYMENTS = "order_payments"
    ORDER_REVIEWS = "order_reviews"
    ORDERS = "orders"
    PRODUCTS = "products"
    SELLERS = "sellers"
    CATEGORY_TRANSLATION = "category_translation"


RAW_COLUMNS: Dict[str, List[str]] = {
    Source.CUSTOMERS: [
        "customer_id",
        "customer_unique_id",
        "customer_zip_code_prefix",
        "customer_city",
        "customer_state",
    ],
    Source.GEOLOCATION: [
        "geolocation_zip_code_prefix",
        "geolocation_lat",
        "geolocation_lng",
        "geolocation_city",
        "geolocation_state",
    ],
    Source.ORDER_ITEMS: [
        "order_id",
        "order_item_id",
        "product_id",
        "seller_id",
        "shipping_limit_date",
        "price",
        "freight_value",
    ],
    Source.ORDER_PAYMENTS: [
        "order_id",
        "payment_sequential",
        "payment_type",
        "payment_installments",
        "payment_value",
    ],
    Source.ORDER_REVIEWS: [
        "review_id",
        "order_id",
        "review_score",
        "review_comment_title",
        "review_comment_message",
        "review_creation_date",
        "review_answer_timestamp",
    ],
    Source.ORDERS: [
        "order_id",
        "customer_id",
        "order_status",
        "order_purchase_timestamp",
        "order_approved_at",
        "order_delivered_carrier_date",
        "order_delivered_customer_date",
        "order_estimated_delivery_date",
    ],
    Source.PRODUCTS: [
        "product_id",
        "product_category_name",
        "product_name_lenght",
        "product_description_lenght",
        "product_photos_qty",
        "product_weight_g",
        "product_length_cm",
        "product_height_cm",
        "product_width_cm",
    ],
    Source.SELLERS: [
        "seller_id",
        "seller_zip_code_prefix",
        "seller_city",
        "seller_state",
    ],
    Source.CATEGORY_TRANSLATION: [
        "product_category_name",
        "product_category_name_english",
    ],
}

# File names of the public Olist extract
RAW_FILE_NAMES: Dict[str, str] = {
    Source.CUSTOMERS: "olist_customers_dataset.csv",
    Source.GEOLOCATION: "olist_geolocation_dataset.csv",
    Source.ORDER_ITEMS: "olist_order_items_dataset.csv",
    Source.ORDER_PAYMENTS: "olist_order_payments_dataset.csv",
    Source.ORDER_REVIEWS: "olist_order_reviews_dataset.csv",
    Source.ORDERS: "olist_orders_dataset.csv",
    Source.PRODUCTS: "olist_products_dataset.csv",
    Source.SELLERS: "olist_sellers_dataset.csv",
    Source.CATEGORY_TRANSLATION: "product_category_name_translation.csv",
}

TIMESTAMP = pl.Datetime("us")

CONFORMED_SCHEMAS: Dict[str, Dict[str, pl.DataType]] = {
    Source.CUSTOMERS: {
        "customer_id": pl.Utf8,
        "customer_unique_id": pl.Utf8,
        "customer_zip_code_prefix": pl.Utf8,
        "customer_city": pl.Utf8,
        "customer_state": pl.Utf8,
    },
    Source.GEOLOCATION: {
        "geolocation_zip_code_prefix": pl.Utf8,
        "geolocation_lat": pl.Float64,
        "geolocation_lng": pl.Float64,
        "geolocation_city": pl.Utf8,
        "geolocation_state": pl.Utf8,
    },
    Source.ORDER_ITEMS: {
        "order_id": pl.Utf8,
        "order_item_id": pl.Int64,
        "product_id": pl.Utf8,
        "seller_id": pl.Utf8,
        "shipping_limit_date": TIMESTAMP,
        "price": pl.Float64,
        "freight_value": pl.Float64,
    },
    Source.ORDER_PAYMENTS: {
        "order_id": pl.Utf8,
        "payment_sequential": pl.Int64,
        "payment_type": pl.Utf8,
        "payment_installments": pl.Int64,
        "payment_value": pl.Float64,
    },
    Source.ORDER_REVIEWS: {
        "review_id": pl.Utf8,
        "order_id": pl.Utf8,
        "review_score": pl.Int64,
        "review_comment_title": pl.Utf8,
        "review_comment_message": pl.Utf8,
        "review_creation_date": pl.Utf8,
        "review_answer_timestamp": pl.Utf8,
        "review_category": pl.Utf8,
        "has_comment": pl.Boolean,
        "is_creation_date_valid": pl.Boolean,
        "is_answer_date_valid": pl.Boolean,
    },
    Source.ORDERS: {
        "order_id": pl.Utf8,
        "customer_id": pl.Utf8,
        "order_status": pl.Utf8,
        "order_purchase_timestamp": TIMESTAMP,
        "order_approved_at": TIMESTAMP,
        "order_delivered_carrier_date": TIMESTAMP,
        "order_delivered_customer_date": TIMESTAMP,
        "order_estimated_delivery_date": TIMESTAMP,
    },
    Source.PRODUCTS: {
        "product_id": pl.Utf8,
        "product_category_name": pl.Utf8,
        "product_name_lenght": pl.Int64,
        "product_description_lenght": pl.Int64,
        "product_photos_qty": pl.Int64,
        "product_weight_g": pl.Float64,
        "product_length_cm": pl.Float64,
        "product_height_cm": pl.Float64,
        "product_width_cm": pl.Float64,
    },
    Source.SELLERS: {
        "seller_id": pl.Utf8,
        "seller_zip_code_prefix": pl.Utf8,
        "seller_city": pl.Utf8,
        "seller_state": pl.Utf8,
    },
    Source.CATEGORY_TRANSLATION: {
        "product_category_name": pl.Utf8,
        "product_category_name_english": pl.Utf8,
    },
}

DIM_CUSTOMER_SCHEMA: Dict[str, pl.DataType] = {
    "customer_key": pl.Int64,
    "customer_id": pl.Utf8,
    "customer_unique_id": pl.Utf8,
    "zip_code": pl.Utf8,
    "city": pl.Utf8,
    "state": pl.Utf8,
    "latitude": pl.Float64,
    "longitude": pl.Float64,
}

DIM_PRODUCT_SCHEMA: Dict[str, pl.DataType] = {
    "product_key": pl.Int64,
    "product_id": pl.Utf8,
    "category_portuguese": pl.Utf8,
    "category_english": pl.Utf8,
    "name_length": pl.Int64,
    "description_length": pl.Int64,
    "photos_qty": pl.Int64,
    "weight_grams": pl.Float64,
    "length_cm": pl.Float64,
    "height_cm": pl.Float64,
    "width_cm": pl.Float64,
    "volume_cm3": pl.Float64,
}

DIM_SELLER_SCHEMA: Dict[str, pl.DataType] = {
    "seller_key": pl.Int64,
    "seller_id": pl.Utf8,
    "zip_code": pl.Utf8,
    "city": pl.Utf8,
    "state": pl.Utf8,
}

DIM_DATE_SCHEMA: Dict[str, pl.DataType] = {
    "date_key": pl.Int32,
    "full_date": pl.Date,
    "year": pl.Int32,
    "quarter": pl.Int8,
    "month": pl.Int8,
    "month_name": pl.Utf8,
    "day": pl.Int8,
    "day_of_week": pl.Int8,
    "day_name": pl.Utf8,
    "is_weekend": pl.Boolean,
    "is_holiday": pl.Boolean,
}

FACT_SALES_COLUMNS: List[str] = [
    "sales_key",
    "order_id",
    "order_item_id",
    "customer_key",
    "order_date_key",
    "product_key",
    "seller_key",
    "order_status",
    "order_date",
    "approval_date",
    "shipped_date",
    "delivery_date",
    "estimated_delivery_date",
    "shipping_limit_date",
    "item_price",
    "item_freight",
    "item_price_clean",
    "item_freight_clean",
    "total_item_value",
    "total_payment_value",
    "payment_count",
    "primary_payment_type",
    "total_installments",
    "has_credit_card_payment",
    "has_boleto_payment",
    "avg_review_score",
    "review_category",
    "review_count",
    "has_review_comment",
    "is_order_without_items",
    "is_order_without_payment",
    "is_order_without_review",
    "days_to_approval",
    "days_to_shipping",
    "days_to_delivery",
    "delivery_vs_estimate_days",
    "is_late_delivery",
    "is_delivered",
    "is_canceled",
    "is_shipped",
]


def missing_columns(df: pl.DataFrame, source: str) -> List[str]:
    """Return the raw contract columns absent from ``df``"""
    return [col for col in RAW_COLUMNS[source] if col not in df.columns]


def empty_raw_frame(source: str) -> pl.DataFrame:
    """Build an empty all-string frame for a raw source"""
    return pl.DataFrame(schema={col: pl.Utf8 for col in RAW_COLUMNS[source]})
