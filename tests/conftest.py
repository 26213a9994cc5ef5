"""
Test Suite Configuration
"""
from typing import Any, Callable, Dict, List

import pytest
import polars as pl

from src.config import Settings
from src.transformation.schemas import CONFORMED_SCHEMAS, RAW_COLUMNS, Source


def _raw_frame(source: str, rows: List[Dict[str, Any]]) -> pl.DataFrame:
    columns = RAW_COLUMNS[source]
    return pl.DataFrame(
        {col: [row.get(col) for row in rows] for col in columns},
        schema={col: pl.Utf8 for col in columns},
    )


def _conformed_frame(source: str, rows: List[Dict[str, Any]]) -> pl.DataFrame:
    schema = CONFORMED_SCHEMAS[source]
    return pl.DataFrame(
        {col: [row.get(col) for row in rows] for col in schema},
        schema=schema,
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
    )


@pytest.fixture
def make_raw() -> Callable[[str, List[Dict[str, Any]]], pl.DataFrame]:
    """Build an all-string raw frame; absent columns are null"""
    return _raw_frame


@pytest.fixture
def make_conformed() -> Callable[[str, List[Dict[str, Any]]], pl.DataFrame]:
    """Build a frame with the conformed dtypes; absent columns are null"""
    return _conformed_frame


@pytest.fixture
def raw_sources() -> Dict[str, pl.DataFrame]:
    """
    A small but dirty extract of all nine sources.

    Conformed orders are o1 (two items), o2 (one item, no payment, only
    invalid reviews) and o3 (no items). o4, o5 and o6 are rejected.
    """
    return {
        Source.CUSTOMERS: _raw_frame(Source.CUSTOMERS, [
            {"customer_id": "c1", "customer_unique_id": "u1", "customer_zip_code_prefix": "01310",
             "customer_city": "sao paulo", "customer_state": "sp"},
            {"customer_id": "c2", "customer_unique_id": "u1", "customer_zip_code_prefix": "01310",
             "customer_city": "sao paulo", "customer_state": "sp"},
            {"customer_id": "c3", "customer_unique_id": "u2", "customer_zip_code_prefix": "20000",
             "customer_city": " rio de janeiro ", "customer_state": "RJ"},
            {"customer_id": '"c4"', "customer_unique_id": '"u3"', "customer_zip_code_prefix": "13000",
             "customer_city": '"campinas"', "customer_state": "sp"},
            {"customer_id": None, "customer_unique_id": "u4", "customer_zip_code_prefix": "13000",
             "customer_city": "campinas", "customer_state": "sp"},
        ]),
        Source.GEOLOCATION: _raw_frame(Source.GEOLOCATION, [
            {"geolocation_zip_code_prefix": "01310", "geolocation_lat": "-23.5", "geolocation_lng": "-46.6",
             "geolocation_city": "são paulo", "geolocation_state": "SP"},
            {"geolocation_zip_code_prefix": "01310", "geolocation_lat": "-23.7", "geolocation_lng": "-46.8",
             "geolocation_city": "sao paulo", "geolocation_state": "sp"},
            {"geolocation_zip_code_prefix": "01310", "geolocation_lat": "40.0", "geolocation_lng": "-46.6",
             "geolocation_city": "nowhere", "geolocation_state": "SP"},
            {"geolocation_zip_code_prefix": "1310", "geolocation_lat": "-23.5", "geolocation_lng": "-46.6",
             "geolocation_city": "sao paulo", "geolocation_state": "SP"},
            {"geolocation_zip_code_prefix": "13000", "geolocation_lat": "-22.9", "geolocation_lng": "-47.0",
             "geolocation_city": "campinas", "geolocation_state": "SP"},
        ]),
        Source.SELLERS: _raw_frame(Source.SELLERS, [
            {"seller_id": "s1", "seller_zip_code_prefix": "01310", "seller_city": "sao paulo", "seller_state": "sp"},
            {"seller_id": "s2", "seller_zip_code_prefix": "13000", "seller_city": "campinas", "seller_state": "SP"},
        ]),
        Source.PRODUCTS: _raw_frame(Source.PRODUCTS, [
            {"product_id": "p1", "product_category_name": "beleza_saude", "product_name_lenght": "40",
             "product_description_lenght": "200", "product_photos_qty": "2", "product_weight_g": "500",
             "product_length_cm": "10", "product_height_cm": "10", "product_width_cm": "10"},
            {"product_id": "p2", "product_category_name": "  ", "product_photos_qty": "",
             "product_length_cm": "20", "product_height_cm": "5", "product_width_cm": "2"},
            {"product_id": "p3", "product_category_name": "pc_gamer", "product_photos_qty": "1"},
        ]),
        Source.CATEGORY_TRANSLATION: _raw_frame(Source.CATEGORY_TRANSLATION, [
            {"product_category_name": "beleza_saude", "product_category_name_english": "health_beauty"},
        ]),
        Source.ORDERS: _raw_frame(Source.ORDERS, [
            {"order_id": "o1", "customer_id": "c1", "order_status": "delivered",
             "order_purchase_timestamp": "2017-01-01 10:00:00",
             "order_approved_at": "2017-01-02 09:00:00",
             "order_delivered_carrier_date": "2017-01-04 12:00:00",
             "order_delivered_customer_date": "2017-01-10 15:00:00",
             "order_estimated_delivery_date": "2017-01-20 00:00:00"},
            {"order_id": "o2", "customer_id": "c3", "order_status": "SHIPPED",
             "order_purchase_timestamp": "2017-02-01 08:00:00",
             "order_approved_at": "2017-02-01 09:00:00",
             "order_delivered_carrier_date": "2017-02-03 10:00:00",
             "order_estimated_delivery_date": "2017-02-15 00:00:00"},
            {"order_id": "o3", "customer_id": "c4", "order_status": "canceled",
             "order_purchase_timestamp": "2017-03-01 10:00:00",
             "order_estimated_delivery_date": "2017-03-20 00:00:00"},
            {"order_id": "o4", "customer_id": "c2", "order_status": "delivered",
             "order_purchase_timestamp": "2017-04-01 10:00:00"},
            {"order_id": "o5", "customer_id": "c1", "order_status": "delivered",
             "order_purchase_timestamp": "2017-04-05 10:00:00",
             "order_approved_at": "2017-04-01 10:00:00"},
            {"order_id": None, "customer_id": "c1", "order_status": "delivered",
             "order_purchase_timestamp": "2017-04-05 10:00:00"},
        ]),
        Source.ORDER_ITEMS: _raw_frame(Source.ORDER_ITEMS, [
            {"order_id": "o1", "order_item_id": "1", "product_id": "p1", "seller_id": "s1",
             "shipping_limit_date": "2017-01-05 00:00:00", "price": "100.00", "freight_value": "10.00"},
            {"order_id": "o1", "order_item_id": "2", "product_id": "p3", "seller_id": "s2",
             "shipping_limit_date": "2017-01-05 00:00:00", "price": "", "freight_value": "5.00"},
            {"order_id": "o2", "order_item_id": "1", "product_id": "p2", "seller_id": "s1",
             "shipping_limit_date": "2017-02-05 00:00:00", "price": "50.00", "freight_value": "5.50"},
            {"order_id": "o4", "order_item_id": "1", "product_id": "p1", "seller_id": "s1",
             "price": "10.00", "freight_value": "1.00"},
            {"order_id": "o2", "order_item_id": "2", "product_id": "p9", "seller_id": "s1",
             "price": "10.00", "freight_value": "1.00"},
        ]),
        Source.ORDER_PAYMENTS: _raw_frame(Source.ORDER_PAYMENTS, [
            {"order_id": "o1", "payment_sequential": "1", "payment_type": "credit_card",
             "payment_installments": "3", "payment_value": "100.00"},
            {"order_id": "o1", "payment_sequential": "2", "payment_type": "voucher",
             "payment_installments": "1", "payment_value": "15.00"},
            {"order_id": "o3", "payment_sequential": "1", "payment_type": "boleto",
             "payment_installments": "1", "payment_value": "60.00"},
            {"order_id": "o9", "payment_sequential": "1", "payment_type": "boleto",
             "payment_installments": "1", "payment_value": "10.00"},
        ]),
        Source.ORDER_REVIEWS: _raw_frame(Source.ORDER_REVIEWS, [
            {"review_id": "r1", "order_id": "o1", "review_score": "5", "review_comment_title": "",
             "review_comment_message": "Otimo", "review_creation_date": "2017-01-11 00:00:00",
             "review_answer_timestamp": "2017-01-12 10:00:00"},
            {"review_id": "r2", "order_id": "o1", "review_score": "3", "review_comment_title": "Ok",
             "review_creation_date": "2017-01-12 00:00:00"},
            {"review_id": "r3", "order_id": "o2", "review_score": "0",
             "review_creation_date": "2017-02-10 00:00:00"},
            {"review_id": "r4", "order_id": "o2", "review_score": "6",
             "review_creation_date": "2017-02-10 00:00:00"},
            {"review_id": "r5", "order_id": "o3", "review_score": "1",
             "review_creation_date": "not a date",
             "review_answer_timestamp": "2017-03-25 10:00:00"},
        ]),
    }
