"""
Unit Tests - Data Quality
"""
import pytest
import polars as pl

from src.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_customers_validator,
    create_dimension_validator,
    create_fact_validator,
    create_reviews_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.check("not_null_id").failed_rows == 1

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_composite_unique_check(self):
        """Test uniqueness over a column combination"""
        df = pl.DataFrame({"order_id": ["a", "a", "b"], "order_item_id": [1, 2, 1]})

        result = DataValidator().add_unique_check(["order_id", "order_item_id"]).validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.check("unique_order_id_order_item_id").passed

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"score": [1.0, 5.0, 0.0, 6.0, None]})

        result = DataValidator().add_range_check("score", min_value=1, max_value=5).validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: 0 and 6
        assert result.checks[0].failed_rows == 2

    def test_pattern_check(self):
        """Test pattern check ignores nulls"""
        df = pl.DataFrame({"zip": ["01310", "1310", None]})

        result = DataValidator().add_pattern_check("zip", r"^\d{5}$").validate(df)

        assert result.checks[0].failed_rows == 1

    def test_warning_severity(self):
        """Test warning doesn't fail validation in non-strict mode"""
        df = pl.DataFrame({"id": [1, None, 3]})

        validator = DataValidator(strict_mode=False)
        validator.add_not_null_check("id", severity=ValidationSeverity.WARNING)

        result = validator.validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_strict_mode(self):
        """Test warnings fail validation in strict mode"""
        df = pl.DataFrame({"id": [1, None, 3]})

        validator = DataValidator(strict_mode=True)
        validator.add_not_null_check("id", severity=ValidationSeverity.WARNING)

        assert validator.validate(df).status == ValidationStatus.FAILED

    def test_missing_column(self):
        """Test a check on an absent column fails"""
        df = pl.DataFrame({"id": [1]})

        result = DataValidator().add_enum_check("state", ["SP"]).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_custom_check_error(self):
        """Test a raising custom check is reported as failed"""
        df = pl.DataFrame({"id": [1]})

        result = (
            DataValidator()
            .add_custom_check("broken", lambda d: d["missing"].sum() > 0, "never")
            .validate(df)
        )

        assert result.status == ValidationStatus.FAILED
        assert result.check("broken").message.startswith("Check failed with error")

    def test_referential_integrity(self):
        """Test orphan detection against a reference frame"""
        dim = pl.DataFrame({"customer_key": [1, 2, -1]})
        df = pl.DataFrame({"customer_key": [1, -1, 3]})

        result = DataValidator().add_referential_integrity_check(
            "customer_key", dim, "customer_key"
        ).validate(df)

        assert result.check("ref_integrity_customer_key").failed_rows == 1

    @pytest.mark.parametrize(
        "keys, passed",
        [
            ([1, 2, -1], True),
            ([1, 2], False),
            ([1, -1, -1], False),
            ([0, 1, -1], False),
        ],
    )
    def test_sentinel_check(self, keys, passed):
        """Test exactly one sentinel and positive member keys"""
        df = pl.DataFrame({"product_key": keys})

        result = DataValidator().add_sentinel_check("product_key").validate(df)

        assert result.check("sentinel_product_key").passed is passed

    def test_success_rate(self):
        """Test success rate calculation"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        result = (
            DataValidator()
            .add_not_null_check("id")
            .add_not_null_check("name")
            .validate(df)
        )

        assert result.success_rate == 50.0


class TestValidatorFactories:
    """Tests for the prebuilt validators"""

    @pytest.fixture
    def dims(self):
        return {
            "dim_customer": pl.DataFrame({"customer_key": [1, -1], "customer_id": ["c1", "UNKNOWN"]}),
            "dim_product": pl.DataFrame({"product_key": [1, -1], "product_id": ["p1", "UNKNOWN"]}),
            "dim_seller": pl.DataFrame({"seller_key": [1, -1], "seller_id": ["s1", "UNKNOWN"]}),
            "dim_date": pl.DataFrame({"date_key": [20170101]}, schema={"date_key": pl.Int32}),
        }

    @pytest.fixture
    def fact(self):
        return pl.DataFrame({
            "sales_key": [1, 2],
            "order_id": ["a", "b"],
            "order_item_id": [1, 0],
            "customer_key": [1, 1],
            "product_key": [1, -1],
            "seller_key": [1, -1],
            "order_date_key": pl.Series([20170101, 20300101], dtype=pl.Int32),
            "item_price_clean": [10.0, 0.0],
            "item_freight_clean": [1.5, 0.0],
            "total_item_value": [11.5, 0.0],
            "avg_review_score": [4.0, 0.0],
            "is_order_without_items": [False, True],
        })

    def test_dimension_validator(self, dims):
        """Test a well-formed dimension passes"""
        result = create_dimension_validator("customer_key", "customer_id").validate(dims["dim_customer"])

        assert result.status == ValidationStatus.PASSED

    def test_fact_validator(self, fact, dims):
        """Test an out-of-span purchase date only warns"""
        orders = pl.DataFrame({"order_id": ["a", "b"]})

        result = create_fact_validator(orders, **dims).validate(fact)

        assert result.status == ValidationStatus.PARTIAL
        assert not result.check("ref_integrity_order_date_key").passed

    def test_fact_validator_detects_lost_order(self, fact, dims):
        """Test a conformed order missing from the fact fails"""
        orders = pl.DataFrame({"order_id": ["a", "b", "c"]})

        result = create_fact_validator(orders, **dims).validate(fact)

        assert result.status == ValidationStatus.FAILED
        assert not result.check("all_orders_present").passed

    def test_fact_validator_detects_bad_placeholder(self, fact, dims):
        """Test an itemless row with a real product key fails"""
        orders = pl.DataFrame({"order_id": ["a", "b"]})
        broken = fact.with_columns(pl.Series("product_key", [1, 1]))

        result = create_fact_validator(orders, **dims).validate(broken)

        assert not result.check("itemless_orders_use_sentinels").passed

    def test_customers_validator(self):
        """Test conformed customer checks"""
        df = pl.DataFrame({
            "customer_id": ["c1", "c2"],
            "customer_unique_id": ["u1", "u2"],
            "customer_zip_code_prefix": ["01310", "20000"],
            "customer_state": ["SP", "XX"],
        })

        result = create_customers_validator().validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert not result.check("enum_customer_state").passed

    def test_reviews_validator(self):
        """Test conformed review checks"""
        df = pl.DataFrame({
            "review_id": ["r1", "r2"],
            "order_id": ["o1", "o2"],
            "review_score": [5, 1],
            "review_category": ["Excellent", "Very Poor"],
        })

        assert create_reviews_validator().validate(df).status == ValidationStatus.PASSED
