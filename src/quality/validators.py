"""
Data Validation Module

Rule-based quality checks for the conformed layer and the star schema,
covering the checks the warehouse runs after each rebuild:

- Key completeness and uniqueness
- Sentinel members in dimensions
- Fact grain and zero data loss against conformed orders
- Referential integrity between fact and dimensions
- Value ranges and enumerations
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

SENTINEL_KEY = -1

BRAZILIAN_STATES = [
    "AC", "AL", "AP", "AM", "BA", "CE", "DF", "ES", "GO", "MA", "MT", "MS", "MG", "PA",
    "PB", "PR", "PE", "PI", "RJ", "RN", "RS", "RO", "RR", "SC", "SP", "SE", "TO",
]

REVIEW_CATEGORY_LABELS = ["Excellent", "Good", "Average", "Poor", "Very Poor"]


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # aborts the run
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def check(self, name: str) -> ValidationCheck:
        for result in self.checks:
            if result.name == name:
                return result
        raise KeyError(name)


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Chainable data validator.

    Example:
        validator = (
            DataValidator()
            .add_not_null_check("customer_key")
            .add_unique_check("customer_key")
        )
        result = validator.validate(dim_customer)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # warnings fail the suite too
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = len(df)
            return ValidationCheck(
                name=name,
                passed=null_count == 0,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values",
                details={"null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, List[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that a column, or a column combination, has no duplicates"""
        subset = [columns] if isinstance(columns, str) else list(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{'_'.join(subset)}"
            absent = [c for c in subset if c not in df.columns]
            if absent:
                return _missing_column(name, absent[0], severity)

            total = len(df)
            duplicate_count = total - df.select(subset).unique().height
            return ValidationCheck(
                name=name,
                passed=duplicate_count == 0,
                severity=severity,
                message=f"{subset} has {duplicate_count} duplicate values",
                details={"duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within the closed range [min_value, max_value]"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            out_of_range = pl.lit(False)
            if min_value is not None:
                out_of_range = out_of_range | (pl.col(column) < min_value)
            if max_value is not None:
                out_of_range = out_of_range | (pl.col(column) > max_value)

            failed = df.filter(out_of_range.fill_null(False)).height
            return ValidationCheck(
                name=name,
                passed=failed == 0,
                severity=severity,
                message=f"Column '{column}' has {failed} values outside [{min_value}, {max_value}]",
                details={"min": min_value, "max": max_value},
                failed_rows=failed,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_pattern_check(
        self,
        column: str,
        pattern: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add regex pattern check on non-null values"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"pattern_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            present = df.filter(pl.col(column).is_not_null())
            non_matching = present.filter(~pl.col(column).str.contains(pattern)).height
            return ValidationCheck(
                name=name,
                passed=non_matching == 0,
                severity=severity,
                message=f"Column '{column}' has {non_matching} values not matching {pattern}",
                details={"pattern": pattern},
                failed_rows=non_matching,
                total_rows=len(present),
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for non-null values in an allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"enum_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            invalid = df.filter(
                pl.col(column).is_not_null() & ~pl.col(column).is_in(allowed_values)
            ).height
            return ValidationCheck(
                name=name,
                passed=invalid == 0,
                severity=severity,
                message=f"Column '{column}' has {invalid} values outside the allowed set",
                failed_rows=invalid,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                logger.warning("Custom check raised", check=name, error=str(e))
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {e}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null value exists in ``reference_df``"""
        reference_values = reference_df.get_column(reference_column).unique()

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            if column not in df.columns:
                return _missing_column(name, column, severity)

            orphans = df.filter(
                pl.col(column).is_not_null() & ~pl.col(column).is_in(reference_values)
            ).height
            return ValidationCheck(
                name=name,
                passed=orphans == 0,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_sentinel_check(
        self,
        key_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Exactly one -1 member, every other key a positive integer"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"sentinel_{key_column}"
            if key_column not in df.columns:
                return _missing_column(name, key_column, severity)

            sentinels = df.filter(pl.col(key_column) == SENTINEL_KEY).height
            non_positive = df.filter(
                (pl.col(key_column) != SENTINEL_KEY) & (pl.col(key_column) <= 0)
            ).height
            return ValidationCheck(
                name=name,
                passed=sentinels == 1 and non_positive == 0,
                severity=severity,
                message=f"{sentinels} sentinel rows, {non_positive} non-positive keys",
                details={"sentinel_rows": sentinels, "non_positive_keys": non_positive},
                failed_rows=abs(sentinels - 1) + non_positive,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.now()
        results = []

        logger.info("Running validation checks", checks=len(self._checks), rows=len(df))

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.now(),
        )


def create_dimension_validator(key_column: str, natural_key: str) -> DataValidator:
    """Surrogate and natural keys complete and unique, one sentinel member"""
    return (
        DataValidator()
        .add_not_null_check(key_column)
        .add_unique_check(key_column)
        .add_not_null_check(natural_key)
        .add_unique_check(natural_key)
        .add_sentinel_check(key_column)
    )


def create_fact_validator(
    orders: pl.DataFrame,
    dim_customer: pl.DataFrame,
    dim_product: pl.DataFrame,
    dim_seller: pl.DataFrame,
    dim_date: Optional[pl.DataFrame] = None,
) -> DataValidator:
    """
    Checks for ``fact_sales``.

    Grain, zero data loss against conformed orders, the item value identity
    and referential integrity to every dimension. Purchase dates outside the
    date dimension only warn.
    """
    order_ids = orders.get_column("order_id").unique()

    validator = (
        DataValidator()
        .add_not_null_check("sales_key")
        .add_unique_check("sales_key")
        .add_unique_check(["order_id", "order_item_id"])
        .add_custom_check(
            "all_orders_present",
            lambda df: order_ids.is_in(df.get_column("order_id").unique()).all(),
            "Conformed orders missing from the fact",
        )
        .add_custom_check(
            "itemless_orders_use_sentinels",
            lambda df: df.filter(
                pl.col("is_order_without_items")
                & (
                    (pl.col("order_item_id") != 0)
                    | (pl.col("product_key") != SENTINEL_KEY)
                    | (pl.col("seller_key") != SENTINEL_KEY)
                )
            ).height == 0,
            "Itemless orders without the placeholder item and sentinel keys",
        )
        .add_custom_check(
            "total_item_value_identity",
            lambda df: df.filter(
                pl.col("total_item_value") != pl.col("item_price_clean") + pl.col("item_freight_clean")
            ).height == 0,
            "total_item_value differs from item_price_clean + item_freight_clean",
        )
        .add_referential_integrity_check("customer_key", dim_customer, "customer_key")
        .add_referential_integrity_check("product_key", dim_product, "product_key")
        .add_referential_integrity_check("seller_key", dim_seller, "seller_key")
        .add_range_check("avg_review_score", min_value=0, max_value=5)
    )

    if dim_date is not None:
        validator.add_referential_integrity_check(
            "order_date_key", dim_date, "date_key", severity=ValidationSeverity.WARNING
        )

    return validator


def create_customers_validator() -> DataValidator:
    """Checks for conformed customers"""
    return (
        DataValidator()
        .add_not_null_check("customer_id")
        .add_unique_check("customer_id")
        .add_unique_check("customer_unique_id")
        .add_pattern_check("customer_zip_code_prefix", r"^\d{5}$", severity=ValidationSeverity.WARNING)
        .add_enum_check("customer_state", BRAZILIAN_STATES, severity=ValidationSeverity.WARNING)
    )


def create_reviews_validator() -> DataValidator:
    """Checks for conformed reviews"""
    return (
        DataValidator()
        .add_not_null_check("review_id")
        .add_not_null_check("order_id")
        .add_range_check("review_score", min_value=1, max_value=5)
        .add_enum_check("review_category", REVIEW_CATEGORY_LABELS)
    )
