"""
Data Quality Module
"""
from .validators import (
    DataValidator,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
    create_customers_validator,
    create_dimension_validator,
    create_fact_validator,
    create_reviews_validator,
)

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "create_customers_validator",
    "create_dimension_validator",
    "create_fact_validator",
    "create_reviews_validator",
]
