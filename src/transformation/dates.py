"""
Date Dimension Generator

Calendar rows for a fixed span, independent of any source data.
"""

from datetime import date, timedelta
from typing import Iterable, Optional, Tuple

import polars as pl
import structlog

from src.config import get_settings
from .schemas import DIM_DATE_SCHEMA

logger = structlog.get_logger(__name__)


def date_key_expr(expr: pl.Expr) -> pl.Expr:
    """Encode a date/datetime expression as a YYYYMMDD integer"""
    return (
        expr.dt.year().cast(pl.Int32) * 10000
        + expr.dt.month().cast(pl.Int32) * 100
        + expr.dt.day().cast(pl.Int32)
    )


def date_key(value: date) -> int:
    """Encode a single date as a YYYYMMDD integer"""
    return value.year * 10000 + value.month * 100 + value.day


class DateDimensionGenerator:
    """
    Generates ``dim_date``.

    ``day_of_week`` counts Sunday as 1 and Saturday as 7; weekends are
    days 1 and 7. Holidays are fixed month/day pairs.
    """

    def __init__(self, holidays: Optional[Iterable[Tuple[int, int]]] = None):
        if holidays is None:
            holidays = get_settings().conformance.holidays
        self.holidays = [(int(month), int(day)) for month, day in holidays]

    def generate(
        self,
        start: date,
        end: Optional[date] = None,
        days: Optional[int] = None,
    ) -> pl.DataFrame:
        """
        Build one row per calendar day from ``start``.

        Args:
            start: First day
            end: Last day (inclusive)
            days: Number of days, used instead of ``end``

        Returns:
            Date dimension DataFrame
        """
        if (end is None) == (days is None):
            raise ValueError("Provide exactly one of end or days")
        if days is not None:
            if days <= 0:
                raise ValueError("days must be positive")
            end = start + timedelta(days=days - 1)
        if end < start:
            raise ValueError(f"end {end} is before start {start}")

        calendar = pl.DataFrame(
            {"full_date": pl.date_range(start, end, interval="1d", eager=True)}
        )

        full_date = pl.col("full_date")
        # ISO weekday is Monday=1..Sunday=7; shift so Sunday=1..Saturday=7
        day_of_week = (full_date.dt.weekday() % 7 + 1).cast(pl.Int8)

        is_holiday = pl.lit(False)
        for month, day in self.holidays:
            is_holiday = is_holiday | ((full_date.dt.month() == month) & (full_date.dt.day() == day))

        dim = calendar.select(
            date_key_expr(full_date).alias("date_key"),
            full_date,
            full_date.dt.year().alias("year"),
            full_date.dt.quarter().alias("quarter"),
            full_date.dt.month().alias("month"),
            full_date.dt.strftime("%B").alias("month_name"),
            full_date.dt.day().alias("day"),
            day_of_week.alias("day_of_week"),
            full_date.dt.strftime("%A").alias("day_name"),
            day_of_week.is_in([1, 7]).alias("is_weekend"),
            is_holiday.alias("is_holiday"),
        ).select([pl.col(name).cast(dtype) for name, dtype in DIM_DATE_SCHEMA.items()])

        logger.info("Generated date dimension", start=str(start), end=str(end), rows=len(dim))
        return dim

    def generate_default(self) -> pl.DataFrame:
        """Generate the configured warehouse span"""
        settings = get_settings().warehouse
        return self.generate(settings.date_dim_start, end=settings.date_dim_end)
