"""
Warehouse Transformer

Runs the full rebuild: conformance, reference resolution, dimension and
fact assembly, quality checks, and the staged publish of the star schema.

A run either produces a complete, consistent star schema or raises
``PipelineStageError`` before anything is published.
"""

import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from time import perf_counter
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import polars as pl
import structlog

from src.config import get_settings
from src.config.logging import bind_run_context, clear_run_context
from src.quality.validators import (
    ValidationResult,
    ValidationStatus,
    create_customers_validator,
    create_dimension_validator,
    create_fact_validator,
    create_reviews_validator,
)
from .cleaners import RecordConformer
from .dates import DateDimensionGenerator
from .dimensions import DimensionBuilder
from .facts import FactAssembler
from .resolvers import ReferenceResolver
from .schemas import Source, missing_columns

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Stages whose empty output leaves nothing to build a star schema from
REQUIRED_NON_EMPTY = (Source.CUSTOMERS, Source.ORDERS)


class RunStatus(str, Enum):
    """Outcome of a pipeline run"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStageError(RuntimeError):
    """A stage could not produce its output; the run is aborted"""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"Stage '{stage}' failed: {message}")


@dataclass
class StageReport:
    """Row counts and timing for one stage"""
    name: str
    input_rows: int
    output_rows: int
    rejected_rows: int
    duration_seconds: float


@dataclass
class RunReport:
    """Result of a pipeline run"""
    run_id: str
    started_at: datetime
    status: RunStatus = RunStatus.RUNNING
    completed_at: Optional[datetime] = None
    stages: List[StageReport] = field(default_factory=list)
    table_rows: Dict[str, int] = field(default_factory=dict)
    validations: Dict[str, ValidationResult] = field(default_factory=dict)
    output_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def rejected_rows(self) -> int:
        return sum(stage.rejected_rows for stage in self.stages)

    def stage(self, name: str) -> StageReport:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)


@dataclass
class StarSchema:
    """The published tables of one run"""
    dim_customer: pl.DataFrame
    dim_product: pl.DataFrame
    dim_seller: pl.DataFrame
    dim_date: pl.DataFrame
    fact_sales: pl.DataFrame

    def tables(self) -> Dict[str, pl.DataFrame]:
        return {
            "dim_customer": self.dim_customer,
            "dim_product": self.dim_product,
            "dim_seller": self.dim_seller,
            "dim_date": self.dim_date,
            "fact_sales": self.fact_sales,
        }


class WarehouseTransformer:
    """
    Main warehouse pipeline orchestrator.

    Example:
        transformer = WarehouseTransformer(reference_time=datetime(2018, 10, 17))
        star, report = transformer.run(raw_sources)
        transformer.publish(star, report)
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        enable_validation: Optional[bool] = None,
        reference_time: Optional[datetime] = None,
        conformer: Optional[RecordConformer] = None,
        date_generator: Optional[DateDimensionGenerator] = None,
    ):
        settings = get_settings()
        self.settings = settings
        self.output_path = Path(output_path or settings.warehouse.output_path)
        self.enable_validation = (
            settings.enable_validation if enable_validation is None else enable_validation
        )
        self.conformer = conformer or RecordConformer()
        self.resolver = ReferenceResolver()
        self.dimension_builder = DimensionBuilder()
        self.date_generator = date_generator or DateDimensionGenerator()
        self.fact_assembler = FactAssembler(reference_time=reference_time)

    def _run_stage(
        self,
        report: RunReport,
        name: str,
        func: Callable[[], Tuple[T, int, int, int]],
    ) -> T:
        """
        Run one stage, record its StageReport and wrap failures.

        ``func`` returns ``(output, input_rows, output_rows, rejected_rows)``.
        """
        start = perf_counter()
        try:
            output, input_rows, output_rows, rejected_rows = func()
        except PipelineStageError:
            raise
        except Exception as e:
            logger.error("Stage failed", stage=name, error=str(e), error_type=type(e).__name__)
            raise PipelineStageError(name, str(e)) from e

        report.stages.append(
            StageReport(
                name=name,
                input_rows=input_rows,
                output_rows=output_rows,
                rejected_rows=rejected_rows,
                duration_seconds=perf_counter() - start,
            )
        )
        return output

    @staticmethod
    def _check_sources(raw_sources: Dict[str, pl.DataFrame]) -> None:
        for source in (
            Source.CUSTOMERS,
            Source.GEOLOCATION,
            Source.SELLERS,
            Source.PRODUCTS,
            Source.CATEGORY_TRANSLATION,
            Source.ORDERS,
            Source.ORDER_ITEMS,
            Source.ORDER_PAYMENTS,
            Source.ORDER_REVIEWS,
        ):
            if source not in raw_sources or raw_sources[source] is None:
                raise PipelineStageError(f"conform_{source}", "source is missing")
            absent = missing_columns(raw_sources[source], source)
            if absent:
                raise PipelineStageError(f"conform_{source}", f"missing columns {absent}")

    def conform(
        self,
        raw_sources: Dict[str, pl.DataFrame],
        report: RunReport,
    ) -> Dict[str, pl.DataFrame]:
        """
        Conform and resolve every source entity.

        Returns:
            Conformed frames keyed by source name
        """
        self._check_sources(raw_sources)
        conformed: Dict[str, pl.DataFrame] = {}

        def conform_entity(source: str, **context) -> pl.DataFrame:
            def run():
                df, stats = self.conformer.conform(source, raw_sources[source], **context)
                return df, stats.input_rows, stats.output_rows, stats.rejected_rows + stats.duplicates_removed

            df = self._run_stage(report, f"conform_{source}", run)
            if source in REQUIRED_NON_EMPTY and len(df) == 0:
                raise PipelineStageError(f"conform_{source}", "no rows survived conformance")
            return df

        conformed[Source.CUSTOMERS] = conform_entity(Source.CUSTOMERS)
        conformed[Source.GEOLOCATION] = conform_entity(
            Source.GEOLOCATION, customers=raw_sources[Source.CUSTOMERS]
        )
        conformed[Source.SELLERS] = conform_entity(Source.SELLERS)
        conformed[Source.PRODUCTS] = conform_entity(Source.PRODUCTS)
        conformed[Source.CATEGORY_TRANSLATION] = conform_entity(Source.CATEGORY_TRANSLATION)
        conformed[Source.ORDERS] = conform_entity(Source.ORDERS, customers=conformed[Source.CUSTOMERS])
        items = conform_entity(Source.ORDER_ITEMS)
        payments = conform_entity(Source.ORDER_PAYMENTS)
        reviews = conform_entity(Source.ORDER_REVIEWS)

        def resolve(name: str, resolver: Callable) -> pl.DataFrame:
            def run():
                df, stats = resolver()
                return df, stats.input_rows, stats.output_rows, stats.dropped_rows

            return self._run_stage(report, f"resolve_{name}", run)

        orders = conformed[Source.ORDERS]
        conformed[Source.ORDER_ITEMS] = resolve(
            Source.ORDER_ITEMS,
            lambda: self.resolver.resolve_order_items(
                items, orders, conformed[Source.PRODUCTS], conformed[Source.SELLERS]
            ),
        )
        conformed[Source.ORDER_PAYMENTS] = resolve(
            Source.ORDER_PAYMENTS,
            lambda: self.resolver.resolve_payments(payments, orders),
        )
        conformed[Source.ORDER_REVIEWS] = resolve(
            Source.ORDER_REVIEWS,
            lambda: self.resolver.resolve_reviews(reviews, orders),
        )
        return conformed

    def build_star_schema(
        self,
        conformed: Dict[str, pl.DataFrame],
        report: RunReport,
    ) -> StarSchema:
        """Build the four dimensions and the fact from conformed frames"""

        def build(name: str, func: Callable[[], pl.DataFrame], input_rows: int) -> pl.DataFrame:
            def run():
                df = func()
                return df, input_rows, len(df), 0

            return self._run_stage(report, f"build_{name}", run)

        customers = conformed[Source.CUSTOMERS]
        products = conformed[Source.PRODUCTS]
        sellers = conformed[Source.SELLERS]
        orders = conformed[Source.ORDERS]

        dim_customer = build(
            "dim_customer",
            lambda: self.dimension_builder.build_customer_dimension(
                customers, conformed[Source.GEOLOCATION]
            ),
            len(customers),
        )
        dim_product = build(
            "dim_product",
            lambda: self.dimension_builder.build_product_dimension(
                products, conformed[Source.CATEGORY_TRANSLATION]
            ),
            len(products),
        )
        dim_seller = build(
            "dim_seller",
            lambda: self.dimension_builder.build_seller_dimension(sellers),
            len(sellers),
        )
        dim_date = build("dim_date", self.date_generator.generate_default, 0)
        fact_sales = build(
            "fact_sales",
            lambda: self.fact_assembler.assemble(
                orders,
                conformed[Source.ORDER_ITEMS],
                conformed[Source.ORDER_PAYMENTS],
                conformed[Source.ORDER_REVIEWS],
                dim_customer,
                dim_product,
                dim_seller,
            ),
            len(orders),
        )

        return StarSchema(
            dim_customer=dim_customer,
            dim_product=dim_product,
            dim_seller=dim_seller,
            dim_date=dim_date,
            fact_sales=fact_sales,
        )

    def validate(
        self,
        star: StarSchema,
        conformed: Dict[str, pl.DataFrame],
        report: RunReport,
    ) -> None:
        """
        Run quality checks on conformed customers and reviews and on the
        star schema. ERROR-level failures abort the run; warnings are kept
        on the report.
        """
        validators = {
            Source.CUSTOMERS: (create_customers_validator(), conformed[Source.CUSTOMERS]),
            Source.ORDER_REVIEWS: (create_reviews_validator(), conformed[Source.ORDER_REVIEWS]),
            "dim_customer": (create_dimension_validator("customer_key", "customer_id"), star.dim_customer),
            "dim_product": (create_dimension_validator("product_key", "product_id"), star.dim_product),
            "dim_seller": (create_dimension_validator("seller_key", "seller_id"), star.dim_seller),
            "fact_sales": (
                create_fact_validator(
                    orders=conformed[Source.ORDERS],
                    dim_customer=star.dim_customer,
                    dim_product=star.dim_product,
                    dim_seller=star.dim_seller,
                    dim_date=star.dim_date,
                ),
                star.fact_sales,
            ),
        }

        for table, (validator, df) in validators.items():
            result = validator.validate(df)
            report.validations[table] = result
            if result.status == ValidationStatus.FAILED:
                failed = [c.name for c in result.checks if not c.passed]
                raise PipelineStageError(f"validate_{table}", f"checks failed: {failed}")

    def run(
        self,
        raw_sources: Dict[str, pl.DataFrame],
        publish: bool = False,
    ) -> Tuple[StarSchema, RunReport]:
        """
        Run the full rebuild.

        Args:
            raw_sources: Raw frames keyed by source name
            publish: Also publish the star schema to ``output_path``

        Returns:
            The star schema and the run report

        Raises:
            PipelineStageError: when any stage cannot produce its output
        """
        report = RunReport(run_id=uuid.uuid4().hex, started_at=datetime.now())
        bind_run_context(report.run_id)
        logger.info("Starting warehouse run", sources=sorted(raw_sources))

        try:
            conformed = self.conform(raw_sources, report)
            star = self.build_star_schema(conformed, report)
            if self.enable_validation:
                self.validate(star, conformed, report)
            report.table_rows = {name: len(df) for name, df in star.tables().items()}
            if publish:
                report.output_path = self.publish(star, report)
        except PipelineStageError as e:
            report.status = RunStatus.FAILED
            report.error = str(e)
            report.completed_at = datetime.now()
            logger.error("Warehouse run aborted", stage=e.stage, error=str(e))
            raise
        finally:
            clear_run_context()

        report.status = RunStatus.COMPLETED
        report.completed_at = datetime.now()
        logger.info(
            "Warehouse run complete",
            run_id=report.run_id,
            duration_seconds=round(report.duration_seconds, 3),
            rejected_rows=report.rejected_rows,
            **report.table_rows,
        )
        return star, report

    def publish(self, star: StarSchema, report: Optional[RunReport] = None) -> str:
        """
        Write every table to a staging directory, then swap it in as ``current``.

        The previous ``current`` directory is removed only after the swap; if
        the swap fails it is restored and ``PipelineStageError`` is raised.

        Returns:
            Path of the published directory
        """
        run_id = report.run_id if report is not None else uuid.uuid4().hex
        self.output_path.mkdir(parents=True, exist_ok=True)
        staging = self.output_path / f"{self.settings.warehouse.staging_prefix}_{run_id}"
        current = self.output_path / "current"
        retired = self.output_path / f".retired_{run_id}"

        try:
            staging.mkdir(parents=True, exist_ok=False)
            for name, df in star.tables().items():
                df.write_parquet(staging / f"{name}.parquet")
                logger.info("Staged table", table=name, rows=len(df))
        except Exception as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise PipelineStageError("publish", str(e)) from e

        had_current = current.exists()
        try:
            if had_current:
                current.rename(retired)
            staging.rename(current)
        except OSError as e:
            if had_current and retired.exists() and not current.exists():
                retired.rename(current)
            shutil.rmtree(staging, ignore_errors=True)
            raise PipelineStageError("publish", str(e)) from e

        if retired.exists():
            shutil.rmtree(retired)

        logger.info("Published star schema", path=str(current))
        return str(current)


def load_star_schema(path: str) -> StarSchema:
    """Read a published star schema back from ``path``"""
    root = Path(path)
    return StarSchema(
        **{
            name: pl.read_parquet(root / f"{name}.parquet")
            for name in ("dim_customer", "dim_product", "dim_seller", "dim_date", "fact_sales")
        }
    )
