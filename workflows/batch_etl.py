"""
Prefect Workflow Orchestration - Warehouse Rebuild

Full truncate-and-rebuild of the Olist star schema:
- Load the raw extracts (retried) and check their column contracts (not retried)
- Conform, resolve and build the star schema
- Publish through a staging directory
"""

from datetime import datetime
from typing import Optional

from prefect import flow, task, get_run_logger

from src.config import get_settings
from src.config.logging import configure_logging
from src.ingestion.batch_loader import BatchLoader, LoadStatus
from src.transformation.transformers import WarehouseTransformer

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_raw_sources",
    description="Read the raw Olist extracts",
    retries=3,
    retry_delay_seconds=60,
)
def load_raw_sources(raw_path: str) -> tuple:
    """Load every raw extract as an all-string frame"""
    logger = get_run_logger()

    frames, results = BatchLoader().load_directory(raw_path)

    logger.info(f"Loaded {len(frames)} raw extracts, {sum(r.rows_loaded for r in results)} rows")
    return frames, {r.source: r.missing_columns for r in results if r.status == LoadStatus.FAILED}


@task(
    name="check_raw_contracts",
    description="Fail on extracts missing contract columns",
)
def check_raw_contracts(missing: dict) -> None:
    """Raise when any extract lacks contract columns"""
    if missing:
        raise ValueError(f"Raw extracts with missing columns: {missing}")


@task(
    name="rebuild_star_schema",
    description="Conform sources and rebuild dimensions and fact",
)
def rebuild_star_schema(
    frames: dict,
    output_path: str,
    reference_time: Optional[datetime] = None,
) -> dict:
    """Run the warehouse transformer and publish the result"""
    logger = get_run_logger()

    transformer = WarehouseTransformer(output_path=output_path, reference_time=reference_time)
    _, report = transformer.run(frames, publish=True)

    for stage in report.stages:
        logger.info(
            f"{stage.name}: {stage.input_rows} -> {stage.output_rows} rows "
            f"({stage.rejected_rows} rejected, {stage.duration_seconds:.2f}s)"
        )

    return {
        "run_id": report.run_id,
        "status": report.status.value,
        "duration_seconds": report.duration_seconds,
        "rejected_rows": report.rejected_rows,
        "table_rows": report.table_rows,
        "output_path": report.output_path,
    }


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="warehouse_rebuild",
    description="Full rebuild of the Olist star schema",
)
def warehouse_rebuild(
    raw_path: Optional[str] = None,
    output_path: Optional[str] = None,
    reference_time: Optional[datetime] = None,
) -> dict:
    """
    Warehouse rebuild flow.

    A failed stage aborts the flow before anything is published, leaving
    the previously published star schema in place.
    """
    logger = get_run_logger()
    raw_path = raw_path or settings.warehouse.raw_path
    output_path = output_path or settings.warehouse.output_path

    logger.info(f"Starting warehouse rebuild from {raw_path}")

    frames, missing = load_raw_sources(raw_path)
    check_raw_contracts(missing)
    summary = rebuild_star_schema(frames, output_path, reference_time)

    logger.info(f"Warehouse rebuild {summary['status']}: {summary['table_rows']}")
    return summary


if __name__ == "__main__":
    configure_logging()
    warehouse_rebuild()
