"""
Warehouse Transformation Module
"""
from .cleaners import ConformanceStats, RecordConformer, conform_dataframe
from .dates import DateDimensionGenerator, date_key, date_key_expr
from .dimensions import SENTINEL_ID, SENTINEL_KEY, DimensionBuilder
from .facts import FactAssembler
from .resolvers import Reference, ReferenceResolver, ResolutionStats
from .transformers import (
    PipelineStageError,
    RunReport,
    RunStatus,
    StageReport,
    StarSchema,
    WarehouseTransformer,
    load_star_schema,
)

__all__ = [
    "ConformanceStats",
    "RecordConformer",
    "conform_dataframe",
    "DateDimensionGenerator",
    "date_key",
    "date_key_expr",
    "SENTINEL_ID",
    "SENTINEL_KEY",
    "DimensionBuilder",
    "FactAssembler",
    "Reference",
    "ReferenceResolver",
    "ResolutionStats",
    "PipelineStageError",
    "RunReport",
    "RunStatus",
    "StageReport",
    "StarSchema",
    "WarehouseTransformer",
    "load_star_schema",
]
