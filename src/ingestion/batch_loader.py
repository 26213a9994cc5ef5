"""
Raw Source Loader

Reads the nine Olist CSV extracts into all-string polars frames, the raw
input of the conformance stage. No typing or cleaning happens here.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import hashlib

import polars as pl
import structlog
from pydantic import BaseModel

from src.config import get_settings
from src.transformation.schemas import RAW_COLUMNS, RAW_FILE_NAMES, missing_columns

logger = structlog.get_logger(__name__)


class LoadStatus(str, Enum):
    """Raw load status"""
    COMPLETED = "completed"
    FAILED = "failed"


class LoadResult(BaseModel):
    """Result of loading one raw extract"""
    source: str
    file_path: str
    status: LoadStatus
    rows_loaded: int = 0
    missing_columns: List[str] = []
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


class BatchLoader:
    """
    Loads raw extracts from a directory.

    Example:
        loader = BatchLoader()
        raw_sources, results = loader.load_directory("data/raw")
    """

    def __init__(self, encoding: Optional[str] = None):
        self.encoding = encoding or get_settings().warehouse.csv_encoding

    @staticmethod
    def _compute_file_hash(file_path: Path) -> str:
        """MD5 of the extract, recorded for lineage"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def read_source(self, source: str, file_path: Union[str, Path]) -> Tuple[pl.DataFrame, LoadResult]:
        """
        Read one extract with every column as a string.

        Raises:
            FileNotFoundError: If the extract does not exist
        """
        path = Path(file_path)
        started_at = datetime.now()
        if not path.exists():
            raise FileNotFoundError(f"Raw extract for '{source}' not found: {path}")

        df = pl.read_csv(
            path,
            infer_schema_length=0,
            encoding=self.encoding,
        )
        absent = missing_columns(df, source)
        completed_at = datetime.now()

        result = LoadResult(
            source=source,
            file_path=str(path),
            status=LoadStatus.FAILED if absent else LoadStatus.COMPLETED,
            rows_loaded=len(df),
            missing_columns=absent,
            error_message=f"missing columns {absent}" if absent else None,
            load_duration_seconds=(completed_at - started_at).total_seconds(),
            started_at=started_at,
            completed_at=completed_at,
            file_hash=self._compute_file_hash(path),
        )

        if absent:
            logger.warning("Raw extract is missing columns", source=source, missing=absent)
        else:
            logger.info("Loaded raw extract", source=source, rows=len(df), file=str(path))

        return df, result

    def load_directory(
        self,
        directory: Optional[Union[str, Path]] = None,
    ) -> Tuple[Dict[str, pl.DataFrame], List[LoadResult]]:
        """
        Load all nine extracts from ``directory``.

        Returns:
            Raw frames keyed by source name, and one LoadResult per extract
        """
        root = Path(directory or get_settings().warehouse.raw_path)
        frames: Dict[str, pl.DataFrame] = {}
        results: List[LoadResult] = []

        for source in RAW_COLUMNS:
            df, result = self.read_source(source, root / RAW_FILE_NAMES[source])
            frames[source] = df
            results.append(result)

        logger.info(
            "Raw load complete",
            directory=str(root),
            files=len(results),
            rows=sum(r.rows_loaded for r in results),
        )
        return frames, results
