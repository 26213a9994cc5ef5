"""
Reference Resolution

Inner-join style filtering of conformed rows against the conformed sets
their foreign keys point to. Rows are kept or dropped, never repaired.
"""

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Tuple

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class Reference(NamedTuple):
    """A foreign key from one frame into the key column of another"""
    column: str
    target: pl.DataFrame
    target_column: str
    name: str


@dataclass
class ResolutionStats:
    """Orphan accounting for one resolved entity"""
    entity: str
    input_rows: int
    output_rows: int
    orphans: Dict[str, int] = field(default_factory=dict)

    @property
    def dropped_rows(self) -> int:
        return self.input_rows - self.output_rows


class ReferenceResolver:
    """
    Drops rows whose referenced natural key has no match in the target set.

    Example:
        resolver = ReferenceResolver()
        items, stats = resolver.resolve_order_items(items, orders, products, sellers)
    """

    @staticmethod
    def _keys(reference: Reference) -> pl.DataFrame:
        return (
            reference.target.select(pl.col(reference.target_column).alias(reference.column))
            .drop_nulls()
            .unique()
        )

    def resolve(
        self,
        df: pl.DataFrame,
        references: List[Reference],
        entity: str = "entity",
    ) -> Tuple[pl.DataFrame, ResolutionStats]:
        """
        Keep only rows whose every reference resolves.

        Args:
            df: Conformed rows
            references: Foreign keys to check
            entity: Name used for logging and stats

        Returns:
            Filtered frame and its ResolutionStats
        """
        input_rows = len(df)
        orphans: Dict[str, int] = {}
        resolved = df

        for reference in references:
            before = len(resolved)
            resolved = resolved.join(self._keys(reference), on=reference.column, how="semi")
            orphans[reference.name] = before - len(resolved)

        stats = ResolutionStats(
            entity=entity,
            input_rows=input_rows,
            output_rows=len(resolved),
            orphans=orphans,
        )
        logger.info(
            "Resolved references",
            entity=entity,
            input_rows=input_rows,
            output_rows=stats.output_rows,
            dropped_rows=stats.dropped_rows,
            **{f"orphan_{name}": count for name, count in orphans.items()},
        )
        return resolved, stats

    def find_orphans(self, df: pl.DataFrame, references: List[Reference]) -> pl.DataFrame:
        """
        Return the rows that ``resolve`` would drop.

        A ``missing_references`` column lists the names of the references
        each row fails.
        """
        flags = []
        for reference in references:
            known = self._keys(reference).get_column(reference.column)
            matched = pl.col(reference.column).is_in(known).fill_null(False)
            flags.append(
                pl.when(matched).then(pl.lit(None, dtype=pl.Utf8)).otherwise(pl.lit(reference.name))
            )

        if not flags:
            return df.clear().with_columns(pl.lit(None, dtype=pl.List(pl.Utf8)).alias("missing_references"))

        flagged = df.with_columns(
            pl.concat_list(flags).list.drop_nulls().alias("missing_references")
        )
        return flagged.filter(pl.col("missing_references").list.len() > 0)

    def order_item_references(
        self,
        orders: pl.DataFrame,
        products: pl.DataFrame,
        sellers: pl.DataFrame,
    ) -> List[Reference]:
        return [
            Reference("order_id", orders, "order_id", "order"),
            Reference("product_id", products, "product_id", "product"),
            Reference("seller_id", sellers, "seller_id", "seller"),
        ]

    def resolve_order_items(
        self,
        order_items: pl.DataFrame,
        orders: pl.DataFrame,
        products: pl.DataFrame,
        sellers: pl.DataFrame,
    ) -> Tuple[pl.DataFrame, ResolutionStats]:
        """Order items must point at a conformed order, product and seller"""
        return self.resolve(
            order_items,
            self.order_item_references(orders, products, sellers),
            entity="order_items",
        )

    def resolve_payments(
        self,
        payments: pl.DataFrame,
        orders: pl.DataFrame,
    ) -> Tuple[pl.DataFrame, ResolutionStats]:
        """Payments must point at a conformed order"""
        return self.resolve(
            payments,
            [Reference("order_id", orders, "order_id", "order")],
            entity="order_payments",
        )

    def resolve_reviews(
        self,
        reviews: pl.DataFrame,
        orders: pl.DataFrame,
    ) -> Tuple[pl.DataFrame, ResolutionStats]:
        """Reviews must point at a conformed order"""
        return self.resolve(
            reviews,
            [Reference("order_id", orders, "order_id", "order")],
            entity="order_reviews",
        )
