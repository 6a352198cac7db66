"""Flatten the visible part of a recipe tree into table rows."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List, Optional, Tuple

import pandas as pd

from .aggregation import aggregate_tree, node_breakdown, percent_of_total
from .nodes import NodePath, RecipeTree
from .tree_store import iter_nodes


@dataclass(frozen=True)
class IngredientRow:
    path: NodePath
    depth: int
    item_id: int
    name: str
    required_quantity: int
    unit_price: Optional[float]
    cost: float
    percent: float  # share of the whole tree's current total
    state: str
    can_toggle: bool
    market_cost: Optional[float] = None
    craft_cost: Optional[float] = None
    savings: Optional[float] = None
    owned_quantity: Optional[int] = None
    missing_quantity: Optional[int] = None
    owned_value: Optional[float] = None
    missing_cost: Optional[float] = None
    effective_missing_cost: Optional[float] = None
    status: Optional[str] = None


def visible_rows(tree: RecipeTree) -> List[IngredientRow]:
    """
    Rows for every node currently shown: roots plus the children of expanded nodes.

    Percentages are relative to the tree total so nested rows read as a share
    of the whole craft, the way the recipe view displays them.
    """
    total = aggregate_tree(tree).total_cost
    rows: List[IngredientRow] = []
    for path, node in iter_nodes(tree.roots, expanded_only=True):
        figures = node_breakdown(node, stock_aware=tree.stock_aware)
        # Nested costs are per unit of the parent; scale to one unit of the result
        scale = _path_multiplier(tree, path)
        cost = figures.cost * scale
        rows.append(IngredientRow(
            path=path,
            depth=len(path) - 1,
            item_id=node.item_id,
            name=node.name,
            required_quantity=node.required_quantity,
            unit_price=node.unit_price,
            cost=cost,
            percent=percent_of_total(cost, total),
            state=node.expansion_state.value,
            can_toggle=node.is_craftable and not node.is_loading,
            market_cost=figures.market_cost,
            craft_cost=figures.craft_cost,
            savings=figures.savings,
            owned_quantity=node.owned_quantity,
            missing_quantity=figures.missing_quantity,
            owned_value=figures.owned_value,
            missing_cost=figures.missing_cost,
            effective_missing_cost=figures.effective_missing_cost,
            status=figures.status.value if figures.status is not None else None,
        ))
    return rows


def _path_multiplier(tree: RecipeTree, path: Tuple[int, ...]) -> int:
    """Product of the ancestors' required quantities (1 for root rows)."""
    multiplier = 1
    level = tree.roots
    for item_id in path[:-1]:
        node = next(n for n in level if n.item_id == item_id)
        multiplier *= node.required_quantity
        level = node.children
    return multiplier


def rows_to_frame(rows: List[IngredientRow]) -> pd.DataFrame:
    """Tabular view of ``rows``; the path is rendered as ``a/b/c``."""
    records = []
    for row in rows:
        record = asdict(row)
        record["path"] = "/".join(str(p) for p in row.path)
        records.append(record)
    columns = list(IngredientRow.__dataclass_fields__)
    return pd.DataFrame.from_records(records, columns=columns)
