"""Recursive craft-cost aggregation over a recipe tree snapshot.

Costs follow each node's current expand/collapse choice:

- a collapsed, unloaded or leaf node is priced at market: ``unit_price × required_quantity``
- an expanded node is priced by crafting it: ``aggregate(children) × required_quantity``

Quantities are per unit of the parent's output, so the multiplication by
``required_quantity`` cascades naturally down the recursion.

A node without a known price contributes 0 but marks the aggregate incomplete.
The total is then an underestimate, never a true zero cost.

The stock-aware variant additionally splits every cost into the value of what
is already owned and the cost of buying what is missing.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from .nodes import IngredientNode, RecipeTree


class StockStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    MISSING = "missing"


@dataclass(frozen=True)
class CostAggregate:
    """Aggregate over one sibling list."""
    total_cost: float
    is_complete: bool
    leaf_count: int  # priced positions currently visible
    total_owned_value: Optional[float] = None
    total_missing_cost: Optional[float] = None

    @property
    def is_stock_aware(self) -> bool:
        return self.total_missing_cost is not None


@dataclass(frozen=True)
class NodeCost:
    """Per-node figures used by rows and summaries."""
    cost: float
    is_complete: bool
    market_cost: Optional[float]
    craft_cost: Optional[float]
    savings: Optional[float]
    owned_value: Optional[float] = None
    missing_quantity: Optional[int] = None
    missing_cost: Optional[float] = None
    effective_missing_cost: Optional[float] = None
    status: Optional[StockStatus] = None


EMPTY_AGGREGATE = CostAggregate(total_cost=0.0, is_complete=True, leaf_count=0)


# ---------------------------------------------------------------------------
# Stock helpers
# ---------------------------------------------------------------------------

def owned_units(node: IngredientNode) -> int:
    return node.owned_quantity or 0


def missing_quantity(node: IngredientNode) -> int:
    return max(node.required_quantity - owned_units(node), 0)


def owned_value(node: IngredientNode) -> float:
    """Market value of the owned units that count toward this position."""
    if node.unit_price is None:
        return 0.0
    return min(owned_units(node), node.required_quantity) * node.unit_price


def missing_cost(node: IngredientNode) -> Optional[float]:
    """Cost of buying the missing units; None when it cannot be priced."""
    qty = missing_quantity(node)
    if qty == 0:
        return 0.0
    if node.unit_price is None:
        return None
    return qty * node.unit_price


def ingredient_status(node: IngredientNode) -> StockStatus:
    owned = owned_units(node)
    if owned >= node.required_quantity:
        return StockStatus.COMPLETE
    if owned > 0:
        return StockStatus.PARTIAL
    return StockStatus.MISSING


def market_cost(node: IngredientNode) -> Optional[float]:
    if node.unit_price is None:
        return None
    return node.unit_price * node.required_quantity


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _plain_contribution(node: IngredientNode) -> Tuple[float, bool, int]:
    if node.is_expanded and node.children:
        sub = _aggregate_plain(node.children)
        return sub.total_cost * node.required_quantity, sub.is_complete, sub.leaf_count
    cost = market_cost(node)
    if cost is None:
        return 0.0, False, 1
    return cost, True, 1


def _aggregate_plain(nodes: Iterable[IngredientNode]) -> CostAggregate:
    total = 0.0
    complete = True
    leaves = 0
    for node in nodes:
        cost, node_complete, node_leaves = _plain_contribution(node)
        total += cost
        complete = complete and node_complete
        leaves += node_leaves
    return CostAggregate(total_cost=total, is_complete=complete, leaf_count=leaves)


def _stock_contribution(node: IngredientNode) -> Tuple[float, float, bool, int]:
    """Return ``(owned_value, missing_cost, is_complete, leaf_count)`` for one node."""
    if node.is_expanded and node.children:
        sub = _aggregate_stock(node.children)
        qty = node.required_quantity
        return (sub.total_owned_value * qty, sub.total_missing_cost * qty,
                sub.is_complete, sub.leaf_count)
    missing = missing_cost(node)
    if missing is None:
        return owned_value(node), 0.0, False, 1
    return owned_value(node), missing, True, 1


def _aggregate_stock(nodes: Iterable[IngredientNode]) -> CostAggregate:
    owned_total = 0.0
    missing_total = 0.0
    complete = True
    leaves = 0
    for node in nodes:
        owned, missing, node_complete, node_leaves = _stock_contribution(node)
        owned_total += owned
        missing_total += missing
        complete = complete and node_complete
        leaves += node_leaves
    return CostAggregate(
        total_cost=owned_total + missing_total,
        is_complete=complete,
        leaf_count=leaves,
        total_owned_value=owned_total,
        total_missing_cost=missing_total,
    )


def aggregate(nodes: Iterable[IngredientNode], *, stock_aware: Optional[bool] = None) -> CostAggregate:
    """
    Aggregate a sibling list under the current expand/collapse choices.

    Parameters
    ----------
    nodes : iterable of IngredientNode
        Root ingredients (or any sibling list).
    stock_aware : bool, optional
        Force the variant. By default the stock-aware shape is returned when
        any node carries an owned quantity.

    Returns
    -------
    CostAggregate
        ``total_owned_value`` and ``total_missing_cost`` are only set for the
        stock-aware variant, where ``total_cost`` is their sum.
    """
    nodes = tuple(nodes)
    if stock_aware is None:
        stock_aware = any(node.is_stock_aware for node in nodes)
    if stock_aware:
        return _aggregate_stock(nodes)
    return _aggregate_plain(nodes)


def aggregate_tree(tree: RecipeTree) -> CostAggregate:
    return aggregate(tree.roots, stock_aware=tree.stock_aware)


def node_cost(node: IngredientNode, *, stock_aware: Optional[bool] = None) -> float:
    """Contribution of ``node`` to its siblings' total under the current strategy."""
    return aggregate((node,), stock_aware=stock_aware).total_cost


def percent_of_total(cost: float, total: float) -> float:
    if total == 0:
        return 0.0
    return cost / total * 100


def node_breakdown(node: IngredientNode, *, stock_aware: Optional[bool] = None) -> NodeCost:
    """
    Full per-node figures, including both pricing strategies where available.

    ``craft_cost`` is the cost of crafting ``required_quantity`` units from the
    loaded sub-recipe, whether or not the node is currently expanded. Savings
    are reported, never chosen automatically.
    """
    if stock_aware is None:
        stock_aware = node.is_stock_aware
    current = aggregate((node,), stock_aware=stock_aware)
    market = market_cost(node)

    sub: Optional[CostAggregate] = None
    if node.expansion_state.is_loaded and node.children:
        sub = aggregate(node.children, stock_aware=stock_aware)
    craft = sub.total_cost * node.required_quantity if sub is not None else None
    savings = None
    if node.is_expanded and market is not None and craft is not None:
        savings = market - craft

    if not stock_aware:
        return NodeCost(
            cost=current.total_cost,
            is_complete=current.is_complete,
            market_cost=market,
            craft_cost=craft,
            savings=savings,
        )

    buy_missing = missing_cost(node)
    effective = current.total_missing_cost
    savings = None
    if node.is_expanded and buy_missing is not None and effective is not None and sub is not None:
        savings = buy_missing - effective
    return NodeCost(
        cost=current.total_cost,
        is_complete=current.is_complete,
        market_cost=market,
        craft_cost=craft,
        savings=savings,
        owned_value=owned_value(node),
        missing_quantity=missing_quantity(node),
        missing_cost=buy_missing,
        effective_missing_cost=effective,
        status=ingredient_status(node),
    )
