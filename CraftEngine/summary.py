"""Margin, ROI and data-quality flags for one recipe tree snapshot."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from .aggregation import StockStatus, aggregate_tree, ingredient_status, owned_units
from .config import EngineConfig
from .nodes import RecipeTree
from .tree_store import iter_nodes


class RoiTier(str, Enum):
    EXCELLENT = "excellent"  # >= 50%
    GOOD = "good"            # >= 20%
    MARGINAL = "marginal"    # > 0%
    LOSS = "loss"


def roi_tier(roi: float) -> RoiTier:
    if roi >= 50:
        return RoiTier.EXCELLENT
    if roi >= 20:
        return RoiTier.GOOD
    if roi > 0:
        return RoiTier.MARGINAL
    return RoiTier.LOSS


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def is_stale(updated_at: Optional[datetime], max_age: timedelta,
             now: Optional[datetime] = None) -> bool:
    """A price never observed, or observed longer than ``max_age`` ago, is stale."""
    if updated_at is None:
        return True
    current = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    return current - _as_utc(updated_at) > max_age


def roi_of(margin: float, cost: float) -> float:
    return margin / cost * 100 if cost > 0 else 0.0


@dataclass(frozen=True)
class OpportunitySummary:
    """
    Profitability of crafting one unit under the tree's current choices.

    For stock-aware trees ``total_cost`` is the full replacement cost (owned
    value plus missing cost) and ``cost_to_complete`` is the missing part only.
    ``quick_estimate`` is the backend's own craft-cost figure and is not
    expected to agree with ``total_cost``.
    """
    total_cost: float
    margin: float
    roi: float
    is_complete: bool
    sell_price: Optional[float]
    roi_tier: RoiTier
    is_sell_price_stale: bool
    stale_ingredient_count: int
    leaf_count: int
    has_missing_prices: bool
    quick_estimate: Optional[float] = None
    quick_margin: Optional[float] = None
    total_owned_value: Optional[float] = None
    cost_to_complete: Optional[float] = None
    max_craftable: Optional[int] = None
    owned_ingredient_count: Optional[int] = None
    completeness_pct: Optional[float] = None

    @property
    def has_sell_price(self) -> bool:
        return self.sell_price is not None


def summarize(tree: RecipeTree, *, now: Optional[datetime] = None,
              config: Optional[EngineConfig] = None,
              max_age: Optional[timedelta] = None) -> OpportunitySummary:
    """
    Summarise a tree snapshot.

    Parameters
    ----------
    tree : RecipeTree
        Current snapshot.
    now : datetime, optional
        Reference time for staleness; defaults to the current UTC time.
    config : EngineConfig, optional
        Supplies the staleness thresholds (recipe views vs. bank views).
    max_age : timedelta, optional
        Overrides the configured staleness threshold.
    """
    config = config or EngineConfig()
    if max_age is None:
        max_age = (config.staleness.bank_max_age if tree.stock_aware
                   else config.staleness.recipe_max_age)

    agg = aggregate_tree(tree)
    sell = tree.sell_price if tree.sell_price is not None else 0.0
    margin = sell - agg.total_cost
    roi = roi_of(margin, agg.total_cost)

    stale_count = 0
    for _path, node in iter_nodes(tree.roots, expanded_only=True):
        if node.is_expanded and node.children:
            continue
        if node.has_price and is_stale(node.price_last_updated_at, max_age, now):
            stale_count += 1

    quick_margin = None
    if tree.quick_estimate is not None and tree.sell_price is not None:
        quick_margin = tree.sell_price - tree.quick_estimate

    max_craftable = None
    owned_count = None
    completeness = None
    if tree.stock_aware:
        roots = tree.roots
        max_craftable = min(
            (owned_units(node) // node.required_quantity for node in roots), default=0
        )
        owned_count = sum(1 for node in roots if ingredient_status(node) is StockStatus.COMPLETE)
        completeness = owned_count / len(roots) * 100 if roots else 0.0

    return OpportunitySummary(
        total_cost=agg.total_cost,
        margin=margin,
        roi=roi,
        is_complete=agg.is_complete,
        sell_price=tree.sell_price,
        roi_tier=roi_tier(roi),
        is_sell_price_stale=(
            tree.sell_price is not None
            and is_stale(tree.sell_price_last_updated_at, max_age, now)
        ),
        stale_ingredient_count=stale_count,
        leaf_count=agg.leaf_count,
        has_missing_prices=tree.ingredients_with_known_price_count < tree.total_ingredient_count,
        quick_estimate=tree.quick_estimate,
        quick_margin=quick_margin,
        total_owned_value=agg.total_owned_value,
        cost_to_complete=agg.total_missing_cost,
        max_craftable=max_craftable,
        owned_ingredient_count=owned_count,
        completeness_pct=completeness,
    )
