"""Tests for recursive craft-cost aggregation.

Validates that:
1. Collapsed and leaf nodes are priced at market, expanded nodes by their children
2. Child costs are multiplied by the parent's required quantity
3. Unknown prices contribute 0 and mark the aggregate incomplete
4. Collapsing restores exactly the aggregate before expansion
5. Stock-aware aggregation splits owned value from missing cost
6. Per-node breakdowns report both strategies and the savings between them
"""
from __future__ import annotations

from dataclasses import replace

import pytest

from CraftEngine.aggregation import (
    StockStatus,
    aggregate,
    aggregate_tree,
    ingredient_status,
    node_breakdown,
    node_cost,
    percent_of_total,
)
from CraftEngine.expansion import collapse_all
from CraftEngine.nodes import ExpansionState, IngredientNode, RecipeTree


def leaf(item_id, qty, price=None, owned=None, **kwargs):
    return IngredientNode(item_id=item_id, name=f"item-{item_id}", required_quantity=qty,
                          unit_price=price, owned_quantity=owned, **kwargs)


def expanded(item_id, qty, price, children, owned=None):
    return IngredientNode(
        item_id=item_id, name=f"item-{item_id}", required_quantity=qty, unit_price=price,
        owned_quantity=owned, sub_recipe_ref=item_id + 1000,
        expansion_state=ExpansionState.EXPANDED, children=tuple(children),
    )


# ---------------------------------------------------------------------------
# Tests: plain aggregation
# ---------------------------------------------------------------------------

class TestPlainAggregation:
    """Tests for market-price aggregation without stock."""

    def test_single_priced_node(self):
        """Test that a priced leaf costs quantity times unit price."""
        agg = aggregate([leaf(1, 2, 100)])
        assert agg.total_cost == 200
        assert agg.is_complete
        assert agg.leaf_count == 1
        assert not agg.is_stock_aware

    def test_unknown_price_is_incomplete(self):
        """Test that a missing price marks the aggregate incomplete."""
        agg = aggregate([leaf(1, 2, None)])
        assert agg.total_cost == 0
        assert not agg.is_complete

    def test_unknown_price_keeps_known_part(self):
        """Test that known prices still add up next to an unknown one."""
        agg = aggregate([leaf(1, 2, 100), leaf(2, 5, None)])
        assert agg.total_cost == 200
        assert not agg.is_complete
        assert agg.leaf_count == 2

    def test_nothing_expanded_is_flat_sum(self, sword_tree):
        """Test that a collapsed tree sums its roots at market price."""
        agg = aggregate_tree(sword_tree)
        assert agg.total_cost == 3 * 50 + 2 * 40
        assert agg.is_complete

    def test_empty_list(self):
        """Test that an empty ingredient list costs nothing and is complete."""
        agg = aggregate([])
        assert agg.total_cost == 0
        assert agg.is_complete
        assert agg.leaf_count == 0

    def test_expanded_node_uses_children_times_quantity(self):
        """Test that an expanded node costs its children times its quantity."""
        node = expanded(1, 3, 50, [leaf(2, 1, 30)])
        assert node_cost(node) == 90

    def test_nested_quantities_cascade(self):
        """Test that quantities multiply down every expanded level."""
        # 2 × (3 × (4 × 1)) = 24
        inner = expanded(2, 3, 100, [leaf(3, 4, 1)])
        outer = expanded(1, 2, 1000, [inner])
        assert node_cost(outer) == 24

    def test_collapsed_children_are_ignored(self):
        node = replace(expanded(1, 3, 50, [leaf(2, 1, 30)]),
                       expansion_state=ExpansionState.COLLAPSED)
        assert node_cost(node) == 150

    def test_collapse_restores_aggregate_exactly(self):
        """Test that collapsing returns the exact pre-expansion total."""
        unloaded = RecipeTree(recipe_id=1, result_item_id=99, roots=(
            leaf(1, 3, 50, sub_recipe_ref=1001), leaf(5, 2, 40),
        ))
        loaded = RecipeTree(recipe_id=1, result_item_id=99, roots=(
            expanded(1, 3, 50, [leaf(2, 1, 30), leaf(3, 2, None)]), leaf(5, 2, 40),
        ))
        assert aggregate_tree(loaded) != aggregate_tree(unloaded)
        assert aggregate_tree(collapse_all(loaded)) == aggregate_tree(unloaded)

    def test_incomplete_child_only_while_expanded(self):
        """Test that an unpriced child only matters while its parent is expanded."""
        tree = RecipeTree(recipe_id=1, result_item_id=99, roots=(
            expanded(1, 1, 50, [leaf(2, 1, None)]),
        ))
        assert not aggregate_tree(tree).is_complete
        assert aggregate_tree(collapse_all(tree)).is_complete


class TestPercent:
    """Tests for share-of-total percentages."""

    def test_share(self):
        """Test the percentage of a part in a total."""
        assert percent_of_total(50, 200) == 25

    def test_zero_total(self):
        """Test that a zero total gives a zero share."""
        assert percent_of_total(10, 0) == 0


# ---------------------------------------------------------------------------
# Tests: stock-aware aggregation
# ---------------------------------------------------------------------------

class TestStockAggregation:
    """Tests for stock-aware aggregation."""

    def test_partial_stock(self):
        """Test that owned units are valued and only missing units cost."""
        agg = aggregate([leaf(1, 5, 10, owned=2)])
        assert agg.total_owned_value == 20
        assert agg.total_missing_cost == 30
        assert agg.total_cost == 50
        assert agg.is_stock_aware

    @pytest.mark.parametrize("qty,owned,price", [
        (5, 0, 10), (5, 2, 10), (5, 5, 10), (5, 9, 10), (1, 0, 7.5), (3, 1, 0),
    ])
    def test_owned_plus_missing_equals_market(self, qty, owned, price):
        """Test that owned value plus missing cost equals the market cost."""
        agg = aggregate([leaf(1, qty, price, owned=owned)])
        assert agg.total_owned_value + agg.total_missing_cost == pytest.approx(qty * price)

    def test_surplus_stock_counts_only_required_units(self):
        """Test that stock beyond the required quantity is not counted."""
        agg = aggregate([leaf(1, 2, 10, owned=9)])
        assert agg.total_owned_value == 20
        assert agg.total_missing_cost == 0

    def test_unknown_price_with_missing_units_is_incomplete(self):
        """Test that missing units without a price make the result incomplete."""
        agg = aggregate([leaf(1, 5, None, owned=2)])
        assert agg.total_missing_cost == 0
        assert not agg.is_complete

    def test_unknown_price_fully_owned_is_complete(self):
        """Test that a fully owned unpriced ingredient stays complete."""
        agg = aggregate([leaf(1, 5, None, owned=5)])
        assert agg.is_complete

    def test_expanded_node_cascades_children(self):
        """Test that an expanded node takes its stock figures from its children."""
        node = expanded(1, 3, 50, [leaf(2, 2, 10, owned=1), leaf(3, 1, 10, owned=0)], owned=0)
        agg = aggregate([node])
        # children: owned 10, missing 10 + 10 = 20, each scaled by 3
        assert agg.total_owned_value == 30
        assert agg.total_missing_cost == 60
        assert agg.total_cost == 90

    def test_forced_plain_variant_ignores_stock(self):
        """Test that the plain variant ignores owned quantities."""
        agg = aggregate([leaf(1, 5, 10, owned=2)], stock_aware=False)
        assert agg.total_cost == 50
        assert agg.total_missing_cost is None

    def test_status(self):
        """Test that stock status follows the owned quantity."""
        assert ingredient_status(leaf(1, 5, 10, owned=0)) is StockStatus.MISSING
        assert ingredient_status(leaf(1, 5, 10, owned=3)) is StockStatus.PARTIAL
        assert ingredient_status(leaf(1, 5, 10, owned=5)) is StockStatus.COMPLETE


# ---------------------------------------------------------------------------
# Tests: node breakdown
# ---------------------------------------------------------------------------

class TestNodeBreakdown:
    """Tests for the per-node cost breakdown."""

    def test_expanded_node_reports_savings(self):
        """Test that an expanded node reports craft cost and savings."""
        figures = node_breakdown(expanded(1, 3, 50, [leaf(2, 1, 30)]))
        assert figures.cost == 90
        assert figures.market_cost == 150
        assert figures.craft_cost == 90
        assert figures.savings == 60

    def test_collapsed_node_keeps_craft_cost_without_savings(self):
        """Test that a collapsed loaded node keeps its craft cost but reports no savings."""
        node = replace(expanded(1, 3, 50, [leaf(2, 1, 30)]),
                       expansion_state=ExpansionState.COLLAPSED)
        figures = node_breakdown(node)
        assert figures.cost == 150
        assert figures.craft_cost == 90
        assert figures.savings is None

    def test_unloaded_node_has_no_craft_cost(self):
        """Test that an unloaded node has no craft cost."""
        figures = node_breakdown(leaf(1, 3, 50, sub_recipe_ref=7))
        assert figures.craft_cost is None
        assert figures.market_cost == 150

    def test_stock_breakdown(self):
        """Test the owned and missing split in a stock breakdown."""
        figures = node_breakdown(leaf(1, 5, 10, owned=2))
        assert figures.owned_value == 20
        assert figures.missing_quantity == 3
        assert figures.missing_cost == 30
        assert figures.effective_missing_cost == 30
        assert figures.status is StockStatus.PARTIAL
        assert figures.savings is None

    def test_stock_savings_when_expanded(self):
        """Test savings against market for an expanded stock node."""
        node = expanded(1, 2, 50, [leaf(2, 1, 20, owned=0)], owned=0)
        figures = node_breakdown(node)
        assert figures.missing_cost == 100
        assert figures.effective_missing_cost == 40
        assert figures.savings == 60
