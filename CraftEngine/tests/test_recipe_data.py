"""Tests for recipe records, in-memory sources and tree seeding."""
from __future__ import annotations

import asyncio
import json

import pytest

from CraftEngine.errors import NetworkOrFetchFailure, SubRecipeNotFound
from CraftEngine.nodes import (
    ExpansionState,
    IngredientNode,
    collect_item_ids,
    merge_owned_quantities,
    tree_from_record,
)
from CraftEngine.recipe_data import RecipeCatalog, RecipeRecord, StockLedger


class TestRecords:
    """Tests for recipe record validation."""

    def test_non_positive_prices_are_unknown(self, recipe_dicts):
        """Test that prices of zero or below become unknown."""
        ingredient, recipe = recipe_dicts
        record = RecipeRecord.model_validate(recipe(1, 2, "Ring", [
            ingredient(3, "Gold", 1, 0), ingredient(4, "Silver", 2, 15.5),
        ], sell_price=0))
        assert record.sell_price is None
        assert record.ingredients[0].price is None
        assert record.ingredients[1].price == 15.5
        assert record.known_price_count == 1
        assert record.total_ingredient_count == 2

    def test_backend_counts_take_precedence(self, recipe_dicts):
        """Test that backend ingredient counts override computed ones."""
        ingredient, recipe = recipe_dicts
        raw = recipe(1, 2, "Ring", [ingredient(3, "Gold", 1, 10)])
        raw.update(ingredients_count=4, ingredients_with_price=3, unknown_field="ignored")
        record = RecipeRecord.model_validate(raw)
        assert record.total_ingredient_count == 4
        assert record.known_price_count == 3

    def test_zero_quantity_rejected(self, recipe_dicts):
        """Test that a zero ingredient quantity is rejected."""
        ingredient, recipe = recipe_dicts
        with pytest.raises(ValueError):
            RecipeCatalog.from_dicts([recipe(1, 2, "Ring", [ingredient(3, "Gold", 0, 10)])])

    def test_node_rejects_invalid_values(self):
        """Test that nodes reject bad quantities and prices."""
        with pytest.raises(ValueError):
            IngredientNode(item_id=1, name="x", required_quantity=0)
        with pytest.raises(ValueError):
            IngredientNode(item_id=1, name="x", required_quantity=1, unit_price=-1)
        with pytest.raises(ValueError):
            IngredientNode(item_id=1, name="x", required_quantity=1, owned_quantity=-2)


class TestCatalog:
    """Tests for the in-memory recipe catalog."""

    def test_fetch_and_record_requests(self, catalog):
        """Test that fetched ids are recorded."""
        record = asyncio.run(catalog.fetch_recipe(2))
        assert record.result_item_name == "Iron Ingot"
        assert catalog.requests == [2]
        assert 3 in catalog
        assert len(catalog) == 3

    def test_unknown_recipe(self, catalog):
        """Test that an unknown id raises SubRecipeNotFound."""
        with pytest.raises(SubRecipeNotFound) as excinfo:
            asyncio.run(catalog.fetch_recipe(404))
        assert excinfo.value.recipe_id == 404

    def test_from_json(self, tmp_path, sword_record):
        """Test that a catalog loads from a JSON file."""
        path = tmp_path / "recipes.json"
        path.write_text(json.dumps({"recipes": [sword_record.model_dump(by_alias=True, mode="json")]}))
        catalog = RecipeCatalog.from_json(path)
        assert 1 in catalog

    def test_from_json_missing_file(self, tmp_path):
        """Test that a missing JSON file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            RecipeCatalog.from_json(tmp_path / "absent.json")


class TestStockLedger:
    """Tests for the in-memory stock ledger."""

    def test_unseen_items_are_zero(self):
        """Test that unknown items are owned zero times."""
        ledger = StockLedger({10: 4})
        ledger.set(11, -3)
        owned = asyncio.run(ledger.fetch_owned_quantities("main", [10, 11, 12]))
        assert owned == {10: 4, 11: 0, 12: 0}

    def test_unavailable(self):
        """Test that an unavailable ledger raises a fetch failure."""
        with pytest.raises(NetworkOrFetchFailure):
            asyncio.run(StockLedger(available=False).fetch_owned_quantities("main", [1]))


class TestTreeSeeding:
    """Tests for building trees from records."""

    def test_plain_tree(self, sword_tree):
        """Test that a plain tree seeds unloaded roots."""
        assert sword_tree.recipe_id == 1
        assert sword_tree.server == "Draconiros"
        assert not sword_tree.stock_aware
        assert sword_tree.quick_estimate == 200
        assert [n.item_id for n in sword_tree.roots] == [10, 11]
        assert sword_tree.roots[0].is_craftable
        assert not sword_tree.roots[1].is_craftable
        assert all(n.owned_quantity is None for n in sword_tree.roots)
        assert all(n.expansion_state is ExpansionState.UNLOADED for n in sword_tree.roots)

    def test_stock_tree(self, sword_record):
        """Test that a stock tree seeds owned quantities."""
        tree = tree_from_record(sword_record, owned={10: 2})
        assert tree.stock_aware
        assert [n.owned_quantity for n in tree.roots] == [2, 0]

    def test_merge_owned_quantities_reaches_loaded_children(self, sword_tree):
        """Test that merged stock reaches loaded children."""
        ore = IngredientNode(item_id=20, name="Iron Ore", required_quantity=2, unit_price=10)
        ingot = sword_tree.roots[0]
        loaded = sword_tree.with_roots((
            IngredientNode(
                item_id=ingot.item_id, name=ingot.name, required_quantity=3, unit_price=50,
                sub_recipe_ref=2, expansion_state=ExpansionState.EXPANDED, children=(ore,),
            ),
            sword_tree.roots[1],
        ))
        assert collect_item_ids(loaded.roots) == (10, 20, 11)

        merged = merge_owned_quantities(loaded, {20: 6, 11: 1})
        assert merged.stock_aware
        assert merged.roots[0].owned_quantity == 0
        assert merged.roots[0].children[0].owned_quantity == 6
        assert merged.roots[1].owned_quantity == 1
