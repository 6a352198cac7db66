"""Shared recipe fixtures.

The sword catalog used across the tests::

    Bronze Sword (recipe 1, sells 1000)
    ├── 3 × Iron Ingot   @ 50  (recipe 2)
    │   ├── 2 × Iron Ore @ 10
    │   └── 1 × Coal     @ 10  (recipe 3)
    │       └── 4 × Wood Log @ 1
    └── 2 × Leather Strap @ 40

Collapsed cost 230; ingot expanded 170; everything expanded 152.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from CraftEngine.nodes import tree_from_record
from CraftEngine.recipe_data import RecipeCatalog, RecipeRecord


def ingredient(item_id: int, name: str, quantity: int, price: Optional[float] = None,
               recipe_id: Optional[int] = None, last_update: Optional[str] = None) -> Dict[str, Any]:
    return {
        "item_id": item_id,
        "name": name,
        "quantity": quantity,
        "price": price,
        "ingredient_recipe_id": recipe_id,
        "last_update": last_update,
    }


def recipe(recipe_id: int, result_item_id: int, name: str, ingredients: List[Dict[str, Any]],
           sell_price: Optional[float] = None, craft_cost: Optional[float] = None,
           last_update: Optional[str] = None) -> Dict[str, Any]:
    return {
        "recipe_id": recipe_id,
        "result_item_id": result_item_id,
        "result_item_name": name,
        "sell_price": sell_price,
        "craft_cost": craft_cost,
        "result_item_last_update": last_update,
        "ingredients": ingredients,
    }


SWORD = recipe(1, 1000, "Bronze Sword", [
    ingredient(10, "Iron Ingot", 3, 50, recipe_id=2),
    ingredient(11, "Leather Strap", 2, 40),
], sell_price=1000, craft_cost=200, last_update="2026-10-19T10:00:00Z")

INGOT = recipe(2, 10, "Iron Ingot", [
    ingredient(20, "Iron Ore", 2, 10),
    ingredient(21, "Coal", 1, 10, recipe_id=3),
], sell_price=50)

COAL = recipe(3, 21, "Coal", [
    ingredient(30, "Wood Log", 4, 1),
], sell_price=10)


@pytest.fixture
def recipe_dicts():
    """Builders for ad hoc catalogs."""
    return ingredient, recipe


@pytest.fixture
def catalog() -> RecipeCatalog:
    return RecipeCatalog.from_dicts([SWORD, INGOT, COAL])


@pytest.fixture
def sword_record() -> RecipeRecord:
    return RecipeRecord.model_validate(SWORD)


@pytest.fixture
def sword_tree(sword_record):
    return tree_from_record(sword_record, server="Draconiros")
