"""Immutable recipe tree model.

A ``RecipeTree`` holds the root ingredients of one open recipe. Each
``IngredientNode`` may reference its own sub-recipe, which is loaded on demand
and attached as ``children``. Nodes are frozen; every change produces new
node objects along the changed path only (see ``tree_store``).
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from .recipe_data import RecipeIngredientRecord, RecipeRecord

NodePath = Tuple[int, ...]


class ExpansionState(str, Enum):
    """Lifecycle of a node's sub-recipe."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    COLLAPSED = "collapsed"
    EXPANDED = "expanded"

    @property
    def is_loaded(self) -> bool:
        return self in (ExpansionState.COLLAPSED, ExpansionState.EXPANDED)


@dataclass(frozen=True)
class IngredientNode:
    """One ingredient position in a recipe tree."""
    item_id: int
    name: str
    required_quantity: int
    unit_price: Optional[float] = None  # None = no known market price
    icon_ref: Optional[str] = None
    price_last_updated_at: Optional[datetime] = None
    sub_recipe_ref: Optional[int] = None
    owned_quantity: Optional[int] = None  # None outside stock-aware trees
    expansion_state: ExpansionState = ExpansionState.UNLOADED
    children: Tuple["IngredientNode", ...] = ()

    def __post_init__(self):
        if self.required_quantity < 1:
            raise ValueError(
                f"required_quantity must be >= 1 for item {self.item_id}, got {self.required_quantity}"
            )
        if self.unit_price is not None and self.unit_price < 0:
            raise ValueError(f"unit_price must be >= 0 for item {self.item_id}")
        if self.owned_quantity is not None and self.owned_quantity < 0:
            raise ValueError(f"owned_quantity must be >= 0 for item {self.item_id}")

    @property
    def is_craftable(self) -> bool:
        return self.sub_recipe_ref is not None

    @property
    def is_expanded(self) -> bool:
        return self.expansion_state is ExpansionState.EXPANDED

    @property
    def is_loading(self) -> bool:
        return self.expansion_state is ExpansionState.LOADING

    @property
    def has_price(self) -> bool:
        return self.unit_price is not None

    @property
    def is_stock_aware(self) -> bool:
        return self.owned_quantity is not None

    def child(self, item_id: int) -> Optional["IngredientNode"]:
        for node in self.children:
            if node.item_id == item_id:
                return node
        return None


@dataclass(frozen=True)
class RecipeTree:
    """The root of one open recipe or craft opportunity."""
    recipe_id: int
    result_item_id: int
    result_item_name: str = ""
    sell_price: Optional[float] = None
    sell_price_last_updated_at: Optional[datetime] = None
    roots: Tuple[IngredientNode, ...] = ()
    server: Optional[str] = None
    stock_aware: bool = False
    quick_estimate: Optional[float] = None  # backend-computed craft cost, display only
    total_ingredient_count: int = 0
    ingredients_with_known_price_count: int = 0

    def with_roots(self, roots: Tuple[IngredientNode, ...]) -> "RecipeTree":
        return replace(self, roots=roots)


def node_from_record(ingredient: RecipeIngredientRecord, *, stock_aware: bool = False,
                     owned: Optional[Dict[int, int]] = None) -> IngredientNode:
    """Build an unloaded node from one ingredient line."""
    owned_quantity: Optional[int] = None
    if stock_aware:
        owned_quantity = max(0, int((owned or {}).get(ingredient.item_id, 0)))
    return IngredientNode(
        item_id=ingredient.item_id,
        name=ingredient.name,
        icon_ref=ingredient.icon_url,
        required_quantity=ingredient.quantity,
        unit_price=ingredient.price,
        price_last_updated_at=ingredient.last_update,
        sub_recipe_ref=ingredient.ingredient_recipe_id,
        owned_quantity=owned_quantity,
    )


def nodes_from_record(record: RecipeRecord, *, stock_aware: bool = False,
                      owned: Optional[Dict[int, int]] = None) -> Tuple[IngredientNode, ...]:
    """
    Build the children for a freshly fetched recipe.

    Quantities are the recipe's own per-unit quantities; ancestor quantities
    are only applied during aggregation.
    """
    return tuple(
        node_from_record(ing, stock_aware=stock_aware, owned=owned)
        for ing in record.ingredients
    )


def tree_from_record(record: RecipeRecord, *, server: Optional[str] = None,
                     owned: Optional[Dict[int, int]] = None,
                     stock_aware: Optional[bool] = None) -> RecipeTree:
    """
    Seed a tree from a root recipe record.

    Parameters
    ----------
    record : RecipeRecord
        The root recipe as fetched from the recipe source.
    server : str, optional
        Game server the prices belong to; reused for sub-recipe fetches.
    owned : dict, optional
        Owned quantities per item id. Passing it makes the tree stock-aware.
    stock_aware : bool, optional
        Force the variant; defaults to ``owned is not None``.
    """
    if stock_aware is None:
        stock_aware = owned is not None
    return RecipeTree(
        recipe_id=record.recipe_id,
        result_item_id=record.result_item_id,
        result_item_name=record.result_item_name,
        sell_price=record.sell_price,
        sell_price_last_updated_at=record.sell_price_last_updated_at,
        roots=nodes_from_record(record, stock_aware=stock_aware, owned=owned),
        server=server,
        stock_aware=stock_aware,
        quick_estimate=record.craft_cost,
        total_ingredient_count=record.total_ingredient_count,
        ingredients_with_known_price_count=record.known_price_count,
    )


def merge_owned_quantities(tree: RecipeTree, owned: Dict[int, int]) -> RecipeTree:
    """
    Merge stock quantities into every loaded node and mark the tree stock-aware.

    The same item id may appear under several parents; each occurrence reads
    the same owned quantity.
    """
    def merge(nodes: Tuple[IngredientNode, ...]) -> Tuple[IngredientNode, ...]:
        merged = []
        for node in nodes:
            children = merge(node.children) if node.children else node.children
            merged.append(replace(
                node,
                owned_quantity=max(0, int(owned.get(node.item_id, 0))),
                children=children,
            ))
        return tuple(merged)

    return replace(tree, roots=merge(tree.roots), stock_aware=True)


def collect_item_ids(nodes: Iterable[IngredientNode]) -> Tuple[int, ...]:
    """Distinct item ids of ``nodes`` and all loaded descendants, in visit order."""
    seen: Dict[int, None] = {}
    stack = list(reversed(tuple(nodes)))
    while stack:
        node = stack.pop()
        seen.setdefault(node.item_id, None)
        stack.extend(reversed(node.children))
    return tuple(seen)
