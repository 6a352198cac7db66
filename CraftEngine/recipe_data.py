"""Recipe and stock records consumed by the engine, plus in-memory sources.

The engine never talks to the network itself. It consumes two collaborators:

- a ``RecipeSource`` that resolves a recipe id into a ``RecipeRecord``
- a ``StockSource`` that reports owned ("bank") quantities per item id

``RecipeCatalog`` and ``StockLedger`` are in-memory implementations used for
offline catalogs and tests; ``api_client`` provides the HTTP ones.
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import NetworkOrFetchFailure, SubRecipeNotFound


class RecipeIngredientRecord(BaseModel):
    """One ingredient line as served by the recipes API."""
    item_id: int
    name: str = ""
    icon_url: Optional[str] = None
    quantity: int = Field(ge=1)
    price: Optional[float] = None
    last_update: Optional[datetime] = None
    ingredient_recipe_id: Optional[int] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("price")
    @classmethod
    def _unknown_when_not_positive(cls, value: Optional[float]) -> Optional[float]:
        # The backend reports a missing observation as 0
        if value is None or value <= 0:
            return None
        return value


class RecipeRecord(BaseModel):
    """A recipe with its market context, as returned by ``fetch_recipe``."""
    recipe_id: int
    result_item_id: int
    result_item_name: str = ""
    result_item_icon: Optional[str] = None
    sell_price: Optional[float] = None
    sell_price_last_updated_at: Optional[datetime] = Field(
        default=None, alias="result_item_last_update"
    )
    craft_cost: Optional[float] = None
    ingredients_count: Optional[int] = None
    ingredients_with_price: Optional[int] = None
    ingredients: List[RecipeIngredientRecord] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    @field_validator("sell_price")
    @classmethod
    def _unknown_when_not_positive(cls, value: Optional[float]) -> Optional[float]:
        if value is None or value <= 0:
            return None
        return value

    @property
    def total_ingredient_count(self) -> int:
        if self.ingredients_count is not None:
            return self.ingredients_count
        return len(self.ingredients)

    @property
    def known_price_count(self) -> int:
        if self.ingredients_with_price is not None:
            return self.ingredients_with_price
        return sum(1 for ing in self.ingredients if ing.price is not None)


class RecipeSource(Protocol):
    async def fetch_recipe(self, recipe_id: int, server: Optional[str]) -> RecipeRecord:
        """Resolve a recipe id; raise ``RecipeFetchError`` subclasses on failure."""
        ...


class StockSource(Protocol):
    async def fetch_owned_quantities(
        self, profile_id: Optional[str], item_ids: Iterable[int]
    ) -> Dict[int, int]:
        """Return owned quantity per requested item id."""
        ...


class RecipeCatalog:
    """
    In-memory recipe source.

    Keeps every request in ``requests`` so callers can see which recipe ids
    were actually fetched.
    """

    def __init__(self, records: Iterable[RecipeRecord] = ()):
        self._records: Dict[int, RecipeRecord] = {r.recipe_id: r for r in records}
        self.requests: List[int] = []

    @classmethod
    def from_dicts(cls, raw_records: Iterable[Dict[str, Any]]) -> "RecipeCatalog":
        try:
            return cls(RecipeRecord.model_validate(raw) for raw in raw_records)
        except ValidationError as exc:
            raise ValueError(f"Invalid recipe record: {exc}") from exc

    @classmethod
    def from_json(cls, path: Path) -> "RecipeCatalog":
        """Load a catalog from a JSON file shaped ``{"recipes": [...]}``."""
        if not path.exists():
            raise FileNotFoundError(f"recipe catalog not found at {path}")

        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)

        if isinstance(data, dict):
            data = data.get("recipes", [])
        return cls.from_dicts(data)

    def add(self, record: RecipeRecord) -> None:
        self._records[record.recipe_id] = record

    def __contains__(self, recipe_id: object) -> bool:
        return recipe_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    async def fetch_recipe(self, recipe_id: int, server: Optional[str] = None) -> RecipeRecord:
        self.requests.append(recipe_id)
        record = self._records.get(recipe_id)
        if record is None:
            raise SubRecipeNotFound(f"recipe {recipe_id} not found", recipe_id=recipe_id)
        return record


class StockLedger:
    """In-memory stock source; items never seen count as zero owned."""

    def __init__(self, quantities: Optional[Dict[int, int]] = None, *, available: bool = True):
        self._quantities: Dict[int, int] = dict(quantities or {})
        self.available = available

    def set(self, item_id: int, quantity: int) -> None:
        self._quantities[item_id] = max(0, int(quantity))

    async def fetch_owned_quantities(
        self, profile_id: Optional[str], item_ids: Iterable[int]
    ) -> Dict[int, int]:
        if not self.available:
            raise NetworkOrFetchFailure(f"stock for profile {profile_id!r} is unavailable")
        return {item_id: self._quantities.get(item_id, 0) for item_id in item_ids}
