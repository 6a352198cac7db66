"""One open recipe view: tree store, controller and derived figures."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Tuple

from .aggregation import CostAggregate, aggregate_tree
from .config import EngineConfig
from .engine_logging import EngineLogger
from .errors import ExpansionFailure, RecipeFetchError
from .expansion import ExpansionController, ExpansionResult, can_collapse_all, can_expand_all
from .nodes import RecipeTree, collect_item_ids, merge_owned_quantities, tree_from_record
from .recipe_data import RecipeSource, StockSource
from .rows import IngredientRow, visible_rows
from .summary import OpportunitySummary, summarize
from .tree_store import TreeListener, TreeStore


class RecipeSession:
    """
    Holds the state of one open recipe (or bank opportunity) view.

    Aggregate and summary are recomputed from the current snapshot on each
    access; the session stores nothing besides the tree store and the failures
    of the last operation.
    """

    def __init__(self, tree: RecipeTree, controller: ExpansionController, *,
                 config: Optional[EngineConfig] = None,
                 stock: Optional[StockSource] = None,
                 profile_id: Optional[str] = None):
        self._store = TreeStore(tree)
        self._controller = controller
        self._config = config or EngineConfig()
        self._stock = stock
        self._profile_id = profile_id
        self.last_failures: Tuple[ExpansionFailure, ...] = ()

    @property
    def tree(self) -> RecipeTree:
        return self._store.snapshot

    @property
    def store(self) -> TreeStore:
        return self._store

    @property
    def closed(self) -> bool:
        return self._store.closed

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        return self._store.subscribe(listener)

    # -- derived figures ------------------------------------------------------

    def aggregate(self) -> CostAggregate:
        return aggregate_tree(self.tree)

    def summary(self, now: Optional[datetime] = None) -> OpportunitySummary:
        return summarize(self.tree, now=now, config=self._config)

    def rows(self) -> list[IngredientRow]:
        return visible_rows(self.tree)

    def can_expand_all(self) -> bool:
        return can_expand_all(self.tree)

    def can_collapse_all(self) -> bool:
        return can_collapse_all(self.tree)

    # -- operations -----------------------------------------------------------

    def _record(self, result: ExpansionResult) -> ExpansionResult:
        if not result.cancelled:
            self.last_failures = result.failures
        return result

    async def toggle(self, path) -> ExpansionResult:
        return self._record(await self._controller.toggle(self._store, path))

    async def expand_all(self) -> ExpansionResult:
        return self._record(await self._controller.expand_all_in(self._store))

    def collapse_all(self) -> ExpansionResult:
        return self._record(self._controller.collapse_all_in(self._store))

    async def refresh_stock(self) -> bool:
        """
        Re-read owned quantities for every loaded item and merge them.

        Returns False (tree untouched) when the session has no stock source or
        the stock lookup fails.
        """
        if self._stock is None:
            return False
        item_ids = collect_item_ids(self.tree.roots)
        try:
            owned = await self._stock.fetch_owned_quantities(self._profile_id, item_ids)
        except RecipeFetchError:
            return False
        self._store.apply(lambda tree: merge_owned_quantities(tree, owned))
        return True

    def close(self) -> None:
        """Close the view; fetches still in flight will not touch the tree."""
        self._store.close()


async def open_recipe(
    recipes: RecipeSource,
    recipe_id: int,
    server: Optional[str] = None,
    *,
    stock: Optional[StockSource] = None,
    profile_id: Optional[str] = None,
    config: Optional[EngineConfig] = None,
    logger: Optional[EngineLogger] = None,
) -> RecipeSession:
    """
    Fetch a root recipe and open a session on it.

    Passing ``stock`` opens the stock-aware variant: owned quantities for the
    root ingredients are merged before the first aggregation.

    Raises
    ------
    RecipeFetchError
        When the root recipe (or its stock) cannot be fetched. There is no
        tree to attach a node-local failure to, so this one is raised.
    """
    config = config or EngineConfig()
    record = await recipes.fetch_recipe(recipe_id, server)
    owned = None
    if stock is not None:
        owned = await stock.fetch_owned_quantities(
            profile_id, [ing.item_id for ing in record.ingredients]
        )
    tree = tree_from_record(record, server=server, owned=owned)
    controller = ExpansionController(
        recipes, stock=stock, profile_id=profile_id, config=config, logger=logger
    )
    controller.logger.log_tree_opened(
        tree.recipe_id, tree.result_item_name, len(tree.roots), tree.stock_aware
    )
    return RecipeSession(tree, controller, config=config, stock=stock, profile_id=profile_id)
