"""Load-on-demand expansion of ingredient sub-recipes.

A craftable node starts ``UNLOADED``. The first toggle marks it ``LOADING``,
fetches its sub-recipe and attaches the children as ``EXPANDED``; later
toggles only flip between ``EXPANDED`` and ``COLLAPSED`` and reuse the loaded
children.

``expand_all`` walks the tree in waves: every unloaded craftable node reachable
through loaded nodes is fetched concurrently, then the freshly attached
children form the next wave. A failed fetch leaves its node ``UNLOADED`` and
never aborts the other nodes.

Failures are returned as ``ExpansionFailure`` values, whatever exception the
recipe or stock source raised; no node is ever left ``LOADING`` by a failed
fetch.

Cancellation is returned too (``ExpansionResult.cancelled``) and is not
re-raised, so a caller that wraps an operation in ``asyncio.timeout()`` or
``asyncio.wait_for()`` must check ``cancelled`` instead of expecting
``TimeoutError``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .config import EngineConfig
from .engine_logging import EngineLogger, LogLevel, create_logger
from .errors import ExpansionFailure, FailureKind
from .nodes import ExpansionState, IngredientNode, NodePath, RecipeTree, nodes_from_record
from .recipe_data import RecipeSource, StockSource
from .tree_store import TreeListener, TreeStore, find_node, iter_nodes, map_tree

Children = Tuple[IngredientNode, ...]
FetchOutcome = Union[Children, Exception]


@dataclass(frozen=True)
class ExpansionResult:
    """Outcome of one controller operation."""
    tree: RecipeTree
    failures: Tuple[ExpansionFailure, ...] = ()
    fetch_count: int = 0
    rejected: bool = False   # toggle ignored: unknown path, leaf, or already loading
    cancelled: bool = False  # view closed or task cancelled while fetching

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled and not self.rejected


# ---------------------------------------------------------------------------
# Node transitions
# ---------------------------------------------------------------------------

def _to_loading(node: IngredientNode) -> IngredientNode:
    if node.expansion_state is not ExpansionState.UNLOADED:
        return node
    return replace(node, expansion_state=ExpansionState.LOADING)


def _revert_loading(node: IngredientNode) -> IngredientNode:
    if node.expansion_state is not ExpansionState.LOADING:
        return node
    return replace(node, expansion_state=ExpansionState.UNLOADED, children=())


def _attach(children: Children) -> Callable[[IngredientNode], IngredientNode]:
    def attach(node: IngredientNode) -> IngredientNode:
        # Already loaded by a concurrent operation: keep what is there
        if node.expansion_state.is_loaded:
            return node
        return replace(node, expansion_state=ExpansionState.EXPANDED, children=children)
    return attach


def _flip(node: IngredientNode) -> IngredientNode:
    if node.expansion_state is ExpansionState.EXPANDED:
        return replace(node, expansion_state=ExpansionState.COLLAPSED)
    if node.expansion_state is ExpansionState.COLLAPSED:
        return replace(node, expansion_state=ExpansionState.EXPANDED)
    return node


def _expand_loaded(node: IngredientNode) -> IngredientNode:
    if node.is_craftable and node.expansion_state is ExpansionState.COLLAPSED:
        return replace(node, expansion_state=ExpansionState.EXPANDED)
    return node


def _collapse(node: IngredientNode) -> IngredientNode:
    if node.expansion_state is ExpansionState.EXPANDED:
        return replace(node, expansion_state=ExpansionState.COLLAPSED)
    return node


# ---------------------------------------------------------------------------
# Pure batch operations and predicates
# ---------------------------------------------------------------------------

def collapse_all(tree: RecipeTree) -> RecipeTree:
    """Collapse every expanded node; loaded children stay cached."""
    return map_tree(tree, _collapse)


def can_expand_all(tree: RecipeTree) -> bool:
    """True if some visible craftable node is not expanded (and not loading)."""
    for _path, node in iter_nodes(tree.roots, expanded_only=True):
        if node.is_craftable and node.expansion_state in (
            ExpansionState.UNLOADED, ExpansionState.COLLAPSED
        ):
            return True
    return False


def can_collapse_all(tree: RecipeTree) -> bool:
    """True if any node in the tree is expanded."""
    return any(node.is_expanded for _path, node in iter_nodes(tree.roots))


def _pending_nodes(nodes: Sequence[IngredientNode], prefix: NodePath,
                   ancestors: FrozenSet[int], skip: Set[NodePath]
                   ) -> Iterator[Tuple[NodePath, IngredientNode, FrozenSet[int]]]:
    """Unloaded craftable nodes reachable through loaded nodes, with their ancestor refs."""
    for node in nodes:
        path = prefix + (node.item_id,)
        if not node.is_craftable or path in skip:
            continue
        if node.expansion_state is ExpansionState.UNLOADED:
            yield path, node, ancestors
        elif node.expansion_state.is_loaded:
            yield from _pending_nodes(node.children, path,
                                      ancestors | {node.sub_recipe_ref}, skip)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class ExpansionController:
    """
    Orchestrates sub-recipe loading for open recipe trees.

    The controller keeps no tree state of its own: every operation reads and
    writes a ``TreeStore`` (or a throwaway store around a tree value).

    Parameters
    ----------
    recipes : RecipeSource
        Resolves ``sub_recipe_ref`` into recipe records.
    stock : StockSource, optional
        Owned quantities for children loaded into stock-aware trees. Without it,
        new children of a stock-aware tree are treated as not owned.
    profile_id : str, optional
        Profile whose bank stock is read.
    config : EngineConfig, optional
        Supplies ``fetch_concurrency`` for expand-all.
    logger : EngineLogger, optional
        Defaults to a silent logger.
    """

    def __init__(
        self,
        recipes: RecipeSource,
        *,
        stock: Optional[StockSource] = None,
        profile_id: Optional[str] = None,
        config: Optional[EngineConfig] = None,
        logger: Optional[EngineLogger] = None,
    ):
        self._recipes = recipes
        self._stock = stock
        self._profile_id = profile_id
        self._config = config or EngineConfig()
        self._logger = logger or create_logger(LogLevel.SILENT)

    @property
    def logger(self) -> EngineLogger:
        return self._logger

    async def fetch_children(self, recipe_id: int, *, server: Optional[str],
                             stock_aware: bool) -> Children:
        """Fetch one sub-recipe and build its unloaded children. Raises RecipeFetchError."""
        record = await self._recipes.fetch_recipe(recipe_id, server)
        owned: Optional[Dict[int, int]] = None
        if stock_aware:
            owned = {}
            if self._stock is not None:
                owned = await self._stock.fetch_owned_quantities(
                    self._profile_id, [ing.item_id for ing in record.ingredients]
                )
        self._logger.log_fetch_success(recipe_id, len(record.ingredients))
        return nodes_from_record(record, stock_aware=stock_aware, owned=owned)

    # -- single toggle ------------------------------------------------------

    async def toggle(self, store: TreeStore, path: Sequence[int]) -> ExpansionResult:
        """
        Toggle the node at ``path`` inside ``store``.

        A cancelled fetch reverts the node and returns ``cancelled=True``; the
        ``CancelledError`` is consumed here rather than propagated.
        """
        path = tuple(path)
        tree = store.snapshot
        node = find_node(tree, path)
        if node is None:
            self._logger.log_toggle_rejected(path, "path does not resolve")
            return ExpansionResult(tree, rejected=True)
        if not node.is_craftable:
            self._logger.log_toggle_rejected(path, "ingredient has no recipe")
            return ExpansionResult(tree, rejected=True)
        if node.is_loading:
            self._logger.log_toggle_rejected(path, "sub-recipe is loading")
            return ExpansionResult(tree, rejected=True)

        if node.expansion_state.is_loaded:
            new_tree = store.update_at_path(path, _flip)
            self._logger.log_toggle(path, node.expansion_state, _flip(node).expansion_state)
            return ExpansionResult(new_tree)

        store.update_at_path(path, _to_loading)
        self._logger.log_fetch_start(node.sub_recipe_ref, path)
        try:
            children = await self.fetch_children(
                node.sub_recipe_ref, server=tree.server, stock_aware=tree.stock_aware
            )
        except Exception as exc:
            # Any source error stays local to the node, including ones outside RecipeFetchError
            failure = ExpansionFailure.from_error(path, node.sub_recipe_ref, exc)
            self._logger.log_fetch_failure(failure)
            new_tree = store.update_at_path(path, _revert_loading)
            return ExpansionResult(new_tree, failures=(failure,), fetch_count=1)
        except asyncio.CancelledError:
            # Cancellation is reported as a value; a closed store ignores the revert
            store.update_at_path(path, _revert_loading)
            self._logger.log_fetch_cancelled(path)
            return ExpansionResult(store.snapshot, fetch_count=1, cancelled=True)

        if store.closed:
            self._logger.log_fetch_cancelled(path)
            return ExpansionResult(store.snapshot, fetch_count=1, cancelled=True)

        new_tree = store.update_at_path(path, _attach(children))
        self._logger.log_toggle(path, ExpansionState.UNLOADED, ExpansionState.EXPANDED)
        return ExpansionResult(new_tree, fetch_count=1)

    async def toggle_expand(self, tree: RecipeTree, path: Sequence[int],
                            on_change: Optional[TreeListener] = None) -> ExpansionResult:
        """
        Toggle the node at ``path`` and return the resulting tree.

        ``on_change`` receives every intermediate snapshot, including the one
        with the node ``LOADING`` while its sub-recipe is fetched.
        """
        store = TreeStore(tree)
        if on_change is not None:
            store.subscribe(on_change)
        return await self.toggle(store, path)

    # -- expand all -----------------------------------------------------------

    async def _fetch_outcome(self, recipe_id: int, path: NodePath, *, server: Optional[str],
                             stock_aware: bool, limiter: asyncio.Semaphore) -> FetchOutcome:
        async with limiter:
            self._logger.log_fetch_start(recipe_id, path)
            try:
                return await self.fetch_children(recipe_id, server=server, stock_aware=stock_aware)
            except Exception as exc:
                return exc

    async def expand_all_in(self, store: TreeStore) -> ExpansionResult:
        """Expand every reachable craftable node inside ``store``."""
        failures: List[ExpansionFailure] = []
        skip: Set[NodePath] = set()
        outcomes: Dict[int, FetchOutcome] = {}
        limiter = asyncio.Semaphore(self._config.expansion.fetch_concurrency)
        fetch_count = 0
        wave = 0
        in_flight: List[NodePath] = []

        try:
            while True:
                tree = store.snapshot
                targets: List[Tuple[NodePath, IngredientNode]] = []
                for path, node, ancestors in _pending_nodes(
                    tree.roots, (), frozenset({tree.recipe_id}), skip
                ):
                    if node.sub_recipe_ref in ancestors:
                        failure = ExpansionFailure(
                            path=path,
                            sub_recipe_ref=node.sub_recipe_ref,
                            kind=FailureKind.CYCLE,
                            message=f"recipe {node.sub_recipe_ref} already appears above this ingredient",
                        )
                        self._logger.log_fetch_failure(failure)
                        failures.append(failure)
                        skip.add(path)
                        continue
                    targets.append((path, node))
                if not targets:
                    break

                wave += 1
                to_fetch: Dict[int, NodePath] = {}
                for path, node in targets:
                    if node.sub_recipe_ref not in outcomes:
                        to_fetch.setdefault(node.sub_recipe_ref, path)
                self._logger.log_expand_wave(wave, len(targets), len(to_fetch))

                in_flight = [path for path, _node in targets]
                for path in in_flight:
                    store.update_at_path(path, _to_loading)

                results = await asyncio.gather(*(
                    self._fetch_outcome(ref, path, server=tree.server,
                                        stock_aware=tree.stock_aware, limiter=limiter)
                    for ref, path in to_fetch.items()
                ))
                fetch_count += len(to_fetch)
                outcomes.update(zip(to_fetch, results))

                if store.closed:
                    self._logger.log_fetch_cancelled(())
                    return ExpansionResult(store.snapshot, tuple(failures), fetch_count,
                                           cancelled=True)

                for path, node in targets:
                    outcome = outcomes[node.sub_recipe_ref]
                    if isinstance(outcome, Exception):
                        failure = ExpansionFailure.from_error(path, node.sub_recipe_ref, outcome)
                        self._logger.log_fetch_failure(failure)
                        failures.append(failure)
                        skip.add(path)
                        store.update_at_path(path, _revert_loading)
                    else:
                        store.update_at_path(path, _attach(outcome))
                in_flight = []
        except asyncio.CancelledError:
            for path in in_flight:
                store.update_at_path(path, _revert_loading)
            self._logger.log_fetch_cancelled(())
            return ExpansionResult(store.snapshot, tuple(failures), fetch_count, cancelled=True)

        store.apply(lambda t: map_tree(t, _expand_loaded))
        self._logger.log_expand_all_complete(fetch_count, failures)
        return ExpansionResult(store.snapshot, tuple(failures), fetch_count)

    async def expand_all(self, tree: RecipeTree,
                         on_change: Optional[TreeListener] = None) -> ExpansionResult:
        """Expand everything reachable from ``tree``; partial failure is a normal result."""
        store = TreeStore(tree)
        if on_change is not None:
            store.subscribe(on_change)
        return await self.expand_all_in(store)

    def collapse_all_in(self, store: TreeStore) -> ExpansionResult:
        expanded = sum(1 for _p, node in iter_nodes(store.snapshot.roots) if node.is_expanded)
        new_tree = store.apply(collapse_all)
        self._logger.log_collapse_all(expanded)
        return ExpansionResult(new_tree)
