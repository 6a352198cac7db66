"""Recursive craft-cost resolution engine for game market dashboards."""
from .config import load_config, EngineConfig
from .nodes import (
    ExpansionState,
    IngredientNode,
    RecipeTree,
    merge_owned_quantities,
    tree_from_record,
)
from .tree_store import TreeStore, find_node, update_at_path
from .aggregation import CostAggregate, aggregate, aggregate_tree, percent_of_total
from .expansion import (
    ExpansionController,
    ExpansionResult,
    can_collapse_all,
    can_expand_all,
    collapse_all,
)
from .summary import OpportunitySummary, summarize
from .errors import ExpansionFailure, FailureKind, NetworkOrFetchFailure, SubRecipeNotFound
from .recipe_data import RecipeCatalog, RecipeRecord, StockLedger
from .session import RecipeSession, open_recipe
from .engine_logging import LogLevel, EngineLogger, create_logger, create_string_logger

__all__ = [
    "load_config",
    "EngineConfig",
    # Tree model
    "ExpansionState",
    "IngredientNode",
    "RecipeTree",
    "merge_owned_quantities",
    "tree_from_record",
    "TreeStore",
    "find_node",
    "update_at_path",
    # Costs
    "CostAggregate",
    "aggregate",
    "aggregate_tree",
    "percent_of_total",
    "OpportunitySummary",
    "summarize",
    # Expansion
    "ExpansionController",
    "ExpansionResult",
    "can_collapse_all",
    "can_expand_all",
    "collapse_all",
    "ExpansionFailure",
    "FailureKind",
    "NetworkOrFetchFailure",
    "SubRecipeNotFound",
    # Collaborators
    "RecipeCatalog",
    "RecipeRecord",
    "StockLedger",
    "RecipeSession",
    "open_recipe",
    "LogLevel",
    "EngineLogger",
    "create_logger",
    "create_string_logger",
]
