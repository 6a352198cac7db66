#!/usr/bin/env python
"""CLI entry point: price a recipe, optionally expanding every sub-recipe."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from .api_client import CachedRecipeSource, RecipeApiClient
from .config import load_config
from .engine_logging import LogLevel, create_logger
from .errors import RecipeFetchError
from .rows import rows_to_frame
from .session import open_recipe
from .summary import OpportunitySummary


def format_summary(summary: OpportunitySummary) -> str:
    """Format an opportunity summary for display."""
    lines = ["\n--- Craft Summary ---"]
    sell = "unknown" if summary.sell_price is None else f"{summary.sell_price:,.0f}"
    stale = " (stale)" if summary.is_sell_price_stale else ""
    lines.append(f"Sell price:   {sell}{stale}")
    lines.append(f"Craft cost:   {summary.total_cost:,.0f}"
                 + ("" if summary.is_complete else "  (missing prices, underestimate)"))
    lines.append(f"Margin:       {summary.margin:,.0f}")
    lines.append(f"ROI:          {summary.roi:.1f}% [{summary.roi_tier.value}]")

    if summary.cost_to_complete is not None:
        lines.append(f"Owned value:  {summary.total_owned_value:,.0f}")
        lines.append(f"To complete:  {summary.cost_to_complete:,.0f}")
        lines.append(f"Craftable now: {summary.max_craftable} "
                     f"({summary.completeness_pct:.0f}% of ingredients owned)")

    if summary.quick_estimate is not None:
        lines.append(f"Backend estimate: {summary.quick_estimate:,.0f}")
    if summary.stale_ingredient_count:
        lines.append(f"{summary.stale_ingredient_count} ingredient prices are stale")
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    level = args.log_level or config.log_level
    logger = create_logger(level)

    async with RecipeApiClient(config.api) as client:
        recipes = CachedRecipeSource(client, config.api.cache_expire)
        stock = client if args.profile else None
        try:
            session = await open_recipe(
                recipes, args.recipe_id, args.server,
                stock=stock, profile_id=args.profile, config=config, logger=logger,
            )
        except RecipeFetchError as exc:
            print(f"Could not load recipe {args.recipe_id}: {exc}", file=sys.stderr)
            return 1

        if args.expand_all:
            result = await session.expand_all()
            for failure in result.failures:
                print(f"  not expanded: {'/'.join(map(str, failure.path))} "
                      f"({failure.kind.value})", file=sys.stderr)

        rows = session.rows()
        summary = session.summary()
        session.close()

    logger.log_rows(rows)
    frame = rows_to_frame(rows)
    columns = ["path", "name", "required_quantity", "unit_price", "cost", "percent", "state"]
    if summary.cost_to_complete is not None:
        columns += ["owned_quantity", "missing_cost", "status"]
    print(frame[columns].to_string(index=False))
    if args.csv:
        frame.to_csv(args.csv, index=False)
        print(f"\nRows written to {args.csv}")

    print(format_summary(summary))
    logger.log_summary(summary)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compute craft cost, margin and ROI for a recipe."
    )
    parser.add_argument("recipe_id", type=int, help="Recipe to price")
    parser.add_argument("-s", "--server", type=str, default=None,
                        help="Game server the market prices come from")
    parser.add_argument("-p", "--profile", type=str, default=None,
                        help="Profile id; enables bank-stock aware costing")
    parser.add_argument("--expand-all", action="store_true",
                        help="Price every craftable ingredient by its own recipe")
    parser.add_argument("--csv", type=Path, default=None,
                        help="Also write the ingredient rows to a CSV file")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to engine config YAML (default: CraftEngine/DefaultEngineConfig.yaml)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=[lvl.name for lvl in LogLevel],
        help="Logging verbosity (default: from config)",
    )

    args = parser.parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
