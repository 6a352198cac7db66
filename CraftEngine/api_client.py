"""HTTP adapters for the recipe and bank-stock collaborators."""
from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from .config import ApiSettings
from .errors import NetworkOrFetchFailure, SubRecipeNotFound
from .recipe_data import RecipeRecord, RecipeSource

RECIPES_ENDPOINT = "/api/recipes"
BANK_QUANTITIES_ENDPOINT = "/api/bank/quantities"


class OwnedQuantityRecord(BaseModel):
    item_id: int
    quantity: int = 0

    model_config = ConfigDict(extra="ignore")


OWNED_LIST_ADAPTER: TypeAdapter = TypeAdapter(List[OwnedQuantityRecord])
OWNED_MAP_ADAPTER: TypeAdapter = TypeAdapter(Dict[int, int])


class RecipeApiClient:
    """
    Async client for the dashboard API.

    Implements both ``RecipeSource`` and ``StockSource``. Every failure is
    raised as ``SubRecipeNotFound`` (HTTP 404 or empty result) or
    ``NetworkOrFetchFailure`` (anything else), which the expansion controller
    turns into node-local failures.
    """

    def __init__(self, settings: Optional[ApiSettings] = None, *,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or ApiSettings()
        headers = {"Accept": "application/json"}
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            timeout=httpx.Timeout(settings.timeout_seconds),
            transport=transport or httpx.AsyncHTTPTransport(retries=settings.max_retries),
        )

    async def __aenter__(self) -> "RecipeApiClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, endpoint: str, params: Dict[str, Any],
                        recipe_id: Optional[int] = None) -> Any:
        try:
            response = await self._client.get(endpoint, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                raise SubRecipeNotFound(
                    f"{endpoint} returned 404 for {params}", recipe_id=recipe_id
                ) from exc
            raise NetworkOrFetchFailure(
                f"HTTP error {status} when requesting {endpoint}: {exc.response.reason_phrase}",
                recipe_id=recipe_id,
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkOrFetchFailure(
                f"Request failure when reaching {endpoint}: {exc}", recipe_id=recipe_id
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise NetworkOrFetchFailure(
                f"Received invalid JSON from {endpoint}: {exc}", recipe_id=recipe_id
            ) from exc

    async def fetch_recipe(self, recipe_id: int, server: Optional[str] = None) -> RecipeRecord:
        params: Dict[str, Any] = {"id": recipe_id}
        if server:
            params["server"] = server
        payload = await self._get_json(RECIPES_ENDPOINT, params, recipe_id)

        # The list endpoint shape is also accepted when filtered by id
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            raise SubRecipeNotFound(f"recipe {recipe_id} not found", recipe_id=recipe_id)

        try:
            return RecipeRecord.model_validate(payload)
        except ValidationError as exc:
            raise NetworkOrFetchFailure(
                f"Unexpected recipe payload for {recipe_id}: {exc}", recipe_id=recipe_id
            ) from exc

    async def fetch_owned_quantities(self, profile_id: Optional[str],
                                     item_ids: Iterable[int]) -> Dict[int, int]:
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return {}
        params: Dict[str, Any] = {"item_ids": ",".join(str(i) for i in ids)}
        if profile_id:
            params["profile_id"] = profile_id
        payload = await self._get_json(BANK_QUANTITIES_ENDPOINT, params)

        try:
            if isinstance(payload, dict) and "items" in payload:
                payload = payload["items"]
            if isinstance(payload, list):
                quantities = {r.item_id: r.quantity for r in OWNED_LIST_ADAPTER.validate_python(payload)}
            else:
                quantities = OWNED_MAP_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise NetworkOrFetchFailure(f"Unexpected bank payload: {exc}") from exc

        return {item_id: max(0, quantities.get(item_id, 0)) for item_id in ids}


class CachedRecipeSource:
    """
    Memoise recipe records for ``expire_after`` in front of another source.

    Failures are not cached, so a re-toggle after a transient error refetches.
    """

    def __init__(self, source: RecipeSource, expire_after: Optional[timedelta] = timedelta(minutes=5),
                 clock: Callable[[], float] = time.monotonic):
        self._source = source
        self._expire_after = expire_after
        self._clock = clock
        self._entries: Dict[Tuple[int, Optional[str]], Tuple[float, RecipeRecord]] = {}

    def _fresh(self, stored_at: float) -> bool:
        if self._expire_after is None:
            return True
        return self._clock() - stored_at < self._expire_after.total_seconds()

    async def fetch_recipe(self, recipe_id: int, server: Optional[str] = None) -> RecipeRecord:
        key = (recipe_id, server)
        cached = self._entries.get(key)
        if cached is not None and self._fresh(cached[0]):
            return cached[1]
        record = await self._source.fetch_recipe(recipe_id, server)
        self._entries[key] = (self._clock(), record)
        return record

    def invalidate(self, recipe_id: Optional[int] = None) -> None:
        if recipe_id is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k[0] == recipe_id]:
            del self._entries[key]
