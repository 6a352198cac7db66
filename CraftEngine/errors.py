"""Error kinds raised by the collaborators and the failure values the engine reports."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


class RecipeFetchError(Exception):
    """Base class for a sub-recipe or stock lookup that did not produce data."""

    def __init__(self, message: str, recipe_id: Optional[int] = None):
        super().__init__(message)
        self.recipe_id = recipe_id


class SubRecipeNotFound(RecipeFetchError):
    """The referenced recipe no longer resolves."""


class NetworkOrFetchFailure(RecipeFetchError):
    """Transient transport, HTTP or payload failure; retry by toggling again."""


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    FETCH = "fetch"
    CYCLE = "cycle"


@dataclass(frozen=True)
class ExpansionFailure:
    """A node-local failure, reported as a value so the caller can offer a retry."""
    path: Tuple[int, ...]
    sub_recipe_ref: Optional[int]
    kind: FailureKind
    message: str

    @classmethod
    def from_error(cls, path: Tuple[int, ...], ref: Optional[int],
                   exc: Exception) -> "ExpansionFailure":
        kind = FailureKind.NOT_FOUND if isinstance(exc, SubRecipeNotFound) else FailureKind.FETCH
        message = str(exc)
        if not isinstance(exc, RecipeFetchError):
            # A source broke its contract; keep the type so the log says what happened
            message = f"{type(exc).__name__}: {exc}"
        return cls(path=path, sub_recipe_ref=ref, kind=kind, message=message)
