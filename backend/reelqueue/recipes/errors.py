"""
Recipe-specific error types.

Errors are explicit and provide actionable messages.
"""

from typing import Iterable


class RecipeError(Exception):
    """Base exception for recipe compilation failures."""
    pass


class UnknownRecipeError(RecipeError):
    """Raised when a recipe id is not registered."""

    def __init__(self, recipe_id: str, known: Iterable[str]):
        self.recipe_id = recipe_id
        self.known = sorted(known)
        super().__init__(
            f"Unknown recipe: {recipe_id} (available: {', '.join(self.known)})"
        )


class RecipeParamsError(RecipeError):
    """Raised when recipe parameters fail validation."""

    def __init__(self, recipe_id: str, reason: str):
        self.recipe_id = recipe_id
        self.reason = reason
        super().__init__(f"Invalid parameters for recipe '{recipe_id}': {reason}")
