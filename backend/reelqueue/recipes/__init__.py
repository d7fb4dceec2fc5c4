"""
Recipe compiler: (files, params) → ordered task list.

Recipes never execute anything. They only describe the work.
"""

from .errors import RecipeError, UnknownRecipeError, RecipeParamsError
from .presets import CodecPreset, AudioMode
from .plain import PlainConvertParams, compile_plain_convert
from .timelapse import DualTimescaleParams, compile_dual_timescale, compute_speed_factor
from .registry import RECIPES, RecipeDefinition, compile_recipe, get_recipe, list_recipes

__all__ = [
    # Errors
    "RecipeError",
    "UnknownRecipeError",
    "RecipeParamsError",
    # Presets
    "CodecPreset",
    "AudioMode",
    # Recipes
    "PlainConvertParams",
    "compile_plain_convert",
    "DualTimescaleParams",
    "compile_dual_timescale",
    "compute_speed_factor",
    # Registry
    "RECIPES",
    "RecipeDefinition",
    "compile_recipe",
    "get_recipe",
    "list_recipes",
]
