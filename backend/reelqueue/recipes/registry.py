"""
Recipe registry.

Maps recipe ids to a parameter model and a compiler:
- "convert"        → PlainConvertParams   → compile_plain_convert
- "dual-timescale" → DualTimescaleParams  → compile_dual_timescale

Compilation is pure and deterministic given (files, params) plus the
injected id factory and clock.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type, Union

from pydantic import BaseModel, ValidationError

from ..jobs.models import MediaFile, Task, new_id
from .errors import RecipeParamsError, UnknownRecipeError
from .plain import PlainConvertParams, compile_plain_convert
from .timelapse import DualTimescaleParams, compile_dual_timescale


@dataclass(frozen=True)
class RecipeDefinition:
    """One registered recipe."""

    id: str
    name: str
    description: str
    params_model: Type[BaseModel]
    compile: Callable[..., List[Task]]


def _compile_plain(files, params, id_factory, clock):
    return list(compile_plain_convert(files, params, id_factory=id_factory))


def _compile_dual(files, params, id_factory, clock):
    return compile_dual_timescale(files, params, id_factory=id_factory, clock=clock)


RECIPES: Dict[str, RecipeDefinition] = {
    "convert": RecipeDefinition(
        id="convert",
        name="Convert",
        description="Re-encode each file to HEVC or AV1",
        params_model=PlainConvertParams,
        compile=_compile_plain,
    ),
    "dual-timescale": RecipeDefinition(
        id="dual-timescale",
        name="Dual Timescale Digest",
        description="60x copy of each file plus one merged digest of a target length",
        params_model=DualTimescaleParams,
        compile=_compile_dual,
    ),
}


def list_recipes() -> List[RecipeDefinition]:
    return list(RECIPES.values())


def get_recipe(recipe_id: str) -> RecipeDefinition:
    """
    Look up a recipe.

    Raises:
        UnknownRecipeError: If the id is not registered
    """
    recipe = RECIPES.get(recipe_id)
    if recipe is None:
        raise UnknownRecipeError(recipe_id, RECIPES.keys())
    return recipe


def parse_params(
    recipe: RecipeDefinition,
    params: Union[BaseModel, Mapping[str, Any], None],
) -> BaseModel:
    """
    Validate raw parameters against the recipe's model.

    Raises:
        RecipeParamsError: If validation fails
    """
    if isinstance(params, recipe.params_model):
        return params
    raw = params.model_dump() if isinstance(params, BaseModel) else dict(params or {})
    try:
        return recipe.params_model.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise RecipeParamsError(recipe.id, details) from e


def compile_recipe(
    recipe_id: str,
    files: Sequence[MediaFile],
    params: Union[BaseModel, Mapping[str, Any], None] = None,
    id_factory: Callable[[], str] = new_id,
    clock: Optional[Callable[[], datetime]] = None,
) -> List[Task]:
    """
    Compile a recipe into a task list.

    Args:
        recipe_id: Registered recipe id
        files: Source files in list order
        params: Parameter model instance or raw mapping
        id_factory: Task id generator
        clock: Time source (defaults to UTC now)

    Returns:
        Compiled task list

    Raises:
        UnknownRecipeError: If the id is not registered
        RecipeParamsError: If the parameters are invalid
    """
    recipe = get_recipe(recipe_id)
    parsed = parse_params(recipe, params)
    return recipe.compile(
        files,
        parsed,
        id_factory,
        clock or (lambda: datetime.now(timezone.utc)),
    )
