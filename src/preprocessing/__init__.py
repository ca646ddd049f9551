"""Preprocessing recipe: imputation, normalization, novel-level routing,
one-hot encoding and zero-variance removal, fit on training rows only."""

from src.preprocessing.recipe import (
    NOVEL_LEVEL,
    UNKNOWN_LEVEL,
    FittedRecipe,
    Recipe,
    apply_recipe,
    fit_recipe,
    route_levels,
)

__all__ = [
    "NOVEL_LEVEL",
    "UNKNOWN_LEVEL",
    "FittedRecipe",
    "Recipe",
    "apply_recipe",
    "fit_recipe",
    "route_levels",
]
