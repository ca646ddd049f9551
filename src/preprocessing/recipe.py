"""Preprocessing recipe for the encounter predictors.

A recipe is fit once on training rows and then applied unchanged to any
other rows (cross-validation assessment folds, the test set, novel records),
so every transform yields the same column layout the model was fit on.

Steps, in order:
1. Numeric features: median imputation, then standardization
2. Categorical features: missing values become "unknown", then one-hot
   encoding over the training levels. A level first seen after fitting
   falls into the reserved "new" bucket, which has no column of its own
   and so encodes as all zeros for that feature.
3. Removal of output columns with zero variance in the training rows

The transforms themselves are scikit-learn's (``ColumnTransformer``,
``SimpleImputer``, ``StandardScaler``, ``OneHotEncoder``,
``VarianceThreshold``); this module fixes their configuration and exposes
the fitted state.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer
from sklearn.feature_selection import VarianceThreshold
from sklearn.impute import SimpleImputer
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import FunctionTransformer, OneHotEncoder, StandardScaler
from sklearn.utils.validation import check_is_fitted

from src.ingestion.schema import (
    CATEGORICAL_FEATURES,
    NUMERIC_FEATURES,
    SchemaError,
)

NOVEL_LEVEL = "new"
UNKNOWN_LEVEL = "unknown"

logger = logging.getLogger(__name__)


def _dummy_name(feature: str, level) -> str:
    """Column-safe one-hot name, e.g. ("age", "[70-80)") -> "age_70_80"."""
    cleaned = str(level).replace(">=", "ge").replace("<=", "le").replace(">", "gt").replace("<", "lt")
    cleaned = re.sub(r"[^0-9A-Za-z]+", "_", cleaned).strip("_")
    return f"{feature}_{cleaned or 'blank'}"


def _as_text(X) -> pd.DataFrame:
    """Categorical columns as object-dtype strings, NaN where missing."""
    frame = pd.DataFrame(X).astype(object)
    text = frame.apply(lambda s: s.map(lambda v: np.nan if pd.isna(v) else str(v)))
    return text.astype(object)


def _categorical_strings(series: pd.Series) -> pd.Series:
    values = series.astype("object")
    return values.where(values.notna(), UNKNOWN_LEVEL).astype(str)


def _check_columns(df: pd.DataFrame, columns: tuple[str, ...]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(f"Recipe input is missing columns: {', '.join(missing)}")


def _build_transformer(numeric: tuple[str, ...], categorical: tuple[str, ...]) -> Pipeline:
    numeric_steps = Pipeline([
        ("impute", SimpleImputer(strategy="median")),
        ("scale", StandardScaler()),
    ])
    categorical_steps = Pipeline([
        ("text", FunctionTransformer(_as_text, feature_names_out="one-to-one")),
        ("impute", SimpleImputer(strategy="constant", fill_value=UNKNOWN_LEVEL)),
        ("onehot", OneHotEncoder(
            handle_unknown="ignore",
            sparse_output=False,
            feature_name_combiner=_dummy_name,
        )),
    ])
    columns = ColumnTransformer(
        [
            ("numeric", numeric_steps, list(numeric)),
            ("categorical", categorical_steps, list(categorical)),
        ],
        verbose_feature_names_out=False,
    )
    return Pipeline([
        ("columns", columns),
        ("variance", VarianceThreshold(threshold=0.0)),
    ]).set_output(transform="pandas")


@dataclass(frozen=True)
class FittedRecipe:
    """Preprocessing state learned from training rows.

    Wraps the fitted scikit-learn transformer; the statistics below are
    read from it and never recomputed.
    """

    numeric_features: tuple[str, ...]
    categorical_features: tuple[str, ...]
    transformer: Pipeline

    def _branch_step(self, branch: str, step: str):
        columns = self.transformer.named_steps["columns"]
        return columns.named_transformers_[branch].named_steps[step]

    @property
    def medians(self) -> dict[str, float]:
        if not self.numeric_features:
            return {}
        imputer = self._branch_step("numeric", "impute")
        return {c: float(v) for c, v in zip(imputer.feature_names_in_, imputer.statistics_)}

    @property
    def means(self) -> dict[str, float]:
        if not self.numeric_features:
            return {}
        scaler = self._branch_step("numeric", "scale")
        return {c: float(v) for c, v in zip(scaler.feature_names_in_, scaler.mean_)}

    @property
    def stds(self) -> dict[str, float]:
        if not self.numeric_features:
            return {}
        scaler = self._branch_step("numeric", "scale")
        return {c: float(v) for c, v in zip(scaler.feature_names_in_, scaler.scale_)}

    @property
    def levels(self) -> dict[str, tuple[str, ...]]:
        """Observed training levels per feature, followed by the reserved "new" bucket."""
        if not self.categorical_features:
            return {}
        encoder = self._branch_step("categorical", "onehot")
        return {
            c: tuple(str(level) for level in cats) + (NOVEL_LEVEL,)
            for c, cats in zip(encoder.feature_names_in_, encoder.categories_)
        }

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self.transformer.get_feature_names_out())

    @property
    def dropped(self) -> tuple[str, ...]:
        """Encoded columns removed for having zero variance in training."""
        kept = set(self.columns)
        encoded = self.transformer.named_steps["columns"].get_feature_names_out()
        return tuple(c for c in encoded if c not in kept)


def fit_recipe(
    df: pd.DataFrame,
    numeric_features: list[str] | None = None,
    categorical_features: list[str] | None = None,
) -> FittedRecipe:
    """Learn recipe state from training rows.

    Args:
        df: Training rows containing every listed feature.
        numeric_features: Numeric predictors (defaults to the schema's).
        categorical_features: Categorical predictors (defaults to the schema's).

    Returns:
        FittedRecipe to pass to ``apply_recipe``.

    Raises:
        SchemaError: If a listed feature is absent from ``df``.
        ValueError: If ``df`` has no rows.
    """
    numeric = tuple(NUMERIC_FEATURES if numeric_features is None else numeric_features)
    categorical = tuple(CATEGORICAL_FEATURES if categorical_features is None else categorical_features)
    _check_columns(df, numeric + categorical)

    if len(df) == 0:
        raise ValueError("Cannot fit a recipe on zero rows")

    transformer = _build_transformer(numeric, categorical)
    transformer.fit(df[list(numeric + categorical)])

    fitted = FittedRecipe(
        numeric_features=numeric,
        categorical_features=categorical,
        transformer=transformer,
    )
    if fitted.dropped:
        logger.debug("Recipe dropped zero-variance columns: %s", ", ".join(fitted.dropped))
    return fitted


def route_levels(fitted: FittedRecipe, df: pd.DataFrame) -> pd.DataFrame:
    """Categorical values as the fitted recipe sees them.

    Missing values become "unknown"; any value not seen during fitting
    (including "unknown" when training had no missing values) becomes the
    reserved "new" level.
    """
    _check_columns(df, fitted.categorical_features)

    levels = fitted.levels
    routed = pd.DataFrame(index=df.index)
    for col in fitted.categorical_features:
        values = _categorical_strings(df[col])
        routed[col] = values.where(values.isin(set(levels[col])), NOVEL_LEVEL)
    return routed


def apply_recipe(fitted: FittedRecipe, df: pd.DataFrame) -> pd.DataFrame:
    """Transform rows with fitted recipe state.

    Pure function of ``(fitted, df)``: the input is not modified and the
    output columns are always ``fitted.columns`` in the same order.

    Returns:
        Float frame indexed like ``df``.
    """
    features = fitted.numeric_features + fitted.categorical_features
    _check_columns(df, features)

    out = fitted.transformer.transform(df[list(features)])
    return out.astype(float)


class Recipe(TransformerMixin, BaseEstimator):
    """scikit-learn transformer wrapper around ``fit_recipe``/``apply_recipe``.

    Used as the first step of a model ``Pipeline`` so each cross-validation
    fold refits the recipe on its own analysis rows.
    """

    def __init__(self, numeric_features=None, categorical_features=None):
        self.numeric_features = numeric_features
        self.categorical_features = categorical_features

    def fit(self, X, y=None):
        self.fitted_ = fit_recipe(X, self.numeric_features, self.categorical_features)
        return self

    def transform(self, X):
        check_is_fitted(self, "fitted_")
        return apply_recipe(self.fitted_, X)

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, "fitted_")
        return np.asarray(self.fitted_.columns, dtype=object)
