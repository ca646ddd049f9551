"""Model finalization and persistence for readmission prediction.

A finalized model is one candidate with one hyperparameter combination,
refit as a recipe + estimator pipeline on all rows it is given. The saved
bundle carries the fitted recipe so future records are transformed exactly
as the training rows were.
"""

from __future__ import annotations

import logging
import pickle
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.pipeline import Pipeline

from src.ingestion.schema import PREDICTORS
from src.prediction.candidates import ModelCandidate
from src.preprocessing.recipe import FittedRecipe, Recipe

logger = logging.getLogger(__name__)


def build_pipeline(
    candidate: ModelCandidate,
    recipe: Recipe,
    params: dict[str, Any] | None = None,
) -> Pipeline:
    """Assemble an unfitted recipe + estimator pipeline.

    The recipe template is cloned, never fitted in place.
    """
    return Pipeline([
        ("recipe", clone(recipe)),
        ("model", candidate.build_estimator(**(params or {}))),
    ])


@dataclass
class FinalModel:
    """A fitted recipe + estimator pipeline used purely for inference."""

    candidate: str
    params: dict[str, Any]
    pipeline: Pipeline
    n_train: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def recipe(self) -> FittedRecipe:
        return self.pipeline.named_steps["recipe"].fitted_

    @property
    def estimator(self):
        return self.pipeline.named_steps["model"]

    @property
    def feature_names(self) -> tuple[str, ...]:
        return self.recipe.columns

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return self.pipeline.named_steps["recipe"].transform(X)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        return self.pipeline.predict(X[PREDICTORS])

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        return self.pipeline.predict_proba(X[PREDICTORS])


def finalize(
    candidate: ModelCandidate,
    params: dict[str, Any],
    data: pd.DataFrame,
    recipe: Recipe | None = None,
    target_col: str = "readmitted_30d",
) -> FinalModel:
    """Refit a candidate with chosen hyperparameters on every row of ``data``.

    Refitting the same candidate and params on the same rows yields
    identical learned parameters; stochastic estimators carry a fixed
    ``random_state`` in the candidate's fixed params.

    Args:
        candidate: Candidate family to fit
        params: Hyperparameter combination (e.g. from select_best)
        data: Rows with predictors and target (training set, or full dataset)
        recipe: Recipe template (defaults to the schema's predictors)
        target_col: Binary target column

    Returns:
        FinalModel fitted on ``data``
    """
    pipeline = build_pipeline(candidate, recipe or Recipe(), params)
    pipeline.fit(data[PREDICTORS], data[target_col].astype(int))

    logger.info(f"  Finalized {candidate.name} on {len(data):,} rows with {params}")

    return FinalModel(
        candidate=candidate.name,
        params=dict(params),
        pipeline=pipeline,
        n_train=len(data),
    )


def save_model(model: FinalModel, path: Path) -> None:
    """Save a finalized model (recipe + estimator) to a pickle bundle.

    Args:
        model: Finalized model to save
        path: Path to save the model
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "wb") as f:
        pickle.dump(model, f)


def load_model(path: Path) -> FinalModel:
    """Load a finalized model from disk.

    Args:
        path: Path to the saved model

    Returns:
        Loaded FinalModel
    """
    path = Path(path)

    with open(path, "rb") as f:
        model = pickle.load(f)

    if not isinstance(model, FinalModel):
        raise TypeError(f"{path} does not contain a FinalModel bundle")
    return model
