"""Model candidate registry for readmission classification.

Each candidate names an algorithm family, its fixed estimator parameters
and the hyperparameters to tune with their search ranges. The tuning engine
iterates over candidates uniformly and never special-cases a family.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np
from scipy.stats import qmc
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.naive_bayes import GaussianNB
from sklearn.neighbors import KNeighborsClassifier
from sklearn.svm import SVC
from sklearn.tree import DecisionTreeClassifier
from xgboost import XGBClassifier


@dataclass(frozen=True)
class Hyperparameter:
    """One tunable dimension with a bounded range or a set of choices."""

    name: str
    kind: Literal["int", "float", "categorical"]
    low: float | None = None
    high: float | None = None
    choices: tuple = ()
    log: bool = False

    def __post_init__(self):
        if self.kind == "categorical":
            if not self.choices:
                raise ValueError(f"Categorical hyperparameter {self.name} needs choices")
        elif self.low is None or self.high is None or self.low > self.high:
            raise ValueError(f"Hyperparameter {self.name} needs low <= high")
        if self.log and (self.kind != "float" or self.low <= 0):
            raise ValueError(f"Log scale for {self.name} needs a positive float range")

    def sample(self, u: float) -> Any:
        """Map a unit-interval draw ``u`` onto this dimension."""
        u = min(max(float(u), 0.0), 1.0)

        if self.kind == "categorical":
            return self.choices[min(int(u * len(self.choices)), len(self.choices) - 1)]

        if self.kind == "int":
            span = int(self.high) - int(self.low) + 1
            return int(self.low) + min(int(u * span), span - 1)

        if self.log:
            lo, hi = math.log10(self.low), math.log10(self.high)
            return float(10 ** (lo + u * (hi - lo)))
        return float(self.low + u * (self.high - self.low))


@dataclass(frozen=True)
class ModelCandidate:
    """A classifier family plus its hyperparameter search space."""

    name: str
    family: str
    estimator_cls: type
    fixed_params: dict = field(default_factory=dict)
    tunable: tuple[Hyperparameter, ...] = ()
    mode: str = "classification"

    def build_estimator(self, **params):
        """Instantiate the estimator with fixed params overridden by ``params``."""
        return self.estimator_cls(**{**self.fixed_params, **params})


def default_candidates(random_state: int = 42) -> list[ModelCandidate]:
    """The eight candidates compared by the pipeline, in enumeration order."""
    return [
        ModelCandidate(
            name="decision_tree",
            family="decision tree",
            estimator_cls=DecisionTreeClassifier,
            fixed_params={"random_state": random_state},
            tunable=(
                Hyperparameter("ccp_alpha", "float", 1e-10, 1e-1, log=True),
                Hyperparameter("max_depth", "int", 1, 15),
                Hyperparameter("min_samples_split", "int", 2, 40),
            ),
        ),
        ModelCandidate(
            name="logistic_regression",
            family="regularized logistic regression",
            estimator_cls=LogisticRegression,
            fixed_params={
                "solver": "saga",
                "max_iter": 5000,
                "random_state": random_state,
            },
            tunable=(
                Hyperparameter("C", "float", 1e-4, 1e2, log=True),
                Hyperparameter("l1_ratio", "float", 0.0, 1.0),
            ),
        ),
        ModelCandidate(
            name="naive_bayes",
            family="naive Bayes",
            estimator_cls=GaussianNB,
            tunable=(
                Hyperparameter("var_smoothing", "float", 1e-12, 1e-2, log=True),
            ),
        ),
        ModelCandidate(
            name="knn",
            family="k-nearest neighbors",
            estimator_cls=KNeighborsClassifier,
            tunable=(
                Hyperparameter("n_neighbors", "int", 1, 15),
                Hyperparameter("weights", "categorical", choices=("uniform", "distance")),
                Hyperparameter("p", "int", 1, 2),
            ),
        ),
        ModelCandidate(
            name="random_forest",
            family="random forest",
            estimator_cls=RandomForestClassifier,
            fixed_params={"random_state": random_state, "n_jobs": 1},
            tunable=(
                Hyperparameter("max_features", "float", 0.1, 1.0),
                Hyperparameter("n_estimators", "int", 50, 500),
                Hyperparameter("min_samples_leaf", "int", 2, 40),
            ),
        ),
        ModelCandidate(
            name="svm_linear",
            family="linear support vector machine",
            estimator_cls=SVC,
            fixed_params={"kernel": "linear", "probability": True, "random_state": random_state},
            tunable=(
                Hyperparameter("C", "float", 2 ** -10, 2 ** 5, log=True),
            ),
        ),
        ModelCandidate(
            name="svm_rbf",
            family="radial basis function support vector machine",
            estimator_cls=SVC,
            fixed_params={"kernel": "rbf", "probability": True, "random_state": random_state},
            tunable=(
                Hyperparameter("C", "float", 2 ** -10, 2 ** 5, log=True),
                Hyperparameter("gamma", "float", 1e-10, 1.0, log=True),
            ),
        ),
        ModelCandidate(
            name="boosted_trees",
            family="gradient-boosted trees",
            estimator_cls=XGBClassifier,
            fixed_params={
                "eval_metric": "logloss",
                "tree_method": "hist",
                "n_jobs": 1,
                "random_state": random_state,
            },
            tunable=(
                Hyperparameter("n_estimators", "int", 50, 500),
                Hyperparameter("max_depth", "int", 1, 15),
                Hyperparameter("learning_rate", "float", 1e-3, 0.3, log=True),
                Hyperparameter("min_child_weight", "int", 2, 40),
                Hyperparameter("subsample", "float", 0.5, 1.0),
                Hyperparameter("gamma", "float", 1e-10, 10.0, log=True),
            ),
        ),
    ]


CANDIDATE_NAMES = [c.name for c in default_candidates()]


def get_candidate(name: str, random_state: int = 42) -> ModelCandidate:
    """Look up a registered candidate by name."""
    for candidate in default_candidates(random_state):
        if candidate.name == name:
            return candidate
    raise ValueError(f"Unknown candidate: {name}. Choose from: {', '.join(CANDIDATE_NAMES)}")


def sample_grid(
    candidate: ModelCandidate,
    grid_size: int,
    seed: int = 42,
) -> list[dict[str, Any]]:
    """Draw a space-filling set of hyperparameter combinations.

    Uses scipy's Latin hypercube over the unit cube (one stratum per combination
    on every dimension) mapped through each ``Hyperparameter.sample``.
    Duplicate combinations, which integer and categorical dimensions can
    produce, are dropped keeping the first.

    Returns:
        Combinations in a stable enumeration order. A candidate without
        tunable hyperparameters yields a single empty combination.
    """
    if grid_size < 1:
        raise ValueError("grid_size must be at least 1")

    if not candidate.tunable:
        return [{}]

    sampler = qmc.LatinHypercube(d=len(candidate.tunable), rng=np.random.default_rng(seed))
    unit = sampler.random(n=grid_size)

    grid: list[dict[str, Any]] = []
    seen: set[tuple] = set()
    for row in unit:
        combo = {hp.name: hp.sample(u) for hp, u in zip(candidate.tunable, row)}
        key = tuple(combo.values())
        if key not in seen:
            seen.add(key)
            grid.append(combo)

    return grid
