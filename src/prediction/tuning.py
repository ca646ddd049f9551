"""Cross-validated hyperparameter tuning for the candidate registry.

For each candidate, every sampled hyperparameter combination is fit and
scored on every fold. Each fold fit gets its own clone of the recipe +
estimator pipeline, so folds run independently across joblib workers. A
fold that raises is recorded as a ``FitFailure`` and contributes no
metrics; a candidate whose every fit fails is unusable.

Tuning results can be cached to disk and read back instead of re-running
the batch.
"""

from __future__ import annotations

import hashlib
import logging
import pickle
import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from sklearn.exceptions import FitFailedWarning
from sklearn.metrics import f1_score, make_scorer, recall_score
from sklearn.model_selection import cross_validate

from src.ingestion.schema import PREDICTORS
from src.prediction.candidates import ModelCandidate, sample_grid
from src.prediction.evaluate import METRIC_NAMES
from src.prediction.model import build_pipeline
from src.prediction.split import FoldPartition
from src.preprocessing.recipe import Recipe

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1

# Scorers matching compute_metrics; "Yes" (1) is the positive class
CV_SCORING = {
    "accuracy": "accuracy",
    "roc_auc": "roc_auc",
    "f1": make_scorer(f1_score, zero_division=0),
    "sensitivity": make_scorer(recall_score, pos_label=1, zero_division=0),
    "specificity": make_scorer(recall_score, pos_label=0, zero_division=0),
}


class StaleCacheError(RuntimeError):
    """Cached tuning results were computed on different training data."""


@dataclass(frozen=True)
class FitFailure:
    """One combination x fold unit that raised during fit or scoring."""

    candidate: str
    config_id: str
    fold: int
    error: str


@dataclass
class TuningResult:
    """Per-fold metrics for one candidate's sampled configurations."""

    candidate: str
    configs: dict[str, dict[str, Any]]
    fold_metrics: pd.DataFrame
    failures: list[FitFailure] = field(default_factory=list)
    n_folds: int = 0

    @property
    def usable(self) -> bool:
        return not self.fold_metrics.empty

    def collect_metrics(self) -> pd.DataFrame:
        """Aggregate per-fold values to per-configuration means."""
        return aggregate_fold_metrics(self.fold_metrics, list(self.configs))


def aggregate_fold_metrics(
    fold_metrics: pd.DataFrame,
    config_order: list[str] | None = None,
) -> pd.DataFrame:
    """Average per-fold metric values for each (configuration, metric).

    Rows are sorted before reduction, so the result does not depend on the
    order in which folds finished.

    Args:
        fold_metrics: Long frame with columns config_id, fold, metric, value
        config_order: Enumeration order of configurations for the output

    Returns:
        DataFrame with columns config_id, metric, mean, std_err, n
    """
    columns = ["config_id", "metric", "mean", "std_err", "n"]
    if fold_metrics.empty:
        return pd.DataFrame(columns=columns)

    ordered = fold_metrics.sort_values(["config_id", "metric", "fold"]).dropna(subset=["value"])
    grouped = ordered.groupby(["config_id", "metric"], sort=True)["value"]

    summary = grouped.agg(["mean", "std", "count"]).reset_index()
    summary = summary.rename(columns={"count": "n"})
    summary["std_err"] = summary["std"] / np.sqrt(summary["n"])
    summary = summary[columns]

    if config_order is not None:
        rank = {cid: i for i, cid in enumerate(config_order)}
        metric_rank = {m: i for i, m in enumerate(METRIC_NAMES)}
        summary = summary.assign(
            _c=summary["config_id"].map(rank),
            _m=summary["metric"].map(metric_rank),
        ).sort_values(["_c", "_m"]).drop(columns=["_c", "_m"])

    return summary.reset_index(drop=True)


class TuningEngine(ABC):
    """Interface for producing a TuningResult from a candidate and folds."""

    @abstractmethod
    def tune(
        self,
        candidate: ModelCandidate,
        recipe: Recipe,
        folds: FoldPartition,
        metrics: tuple[str, ...] = METRIC_NAMES,
        grid_size: int = 10,
    ) -> TuningResult:
        ...


class CrossValidatedGridSearch(TuningEngine):
    """Sampled grid search evaluated by k-fold cross-validation.

    Each configuration is scored with scikit-learn's ``cross_validate`` over
    the partition's precomputed splits. A fold whose fit raises scores NaN
    (``error_score=np.nan``) and becomes a ``FitFailure``.

    Args:
        n_jobs: Parallel workers for the folds of one configuration; 1 runs inline
        seed: Seed for grid sampling
    """

    def __init__(self, n_jobs: int = 1, seed: int = 42):
        self.n_jobs = n_jobs
        self.seed = seed

    def tune(
        self,
        candidate: ModelCandidate,
        recipe: Recipe,
        folds: FoldPartition,
        metrics: tuple[str, ...] = METRIC_NAMES,
        grid_size: int = 10,
    ) -> TuningResult:
        unknown = [m for m in metrics if m not in CV_SCORING]
        if unknown:
            raise ValueError(f"Unknown tuning metrics: {', '.join(unknown)}")

        grid = sample_grid(candidate, grid_size, seed=self.seed)
        configs = {f"config_{i + 1:02d}": params for i, params in enumerate(grid)}
        n_folds = len(folds)

        logger.info(
            f"  Tuning {candidate.name}: {len(configs)} configs x {n_folds} folds"
        )
        start = time.time()

        X = folds.data[PREDICTORS]
        y = folds.data[folds.target_col].astype(int)
        scoring = {
            name: CV_SCORING[name]
            for name in CV_SCORING
            if name in metrics or name == "accuracy"
        }

        rows: list[dict] = []
        failures: list[FitFailure] = []

        for config_id, params in configs.items():
            pipeline = build_pipeline(candidate, recipe, params)
            scores, error = self._cross_validate(pipeline, X, y, folds, scoring)

            for fold in range(n_folds):
                if scores is None or np.isnan(scores["test_accuracy"][fold]):
                    failures.append(FitFailure(
                        candidate=candidate.name,
                        config_id=config_id,
                        fold=fold,
                        error=error,
                    ))
                    logger.debug(
                        "Fit failed for %s %s fold %d: %s",
                        candidate.name, config_id, fold, error,
                    )
                    continue
                for metric in metrics:
                    rows.append({
                        "config_id": config_id,
                        "fold": fold,
                        "metric": metric,
                        "value": float(scores[f"test_{metric}"][fold]),
                    })

        fold_metrics = pd.DataFrame(rows, columns=["config_id", "fold", "metric", "value"])
        fold_metrics = fold_metrics.sort_values(["config_id", "fold", "metric"]).reset_index(drop=True)

        n_fits = len(configs) * n_folds
        elapsed = time.time() - start
        logger.info(
            f"    {n_fits - len(failures)}/{n_fits} fits succeeded ({elapsed:.1f}s)"
        )

        return TuningResult(
            candidate=candidate.name,
            configs=configs,
            fold_metrics=fold_metrics,
            failures=failures,
            n_folds=n_folds,
        )

    def _cross_validate(
        self,
        pipeline,
        X: pd.DataFrame,
        y: pd.Series,
        folds: FoldPartition,
        scoring: dict,
    ) -> tuple[dict | None, str]:
        """Score one configuration on every fold, capturing fit errors as text.

        Returns:
            (scores, error). ``scores`` is None when every fold failed, since
            cross_validate raises instead of returning all-NaN scores then.
        """
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", FitFailedWarning)
            try:
                scores = cross_validate(
                    pipeline,
                    X,
                    y,
                    cv=folds.splits,
                    scoring=scoring,
                    error_score=np.nan,
                    n_jobs=self.n_jobs,
                )
            except ValueError as e:
                return None, _last_error_line(str(e))

        messages = [str(w.message) for w in caught if issubclass(w.category, FitFailedWarning)]
        return scores, _last_error_line(messages[-1]) if messages else ""


def _last_error_line(message: str) -> str:
    """Final line of a fit-failure report, e.g. "ValueError: alpha too large"."""
    lines = [line.strip() for line in message.splitlines() if line.strip()]
    return lines[-1] if lines else message


def tune_candidates(
    candidates: list[ModelCandidate],
    recipe: Recipe,
    folds: FoldPartition,
    engine: TuningEngine | None = None,
    metrics: tuple[str, ...] = METRIC_NAMES,
    grid_size: int = 10,
) -> dict[str, TuningResult]:
    """Tune every candidate over the same folds.

    Returns:
        Mapping of candidate name to TuningResult, in candidate order
    """
    engine = engine or CrossValidatedGridSearch()
    results: dict[str, TuningResult] = {}

    for candidate in candidates:
        result = engine.tune(candidate, recipe, folds, metrics=metrics, grid_size=grid_size)
        if not result.usable:
            logger.warning(
                f"  {candidate.name} is unusable: all {len(result.failures)} fits failed "
                f"(first error: {result.failures[0].error if result.failures else 'n/a'})"
            )
        elif result.failures:
            logger.info(f"    {len(result.failures)} fits of {candidate.name} failed and were excluded")
        results[candidate.name] = result

    return results


def dataset_fingerprint(df: pd.DataFrame) -> str:
    """Stable sha256 digest of a frame's values, index and column names."""
    digest = hashlib.sha256()
    digest.update(",".join(map(str, df.columns)).encode("utf-8"))
    digest.update(pd.util.hash_pandas_object(df, index=True).to_numpy().tobytes())
    return digest.hexdigest()


def save_tuning_results(
    results: dict[str, TuningResult],
    path: Path,
    fingerprint: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Write tuning results to a pickle bundle.

    Args:
        results: Output of tune_candidates()
        path: Bundle path
        fingerprint: dataset_fingerprint() of the rows the folds were built on
        metadata: Extra run settings (seed, folds, grid size) to store alongside
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    bundle = {
        "version": CACHE_FORMAT_VERSION,
        "fingerprint": fingerprint,
        "metadata": metadata or {},
        "results": results,
    }
    with open(path, "wb") as f:
        pickle.dump(bundle, f)


def load_tuning_results(
    path: Path,
    expected_fingerprint: str | None = None,
    expected_metadata: dict[str, Any] | None = None,
) -> dict[str, TuningResult]:
    """Read tuning results written by save_tuning_results().

    Raises:
        FileNotFoundError: If the bundle does not exist
        StaleCacheError: If the stored fingerprint or metadata disagree with
            the expected values
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Tuning cache not found: {path}")

    with open(path, "rb") as f:
        bundle = pickle.load(f)

    if bundle.get("version") != CACHE_FORMAT_VERSION:
        raise StaleCacheError(f"Unsupported tuning cache version: {bundle.get('version')}")

    if expected_fingerprint is not None and bundle.get("fingerprint") != expected_fingerprint:
        raise StaleCacheError("Training data changed since the tuning results were cached")

    if expected_metadata is not None:
        stored = bundle.get("metadata", {})
        changed = [k for k, v in expected_metadata.items() if stored.get(k) != v]
        if changed:
            raise StaleCacheError(f"Tuning settings changed since caching: {', '.join(changed)}")

    return bundle["results"]
