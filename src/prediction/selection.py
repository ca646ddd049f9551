"""Candidate ranking and hyperparameter selection.

Ranking puts every candidate's best configuration side by side so an
operator can pick the family to deploy; ``select_best`` then picks the
winning combination within one family.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from src.prediction.evaluate import METRIC_NAMES
from src.prediction.tuning import TuningResult

logger = logging.getLogger(__name__)


class CandidateUnusable(RuntimeError):
    """Every fit of a candidate failed, so it cannot be selected."""


@dataclass(frozen=True)
class SelectedConfig:
    candidate: str
    config_id: str
    params: dict[str, Any]
    metric: str
    mean: float
    std_err: float


def select_best(result: TuningResult, metric: str = "f1") -> SelectedConfig:
    """Pick the configuration with the highest mean ``metric`` across folds.

    Ties are broken by the lowest standard error, then by enumeration order.

    Raises:
        CandidateUnusable: If the candidate has no successful fits
        ValueError: If ``metric`` was not recorded
    """
    if not result.usable:
        raise CandidateUnusable(f"{result.candidate} has no successful fits")

    summary = result.collect_metrics()
    rows = summary[summary["metric"] == metric]
    if rows.empty:
        raise ValueError(f"Metric {metric} not recorded for {result.candidate}")

    order = {cid: i for i, cid in enumerate(result.configs)}
    rows = rows.assign(
        _neg_mean=-rows["mean"],
        _se=rows["std_err"].fillna(np.inf),
        _order=rows["config_id"].map(order),
    ).sort_values(["_neg_mean", "_se", "_order"], kind="mergesort")

    best = rows.iloc[0]
    return SelectedConfig(
        candidate=result.candidate,
        config_id=best["config_id"],
        params=dict(result.configs[best["config_id"]]),
        metric=metric,
        mean=float(best["mean"]),
        std_err=float(best["std_err"]),
    )


def rank_candidates(
    results: dict[str, TuningResult],
    metric: str = "f1",
) -> pd.DataFrame:
    """Compare candidates by their best configuration under ``metric``.

    Each usable candidate contributes the cross-validated means of every
    comparison metric for its best configuration. Unusable candidates are
    listed with status "unusable", carry no metric values and sort last.

    Returns:
        DataFrame with columns candidate, config_id, status, n_failures and
        one column per metric, sorted by ``metric`` descending
    """
    rows = []
    for name, result in results.items():
        row: dict[str, Any] = {
            "candidate": name,
            "config_id": None,
            "status": "ok",
            "n_failures": len(result.failures),
        }
        try:
            best = select_best(result, metric)
        except CandidateUnusable:
            logger.warning(f"  {name} excluded from ranking: no successful fits")
            row["status"] = "unusable"
            row.update({m: np.nan for m in METRIC_NAMES})
            rows.append(row)
            continue

        summary = result.collect_metrics()
        means = summary[summary["config_id"] == best.config_id].set_index("metric")["mean"]
        row["config_id"] = best.config_id
        row.update({m: float(means.get(m, np.nan)) for m in METRIC_NAMES})
        rows.append(row)

    columns = ["candidate", "config_id", "status", "n_failures", *METRIC_NAMES]
    ranking = pd.DataFrame(rows, columns=columns)
    if ranking.empty:
        return ranking

    ranking["_unusable"] = ranking["status"] != "ok"
    ranking = ranking.sort_values(
        ["_unusable", metric], ascending=[True, False], kind="mergesort"
    ).drop(columns=["_unusable"])

    return ranking.reset_index(drop=True)


def usable_candidates(ranking: pd.DataFrame) -> list[str]:
    """Names of candidates in the comparison, best first."""
    return ranking.loc[ranking["status"] == "ok", "candidate"].tolist()
