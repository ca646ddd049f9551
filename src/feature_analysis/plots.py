"""Exploratory plots of the encounter predictors split by outcome.

Figures are written to PNG files; nothing is displayed.
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

from src.ingestion.schema import (  # noqa: E402
    CATEGORICAL_FEATURES,
    LABEL_COL,
    NUMERIC_FEATURES,
)
from src.feature_analysis.inspection import correlation_matrix  # noqa: E402

logger = logging.getLogger(__name__)


def _grid(n: int, ncols: int = 3) -> tuple[int, int]:
    return (n + ncols - 1) // ncols, min(n, ncols)


def _save(fig, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=100)
    plt.close(fig)
    logger.debug(f"  Saved figure {path}")
    return path


def plot_categorical_distributions(
    df: pd.DataFrame,
    output_path: Path,
    features: list[str] | None = None,
    label_col: str = LABEL_COL,
) -> Path:
    """Proportion of each outcome within every level of the categorical features."""
    features = CATEGORICAL_FEATURES if features is None else features
    nrows, ncols = _grid(len(features))
    fig, axes = plt.subplots(nrows, ncols, figsize=(5 * ncols, 3.5 * nrows), squeeze=False)

    for ax, col in zip(axes.flat, features):
        data = df[[col, label_col]].astype(str)
        props = (
            data.groupby(col)[label_col]
            .value_counts(normalize=True)
            .rename("proportion")
            .reset_index()
        )
        sns.barplot(data=props, x=col, y="proportion", hue=label_col, ax=ax)
        ax.set_title(col)
        ax.tick_params(axis="x", labelrotation=45)

    for ax in list(axes.flat)[len(features):]:
        ax.set_visible(False)

    return _save(fig, output_path)


def plot_numeric_distributions(
    df: pd.DataFrame,
    output_path: Path,
    features: list[str] | None = None,
    label_col: str = LABEL_COL,
) -> Path:
    """Histograms of the numeric features, overlaid by outcome."""
    features = NUMERIC_FEATURES if features is None else features
    nrows, ncols = _grid(len(features), ncols=2)
    fig, axes = plt.subplots(nrows, ncols, figsize=(6 * ncols, 3.5 * nrows), squeeze=False)

    data = df[features].apply(pd.to_numeric)
    data[label_col] = df[label_col].astype(str)

    for ax, col in zip(axes.flat, features):
        sns.histplot(data=data, x=col, hue=label_col, stat="density", common_norm=False, ax=ax)
        ax.set_title(col)

    for ax in list(axes.flat)[len(features):]:
        ax.set_visible(False)

    return _save(fig, output_path)


def plot_correlation_heatmap(
    df: pd.DataFrame,
    output_path: Path,
    features: list[str] | None = None,
) -> Path:
    """Annotated heatmap of numeric feature correlations."""
    corr = correlation_matrix(df, features)
    fig, ax = plt.subplots(figsize=(1.5 * len(corr) + 2, 1.2 * len(corr) + 1.5))
    sns.heatmap(corr, annot=True, fmt=".2f", cmap="vlag", vmin=-1, vmax=1, square=True, ax=ax)
    ax.set_title("Numeric feature correlation")
    return _save(fig, output_path)


def save_exploratory_plots(df: pd.DataFrame, output_dir: Path) -> list[Path]:
    """Write all exploratory figures into ``output_dir``."""
    output_dir = Path(output_dir)
    return [
        plot_categorical_distributions(df, output_dir / "categorical_by_outcome.png"),
        plot_numeric_distributions(df, output_dir / "numeric_by_outcome.png"),
        plot_correlation_heatmap(df, output_dir / "correlation_heatmap.png"),
    ]
