"""Feature inspection for the encounter dataset.

This module provides descriptive summaries, correlations and variance
inflation factors for the predictors. Output is advisory: nothing here
changes the data passed on to modeling.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd
from statsmodels.stats.outliers_influence import variance_inflation_factor
from statsmodels.tools.tools import add_constant

from src.ingestion.schema import (
    CATEGORICAL_FEATURES,
    CLASS_LABELS,
    NUMERIC_FEATURES,
    TARGET_COL,
)

logger = logging.getLogger(__name__)

# VIF at or below this is treated as no collinearity
NEGLIGIBLE_VIF = 1.1
SEVERE_VIF = 5.0


def summarize_dataset(
    df: pd.DataFrame,
    target_col: str = TARGET_COL,
    numeric_features: list[str] | None = None,
    categorical_features: list[str] | None = None,
) -> pd.DataFrame:
    """Descriptive table overall and stratified by outcome.

    Numeric features are summarized as "mean (sd)", categorical levels as
    "count (percent%)" within each column group.

    Returns:
        DataFrame with columns variable, level, Overall and one column per
        outcome label ("No", "Yes")
    """
    numeric = NUMERIC_FEATURES if numeric_features is None else numeric_features
    categorical = CATEGORICAL_FEATURES if categorical_features is None else categorical_features

    groups = {"Overall": df}
    for code, label in sorted(CLASS_LABELS.items()):
        groups[label] = df[df[target_col] == code]

    rows = [{"variable": "n", "level": "", **{g: str(len(sub)) for g, sub in groups.items()}}]

    for col in numeric:
        row = {"variable": col, "level": "mean (sd)"}
        for g, sub in groups.items():
            values = pd.to_numeric(sub[col])
            row[g] = f"{values.mean():.2f} ({values.std():.2f})" if len(values) else "-"
        rows.append(row)

    for col in categorical:
        levels = df[col].astype("object").fillna("missing").astype(str)
        for level in sorted(levels.unique()):
            row = {"variable": col, "level": level}
            for g, sub in groups.items():
                sub_levels = levels.loc[sub.index]
                count = int((sub_levels == level).sum())
                pct = 100.0 * count / len(sub) if len(sub) else 0.0
                row[g] = f"{count} ({pct:.1f}%)"
            rows.append(row)

    return pd.DataFrame(rows, columns=["variable", "level", *groups.keys()])


def correlation_matrix(
    df: pd.DataFrame,
    numeric_features: list[str] | None = None,
) -> pd.DataFrame:
    """Pairwise Pearson correlations between numeric features."""
    numeric = NUMERIC_FEATURES if numeric_features is None else numeric_features
    return df[numeric].apply(pd.to_numeric).corr(method="pearson")


def classify_vif(vif: float, severe_threshold: float = SEVERE_VIF) -> str:
    """Collinearity level for a VIF: negligible, moderate or severe."""
    if np.isnan(vif):
        return "undefined"
    if vif <= NEGLIGIBLE_VIF:
        return "negligible"
    if vif <= severe_threshold:
        return "moderate"
    return "severe"


def compute_vif(
    df: pd.DataFrame,
    predictors: list[str] | None = None,
    target_col: str = TARGET_COL,
    severe_threshold: float = SEVERE_VIF,
) -> pd.DataFrame:
    """Variance inflation factor of each predictor in the linear model
    ``target ~ predictors``.

    VIF depends only on the predictors' design matrix, which includes an
    intercept. Rows with any missing predictor or target are dropped, as
    the linear model fit would.

    Returns:
        DataFrame with columns feature, vif, level, flagged, sorted by vif
        descending. ``flagged`` marks severe collinearity for an operator
        to review.
    """
    predictors = NUMERIC_FEATURES if predictors is None else predictors
    if len(predictors) < 2:
        raise ValueError("VIF needs at least two predictors")

    data = df[predictors + [target_col]].apply(pd.to_numeric).dropna()
    exog = add_constant(data[predictors].astype(float), has_constant="add")
    values = exog.to_numpy()

    vifs = []
    with np.errstate(divide="ignore", invalid="ignore"):
        for i, col in enumerate(exog.columns):
            if col == "const":
                continue
            vifs.append(float(variance_inflation_factor(values, i)))

    result = pd.DataFrame({"feature": predictors, "vif": vifs})
    result["level"] = [classify_vif(v, severe_threshold) for v in result["vif"]]
    result["flagged"] = result["level"] == "severe"

    n_flagged = int(result["flagged"].sum())
    if n_flagged:
        logger.warning(
            f"  {n_flagged} predictor(s) with VIF > {severe_threshold}: "
            f"{', '.join(result.loc[result['flagged'], 'feature'])}"
        )

    return result.sort_values("vif", ascending=False).reset_index(drop=True)


def generate_inspection_report(
    df: pd.DataFrame,
    output_path: Path | None = None,
    target_col: str = TARGET_COL,
    severe_threshold: float = SEVERE_VIF,
) -> str:
    """Generate a markdown report with dataset summary, correlations and VIF.

    Args:
        df: Dataset from load_dataset()
        output_path: Optional path to write the report. If None, only returns string.
        target_col: Binary target column
        severe_threshold: VIF above which a predictor is flagged

    Returns:
        Markdown report string
    """
    lines = []

    # Header
    lines.append("# Feature Inspection Report")
    lines.append("")

    n_positive = int(df[target_col].sum())
    lines.append("## Summary")
    lines.append("")
    lines.append(f"- **Encounters**: {len(df)}")
    lines.append(f"- **Readmitted within 30 days**: {n_positive} ({100.0 * n_positive / max(len(df), 1):.1f}%)")
    lines.append(f"- **Numeric features**: {len(NUMERIC_FEATURES)}")
    lines.append(f"- **Categorical features**: {len(CATEGORICAL_FEATURES)}")
    lines.append("")

    # Descriptive table
    summary = summarize_dataset(df, target_col=target_col)
    group_cols = [c for c in summary.columns if c not in ("variable", "level")]
    lines.append("## Descriptive Statistics")
    lines.append("")
    lines.append("| Variable | Level | " + " | ".join(group_cols) + " |")
    lines.append("|---|---|" + "---|" * len(group_cols))
    for _, row in summary.iterrows():
        lines.append(
            f"| {row['variable']} | {row['level']} | "
            + " | ".join(str(row[c]) for c in group_cols)
            + " |"
        )
    lines.append("")

    # Correlation
    corr = correlation_matrix(df)
    lines.append("## Correlation (Pearson)")
    lines.append("")
    lines.append("| | " + " | ".join(corr.columns) + " |")
    lines.append("|---|" + "---|" * len(corr.columns))
    for name, row in corr.iterrows():
        lines.append(f"| {name} | " + " | ".join(f"{v:.3f}" for v in row) + " |")
    lines.append("")

    # VIF
    vif = compute_vif(df, target_col=target_col, severe_threshold=severe_threshold)
    lines.append("## Variance Inflation Factors")
    lines.append("")
    lines.append("| Feature | VIF | Collinearity |")
    lines.append("|---|---|---|")
    for _, row in vif.iterrows():
        marker = " **(review)**" if row["flagged"] else ""
        lines.append(f"| {row['feature']} | {row['vif']:.3f} | {row['level']}{marker} |")
    lines.append("")
    lines.append(
        f"VIF near 1 indicates negligible collinearity, 1-{severe_threshold:g} moderate, "
        f"above {severe_threshold:g} severe. Dropping a flagged feature is left to the analyst."
    )
    lines.append("")

    report = "\n".join(lines)

    # Write to file if path provided
    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report)

    return report
