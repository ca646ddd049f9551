"""Model evaluation, scoring and reporting for readmission prediction.

Provides the classification metrics shared by cross-validation and holdout
evaluation, novel-record scoring, feature importance extraction and the
markdown evaluation report.
"""

from __future__ import annotations

import logging

from pathlib import Path
from typing import Mapping, Union

import numpy as np
import pandas as pd
from sklearn.inspection import permutation_importance
from sklearn.metrics import (
    accuracy_score,
    auc,
    confusion_matrix,
    f1_score,
    precision_recall_curve,
    precision_score,
    recall_score,
    roc_auc_score,
)

from src.ingestion.dataset_loader import validate_scoring_record
from src.ingestion.schema import CLASS_LABELS, PREDICTORS
from src.prediction.model import FinalModel
from src.preprocessing.recipe import NOVEL_LEVEL, route_levels

logger = logging.getLogger(__name__)

# Metrics recorded per fold during tuning and compared across candidates
METRIC_NAMES = ("accuracy", "roc_auc", "f1", "sensitivity", "specificity")


def compute_metrics(
    y_true: Union[pd.Series, np.ndarray],
    y_pred: Union[pd.Series, np.ndarray],
    y_proba: Union[pd.Series, np.ndarray],
) -> dict[str, float]:
    """Compute the comparison metrics for one set of predictions.

    The positive class is 1 (readmitted). Sensitivity is recall of the
    positive class, specificity is recall of the negative class. ROC-AUC is
    NaN when ``y_true`` holds a single class.

    Returns:
        Dictionary keyed by ``METRIC_NAMES``
    """
    y_true = np.asarray(y_true).astype(int)
    y_pred = np.asarray(y_pred).astype(int)
    y_proba = np.asarray(y_proba, dtype=float)

    if len(np.unique(y_true)) < 2:
        roc_auc = float("nan")
    else:
        roc_auc = float(roc_auc_score(y_true, y_proba))

    return {
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "roc_auc": roc_auc,
        "f1": float(f1_score(y_true, y_pred, pos_label=1, zero_division=0)),
        "sensitivity": float(recall_score(y_true, y_pred, pos_label=1, zero_division=0)),
        "specificity": float(recall_score(y_true, y_pred, pos_label=0, zero_division=0)),
    }


def evaluate_model(
    model: FinalModel,
    held_out: pd.DataFrame,
    target_col: str = "readmitted_30d",
) -> dict:
    """Evaluate a finalized model on held-out rows.

    Classes are predicted at the estimator's default decision rule
    (probability 0.5 for probabilistic classifiers).

    Args:
        model: Finalized model (recipe + estimator)
        held_out: Rows with predictors and the target column
        target_col: Binary target column

    Returns:
        Dictionary containing:
            - accuracy, roc_auc, f1, sensitivity, specificity
            - precision: Positive predictive value
            - auprc: Area under precision-recall curve
            - confusion_matrix: 2x2 array, rows actual (0, 1), columns predicted
            - predictions: DataFrame with actual, pred_class, prob_no, prob_yes
    """
    y_test = held_out[target_col].to_numpy().astype(int)
    X_test = held_out[PREDICTORS]

    y_proba = model.predict_proba(X_test)[:, 1]
    y_pred = model.predict(X_test).astype(int)

    metrics = compute_metrics(y_test, y_pred, y_proba)

    if len(np.unique(y_test)) < 2:
        auprc = float("nan")
    else:
        precision_curve, recall_curve, _ = precision_recall_curve(y_test, y_proba)
        auprc = float(auc(recall_curve, precision_curve))

    predictions = pd.DataFrame(
        {
            "actual": [CLASS_LABELS[v] for v in y_test],
            "pred_class": [CLASS_LABELS[v] for v in y_pred],
            "prob_no": 1.0 - y_proba,
            "prob_yes": y_proba,
        },
        index=held_out.index,
    )

    metrics.update({
        "precision": float(precision_score(y_test, y_pred, zero_division=0)),
        "auprc": auprc,
        "confusion_matrix": confusion_matrix(y_test, y_pred, labels=[0, 1]),
        "predictions": predictions,
    })
    return metrics


def score(model: FinalModel, record: Union[Mapping, pd.Series, pd.DataFrame]) -> dict:
    """Score a single novel record.

    The record passes through the model's fitted recipe; categorical values
    never seen during fitting fall into the reserved novel level.

    Returns:
        {"predicted_class": "Yes" | "No",
         "class_probabilities": {"No": float, "Yes": float}}

    Raises:
        DeploymentScoringError: If the record fails validation
    """
    frame = validate_scoring_record(record)

    routed = route_levels(model.recipe, frame)
    unseen = [f"{c}={frame.at[0, c]}" for c in routed.columns if routed.at[0, c] == NOVEL_LEVEL]
    if unseen:
        logger.info(f"Levels unseen in training, encoded as {NOVEL_LEVEL!r}: {', '.join(unseen)}")

    proba = model.predict_proba(frame)[0]
    predicted = int(model.predict(frame)[0])

    return {
        "predicted_class": CLASS_LABELS[predicted],
        "class_probabilities": {
            CLASS_LABELS[0]: float(proba[0]),
            CLASS_LABELS[1]: float(proba[1]),
        },
    }


def get_feature_importance(
    model: FinalModel,
    X: pd.DataFrame | None = None,
    y: Union[pd.Series, np.ndarray, None] = None,
    n_repeats: int = 5,
    random_state: int = 42,
) -> pd.DataFrame:
    """Extract feature importance over the recipe's output columns.

    Linear models use absolute coefficient values, tree ensembles their
    built-in importances. Other families (naive Bayes, k-NN, RBF SVM) use
    permutation importance on the transformed ``X``, which is then required.

    Args:
        model: Finalized model
        X: Predictor rows (raw, before the recipe); needed for permutation importance
        y: Target values matching ``X``
        n_repeats: Permutation repeats
        random_state: Seed for permutation importance

    Returns:
        DataFrame with columns [feature, importance], sorted by importance descending
    """
    estimator = model.estimator
    feature_names = list(model.feature_names)

    if hasattr(estimator, "coef_"):
        importances = np.abs(np.asarray(estimator.coef_)[0])
    elif hasattr(estimator, "feature_importances_"):
        importances = np.asarray(estimator.feature_importances_)
    else:
        if X is None or y is None:
            raise ValueError(
                f"{type(estimator).__name__} has no built-in importance; pass X and y"
            )
        X_transformed = model.transform(X[PREDICTORS])
        result = permutation_importance(
            estimator,
            X_transformed,
            np.asarray(y).astype(int),
            scoring="roc_auc",
            n_repeats=n_repeats,
            random_state=random_state,
        )
        importances = result.importances_mean

    importance_df = pd.DataFrame({
        "feature": feature_names,
        "importance": importances,
    })
    importance_df = importance_df.sort_values("importance", ascending=False).reset_index(drop=True)

    return importance_df


def generate_evaluation_report(
    metrics: dict,
    feature_importance: pd.DataFrame,
    output_path: Path,
    ranking: pd.DataFrame | None = None,
    model_name: str = "",
) -> None:
    """Generate a markdown evaluation report.

    Creates a report with:
    - Holdout performance metrics
    - Confusion matrix
    - Cross-validation ranking of all candidates (when given)
    - Top-20 most important features

    Args:
        metrics: Dictionary of evaluation metrics from evaluate_model()
        feature_importance: DataFrame from get_feature_importance()
        output_path: Path to write the markdown report
        ranking: DataFrame from rank_candidates()
        model_name: Finalized candidate name for the title
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    # Format confusion matrix
    cm = metrics["confusion_matrix"]
    cm_str = f"""| | Predicted No | Predicted Yes |
|---|---|---|
| **Actual No** | {cm[0, 0]} | {cm[0, 1]} |
| **Actual Yes** | {cm[1, 0]} | {cm[1, 1]} |"""

    # Format top-20 features
    top_features = feature_importance.head(20)
    feature_rows = "\n".join(
        f"| {i+1} | {row['feature']} | {row['importance']:.4f} |"
        for i, row in top_features.iterrows()
    )
    features_table = f"""| Rank | Feature | Importance |
|---|---|---|
{feature_rows}"""

    ranking_section = ""
    if ranking is not None:
        ranking_section = "\n## Cross-Validation Ranking\n\n" + _format_ranking(ranking) + "\n"

    title = f"# Model Evaluation Report: {model_name}" if model_name else "# Model Evaluation Report"

    report = f"""{title}

## Holdout Performance

| Metric | Value |
|---|---|
| **Accuracy** | {metrics['accuracy']:.4f} |
| **ROC-AUC** | {metrics['roc_auc']:.4f} |
| **PR-AUC** | {metrics['auprc']:.4f} |
| **Precision** | {metrics['precision']:.4f} |
| **Sensitivity** | {metrics['sensitivity']:.4f} |
| **Specificity** | {metrics['specificity']:.4f} |
| **F1 Score** | {metrics['f1']:.4f} |

## Confusion Matrix

{cm_str}
{ranking_section}
## Top-20 Feature Importance

{features_table}
"""

    output_path.write_text(report)


def _format_ranking(ranking: pd.DataFrame) -> str:
    header = "| Candidate | Status | " + " | ".join(METRIC_NAMES) + " |"
    divider = "|---|---|" + "---|" * len(METRIC_NAMES)
    rows = []
    for _, row in ranking.iterrows():
        if row["status"] == "ok":
            values = " | ".join(f"{row[m]:.4f}" for m in METRIC_NAMES)
        else:
            values = " | ".join("-" for _ in METRIC_NAMES)
        rows.append(f"| {row['candidate']} | {row['status']} | {values} |")
    return "\n".join([header, divider] + rows)
