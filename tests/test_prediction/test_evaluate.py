"""Test suite for metrics, holdout evaluation, feature importance and reporting."""

import pytest
import numpy as np
import pandas as pd

from src.prediction.candidates import get_candidate
from src.prediction.evaluate import (
    METRIC_NAMES,
    compute_metrics,
    evaluate_model,
    generate_evaluation_report,
    get_feature_importance,
)
from src.prediction.model import finalize
from src.prediction.selection import rank_candidates
from src.prediction.split import stratified_split
from src.prediction.tuning import TuningResult


@pytest.fixture
def split(encounters):
    return stratified_split(encounters, "readmitted_30d", test_size=0.25, random_state=0)


@pytest.fixture
def logit_model(split):
    train_df, _ = split
    return finalize(get_candidate("logistic_regression"), {"C": 1.0, "l1_ratio": 0.0}, train_df)


class TestComputeMetrics:
    """Hand-checked values on a small prediction set."""

    def test_known_values(self):
        y_true = [1, 1, 0, 0, 0]
        y_pred = [1, 0, 0, 0, 1]
        y_proba = [0.9, 0.4, 0.2, 0.1, 0.6]

        metrics = compute_metrics(y_true, y_pred, y_proba)

        assert set(metrics) == set(METRIC_NAMES)
        assert metrics["accuracy"] == pytest.approx(3 / 5)
        assert metrics["sensitivity"] == pytest.approx(1 / 2)
        assert metrics["specificity"] == pytest.approx(2 / 3)
        assert metrics["f1"] == pytest.approx(0.5)
        assert metrics["roc_auc"] == pytest.approx(5 / 6)

    def test_single_class_auc_is_nan(self):
        metrics = compute_metrics([0, 0, 0], [0, 0, 1], [0.1, 0.2, 0.7])
        assert np.isnan(metrics["roc_auc"])
        assert metrics["specificity"] == pytest.approx(2 / 3)
        assert metrics["f1"] == 0.0


class TestEvaluateModel:
    """Holdout evaluation of a finalized model."""

    def test_metrics_in_range(self, split, logit_model):
        _, test_df = split
        metrics = evaluate_model(logit_model, test_df)

        for key in (*METRIC_NAMES, "precision", "auprc"):
            assert 0.0 <= metrics[key] <= 1.0, key

    def test_confusion_matrix_counts(self, split, logit_model):
        _, test_df = split
        cm = evaluate_model(logit_model, test_df)["confusion_matrix"]

        assert cm.shape == (2, 2)
        assert cm.sum() == len(test_df)
        assert cm[1].sum() == test_df["readmitted_30d"].sum()

    def test_predictions_frame(self, split, logit_model):
        _, test_df = split
        predictions = evaluate_model(logit_model, test_df)["predictions"]

        assert list(predictions.columns) == ["actual", "pred_class", "prob_no", "prob_yes"]
        assert predictions.index.equals(test_df.index)
        assert set(predictions["actual"]) <= {"No", "Yes"}
        np.testing.assert_allclose(predictions["prob_no"] + predictions["prob_yes"], 1.0)

    def test_beats_chance_on_learnable_signal(self, split, logit_model):
        _, test_df = split
        assert evaluate_model(logit_model, test_df)["roc_auc"] > 0.6


class TestFeatureImportance:
    """Importance is reported per recipe output column."""

    def test_linear_uses_coefficients(self, logit_model):
        importance = get_feature_importance(logit_model)

        assert list(importance.columns) == ["feature", "importance"]
        assert set(importance["feature"]) == set(logit_model.feature_names)
        assert (importance["importance"] >= 0).all()
        assert importance["importance"].is_monotonic_decreasing

    def test_visits_rank_high(self, logit_model):
        """num_visits drives the synthetic outcome."""
        importance = get_feature_importance(logit_model)
        assert "num_visits" in importance["feature"].head(3).tolist()

    def test_tree_uses_builtin_importance(self, split):
        train_df, _ = split
        model = finalize(get_candidate("random_forest"), {"n_estimators": 20}, train_df)
        importance = get_feature_importance(model)
        assert importance["importance"].sum() == pytest.approx(1.0)

    def test_permutation_for_models_without_importance(self, split):
        train_df, test_df = split
        model = finalize(get_candidate("naive_bayes"), {}, train_df)
        importance = get_feature_importance(model, test_df, test_df["readmitted_30d"], n_repeats=2)
        assert len(importance) == len(model.feature_names)

    def test_permutation_needs_data(self, split):
        train_df, _ = split
        model = finalize(get_candidate("knn"), {"n_neighbors": 5}, train_df)
        with pytest.raises(ValueError, match="pass X and y"):
            get_feature_importance(model)


class TestGenerateEvaluationReport:
    """The markdown report carries metrics, ranking and features."""

    def test_report_written(self, split, logit_model, tmp_path):
        _, test_df = split
        metrics = evaluate_model(logit_model, test_df)
        importance = get_feature_importance(logit_model)
        ranking = rank_candidates({
            "knn": TuningResult(
                candidate="knn",
                configs={"config_01": {}},
                fold_metrics=pd.DataFrame(columns=["config_id", "fold", "metric", "value"]),
            ),
        })

        path = tmp_path / "reports" / "evaluation_report.md"
        generate_evaluation_report(metrics, importance, path, ranking=ranking, model_name="logistic_regression")

        text = path.read_text()
        assert text.startswith("# Model Evaluation Report: logistic_regression")
        assert "## Holdout Performance" in text
        assert "**Actual Yes**" in text
        assert "## Cross-Validation Ranking" in text
        assert "| knn | unusable |" in text
        assert importance.loc[0, "feature"] in text

    def test_report_without_ranking(self, split, logit_model, tmp_path):
        _, test_df = split
        path = tmp_path / "report.md"
        generate_evaluation_report(
            evaluate_model(logit_model, test_df), get_feature_importance(logit_model), path
        )
        assert "Cross-Validation Ranking" not in path.read_text()
