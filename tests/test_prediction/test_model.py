"""Test suite for model finalization, persistence and novel-record scoring.

Verifies:
- Refitting the same candidate on the same rows is deterministic
- The saved bundle carries the fitted recipe
- Scoring one record returns a class and probabilities summing to 1
- Unseen category values score without error
- Invalid records raise DeploymentScoringError
"""

import pytest
import numpy as np

from src.ingestion.dataset_loader import validate_scoring_record
from src.ingestion.schema import DeploymentScoringError
from src.prediction.candidates import get_candidate
from src.prediction.evaluate import score
from src.prediction.model import FinalModel, finalize, load_model, save_model


LOGIT_PARAMS = {"C": 1.0, "l1_ratio": 0.5}


@pytest.fixture
def logit_model(encounters) -> FinalModel:
    return finalize(get_candidate("logistic_regression"), LOGIT_PARAMS, encounters)


class TestFinalize:
    """Finalization refits one configuration on all given rows."""

    def test_fits_on_all_rows(self, encounters, logit_model):
        assert logit_model.candidate == "logistic_regression"
        assert logit_model.params == LOGIT_PARAMS
        assert logit_model.n_train == len(encounters)

    def test_deterministic(self, encounters):
        """Twice on the same rows yields identical coefficients."""
        a = finalize(get_candidate("logistic_regression"), LOGIT_PARAMS, encounters)
        b = finalize(get_candidate("logistic_regression"), LOGIT_PARAMS, encounters)
        np.testing.assert_array_equal(a.estimator.coef_, b.estimator.coef_)

    def test_deterministic_boosted_trees(self, encounters):
        params = {"n_estimators": 20, "max_depth": 3, "learning_rate": 0.1}
        a = finalize(get_candidate("boosted_trees"), params, encounters)
        b = finalize(get_candidate("boosted_trees"), params, encounters)
        np.testing.assert_array_equal(
            a.predict_proba(encounters), b.predict_proba(encounters)
        )

    def test_recipe_fitted_on_given_rows(self, encounters, logit_model):
        assert logit_model.recipe.means["num_visits"] == pytest.approx(encounters["num_visits"].mean())

    def test_predict_proba_shape(self, encounters, logit_model):
        proba = logit_model.predict_proba(encounters)
        assert proba.shape == (len(encounters), 2)
        np.testing.assert_allclose(proba.sum(axis=1), 1.0)


class TestSaveLoad:
    """The pickle bundle round-trips recipe and estimator."""

    def test_round_trip(self, encounters, logit_model, tmp_path):
        path = tmp_path / "models" / "final_model.pkl"
        save_model(logit_model, path)

        loaded = load_model(path)
        assert isinstance(loaded, FinalModel)
        assert loaded.feature_names == logit_model.feature_names
        np.testing.assert_allclose(
            loaded.predict_proba(encounters), logit_model.predict_proba(encounters)
        )

    def test_non_model_file_rejected(self, tmp_path):
        import pickle

        path = tmp_path / "other.pkl"
        with open(path, "wb") as f:
            pickle.dump({"not": "a model"}, f)
        with pytest.raises(TypeError):
            load_model(path)


class TestScore:
    """Novel records are scored one at a time."""

    def test_score_record(self, logit_model, novel_record):
        result = score(logit_model, novel_record)

        assert result["predicted_class"] in ("No", "Yes")
        probs = result["class_probabilities"]
        assert set(probs) == {"No", "Yes"}
        assert probs["No"] + probs["Yes"] == pytest.approx(1.0)

    def test_predicted_class_matches_probability(self, logit_model, novel_record):
        result = score(logit_model, novel_record)
        expected = "Yes" if result["class_probabilities"]["Yes"] > 0.5 else "No"
        assert result["predicted_class"] == expected

    def test_unseen_admit_source(self, logit_model, novel_record):
        """'Trauma' was never seen in training and still scores."""
        result = score(logit_model, {**novel_record, "admit_source": "Trauma"})
        assert result["predicted_class"] in ("No", "Yes")

    def test_unseen_level_encodes_as_zero_indicators(self, logit_model, novel_record):
        """An unseen level contributes nothing from its dummy columns."""
        record = validate_scoring_record({**novel_record, "admit_source": "Trauma"})
        transformed = logit_model.transform(record)
        admit_cols = [c for c in transformed.columns if c.startswith("admit_source_")]
        assert (transformed.loc[0, admit_cols] == 0.0).all()

    def test_unseen_level_logged(self, logit_model, novel_record, caplog):
        with caplog.at_level("INFO"):
            score(logit_model, {**novel_record, "admit_source": "Trauma"})
        assert "admit_source=Trauma" in caplog.text

        caplog.clear()
        with caplog.at_level("INFO"):
            score(logit_model, novel_record)
        assert "unseen" not in caplog.text

    def test_loaded_model_scores_identically(self, logit_model, novel_record, tmp_path):
        path = tmp_path / "final_model.pkl"
        save_model(logit_model, path)
        assert score(load_model(path), novel_record) == score(logit_model, novel_record)

    def test_invalid_record_raises(self, logit_model, novel_record):
        record = {k: v for k, v in novel_record.items() if k != "num_visits"}
        with pytest.raises(DeploymentScoringError, match="num_visits"):
            score(logit_model, record)
