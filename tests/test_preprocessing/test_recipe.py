"""Test suite for the preprocessing recipe.

Verifies that fitted state comes from training rows only and that every
transform shares one column layout:
- Normalization with training mean / population standard deviation
- Median imputation
- Unseen categories routed to the reserved "new" level
- Zero-variance column removal
- Idempotent, input-preserving transforms
"""

import pytest
import numpy as np
import pandas as pd
from sklearn.base import clone

from src.ingestion.schema import SchemaError
from src.preprocessing.recipe import (
    NOVEL_LEVEL,
    UNKNOWN_LEVEL,
    Recipe,
    apply_recipe,
    fit_recipe,
    route_levels,
)


@pytest.fixture
def admit_training() -> pd.DataFrame:
    """Training rows that only ever saw three admit sources."""
    return pd.DataFrame({
        "num_visits": [0.0, 1.0, 2.0, 3.0, 4.0, 2.0],
        "admit_source": ["Emerg", "Referral", "Other", "Emerg", "Referral", "Other"],
        "sex": ["Male", "Female", "Male", "Female", "Male", "Female"],
    })


@pytest.fixture
def admit_recipe(admit_training):
    return fit_recipe(admit_training, ["num_visits"], ["admit_source", "sex"])


class TestFitRecipe:
    """Fitted state is learned from the training rows."""

    def test_normalization_statistics(self, admit_training, admit_recipe):
        assert admit_recipe.means["num_visits"] == pytest.approx(admit_training["num_visits"].mean())
        assert admit_recipe.stds["num_visits"] == pytest.approx(admit_training["num_visits"].std(ddof=0))

    def test_median_statistic(self, admit_recipe):
        assert admit_recipe.medians["num_visits"] == pytest.approx(2.0)

    def test_levels_include_reserved_novel_level(self, admit_recipe):
        assert admit_recipe.levels["admit_source"] == ("Emerg", "Other", "Referral", NOVEL_LEVEL)

    def test_novel_level_has_no_column(self, admit_recipe):
        """The reserved level never appears in training, so it gets no indicator."""
        assert "admit_source_new" not in admit_recipe.columns
        assert admit_recipe.dropped == ()

    def test_column_layout(self, admit_recipe):
        assert admit_recipe.columns == (
            "num_visits",
            "admit_source_Emerg",
            "admit_source_Other",
            "admit_source_Referral",
            "sex_Female",
            "sex_Male",
        )

    def test_constant_numeric_dropped(self, admit_training):
        df = admit_training.assign(num_visits=1.0)
        fitted = fit_recipe(df, ["num_visits"], ["sex"])
        assert "num_visits" in fitted.dropped
        assert "num_visits" not in apply_recipe(fitted, df).columns

    def test_constant_category_dropped(self, admit_training):
        df = admit_training.assign(sex="Female")
        fitted = fit_recipe(df, ["num_visits"], ["sex"])
        assert fitted.dropped == ("sex_Female",)
        assert not any(c.startswith("sex_") for c in fitted.columns)

    def test_missing_feature_raises(self, admit_training):
        with pytest.raises(SchemaError, match="insulin"):
            fit_recipe(admit_training, ["num_visits"], ["insulin"])

    def test_empty_training_rejected(self, admit_training):
        with pytest.raises(ValueError):
            fit_recipe(admit_training.iloc[0:0], ["num_visits"], ["sex"])

    def test_column_names_are_sanitized(self, encounters):
        fitted = fit_recipe(encounters)
        assert "age_70_80" in fitted.columns
        assert "hba1c_gt7" in fitted.columns
        assert all("[" not in c and "<" not in c and ">" not in c for c in fitted.columns)


class TestApplyRecipe:
    """Transforms reuse fitted state and never refit."""

    def test_training_transform_is_standardized(self, admit_training, admit_recipe):
        out = apply_recipe(admit_recipe, admit_training)
        assert out["num_visits"].mean() == pytest.approx(0.0, abs=1e-12)
        assert out["num_visits"].std(ddof=0) == pytest.approx(1.0)

    def test_new_rows_use_training_statistics(self, admit_recipe):
        new = pd.DataFrame({"num_visits": [10.0], "admit_source": ["Emerg"], "sex": ["Male"]})
        out = apply_recipe(admit_recipe, new)
        expected = (10.0 - admit_recipe.means["num_visits"]) / admit_recipe.stds["num_visits"]
        assert out.at[0, "num_visits"] == pytest.approx(expected)

    def test_one_hot_encoding(self, admit_recipe):
        new = pd.DataFrame({"num_visits": [1.0], "admit_source": ["Referral"], "sex": ["Female"]})
        out = apply_recipe(admit_recipe, new)
        assert out.at[0, "admit_source_Referral"] == 1.0
        assert out.at[0, "admit_source_Emerg"] == 0.0
        assert out.at[0, "sex_Female"] == 1.0

    def test_idempotent(self, encounters):
        """Applying the same fitted recipe twice gives identical output."""
        fitted = fit_recipe(encounters)
        first = apply_recipe(fitted, encounters)
        second = apply_recipe(fitted, encounters)
        pd.testing.assert_frame_equal(first, second)

    def test_input_not_modified(self, encounters):
        before = encounters.copy()
        apply_recipe(fit_recipe(encounters), encounters)
        pd.testing.assert_frame_equal(encounters, before)

    def test_layout_identical_for_subsets(self, encounters):
        """Test rows and single records get the training layout."""
        fitted = fit_recipe(encounters.iloc[:200])
        train_out = apply_recipe(fitted, encounters.iloc[:200])
        test_out = apply_recipe(fitted, encounters.iloc[200:])
        single_out = apply_recipe(fitted, encounters.iloc[[205]])
        assert list(train_out.columns) == list(fitted.columns)
        assert list(test_out.columns) == list(train_out.columns)
        assert list(single_out.columns) == list(train_out.columns)
        assert (train_out.dtypes == np.float64).all()

    def test_missing_numeric_imputed_with_training_median(self, admit_recipe):
        new = pd.DataFrame({"num_visits": [np.nan], "admit_source": ["Emerg"], "sex": ["Male"]})
        out = apply_recipe(admit_recipe, new)
        expected = (admit_recipe.medians["num_visits"] - admit_recipe.means["num_visits"]) / admit_recipe.stds["num_visits"]
        assert out.at[0, "num_visits"] == pytest.approx(expected)


class TestUnseenCategories:
    """Values never seen in training route to the reserved level."""

    def test_trauma_routed_to_novel_level(self, admit_recipe):
        """Admit source "Trauma" (training saw Emerg/Referral/Other) scores without error."""
        record = pd.DataFrame({"num_visits": [1.0], "admit_source": ["Trauma"], "sex": ["Male"]})

        routed = route_levels(admit_recipe, record)
        assert routed.at[0, "admit_source"] == NOVEL_LEVEL

        out = apply_recipe(admit_recipe, record)
        assert list(out.columns) == list(admit_recipe.columns)
        admit_cols = [c for c in out.columns if c.startswith("admit_source_")]
        assert (out.loc[0, admit_cols] == 0.0).all()

    def test_missing_category_unseen_in_training_is_novel(self, admit_recipe):
        record = pd.DataFrame({"num_visits": [1.0], "admit_source": [None], "sex": ["Male"]})
        routed = route_levels(admit_recipe, record)
        assert routed.at[0, "admit_source"] == NOVEL_LEVEL

    def test_missing_category_seen_in_training_is_unknown(self, admit_training):
        df = admit_training.copy()
        df.loc[0, "admit_source"] = None
        fitted = fit_recipe(df, ["num_visits"], ["admit_source"])
        assert UNKNOWN_LEVEL in fitted.levels["admit_source"]

        record = pd.DataFrame({"num_visits": [1.0], "admit_source": [None]})
        out = apply_recipe(fitted, record)
        assert out.at[0, "admit_source_unknown"] == 1.0

    def test_novel_index_preserved(self, admit_recipe):
        record = pd.DataFrame(
            {"num_visits": [1.0], "admit_source": ["Trauma"], "sex": ["Male"]}, index=[17]
        )
        out = apply_recipe(admit_recipe, record)
        assert list(out.index) == [17]
        assert out.at[17, "sex_Male"] == 1.0


class TestRecipeTransformer:
    """The scikit-learn wrapper behaves like the functional API."""

    def test_fit_transform_matches_functions(self, encounters):
        recipe = Recipe().fit(encounters)
        expected = apply_recipe(fit_recipe(encounters), encounters)
        pd.testing.assert_frame_equal(recipe.transform(encounters), expected)

    def test_feature_names_out(self, encounters):
        recipe = Recipe().fit(encounters)
        assert list(recipe.get_feature_names_out()) == list(recipe.fitted_.columns)

    def test_clone_is_unfitted(self, encounters):
        recipe = Recipe().fit(encounters)
        cloned = clone(recipe)
        assert not hasattr(cloned, "fitted_")

    def test_transform_before_fit_raises(self, encounters):
        from sklearn.exceptions import NotFittedError

        with pytest.raises(NotFittedError):
            Recipe().transform(encounters)
