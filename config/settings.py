from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ALL_CANDIDATES = [
    "decision_tree",
    "logistic_regression",
    "naive_bayes",
    "knn",
    "random_forest",
    "svm_linear",
    "svm_rbf",
    "boosted_trees",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_path: Path = Field(default=Path("data/raw/diabetic_readmission.csv"))

    # Reproducibility
    random_seed: int = Field(default=42)

    # Split / resampling
    test_size: float = Field(default=0.2, gt=0.0, lt=1.0)
    cv_folds: int = Field(default=10, ge=2)

    # Tuning
    grid_size: int = Field(default=10, ge=1)
    n_jobs: int = Field(default=1, ge=1)
    selection_metric: Literal[
        "accuracy", "roc_auc", "f1", "sensitivity", "specificity"
    ] = Field(default="f1")
    candidates: list[str] = Field(default_factory=lambda: list(ALL_CANDIDATES))
    final_candidate: str | None = Field(default=None)  # None = top-ranked
    use_cached_tuning: bool = Field(default=False)

    # Feature inspection
    make_plots: bool = Field(default=True)
    vif_severe_threshold: float = Field(default=5.0, gt=1.0)

    @model_validator(mode="after")
    def _validate_candidates(self) -> "Settings":
        unknown = [c for c in self.candidates if c not in ALL_CANDIDATES]
        if unknown:
            raise ValueError(
                f"Unknown candidates: {', '.join(unknown)}. "
                f"Choose from: {', '.join(ALL_CANDIDATES)}"
            )
        if not self.candidates:
            raise ValueError("At least one candidate is required.")
        if self.final_candidate is not None and self.final_candidate not in self.candidates:
            raise ValueError(
                f"FINAL_CANDIDATE '{self.final_candidate}' is not among the tuned candidates."
            )
        return self
