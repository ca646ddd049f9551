"""Prediction module for 30-day readmission model comparison.

This module splits the data, tunes the candidate classifiers, selects and
finalizes one, and evaluates and scores with it.

Data Splitting:
- Seeded stratified train/test split preserving class balance
- Seeded stratified k-fold partition of the training rows

Candidates and Tuning:
- Registry of eight classifier families with hyperparameter search spaces
- Latin-hypercube grid sampling
- Cross-validated tuning with per-fold failure isolation
- Tuning-result caching with data fingerprints

Selection and Finalization:
- Candidate ranking on cross-validated metrics
- Best-configuration selection with deterministic tie-breaking
- Refit on training or full data; pickle persistence with the fitted recipe

Evaluation:
- Accuracy, ROC-AUC, F1, sensitivity, specificity, confusion matrix
- Novel-record scoring
- Feature importance extraction
- Markdown report generation
"""

from src.prediction.split import (
    FoldPartition,
    make_folds,
    stratified_split,
)
from src.prediction.candidates import (
    CANDIDATE_NAMES,
    Hyperparameter,
    ModelCandidate,
    default_candidates,
    get_candidate,
    sample_grid,
)
from src.prediction.model import (
    FinalModel,
    build_pipeline,
    finalize,
    save_model,
    load_model,
)
from src.prediction.evaluate import (
    METRIC_NAMES,
    compute_metrics,
    evaluate_model,
    score,
    get_feature_importance,
    generate_evaluation_report,
)
from src.prediction.tuning import (
    CrossValidatedGridSearch,
    FitFailure,
    StaleCacheError,
    TuningEngine,
    TuningResult,
    aggregate_fold_metrics,
    dataset_fingerprint,
    load_tuning_results,
    save_tuning_results,
    tune_candidates,
)
from src.prediction.selection import (
    CandidateUnusable,
    SelectedConfig,
    rank_candidates,
    select_best,
    usable_candidates,
)

__all__ = [
    # Data splitting
    "FoldPartition",
    "make_folds",
    "stratified_split",
    # Candidate registry
    "CANDIDATE_NAMES",
    "Hyperparameter",
    "ModelCandidate",
    "default_candidates",
    "get_candidate",
    "sample_grid",
    # Tuning
    "CrossValidatedGridSearch",
    "FitFailure",
    "StaleCacheError",
    "TuningEngine",
    "TuningResult",
    "aggregate_fold_metrics",
    "dataset_fingerprint",
    "load_tuning_results",
    "save_tuning_results",
    "tune_candidates",
    # Selection and finalization
    "CandidateUnusable",
    "SelectedConfig",
    "rank_candidates",
    "select_best",
    "usable_candidates",
    "FinalModel",
    "build_pipeline",
    "finalize",
    "save_model",
    "load_model",
    # Evaluation and reporting
    "METRIC_NAMES",
    "compute_metrics",
    "evaluate_model",
    "score",
    "get_feature_importance",
    "generate_evaluation_report",
]
