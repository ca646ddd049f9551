"""Dataset ingestion for the diabetic readmission model comparison.

Schema:
- Declared categorical, numeric and label columns
- Explicit predictor resolution (no implicit "all other columns")
- Error taxonomy for dataset and scoring-record problems

Loading:
- Delimited file reading with raw column aliases
- Categorical coercion and 0/1 target derivation
- Single-record validation for deployment scoring
"""

from src.ingestion.schema import (
    CATEGORICAL_FEATURES,
    NUMERIC_FEATURES,
    PREDICTORS,
    LABEL_COL,
    TARGET_COL,
    DataError,
    SchemaError,
    DeploymentScoringError,
    resolve_predictors,
)
from src.ingestion.dataset_loader import (
    load_dataset,
    prepare_dataset,
    validate_scoring_record,
)

__all__ = [
    # Schema
    "CATEGORICAL_FEATURES",
    "NUMERIC_FEATURES",
    "PREDICTORS",
    "LABEL_COL",
    "TARGET_COL",
    "resolve_predictors",
    # Errors
    "DataError",
    "SchemaError",
    "DeploymentScoringError",
    # Loading
    "load_dataset",
    "prepare_dataset",
    "validate_scoring_record",
]
