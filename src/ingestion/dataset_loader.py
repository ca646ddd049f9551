"""Diabetic encounter dataset loader.

Reads the delimited encounter file, applies the declared schema and derives
the binary 30-day readmission target.
"""

import logging
from pathlib import Path
from typing import Mapping, Union

import numpy as np
import pandas as pd

from src.ingestion.schema import (
    CATEGORICAL_FEATURES,
    COLUMN_ALIASES,
    DATASET_SCHEMA,
    DeploymentScoringError,
    LABEL_COL,
    LABEL_ENCODING,
    NUMERIC_FEATURES,
    PREDICTORS,
    SchemaError,
    TARGET_COL,
)

logger = logging.getLogger(__name__)

# Placeholders the source exports use for unrecorded values. Other pandas
# defaults stay text: "None" is a recorded HbA1c result, not a missing one.
MISSING_MARKERS = ["?", ""]

# Raw column names holding categorical values. They are read as text so a
# numerically coded level ("7") keeps the spelling scoring records use.
_CATEGORICAL_RAW_NAMES = set(CATEGORICAL_FEATURES) | {
    raw for raw, name in COLUMN_ALIASES.items() if name in CATEGORICAL_FEATURES
}


def load_dataset(path: Path, sep: str = ",") -> pd.DataFrame:
    """Load and recode the encounter dataset from a delimited file.

    Args:
        path: Path to the CSV (or other delimited) file.
        sep: Field delimiter.

    Returns:
        Dataset with typed columns, the original label and the derived target.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        SchemaError: If required columns are missing or values are out of schema.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")

    header = pd.read_csv(path, sep=sep, nrows=0).columns
    text_columns = {c: str for c in header if c in _CATEGORICAL_RAW_NAMES}

    raw = pd.read_csv(
        path,
        sep=sep,
        dtype=text_columns,
        na_values=MISSING_MARKERS,
        keep_default_na=False,
    )
    logger.info(f"Read {len(raw):,} rows from {path.name}")

    return prepare_dataset(raw)


def prepare_dataset(raw: pd.DataFrame) -> pd.DataFrame:
    """Apply the declared schema to a raw frame.

    Renames known raw aliases, checks every schema column is present,
    converts categorical columns to text ``category`` dtype and numeric columns
    to numbers, then derives ``readmitted_30d`` from the ``readmitted``
    label ("No" -> 0, "Yes" -> 1). The label column is kept for display.
    Columns outside the schema are dropped.
    """
    df = raw.rename(columns={k: v for k, v in COLUMN_ALIASES.items() if k in raw.columns})

    required = [c.name for c in DATASET_SCHEMA]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(f"Missing required columns: {', '.join(missing)}")

    df = df[required].copy()

    for col in CATEGORICAL_FEATURES:
        df[col] = _level_text(df[col]).astype("category")

    for col in NUMERIC_FEATURES:
        try:
            df[col] = pd.to_numeric(df[col])
        except (ValueError, TypeError) as e:
            raise SchemaError(f"Column {col} must be numeric: {e}") from e

    df[TARGET_COL] = _encode_label(df[LABEL_COL])
    df[LABEL_COL] = df[LABEL_COL].astype("category")

    n_positive = int(df[TARGET_COL].sum())
    logger.info(
        f"  Class distribution: {n_positive} readmitted, {len(df) - n_positive} not readmitted"
    )

    return df.reset_index(drop=True)


def _encode_label(label: pd.Series) -> pd.Series:
    """Map the textual outcome to 0/1, rejecting anything outside {No, Yes}."""
    values = label.astype("object")

    if values.isna().any():
        raise SchemaError(f"Outcome label {LABEL_COL} has {int(values.isna().sum())} missing values")

    values = values.astype(str).str.strip()
    invalid = sorted(set(values) - set(LABEL_ENCODING))
    if invalid:
        raise SchemaError(
            f"Outcome label {LABEL_COL} must be one of {sorted(LABEL_ENCODING)}, "
            f"found: {', '.join(invalid)}"
        )

    return values.map(LABEL_ENCODING).astype(int)


def _level_text(values: pd.Series) -> pd.Series:
    """Categorical values as strings, keeping missing values missing.

    Integral numbers lose the ".0" that float parsing adds, so a code read
    as 7.0 and a record giving 7 both become "7".
    """
    def to_text(value) -> str:
        if isinstance(value, (float, np.floating)) and float(value).is_integer():
            return str(int(value))
        return str(value)

    return values.astype(object).map(to_text, na_action="ignore")


def validate_scoring_record(
    record: Union[Mapping, pd.Series, pd.DataFrame],
) -> pd.DataFrame:
    """Validate a novel record and return it as a one-row frame.

    Categorical values are not checked against known levels; unseen levels
    are handled by the preprocessing recipe.

    Raises:
        DeploymentScoringError: If a predictor is missing or null, a numeric
            field is not a number, or more than one record is given.
    """
    if isinstance(record, pd.DataFrame):
        frame = record.copy()
    elif isinstance(record, pd.Series):
        frame = record.to_frame().T
    elif isinstance(record, Mapping):
        frame = pd.DataFrame([dict(record)])
    else:
        raise DeploymentScoringError(
            f"Record must be a mapping, Series or DataFrame, got {type(record).__name__}"
        )

    if len(frame) != 1:
        raise DeploymentScoringError(f"Expected a single record, got {len(frame)}")

    frame = frame.rename(columns={k: v for k, v in COLUMN_ALIASES.items() if k in frame.columns})

    missing = [c for c in PREDICTORS if c not in frame.columns]
    if missing:
        raise DeploymentScoringError(f"Record is missing fields: {', '.join(missing)}")

    frame = frame[PREDICTORS].reset_index(drop=True)

    nulls = [c for c in PREDICTORS if pd.isna(frame.at[0, c])]
    if nulls:
        raise DeploymentScoringError(f"Record has empty fields: {', '.join(nulls)}")

    for col in NUMERIC_FEATURES:
        value = frame.at[0, col]
        if isinstance(value, bool):
            raise DeploymentScoringError(f"Field {col} must be numeric, got {value!r}")
        try:
            frame[col] = pd.to_numeric(frame[col]).astype(float)
        except (ValueError, TypeError) as e:
            raise DeploymentScoringError(f"Field {col} must be numeric, got {value!r}") from e

    for col in CATEGORICAL_FEATURES:
        frame[col] = _level_text(frame[col])

    return frame
