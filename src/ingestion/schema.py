"""Column schema for the diabetic encounter dataset.

Every column's type is declared here up front rather than inferred from
file content. The predictor list is explicit: callers resolve the columns
they want through ``resolve_predictors`` instead of "all other columns".
"""

from dataclasses import dataclass
from typing import Literal


class DataError(ValueError):
    """Dataset content is unusable for modeling."""


class SchemaError(DataError):
    """Input is missing a required column or holds an out-of-schema value."""


class DeploymentScoringError(ValueError):
    """A single novel record failed validation before scoring."""


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    kind: Literal["categorical", "numeric", "label"]
    description: str = ""


DATASET_SCHEMA: tuple[ColumnSpec, ...] = (
    ColumnSpec("race", "categorical", "Patient race"),
    ColumnSpec("sex", "categorical", "Patient sex"),
    ColumnSpec("age", "categorical", "Age bracket, e.g. [70-80)"),
    ColumnSpec("time_in_hospital", "numeric", "Length of stay in days"),
    ColumnSpec("hba1c", "categorical", "HbA1c result category"),
    ColumnSpec("diabetes_med", "categorical", "Any diabetes medication prescribed"),
    ColumnSpec("admit_source", "categorical", "Admission source"),
    ColumnSpec("num_visits", "numeric", "Number of prior inpatient visits"),
    ColumnSpec("num_medications", "numeric", "Number of distinct medications"),
    ColumnSpec("num_diagnoses", "numeric", "Number of diagnoses entered"),
    ColumnSpec("insulin", "categorical", "Insulin dosage change"),
    ColumnSpec("readmitted", "label", "Readmitted within 30 days (Yes/No)"),
)

CATEGORICAL_FEATURES = [c.name for c in DATASET_SCHEMA if c.kind == "categorical"]
NUMERIC_FEATURES = [c.name for c in DATASET_SCHEMA if c.kind == "numeric"]
PREDICTORS = [c.name for c in DATASET_SCHEMA if c.kind != "label"]

LABEL_COL = "readmitted"
TARGET_COL = "readmitted_30d"
LABEL_ENCODING = {"No": 0, "Yes": 1}
CLASS_LABELS = {v: k for k, v in LABEL_ENCODING.items()}

# Raw column names seen in exports of the source data
COLUMN_ALIASES = {
    "gender": "sex",
    "A1Cresult": "hba1c",
    "a1c_result": "hba1c",
    "diabetesMed": "diabetes_med",
    "admission_source": "admit_source",
    "admission_source_id": "admit_source",
    "number_inpatient": "num_visits",
    "num_inpatient": "num_visits",
    "number_diagnoses": "num_diagnoses",
}


def resolve_predictors(columns: list[str] | None = None) -> list[str]:
    """Resolve an explicit predictor list against the schema.

    Args:
        columns: Requested predictor names. None selects every predictor.

    Returns:
        Predictor names in schema order.

    Raises:
        SchemaError: If a requested column is not a schema predictor.
    """
    if columns is None:
        return list(PREDICTORS)

    unknown = [c for c in columns if c not in PREDICTORS]
    if unknown:
        raise SchemaError(f"Not a schema predictor: {', '.join(unknown)}")

    return [c for c in PREDICTORS if c in columns]
