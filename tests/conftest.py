import pytest
import numpy as np
import pandas as pd
from pathlib import Path
from config.settings import Settings


RACES = ["Caucasian", "AfricanAmerican", "Hispanic", "Other"]
SEXES = ["Female", "Male"]
AGES = ["[50-60)", "[60-70)", "[70-80)", "[80-90)"]
HBA1C = ["None", "Norm", ">7", ">8"]
YES_NO = ["No", "Yes"]
ADMIT_SOURCES = ["Emerg", "Referral", "Other"]
INSULIN = ["No", "Steady", "Up", "Down"]


def make_encounters(n: int = 240, seed: int = 42) -> pd.DataFrame:
    """Raw encounter rows shaped like the input CSV.

    Readmission depends on prior visits and stay length so models can beat
    chance by a clear margin; a little under half of rows are readmitted.
    """
    rng = np.random.default_rng(seed)

    num_visits = rng.poisson(1.0, n)
    time_in_hospital = rng.integers(1, 15, n)
    num_medications = np.clip(rng.normal(16, 6, n).round(), 1, 60).astype(int)
    num_diagnoses = np.clip(rng.normal(7, 2, n).round(), 1, 16).astype(int)

    logit = -3.0 + 1.8 * num_visits + 0.15 * time_in_hospital
    prob = 1.0 / (1.0 + np.exp(-logit))
    readmitted = np.where(rng.random(n) < prob, "Yes", "No")

    return pd.DataFrame({
        "race": rng.choice(RACES, n),
        "sex": rng.choice(SEXES, n),
        "age": rng.choice(AGES, n),
        "time_in_hospital": time_in_hospital,
        "hba1c": rng.choice(HBA1C, n),
        "diabetes_med": rng.choice(YES_NO, n),
        "admit_source": rng.choice(ADMIT_SOURCES, n),
        "num_visits": num_visits,
        "num_medications": num_medications,
        "num_diagnoses": num_diagnoses,
        "insulin": rng.choice(INSULIN, n),
        "readmitted": readmitted,
    })


@pytest.fixture
def raw_encounters() -> pd.DataFrame:
    """240 raw encounter rows with both outcome classes."""
    return make_encounters()


@pytest.fixture
def encounters(raw_encounters) -> pd.DataFrame:
    """Raw encounters with the schema applied."""
    from src.ingestion.dataset_loader import prepare_dataset

    return prepare_dataset(raw_encounters)


@pytest.fixture
def encounters_csv(raw_encounters, tmp_path: Path) -> Path:
    """Raw encounters written to a CSV file."""
    path = tmp_path / "encounters.csv"
    raw_encounters.to_csv(path, index=False)
    return path


@pytest.fixture
def novel_record() -> dict:
    """One scoring record with every predictor and no outcome."""
    return {
        "race": "Caucasian",
        "sex": "Female",
        "age": "[70-80)",
        "time_in_hospital": 5,
        "hba1c": ">8",
        "diabetes_med": "Yes",
        "admit_source": "Emerg",
        "num_visits": 2,
        "num_medications": 18,
        "num_diagnoses": 9,
        "insulin": "Up",
    }


@pytest.fixture
def test_settings(tmp_path: Path, encounters_csv: Path, monkeypatch) -> Settings:
    """Fast settings: few folds, tiny grids, no plots, isolated from .env."""
    monkeypatch.chdir(tmp_path)
    return Settings(
        data_path=encounters_csv,
        cv_folds=3,
        grid_size=2,
        candidates=["logistic_regression", "decision_tree", "naive_bayes"],
        make_plots=False,
    )
