#!/usr/bin/env python3
"""Model Comparison Example: Inspect tuning results and score new encounters.

This example loads the cached cross-validation results written by the
pipeline, compares the best configuration of every candidate, and scores a
few novel encounters with the deployed model, including one whose admit
source never appeared in the training data.

Usage:
    python docs/examples/01_model_comparison.py

Prerequisites:
    - Run the pipeline first:
      python -m src.main --data data/raw/diabetic_readmission.csv
"""

from pathlib import Path

from src.prediction.evaluate import METRIC_NAMES, score
from src.prediction.model import load_model
from src.prediction.selection import rank_candidates, select_best
from src.prediction.tuning import load_tuning_results


TUNING_PATH = Path("outputs/tuning/tuning_results.pkl")
MODEL_PATH = Path("outputs/models/final_model.pkl")

EXAMPLE_RECORDS = [
    {
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
    },
    {
        "race": "AfricanAmerican",
        "sex": "Male",
        "age": "[50-60)",
        "time_in_hospital": 2,
        "hba1c": "None",
        "diabetes_med": "No",
        "admit_source": "Trauma",
        "num_visits": 0,
        "num_medications": 7,
        "num_diagnoses": 5,
        "insulin": "No",
    },
]


def compare_candidates(metric: str = "f1"):
    """Print every candidate's best cross-validated configuration."""
    print("=" * 70)
    print(f"Cross-Validated Comparison (ranked by {metric})")
    print("=" * 70)

    results = load_tuning_results(TUNING_PATH)
    ranking = rank_candidates(results, metric=metric)

    header = f"{'Candidate':<22}" + "".join(f"{m:>13}" for m in METRIC_NAMES)
    print(header)
    print("-" * len(header))
    for _, row in ranking.iterrows():
        if row["status"] != "ok":
            print(f"{row['candidate']:<22}{'unusable':>13}")
            continue
        print(f"{row['candidate']:<22}" + "".join(f"{row[m]:>13.4f}" for m in METRIC_NAMES))

    print("\nBest configuration per candidate:")
    for name, result in results.items():
        if not result.usable:
            continue
        best = select_best(result, metric)
        print(f"  {name:<22} {best.config_id}  {metric}={best.mean:.4f} +/- {best.std_err:.4f}")
        print(f"  {'':<22} {best.params}")


def score_examples():
    """Score the example encounters with the deployed model."""
    print("\n" + "=" * 70)
    print("Scoring Novel Encounters")
    print("=" * 70)

    model = load_model(MODEL_PATH)
    print(f"Deployed model: {model.candidate} (fit on {model.n_train:,} encounters)")

    for record in EXAMPLE_RECORDS:
        result = score(model, record)
        probs = result["class_probabilities"]
        print(
            f"  admit_source={record['admit_source']:<10} -> {result['predicted_class']:<4}"
            f"  P(Yes)={probs['Yes']:.3f}"
        )


def main():
    """Run model comparison."""
    missing = [str(p) for p in (TUNING_PATH, MODEL_PATH) if not p.exists()]
    if missing:
        print(f"Error: Missing files: {', '.join(missing)}. Run the pipeline first: python -m src.main")
        return

    compare_candidates()
    score_examples()


if __name__ == "__main__":
    main()
