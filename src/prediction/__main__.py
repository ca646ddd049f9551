"""CLI entry point for scoring novel records with a finalized model.

Usage:
    python -m src.prediction --record record.json [--model PATH]
"""

import argparse
import json
import logging
from pathlib import Path

from src.ingestion.schema import DeploymentScoringError
from src.prediction.evaluate import score
from src.prediction.model import load_model


logger = logging.getLogger(__name__)


def main():
    """Score one or more novel records with a saved final model."""
    parser = argparse.ArgumentParser(
        description="Score novel encounters with a finalized readmission model",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--model",
        "-m",
        type=Path,
        default=Path("outputs/models/final_model.pkl"),
        help="Path to finalized model bundle",
    )
    parser.add_argument(
        "--record",
        "-r",
        type=Path,
        required=True,
        help="JSON file with one record (object) or several (array of objects)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not args.model.exists():
        logger.error(f"Model file not found: {args.model}")
        return 1

    if not args.record.exists():
        logger.error(f"Record file not found: {args.record}")
        return 1

    model = load_model(args.model)
    logger.info(f"Loaded {model.candidate} trained on {model.n_train:,} rows")

    payload = json.loads(args.record.read_text())
    records = payload if isinstance(payload, list) else [payload]

    exit_code = 0
    for i, record in enumerate(records):
        try:
            result = score(model, record)
        except DeploymentScoringError as e:
            logger.error(f"Record {i}: {e}")
            exit_code = 1
            continue

        probs = result["class_probabilities"]
        print(
            f"Record {i}: {result['predicted_class']} "
            f"(P(No)={probs['No']:.4f}, P(Yes)={probs['Yes']:.4f})"
        )

    return exit_code


if __name__ == "__main__":
    exit(main())
