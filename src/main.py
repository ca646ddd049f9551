"""Main pipeline orchestrator for 30-day readmission model comparison.

Orchestrates the stages of the pipeline:
1. Loading: Read and recode the encounter dataset
2. Inspection: Summary, correlation and VIF report plus plots (advisory)
3. Splitting: Stratified train/test split and training folds
4. Tuning: Cross-validated search over every candidate (or cached results)
5. Selection: Rank candidates, pick the family and its best configuration
6. Evaluation: Refit on training rows, evaluate on the test set
7. Deployment: Refit on all rows and save the model bundle
"""

import argparse
import logging
from pathlib import Path
from typing import Any

import pandas as pd

from config.settings import ALL_CANDIDATES, Settings


logger = logging.getLogger(__name__)


# Default artifact paths
DEFAULT_PATHS = {
    "inspection_report": Path("outputs/reports/feature_inspection.md"),
    "figures": Path("outputs/figures"),
    "tuning_cache": Path("outputs/tuning/tuning_results.pkl"),
    "evaluation_report": Path("outputs/reports/evaluation.md"),
    "predictions": Path("outputs/predictions/test_predictions.csv"),
    "final_model": Path("outputs/models/final_model.pkl"),
}


def artifact_paths(output_dir: Path) -> dict[str, Path]:
    """Artifact paths rooted at ``output_dir``."""
    return {
        "inspection_report": output_dir / "feature_inspection.md",
        "figures": output_dir / "figures",
        "tuning_cache": output_dir / "tuning_results.pkl",
        "evaluation_report": output_dir / "evaluation.md",
        "predictions": output_dir / "test_predictions.csv",
        "final_model": output_dir / "final_model.pkl",
    }


def run_pipeline(
    settings: Settings,
    paths: dict[str, Path] | None = None,
    data: pd.DataFrame | None = None,
) -> dict[str, Any]:
    """Orchestrate the complete model comparison pipeline.

    Args:
        settings: Pipeline configuration settings
        paths: Override default artifact paths (uses DEFAULT_PATHS if None)
        data: Already-loaded dataset; read from ``settings.data_path`` if None

    Returns:
        Dictionary containing:
            - n_rows: Number of encounters loaded
            - split: (n_train, n_test)
            - vif: VIF table
            - tuning: Mapping of candidate name to TuningResult
            - ranking: Candidate ranking table
            - final_candidate: Name of the finalized candidate
            - selected: SelectedConfig for that candidate
            - metrics: Holdout evaluation metrics
            - importance: Feature importance table
            - artifact_paths: Paths to generated artifacts

    Raises:
        SchemaError: If the dataset does not match the schema
        CandidateUnusable: If no candidate produced a successful fit
    """
    from src.ingestion.dataset_loader import load_dataset
    from src.ingestion.schema import PREDICTORS, TARGET_COL
    from src.feature_analysis.inspection import compute_vif, generate_inspection_report
    from src.prediction.candidates import get_candidate
    from src.prediction.split import make_folds, stratified_split
    from src.prediction.tuning import CrossValidatedGridSearch, dataset_fingerprint
    from src.prediction.selection import (
        CandidateUnusable,
        rank_candidates,
        select_best,
        usable_candidates,
    )
    from src.prediction.model import finalize, save_model
    from src.prediction.evaluate import (
        evaluate_model,
        generate_evaluation_report,
        get_feature_importance,
    )
    from src.preprocessing.recipe import Recipe

    paths = paths or DEFAULT_PATHS.copy()

    result: dict[str, Any] = {
        "n_rows": 0,
        "split": (0, 0),
        "metrics": {},
        "artifact_paths": paths,
    }

    # Stage 1: Loading
    if data is None:
        logger.info(f"Stage 1: Loading dataset from {settings.data_path}...")
        data = load_dataset(settings.data_path)
    else:
        logger.info("Stage 1: Using provided dataset")
    result["n_rows"] = len(data)

    # Stage 2: Inspection
    logger.info("Stage 2: Inspecting features...")
    generate_inspection_report(
        data,
        output_path=paths["inspection_report"],
        severe_threshold=settings.vif_severe_threshold,
    )
    result["vif"] = compute_vif(data, severe_threshold=settings.vif_severe_threshold)
    logger.info(f"  Report saved to {paths['inspection_report']}")

    if settings.make_plots:
        from src.feature_analysis.plots import save_exploratory_plots

        figures = save_exploratory_plots(data, paths["figures"])
        logger.info(f"  Saved {len(figures)} figures to {paths['figures']}")

    # Stage 3: Splitting
    logger.info("Stage 3: Splitting data...")
    train_df, test_df = stratified_split(
        data,
        target_col=TARGET_COL,
        test_size=settings.test_size,
        random_state=settings.random_seed,
    )
    result["split"] = (len(train_df), len(test_df))
    logger.info(f"  Split: train={len(train_df)}, test={len(test_df)}")

    folds = make_folds(
        train_df,
        target_col=TARGET_COL,
        n_splits=settings.cv_folds,
        random_state=settings.random_seed,
    )

    # Stage 4: Tuning
    logger.info("Stage 4: Tuning candidates...")
    candidates = [get_candidate(name, settings.random_seed) for name in settings.candidates]
    recipe = Recipe()
    tuning = _tune_or_load_cached(
        settings=settings,
        candidates=candidates,
        recipe=recipe,
        folds=folds,
        cache_path=paths["tuning_cache"],
        fingerprint=dataset_fingerprint(folds.data),
        engine=CrossValidatedGridSearch(n_jobs=settings.n_jobs, seed=settings.random_seed),
    )
    result["tuning"] = tuning

    # Stage 5: Selection
    logger.info(f"Stage 5: Ranking candidates by {settings.selection_metric}...")
    ranking = rank_candidates(tuning, metric=settings.selection_metric)
    result["ranking"] = ranking
    _log_ranking(ranking)

    ranked = usable_candidates(ranking)
    if not ranked:
        raise CandidateUnusable("Every candidate failed to fit; nothing to finalize")

    if settings.final_candidate is not None:
        final_name = settings.final_candidate
        logger.info(f"  Finalizing operator-chosen candidate: {final_name}")
    else:
        final_name = ranked[0]
        logger.info(
            f"  No final candidate configured; taking top-ranked {final_name} "
            f"by {settings.selection_metric}"
        )

    selected = select_best(tuning[final_name], metric=settings.selection_metric)
    result["final_candidate"] = final_name
    result["selected"] = selected
    logger.info(
        f"  Best {final_name} config {selected.config_id}: "
        f"{settings.selection_metric}={selected.mean:.4f} (se {selected.std_err:.4f})"
    )

    # Stage 6: Evaluation on held-out test rows
    logger.info("Stage 6: Evaluating on test set...")
    final_candidate = get_candidate(final_name, settings.random_seed)
    train_model = finalize(final_candidate, selected.params, train_df, recipe, TARGET_COL)

    metrics = evaluate_model(train_model, test_df, TARGET_COL)
    importance = get_feature_importance(
        train_model,
        X=test_df[PREDICTORS],
        y=test_df[TARGET_COL],
        random_state=settings.random_seed,
    )
    generate_evaluation_report(
        metrics,
        importance,
        paths["evaluation_report"],
        ranking=ranking,
        model_name=final_name,
    )
    paths["predictions"].parent.mkdir(parents=True, exist_ok=True)
    metrics["predictions"].to_csv(paths["predictions"], index_label="row")

    result["metrics"] = metrics
    result["importance"] = importance
    logger.info(
        f"  Test F1: {metrics['f1']:.4f}, ROC-AUC: {metrics['roc_auc']:.4f}, "
        f"accuracy: {metrics['accuracy']:.4f}"
    )

    # Stage 7: Deployment refit on every row
    logger.info("Stage 7: Refitting on the full dataset...")
    deployed = finalize(final_candidate, selected.params, data, recipe, TARGET_COL)
    deployed.metadata.update({
        "selection_metric": settings.selection_metric,
        "cv_mean": selected.mean,
        "test_metrics": {k: metrics[k] for k in ("accuracy", "roc_auc", "f1", "sensitivity", "specificity")},
        "random_seed": settings.random_seed,
    })
    save_model(deployed, paths["final_model"])
    result["final_model"] = deployed
    logger.info(f"  Model saved to {paths['final_model']}")

    return result


def _tune_or_load_cached(
    settings: Settings,
    candidates,
    recipe,
    folds,
    cache_path: Path,
    fingerprint: str,
    engine,
) -> dict:
    """Read cached tuning results when asked to, otherwise tune and cache.

    The cache is used only when ``settings.use_cached_tuning`` is set. A
    cache built on different training rows or settings is ignored.
    """
    from src.prediction.tuning import (
        StaleCacheError,
        load_tuning_results,
        save_tuning_results,
        tune_candidates,
    )

    metadata = {
        "random_seed": settings.random_seed,
        "cv_folds": settings.cv_folds,
        "grid_size": settings.grid_size,
    }
    names = [c.name for c in candidates]

    if settings.use_cached_tuning:
        try:
            cached = load_tuning_results(
                cache_path,
                expected_fingerprint=fingerprint,
                expected_metadata=metadata,
            )
        except FileNotFoundError:
            logger.warning(f"  No tuning cache at {cache_path}; tuning from scratch")
        except StaleCacheError as e:
            logger.warning(f"  Ignoring stale tuning cache: {e}")
        else:
            missing = [n for n in names if n not in cached]
            if not missing:
                logger.info(f"  Loaded cached tuning results from {cache_path}")
                return {n: cached[n] for n in names}
            logger.warning(
                f"  Tuning cache lacks {', '.join(missing)}; tuning from scratch"
            )

    tuning = tune_candidates(
        candidates,
        recipe,
        folds,
        engine=engine,
        grid_size=settings.grid_size,
    )
    save_tuning_results(tuning, cache_path, fingerprint=fingerprint, metadata=metadata)
    logger.info(f"  Tuning results cached to {cache_path}")
    return tuning


def _log_ranking(ranking: pd.DataFrame) -> None:
    for _, row in ranking.iterrows():
        if row["status"] == "ok":
            logger.info(
                f"    {row['candidate']:<20} f1={row['f1']:.4f} roc_auc={row['roc_auc']:.4f} "
                f"acc={row['accuracy']:.4f} sens={row['sensitivity']:.4f} spec={row['specificity']:.4f}"
            )
        else:
            logger.info(f"    {row['candidate']:<20} unusable")


def main():
    """CLI entry point for the pipeline."""
    parser = argparse.ArgumentParser(
        description="Run the readmission model comparison pipeline",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--data",
        type=Path,
        default=None,
        help="Path to the encounter CSV (overrides DATA_PATH)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory for artifacts",
    )
    parser.add_argument(
        "--load-cached",
        action="store_true",
        help="Reuse cached tuning results when they match the current data",
    )
    parser.add_argument(
        "--candidates",
        nargs="+",
        default=None,
        choices=ALL_CANDIDATES,
        help="Candidates to tune (default: all)",
    )
    parser.add_argument(
        "--final-candidate",
        type=str,
        default=None,
        choices=ALL_CANDIDATES,
        help="Candidate family to finalize (default: top-ranked)",
    )
    parser.add_argument(
        "--grid-size",
        type=int,
        default=0,
        help="Hyperparameter combinations per candidate (0 = from settings)",
    )
    parser.add_argument(
        "--folds",
        type=int,
        default=0,
        help="Cross-validation folds (0 = from settings)",
    )
    parser.add_argument(
        "--n-jobs",
        type=int,
        default=0,
        help="Parallel cross-validation workers (0 = from settings)",
    )
    parser.add_argument(
        "--no-plots",
        action="store_true",
        help="Skip exploratory figures",
    )
    parser.add_argument(
        "--verbose",
        "-v",
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

    # Load settings
    settings = Settings()

    # Override settings from CLI args
    updates = {}
    if args.data is not None:
        updates["data_path"] = args.data
    if args.load_cached:
        updates["use_cached_tuning"] = True
    if args.candidates:
        updates["candidates"] = args.candidates
    if args.final_candidate:
        updates["final_candidate"] = args.final_candidate
    if args.grid_size > 0:
        updates["grid_size"] = args.grid_size
    if args.folds > 0:
        updates["cv_folds"] = args.folds
    if args.n_jobs > 0:
        updates["n_jobs"] = args.n_jobs
    if args.no_plots:
        updates["make_plots"] = False

    if updates:
        # Re-validate so CLI overrides obey the same constraints as .env values
        settings = Settings(**{**settings.model_dump(), **updates})

    # Setup paths
    paths = DEFAULT_PATHS.copy()
    if args.output_dir:
        paths = artifact_paths(args.output_dir)

    if not settings.data_path.exists():
        logger.error(f"Dataset not found: {settings.data_path}")
        return 1

    # Run the pipeline
    logger.info("Starting readmission model comparison pipeline...")
    from src.ingestion.schema import SchemaError
    from src.prediction.selection import CandidateUnusable

    try:
        result = run_pipeline(settings=settings, paths=paths)
    except SchemaError as e:
        logger.error(f"Dataset rejected: {e}")
        return 1
    except CandidateUnusable as e:
        logger.error(str(e))
        return 1

    # Print summary
    print("\n" + "=" * 60)
    print("Pipeline Complete")
    print("=" * 60)
    print(f"  Encounters: {result['n_rows']:,}")
    print(f"  Train/Test: {result['split'][0]:,} / {result['split'][1]:,}")
    print(f"\nCross-validated ranking ({settings.selection_metric}):")
    for _, row in result["ranking"].iterrows():
        if row["status"] == "ok":
            print(f"  {row['candidate']:<20} {row[settings.selection_metric]:.4f}")
        else:
            print(f"  {row['candidate']:<20} unusable")

    metrics = result["metrics"]
    print(f"\nFinal model: {result['final_candidate']} {result['selected'].params}")
    print(f"  Accuracy:    {metrics['accuracy']:.4f}")
    print(f"  ROC-AUC:     {metrics['roc_auc']:.4f}")
    print(f"  F1:          {metrics['f1']:.4f}")
    print(f"  Sensitivity: {metrics['sensitivity']:.4f}")
    print(f"  Specificity: {metrics['specificity']:.4f}")
    print(f"\nArtifacts:")
    for name, path in result["artifact_paths"].items():
        print(f"  {name}: {path}")

    return 0


if __name__ == "__main__":
    exit(main())
