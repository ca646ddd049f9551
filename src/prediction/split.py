"""Stratified data splitting for readmission model comparison.

The test set is carved off once with a seeded stratified split. Tuning only
ever sees the training rows, partitioned into seeded stratified folds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold, train_test_split


def stratified_split(
    df: pd.DataFrame,
    target_col: str,
    test_size: float = 0.2,
    random_state: int = 42,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Split rows into training and test sets preserving class proportions.

    Every row lands in exactly one subset. Per-class test counts follow
    scikit-learn's largest-remainder allocation, so 10 rows with 6 negatives
    and 4 positives split 80/20 give (5, 3) for training and (1, 1) for test.

    Args:
        df: Dataset with a binary target column
        target_col: Name of the target column (e.g., "readmitted_30d")
        test_size: Fraction of rows for the test set (default 0.2)
        random_state: Random seed for reproducibility

    Returns:
        Tuple of (train_df, test_df), each keeping the original index

    Raises:
        ValueError: If a class has fewer than 2 rows
    """
    counts = df[target_col].value_counts()
    if len(counts) < 2 or counts.min() < 2:
        raise ValueError(
            f"Stratified split needs 2+ rows per class, got {counts.to_dict()}"
        )

    train_df, test_df = train_test_split(
        df,
        test_size=test_size,
        stratify=df[target_col],
        random_state=random_state,
    )
    return train_df.copy(), test_df.copy()


@dataclass
class FoldPartition:
    """Repeatable k-fold partition of the training rows.

    ``splits`` holds positional ``(analysis_idx, assessment_idx)`` pairs into
    ``data``; assessment subsets are disjoint and cover every row once.
    """

    data: pd.DataFrame
    target_col: str
    seed: int
    splits: list[tuple[np.ndarray, np.ndarray]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.splits)

    def __iter__(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        return iter(self.splits)

    def analysis(self, fold: int) -> pd.DataFrame:
        return self.data.iloc[self.splits[fold][0]]

    def assessment(self, fold: int) -> pd.DataFrame:
        return self.data.iloc[self.splits[fold][1]]


def make_folds(
    train_df: pd.DataFrame,
    target_col: str,
    n_splits: int = 10,
    random_state: int = 42,
) -> FoldPartition:
    """Partition training rows into stratified cross-validation folds.

    Args:
        train_df: Training rows only; the test set never enters tuning
        target_col: Binary target column used for stratification
        n_splits: Number of folds
        random_state: Seed for the shuffled fold assignment

    Returns:
        FoldPartition over ``train_df`` (index reset to positions)

    Raises:
        ValueError: If a class has fewer rows than folds
    """
    data = train_df.reset_index(drop=True)
    min_class = data[target_col].value_counts().min()
    if min_class < n_splits:
        raise ValueError(
            f"Cannot build {n_splits} stratified folds: smallest class has {min_class} rows"
        )

    skf = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=random_state)
    splits = [
        (analysis_idx, assessment_idx)
        for analysis_idx, assessment_idx in skf.split(data, data[target_col])
    ]

    return FoldPartition(data=data, target_col=target_col, seed=random_state, splits=splits)
