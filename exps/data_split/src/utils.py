import logging
import random
from pathlib import Path
from typing import Optional, Tuple

import joblib
import pandas as pd

from exps.predictors.src.survboost.data import LABEL_COL


def split_dataset(
    df: pd.DataFrame,
    train_frac: float = 0.8,
    seed: int = 1234,
    label_col: str = LABEL_COL,
    logger: Optional[logging.Logger] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Stratified random partition into train and test sets.

    Each class is shuffled independently with a seeded generator and
    ``round(n * train_frac)`` of its rows go to the training split, so both
    splits reproduce the class proportions of ``df`` up to rounding. Rows
    keep their original order inside each split.

    Raises
    ------
    ValueError
        If ``train_frac`` is not in (0, 1) or a class has fewer than two
        samples and cannot appear on both sides.
    """
    if not 0 < train_frac < 1:
        raise ValueError(f"train_frac must be in (0, 1); got {train_frac}")
    if label_col not in df.columns:
        raise KeyError(f"Required column '{label_col}' not found in dataset")
    if len(df) < 2:
        raise ValueError("Dataset must contain at least two samples before splitting")

    rng = random.Random(seed)
    groups = df.groupby(label_col, dropna=False, sort=True).indices

    train_positions = []
    test_positions = []
    for cls, idxs in groups.items():
        n = len(idxs)
        if n < 2:
            raise ValueError(
                f"Class '{cls}' has only {n} sample(s); at least 2 are needed to stratify the split"
            )
        idxs = list(idxs)
        rng.shuffle(idxs)
        train_count = int(round(n * train_frac))
        train_count = max(1, min(train_count, n - 1))
        train_positions.extend(idxs[:train_count])
        test_positions.extend(idxs[train_count:])

    df_train = df.iloc[sorted(train_positions)].copy()
    df_test = df.iloc[sorted(test_positions)].copy()

    if logger is not None:
        logger.info(
            "Stratified dataset split across %d classes: %d training samples, %d test samples (seed=%d)",
            len(groups),
            len(df_train),
            len(df_test),
            seed,
        )
    return df_train, df_test


def summarize_split(df: pd.DataFrame, name: str, label_col: str = LABEL_COL) -> dict:
    counts = df[label_col].value_counts().sort_index()
    row = {"split": name, "n": int(len(df))}
    for cls, n in counts.items():
        row[f"n_{cls}"] = int(n)
        row[f"prop_{cls}"] = float(n / max(1, len(df)))
    return row


def export_splits(logger, df_train: pd.DataFrame, df_test: pd.DataFrame, train_path, test_path) -> None:
    for path in (train_path, test_path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    df_train.to_csv(train_path, index=False)
    df_test.to_csv(test_path, index=False)
    logger.info(f"Dataset splits exported to: {train_path} and {test_path}")


def save_split_snapshot(logger, df_train: pd.DataFrame, df_test: pd.DataFrame, train_path, test_path) -> None:
    """Persist a train/test pair as joblib snapshots (dtypes and column order preserved)."""
    for df, path in ((df_train, train_path), (df_test, test_path)):
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(df, path)
    logger.info(f"Split snapshots saved to: {train_path} and {test_path}")


def load_split_snapshot(path) -> pd.DataFrame:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Split snapshot not found at: {path}")
    return joblib.load(path)


def load_pre_split_dataset(logger, dataset_train_path, dataset_test_path):
    """
    Load the already materialized train and test splits.

    Parameters
    ----------
    logger : logging.Logger
        Logger used for status messages.
    dataset_train_path : str or Path
        Filesystem location of the training CSV created by the data_split stage.
    dataset_test_path : str or Path
        Filesystem location of the held-out test CSV created by the data_split stage.

    Returns
    -------
    tuple[pd.DataFrame, pd.DataFrame]
        Training and test DataFrames.
    """

    dataset_train_path = Path(dataset_train_path)
    dataset_test_path = Path(dataset_test_path)

    if not dataset_train_path.is_file():
        raise FileNotFoundError(f"Training split not found at: {dataset_train_path}")

    if not dataset_test_path.is_file():
        raise FileNotFoundError(f"Test split not found at: {dataset_test_path}")

    logger.info(f"Loading pre-split training dataset from: {dataset_train_path}")
    df_train = pd.read_csv(dataset_train_path)

    logger.info(f"Loading pre-split test dataset from: {dataset_test_path}")
    df_test = pd.read_csv(dataset_test_path)

    logger.info(
        "Loaded pre-split datasets: train (%d rows, %d columns), test (%d rows, %d columns)",
        len(df_train),
        len(df_train.columns),
        len(df_test),
        len(df_test.columns),
    )

    return df_train, df_test
