import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from exps.utils.io_utils import log_dataset_info


LABEL_COL = "death_from_cancer"
META_COLS = ["original_index"]

DIED = "Died"
SURVIVED = "Survived"

# Raw outcome values collapsed into the two canonical classes
LABEL_MAP: Dict[str, str] = {
    "Died of Disease": DIED,
    "Died of Other Causes": DIED,
    "Living": SURVIVED,
}

MISSING_TOKENS = {"", "NA", "N/A", "na", "nan", "NaN", "NULL", "null", "<NA>"}


def _norm(x: Any):
    if pd.isna(x):
        return pd.NA
    s = str(x).strip()
    return pd.NA if s in MISSING_TOKENS else s


def collapse_labels(series: pd.Series, label_map: Optional[Dict[str, str]] = None) -> pd.Series:
    """Map raw outcome strings onto the canonical classes.

    Values already in canonical form pass through unchanged. Anything else
    is a data error.
    """
    label_map = dict(label_map or LABEL_MAP)
    for canon in set(label_map.values()):
        label_map.setdefault(canon, canon)

    normed = series.map(_norm)
    unknown = sorted({v for v in normed.dropna().unique() if v not in label_map})
    if unknown:
        raise ValueError(f"Unexpected outcome values {unknown}; known values are {sorted(label_map)}")
    return normed.map(lambda v: label_map[v] if pd.notna(v) else pd.NA)


def validate_binary_labels(df: pd.DataFrame, label_col: str = LABEL_COL) -> List[str]:
    """Fail fast unless the label column holds exactly two classes and no gaps."""
    if label_col not in df.columns:
        raise KeyError(f"Label column '{label_col}' not found in dataset")
    labels = df[label_col]
    n_missing = int(labels.isna().sum())
    if n_missing:
        raise ValueError(f"{n_missing} rows have a missing '{label_col}' label")
    classes = sorted(labels.unique())
    if len(classes) != 2:
        raise ValueError(f"Expected exactly 2 outcome classes in '{label_col}', found {len(classes)}: {classes}")
    return classes


def feature_columns(df: pd.DataFrame, label_col: str = LABEL_COL) -> List[str]:
    exclude = {label_col, *META_COLS}
    num_cols = [c for c in df.columns if c not in exclude and pd.api.types.is_numeric_dtype(df[c])]
    if not num_cols:
        raise ValueError("No numeric feature columns found. Expression features must be numeric.")
    return num_cols


def load_dataset(
    logger: logging.Logger,
    dataset_path: str,
    label_col: str = LABEL_COL,
    label_map: Optional[Dict[str, str]] = None,
) -> pd.DataFrame:
    """
    Read the expression CSV and return a clean binary-labelled Dataset.

    Rows with an empty outcome are dropped, the raw outcome values are
    collapsed to Died/Survived and non-numeric extra columns are removed.
    """
    logger.info(f"Loading dataset from: {dataset_path}")
    df = pd.read_csv(dataset_path, low_memory=False)
    logger.info(f"Successfully loaded dataset with shape: {df.shape}")

    if label_col not in df.columns:
        raise KeyError(f"Label column '{label_col}' not found in {dataset_path}")

    # Preserve the source row position so downstream splits can trace rows back
    if "original_index" not in df.columns:
        df = df.reset_index().rename(columns={"index": "original_index"})

    df[label_col] = collapse_labels(df[label_col], label_map)
    before = len(df)
    df = df.loc[df[label_col].notna()].copy()
    logger.info(f"Dropped {before - len(df)} rows with an empty '{label_col}' value")

    features = feature_columns(df, label_col)
    dropped = [c for c in df.columns if c not in features and c not in {label_col, *META_COLS}]
    if dropped:
        logger.info(f"Dropping {len(dropped)} non-numeric columns: {dropped[:10]}{' ...' if len(dropped) > 10 else ''}")
        df = df.drop(columns=dropped)

    classes = validate_binary_labels(df, label_col)
    counts = df[label_col].value_counts()
    logger.info(f"Outcome classes: {', '.join(f'{c}={int(counts[c])}' for c in classes)}")

    df[label_col] = df[label_col].astype(str)
    df.reset_index(drop=True, inplace=True)
    log_dataset_info(logger, df, "Loaded Dataset")
    return df
