from typing import Any, Dict
import logging
from pathlib import Path

import joblib
import numpy as np
import pandas as pd


def _feature_matrix(bundle: Dict[str, Any], X_df: pd.DataFrame) -> pd.DataFrame:
    feature_cols = list(bundle["feature_names"])
    missing = [c for c in feature_cols if c not in X_df.columns]
    if missing:
        raise KeyError(f"{len(missing)} model features missing from input, e.g. {missing[:5]}")
    return X_df[feature_cols].astype(float)


def predict_ids(bundle: Dict[str, Any], X_df: pd.DataFrame) -> np.ndarray:
    return bundle["model"].predict(_feature_matrix(bundle, X_df)).astype(np.int64)


def predict_labels(bundle: Dict[str, Any], X_df: pd.DataFrame) -> np.ndarray:
    classes_ = bundle["classes_"]
    return np.array([classes_[i] for i in predict_ids(bundle, X_df)], dtype=object)


def predict_proba(bundle: Dict[str, Any], X_df: pd.DataFrame) -> np.ndarray:
    """Class probabilities, columns ordered like ``bundle['classes_']``."""
    return bundle["model"].predict_proba(_feature_matrix(bundle, X_df))


def save_model_bundle(bundle: Dict[str, Any], path, logger: logging.Logger) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(bundle, path)
    logger.info(f"Saved {bundle.get('name', 'model')} bundle to: {path}")


def load_model_bundle(path, logger: logging.Logger) -> Dict[str, Any]:
    """Load a model bundle written by ``save_model_bundle``."""
    path = Path(path)
    logger.info(f"Loading model bundle from: {path}")
    try:
        bundle = joblib.load(path)
    except Exception as e:
        logger.error(f"Failed to load model bundle from {path}: {e}")
        raise

    for key in ("model", "feature_names", "classes_"):
        if key not in bundle:
            raise ValueError(f"'{key}' not found in model bundle {path}. Retrain to regenerate the artifact.")

    logger.info(
        f"Loaded {bundle.get('name', 'model')} bundle: {len(bundle['feature_names'])} features, "
        f"classes={list(bundle['classes_'])}"
    )
    return bundle
