import itertools
import logging
import math
import numbers
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import accuracy_score, cohen_kappa_score
from sklearn.model_selection import RepeatedStratifiedKFold

from exps.predictors.src.survboost.data import LABEL_COL, feature_columns, validate_binary_labels
from exps.predictors.src.survboost.models import (
    PARAM_AXES,
    available_workers,
    build_classifier,
    canonical_param_name,
    seed_everything,
)
from exps.utils.io_utils import log_model_info


RESAMPLING_METHODS = ("none", "cv", "repeatedcv")


def validate_param_grid(param_grid: Mapping[str, Any]) -> Dict[str, List[Any]]:
    """
    Check a hyperparameter grid and return it with canonical axis names.

    A scalar axis value is treated as a one-point axis. Raises ValueError for
    an empty grid, unknown or duplicated axes, empty axes and values that are
    not finite numbers.
    """
    if not isinstance(param_grid, Mapping) or not param_grid:
        raise ValueError("Hyperparameter grid must be a non-empty mapping of axis name -> candidate values")

    normalized: Dict[str, List[Any]] = {}
    for name, values in param_grid.items():
        canon = canonical_param_name(str(name))
        if canon not in PARAM_AXES:
            raise ValueError(f"Unknown hyperparameter axis '{name}'; expected one of {list(PARAM_AXES)}")
        if canon in normalized:
            raise ValueError(f"Hyperparameter axis '{canon}' given more than once (check aliases)")

        if isinstance(values, (list, tuple, np.ndarray)):
            values = list(values)
        else:
            values = [values]
        if not values:
            raise ValueError(f"Hyperparameter axis '{name}' has no candidate values")
        for v in values:
            if isinstance(v, bool) or not isinstance(v, numbers.Real) or not math.isfinite(float(v)):
                raise ValueError(f"Hyperparameter axis '{name}' has a non-numeric value: {v!r}")
        normalized[canon] = values
    return normalized


def expand_grid(param_grid: Dict[str, List[Any]], max_samples: int = None, random_state: int = 42):
    keys = list(param_grid.keys())
    combos = list(itertools.product(*[param_grid[k] for k in keys]))
    configs = [dict(zip(keys, vals)) for vals in combos]
    if (max_samples is not None) and (len(configs) > max_samples):
        import random as _random
        _random.seed(random_state)
        configs = _random.sample(configs, max_samples)
    return configs


def stratified_cv_splits(y: np.ndarray, desired_splits: int = 10, repeats: int = 3,
                         random_state: int = 42) -> RepeatedStratifiedKFold:
    _, counts = np.unique(y, return_counts=True)
    max_splits = int(counts.min())
    n_splits = max(2, min(desired_splits, max_splits))
    return RepeatedStratifiedKFold(n_splits=n_splits, n_repeats=repeats, random_state=random_state)


def encode_labels(y: pd.Series, classes: List[str]) -> np.ndarray:
    """0 for ``classes[0]``, 1 for ``classes[1]``."""
    unknown = set(y.unique()) - set(classes)
    if unknown:
        raise ValueError(f"Labels {sorted(unknown)} are not among the model classes {classes}")
    return (y.to_numpy() == classes[1]).astype(np.int64)


def fit_fold(
    X: np.ndarray,
    y: np.ndarray,
    tr_idx: np.ndarray,
    va_idx: np.ndarray,
    params: Dict[str, Any],
    random_state: int,
    xgb_n_jobs: Optional[int],
    tags: Dict[str, Any],
) -> Dict[str, Any]:
    """Fit one configuration on one fold and score the held-out part.

    Runs inside a pool worker. ``X`` and ``y`` are the full arrays shared by
    every task and the fold is sliced here. A failing fit is returned as a
    record with NaN scores and the error text so the search can carry on.
    """
    record = dict(tags, n_train=int(len(tr_idx)), n_valid=int(len(va_idx)), acc=float("nan"),
                  kappa=float("nan"), error=None)
    t0 = time.time()
    try:
        X_tr, y_tr = X[tr_idx], y[tr_idx]
        X_va, y_va = X[va_idx], y[va_idx]
        model = build_classifier(params, random_state=random_state, n_jobs=xgb_n_jobs)
        model.fit(X_tr, y_tr)
        y_hat = model.predict(X_va)
        record["acc"] = float(accuracy_score(y_va, y_hat))
        record["kappa"] = float(cohen_kappa_score(y_va, y_hat)) if len(np.unique(y_va)) > 1 else float("nan")
    except Exception as e:
        record["error"] = f"{type(e).__name__}: {e}"
    record["time_s"] = time.time() - t0
    return record


def evaluate_param_sets(
    X: np.ndarray,
    y: np.ndarray,
    configs: List[Dict[str, Any]],
    number: int = 10,
    repeats: int = 3,
    random_state: int = 42,
    n_jobs: Optional[int] = None,
) -> Tuple[List[Dict[str, Any]], pd.DataFrame]:
    """
    Cross-validate every configuration with repeated stratified k-fold.

    All (configuration, fold) fits are independent and are fanned out over a
    process pool; results are gathered once every task has returned.

    Returns one summary dict per configuration and the per-fold records.
    """
    cv_logger = logging.getLogger("cross_validation")
    cv = stratified_cv_splits(y, desired_splits=number, repeats=repeats, random_state=random_state)
    splits = list(cv.split(X, y))
    n_splits = cv.get_n_splits() // repeats
    if n_splits != number:
        cv_logger.warning(f"Requested {number} folds but the smallest class only allows {n_splits}")

    n_jobs = available_workers() if n_jobs is None else max(1, int(n_jobs))
    xgb_n_jobs = 1 if n_jobs > 1 else None
    cv_logger.info(
        f"Dispatching {len(configs)} configurations x {len(splits)} folds "
        f"({n_splits}-fold, {repeats} repeats) to {n_jobs} worker(s)"
    )

    # Tasks are generated as the pool dispatches them; X is memory-mapped once by loky
    tasks = (
        delayed(fit_fold)(X, y, tr_idx, va_idx, params, random_state, xgb_n_jobs,
                          {"config_id": config_id, "repeat": i // n_splits + 1, "fold": i % n_splits + 1})
        for config_id, params in enumerate(configs)
        for i, (tr_idx, va_idx) in enumerate(splits)
    )

    t0 = time.time()
    records = Parallel(n_jobs=n_jobs, backend="loky")(tasks)
    cv_logger.info(f"Cross-validation finished in {time.time() - t0:.1f}s")

    per_fold = pd.DataFrame(records)
    failed = per_fold[per_fold["error"].notna()]
    for _, r in failed.iterrows():
        cv_logger.warning(
            f"Config {r['config_id']} repeat {r['repeat']} fold {r['fold']} failed: {r['error']}"
        )

    results = []
    for config_id, params in enumerate(configs):
        sub = per_fold[per_fold["config_id"] == config_id]
        ok = sub[sub["error"].isna()]
        acc = ok["acc"].to_numpy(dtype=float)
        kappa = ok["kappa"].to_numpy(dtype=float)
        if acc.size == 0:
            mean_acc, std_acc = float("nan"), float("nan")
        else:
            mean_acc = float(np.mean(acc))
            std_acc = float(np.std(acc, ddof=1)) if acc.size > 1 else 0.0
        results.append(dict(
            config_id=config_id,
            params=params,
            mean_acc=mean_acc,
            std_acc=std_acc,
            mean_kappa=float(np.nanmean(kappa)) if np.isfinite(kappa).any() else float("nan"),
            n_folds=int(len(sub)),
            n_failed=int(len(sub) - len(ok)),
        ))
    return results, per_fold


def select_best(config_results: List[Dict[str, Any]]):
    def keyfn(r):
        acc = r["mean_acc"] if not math.isnan(r["mean_acc"]) else -math.inf
        kappa = r["mean_kappa"] if not math.isnan(r["mean_kappa"]) else -math.inf
        size = r["params"].get("n_estimators", 0)
        return (acc, kappa, -size)
    return max(config_results, key=keyfn)


def results_frame(config_results: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for r in config_results:
        row = {"config_id": r["config_id"], **r["params"]}
        row.update({k: r[k] for k in ("mean_acc", "std_acc", "mean_kappa", "n_folds", "n_failed")})
        rows.append(row)
    return pd.DataFrame(rows).sort_values("mean_acc", ascending=False, na_position="last").reset_index(drop=True)


def train_model(
    df_train: pd.DataFrame,
    param_grid: Mapping[str, Any],
    method: str = "none",
    number: int = 10,
    repeats: int = 3,
    random_state: int = 1234,
    n_jobs: Optional[int] = None,
    max_configs: Optional[int] = None,
    label_col: str = LABEL_COL,
    name: str = "model",
) -> Dict[str, Any]:
    """
    Fit a boosted-tree classifier on ``df_train``.

    ``method="none"`` fits the single configuration of ``param_grid`` on the
    whole training set. ``method="repeatedcv"`` (or ``"cv"``, one repeat)
    scores every grid point by repeated stratified k-fold accuracy, then
    refits the best point on the whole training set.

    All arguments are validated before the first fit.

    Returns a model bundle dict.
    """
    level_logger = logging.getLogger(f"train_{name}")
    level_logger.info(f"=== Training {name.upper()} ===")

    # Validation first: nothing is fitted on a malformed request
    if method not in RESAMPLING_METHODS:
        raise ValueError(f"Unknown resampling method '{method}'; expected one of {RESAMPLING_METHODS}")
    if method == "cv":
        method, repeats = "repeatedcv", 1
    grid = validate_param_grid(param_grid)
    configs = expand_grid(grid, max_samples=max_configs, random_state=random_state)
    if method == "none" and len(configs) != 1:
        raise ValueError(
            f"method='none' needs exactly one hyperparameter configuration, the grid expands to {len(configs)}"
        )
    if method == "repeatedcv":
        if int(number) < 2:
            raise ValueError(f"Cross-validation needs at least 2 folds; got number={number}")
        if int(repeats) < 1:
            raise ValueError(f"Cross-validation needs at least 1 repeat; got repeats={repeats}")

    classes = validate_binary_labels(df_train, label_col)
    feature_cols = feature_columns(df_train, label_col)
    X_df = df_train[feature_cols].astype(float)
    y = encode_labels(df_train[label_col], classes)

    level_logger.info(f"Data prepared: {len(X_df)} samples, {len(feature_cols)} features")
    for cls, count in zip(classes, np.bincount(y, minlength=2)):
        level_logger.info(f"  Class {cls}: {count} samples")

    seed_everything(random_state)

    cv_results = None
    per_fold = None
    cv_summary = None
    if method == "none":
        best_params = configs[0]
        level_logger.info(f"Fitting single configuration without resampling: {best_params}")
    else:
        level_logger.info(f"Evaluating {len(configs)} configurations with {number}-fold CV x {repeats} repeats")
        results, per_fold = evaluate_param_sets(
            X_df.to_numpy(), y, configs, number=int(number), repeats=int(repeats),
            random_state=random_state, n_jobs=n_jobs,
        )
        for r in results:
            level_logger.info(
                f"  Config {r['config_id'] + 1}/{len(results)}: acc={r['mean_acc']:.4f}±{r['std_acc']:.4f}, "
                f"kappa={r['mean_kappa']:.4f}, failed folds={r['n_failed']}/{r['n_folds']}, params={r['params']}"
            )
        if all(math.isnan(r["mean_acc"]) for r in results):
            raise RuntimeError("Every hyperparameter configuration failed during cross-validation")

        best = select_best(results)
        best_params = best["params"]
        cv_results = results_frame(results)
        cv_summary = dict(mean_acc=best["mean_acc"], std_acc=best["std_acc"], mean_kappa=best["mean_kappa"],
                          n_configs=len(results), n_folds=best["n_folds"], n_failed=best["n_failed"])
        level_logger.info(
            f"Best configuration selected: acc={best['mean_acc']:.4f}±{best['std_acc']:.4f}, "
            f"kappa={best['mean_kappa']:.4f}, params={best_params}"
        )
        level_logger.info("Refitting final model on full training set")

    final_model = build_classifier(best_params, random_state=random_state, n_jobs=None)
    final_model.fit(X_df, y)

    bundle = dict(
        model=final_model,
        name=name,
        feature_names=feature_cols,
        label_col=label_col,
        classes_=classes,
        best_params=best_params,
        method=method,
        cv_results=cv_results,
        per_fold=per_fold,
        cv_summary=cv_summary,
        n_train=int(len(X_df)),
    )
    log_model_info(level_logger, bundle, f"Final {name} model")
    level_logger.info(f"=== {name.upper()} Training Complete ===")
    return bundle
