import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from exps.data_split.src.utils import save_split_snapshot, split_dataset
from exps.predictors.src.survboost.data import LABEL_COL
from exps.predictors.src.survboost.evaluate import evaluate_model
from exps.predictors.src.survboost.infer import save_model_bundle
from exps.predictors.src.survboost.train import train_model


def feature_importance(bundle: Dict[str, Any]) -> pd.DataFrame:
    """
    Gain-based importance of every model feature, scaled to 0-100.

    The largest total gain maps to 100; features no tree splits on score
    exactly 0. Sorted by importance, then by name.
    """
    features = list(bundle["feature_names"])
    gain = bundle["model"].get_booster().get_score(importance_type="total_gain")
    raw = pd.Series({f: float(gain.get(f, 0.0)) for f in features}, dtype=float)
    top = raw.max() if len(raw) else 0.0
    scaled = raw * (100.0 / top) if top > 0 else raw * 0.0
    ranking = pd.DataFrame({"feature": scaled.index, "importance": scaled.values})
    return ranking.sort_values(["importance", "feature"], ascending=[False, True]).reset_index(drop=True)


def select_features(ranking: pd.DataFrame) -> Tuple[List[str], List[str]]:
    """Split a ranking into (kept, dropped): kept have importance > 0."""
    mask = ranking["importance"] > 0
    return ranking.loc[mask, "feature"].tolist(), ranking.loc[~mask, "feature"].tolist()


def reduce_dataset(df: pd.DataFrame, kept: List[str], label_col: str = LABEL_COL) -> pd.DataFrame:
    """Kept features plus the label; ``original_index`` moves to the row index."""
    if not kept:
        raise ValueError("No features kept; cannot build a reduced dataset")
    missing = [c for c in list(kept) + [label_col] if c not in df.columns]
    if missing:
        raise KeyError(f"Columns missing from dataset: {missing[:5]}")
    if "original_index" in df.columns:
        df = df.set_index("original_index")
    return df[list(kept) + [label_col]].copy()


def plot_importance(ranking: pd.DataFrame, path: str, top_n: int = 30) -> None:
    top = ranking.head(top_n)
    fig, ax = plt.subplots(figsize=(7, max(3, 0.25 * len(top) + 1)))
    sns.barplot(data=top, x="importance", y="feature", color="steelblue", ax=ax)
    ax.set(xlabel="Relative importance (gain, max = 100)", ylabel="", title=f"Top {len(top)} features")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def rebuild_full_dataset(df_train: pd.DataFrame, df_test: pd.DataFrame) -> pd.DataFrame:
    """Train and test stacked back together in original row order."""
    df = pd.concat([df_train, df_test], axis=0)
    if "original_index" in df.columns:
        df = df.sort_values("original_index", kind="mergesort")
    return df.reset_index(drop=True)


def run_reduction_pass(
    bundle: Dict[str, Any],
    df_train: pd.DataFrame,
    df_test: pd.DataFrame,
    param_grid: Mapping[str, Any],
    method: str = "repeatedcv",
    number: int = 10,
    repeats: int = 3,
    seed: int = 1234,
    train_frac: float = 0.8,
    n_jobs: Optional[int] = None,
    max_configs: Optional[int] = None,
    out_dir: Optional[str] = None,
    top_n: int = 30,
    make_plots: bool = True,
    name: str = "tuned_reduced",
) -> Dict[str, Any]:
    """
    One reduction pass: rank the features of ``bundle``, drop the zero-gain
    ones, re-split the reduced dataset with ``seed`` and retrain/evaluate.

    Returns a dict with the ranking, kept/dropped lists, the new split, the
    reduced model bundle and its evaluation report.
    """
    logger = logging.getLogger("reduction")
    label_col = bundle["label_col"]

    ranking = feature_importance(bundle)
    kept, dropped = select_features(ranking)
    logger.info(f"Feature importance: {len(kept)} features kept (score > 0), {len(dropped)} dropped")
    logger.info(f"Top features:\n{ranking.head(10).to_string(index=False)}")

    df_full = rebuild_full_dataset(df_train, df_test)
    df_reduced = reduce_dataset(df_full, kept, label_col)
    red_train, red_test = split_dataset(df_reduced, train_frac=train_frac, seed=seed, label_col=label_col, logger=logger)

    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
        ranking.to_csv(os.path.join(out_dir, "feature_importance.csv"), index=False)
        if make_plots:
            plot_importance(ranking, os.path.join(out_dir, "feature_importance.png"), top_n=top_n)
        save_split_snapshot(
            logger, red_train, red_test,
            os.path.join(out_dir, "split_reduced_train.joblib"),
            os.path.join(out_dir, "split_reduced_test.joblib"),
        )

    reduced_bundle = train_model(
        red_train, param_grid, method=method, number=number, repeats=repeats,
        random_state=seed, n_jobs=n_jobs, max_configs=max_configs, label_col=label_col, name=name,
    )
    report = evaluate_model(reduced_bundle, red_test, logger=logger, out_dir=out_dir, prefix=name, make_plots=make_plots)
    if out_dir:
        save_model_bundle(reduced_bundle, os.path.join(out_dir, f"model_{name}.joblib"), logger)

    return dict(
        ranking=ranking,
        kept=kept,
        dropped=dropped,
        train=red_train,
        test=red_test,
        bundle=reduced_bundle,
        report=report,
    )
