"""Exploratory views of the expression matrix: class balance and PCA.

Nothing produced here feeds the training stages.
"""
import os
import logging
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.decomposition import PCA

from .data import LABEL_COL, feature_columns


def _ensure_dir(path: str):
    os.makedirs(path, exist_ok=True)


def class_counts(df: pd.DataFrame, label_col: str = LABEL_COL) -> pd.Series:
    return df[label_col].value_counts().sort_index()


def fit_pca(
    df: pd.DataFrame,
    n_components: int = 10,
    label_col: str = LABEL_COL,
    random_state: int = 1234,
) -> Tuple[PCA, pd.DataFrame]:
    """Fit PCA on the feature matrix (label excluded).

    Returns the fitted PCA and the projected samples as ``PC1..PCn`` columns
    with the label attached.
    """
    X = df[feature_columns(df, label_col)].to_numpy(dtype=float)
    n_components = int(max(1, min(n_components, X.shape[0], X.shape[1])))
    pca = PCA(n_components=n_components, random_state=random_state)
    scores = pca.fit_transform(X)
    projected = pd.DataFrame(scores, columns=[f"PC{i + 1}" for i in range(n_components)], index=df.index)
    projected[label_col] = df[label_col].values
    return pca, projected


def plot_class_balance(counts: pd.Series, png_path: str) -> None:
    fig, ax = plt.subplots(figsize=(5, 4))
    sns.barplot(x=counts.index.astype(str), y=counts.values, hue=counts.index.astype(str), palette="Set2", legend=False, ax=ax)
    for i, v in enumerate(counts.values):
        ax.text(i, v, f"{int(v)} ({v / counts.sum():.1%})", ha="center", va="bottom")
    ax.set(xlabel="Outcome", ylabel="Patients", title="Class balance")
    fig.tight_layout()
    fig.savefig(png_path, dpi=150)
    plt.close(fig)


def plot_pca_scatter(pca: PCA, projected: pd.DataFrame, png_path: str, label_col: str = LABEL_COL) -> None:
    evr = pca.explained_variance_ratio_
    fig, ax = plt.subplots(figsize=(7, 6))
    sns.scatterplot(data=projected, x="PC1", y="PC2", hue=label_col, palette="Set1", alpha=0.6, s=25, ax=ax)
    ax.set(xlabel=f"PC1 ({evr[0]:.1%} variance)", ylabel=f"PC2 ({evr[1]:.1%} variance)", title="PCA of expression features")
    ax.grid(alpha=0.3)
    fig.tight_layout()
    fig.savefig(png_path, dpi=150)
    plt.close(fig)


def plot_pca_scree(pca: PCA, png_path: str) -> None:
    evr = pca.explained_variance_ratio_
    x = np.arange(1, len(evr) + 1)
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.bar(x, evr, color="steelblue", label="Per component")
    ax.plot(x, np.cumsum(evr), marker="o", color="darkorange", label="Cumulative")
    ax.set(xlabel="Principal component", ylabel="Explained variance ratio", title="PCA scree plot")
    ax.set_xticks(x)
    ax.legend()
    ax.grid(True, linestyle=":", alpha=0.6)
    fig.tight_layout()
    fig.savefig(png_path, dpi=150)
    plt.close(fig)


def explore_dataset(
    logger: logging.Logger,
    df: pd.DataFrame,
    out_dir: Optional[str] = None,
    n_components: int = 10,
    label_col: str = LABEL_COL,
    random_state: int = 1234,
) -> Dict[str, Any]:
    logger.info("=== Exploratory Analysis ===")
    counts = class_counts(df, label_col)
    for cls, n in counts.items():
        logger.info(f"  {cls}: {int(n)} samples ({n / counts.sum():.1%})")

    pca, projected = fit_pca(df, n_components=n_components, label_col=label_col, random_state=random_state)
    evr = pca.explained_variance_ratio_
    logger.info(
        f"PCA on {pca.n_features_in_} features: first {len(evr)} components explain {evr.sum():.1%} of variance "
        f"(PC1={evr[0]:.1%})"
    )

    if out_dir:
        _ensure_dir(out_dir)
        plot_class_balance(counts, os.path.join(out_dir, "class_balance.png"))
        if pca.n_components_ >= 2:
            plot_pca_scatter(pca, projected, os.path.join(out_dir, "pca_scatter.png"), label_col)
        else:
            logger.warning("Fewer than two principal components; skipping PCA scatter plot")
        plot_pca_scree(pca, os.path.join(out_dir, "pca_scree.png"))
        pd.DataFrame({
            "component": [f"PC{i + 1}" for i in range(len(evr))],
            "explained_variance_ratio": evr,
            "cumulative": np.cumsum(evr),
        }).to_csv(os.path.join(out_dir, "pca_explained_variance.csv"), index=False)
        logger.info(f"Exploration plots written to {out_dir}")

    return {
        "class_counts": counts,
        "pca": pca,
        "projection": projected,
        "explained_variance_ratio": evr,
    }
