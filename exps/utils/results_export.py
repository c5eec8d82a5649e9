import os
import logging
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd


def _save_cm_png(cm: pd.DataFrame, png_path: str, title: str) -> None:
    """Annotated heatmap: raw counts with the column-normalised share underneath."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    import seaborn as sns

    counts = cm.values.astype(int)
    col_totals = counts.sum(axis=0, keepdims=True)
    shares = np.nan_to_num(counts / np.where(col_totals == 0, 1, col_totals))
    annot = np.array([
        [f"{counts[i, j]}\n({shares[i, j]:.1%})" for j in range(counts.shape[1])]
        for i in range(counts.shape[0])
    ])

    n = len(cm.index)
    fig, ax = plt.subplots(figsize=(max(5, n * 2.2), max(4, n * 1.9)))
    sns.heatmap(
        shares, annot=annot, fmt="", cmap="Blues", vmin=0, vmax=1,
        xticklabels=list(cm.columns), yticklabels=list(cm.index),
        cbar_kws={"label": "Share of reference class"}, ax=ax,
    )
    ax.set(xlabel=cm.columns.name or "Reference", ylabel=cm.index.name or "Prediction", title=title)
    plt.setp(ax.get_yticklabels(), rotation=0, va="center")
    fig.tight_layout()
    fig.savefig(png_path, dpi=200)
    plt.close(fig)


def export_experiment_results(
    *,
    logger: logging.Logger,
    out_dir: str,
    # Confusion table (rows = prediction, columns = reference) and derived statistics
    confusion: Optional[pd.DataFrame] = None,
    stats: Optional[Dict[str, Any]] = None,
    # Optional: per-sample outputs
    sample_ids: Optional[Sequence[Any]] = None,
    y_true: Optional[Sequence[Any]] = None,
    y_pred: Optional[Sequence[Any]] = None,
    y_proba: Optional[np.ndarray] = None,
    # Namespacing for filenames
    artifact_prefix: Optional[str] = None,
    make_plots: bool = True,
) -> Dict[str, Any]:
    """
    Unified export function for evaluation results.

    - If confusion provided: writes the count table (CSV) and, when
      make_plots is set, an annotated heatmap (PNG).
    - If stats provided: writes scalar statistics and the per-class table.
    - If y_pred provided: writes a per-sample CSV (sample id, prediction,
      reference and class probabilities where available).

    Returns a dict listing the files created.
    """
    os.makedirs(out_dir, exist_ok=True)
    created: Dict[str, Any] = {"files": []}
    prefix = (artifact_prefix or "results").rstrip("_")

    # 1) Confusion table
    if confusion is not None:
        p_cm_csv = os.path.join(out_dir, f"{prefix}_confusion.csv")
        confusion.to_csv(p_cm_csv)
        created["files"].append(p_cm_csv)
        if make_plots:
            p_cm_png = os.path.join(out_dir, f"{prefix}_confusion.png")
            try:
                _save_cm_png(confusion, p_cm_png, f"{prefix}: Confusion matrix")
                created["files"].append(p_cm_png)
            except Exception as e:
                logger.warning(f"Failed to render confusion matrix for {prefix}: {e}")

    # 2) Statistics
    if stats is not None:
        scalar_rows = [
            {"metric": k, "value": v}
            for k, v in stats.items()
            if isinstance(v, (int, float, np.integer, np.floating, str)) and not isinstance(v, bool)
        ]
        if "accuracy_ci" in stats:
            lo, hi = stats["accuracy_ci"]
            scalar_rows += [{"metric": "accuracy_ci_lower", "value": lo}, {"metric": "accuracy_ci_upper", "value": hi}]
        p_metrics = os.path.join(out_dir, f"{prefix}_metrics.csv")
        pd.DataFrame(scalar_rows).to_csv(p_metrics, index=False)
        created["files"].append(p_metrics)

        per_class = stats.get("per_class")
        if per_class:
            per_class_df = pd.DataFrame(per_class).T.rename_axis("label").reset_index()
            p_pc = os.path.join(out_dir, f"{prefix}_metrics_per_class.csv")
            per_class_df.to_csv(p_pc, index=False)
            created["files"].append(p_pc)

        logger.info(
            f"{prefix}: acc={stats.get('accuracy', float('nan')):.4f} "
            f"nir={stats.get('no_information_rate', float('nan')):.4f} "
            f"kappa={stats.get('kappa', float('nan')):.4f}"
        )

    # 3) Per-sample outputs
    if y_pred is not None:
        n = len(y_pred)
        df_rows = {
            "sample_id": list(sample_ids) if sample_ids is not None else list(range(n)),
            "y_pred": list(y_pred),
        }
        if y_true is not None:
            df_rows["y_true"] = list(y_true)
        per_sample_df = pd.DataFrame(df_rows)
        if y_proba is not None:
            y_proba = np.asarray(y_proba)
            per_sample_df["y_pred_proba_max"] = np.max(y_proba, axis=1)
        p_samples = os.path.join(out_dir, f"{prefix}_predictions.csv")
        per_sample_df.to_csv(p_samples, index=False)
        created["files"].append(p_samples)

    return created
