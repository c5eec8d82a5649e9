import logging
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats as sps
from sklearn.metrics import confusion_matrix

from exps.predictors.src.survboost.infer import predict_labels, predict_proba
from exps.utils.results_export import export_experiment_results


def _ratio(num: float, den: float) -> float:
    return float(num) / float(den) if den else float("nan")


def confusion_table(y_true: Sequence[Any], y_pred: Sequence[Any], classes: Sequence[Any]) -> pd.DataFrame:
    """Count table with predicted labels as rows and true labels as columns."""
    cm = confusion_matrix(np.asarray(y_true, dtype=object), np.asarray(y_pred, dtype=object), labels=list(classes))
    return pd.DataFrame(
        cm.T,
        index=pd.Index(list(classes), name="Prediction"),
        columns=pd.Index(list(classes), name="Reference"),
    )


def confusion_statistics(table: pd.DataFrame, positive: Optional[Any] = None) -> Dict[str, Any]:
    """
    Summary statistics of a square (Prediction x Reference) confusion table.

    Args:
        table: counts, rows = predicted class, columns = true class
        positive: class treated as the event for the binary summary
            (default: the first class)

    Returns:
        Dict with accuracy and its exact 95% CI, no-information rate and the
        one-sided binomial p-value [Acc > NIR], Cohen's kappa, McNemar's test
        p-value, per-class sensitivity/specificity/PPV/NPV, and the
        positive-class summary.
    """
    classes = list(table.columns)
    counts = table.loc[classes, classes].to_numpy(dtype=np.int64)
    n = int(counts.sum())
    if n == 0:
        raise ValueError("Confusion table is empty")
    positive = classes[0] if positive is None else positive
    if positive not in classes:
        raise ValueError(f"Positive class {positive!r} not among {classes}")

    correct = int(np.trace(counts))
    accuracy = correct / n
    ci = sps.binomtest(correct, n).proportion_ci(confidence_level=0.95, method="exact")

    ref_totals = counts.sum(axis=0)
    pred_totals = counts.sum(axis=1)
    nir = float(ref_totals.max()) / n
    p_acc_gt_nir = float(sps.binomtest(correct, n, p=nir, alternative="greater").pvalue)

    expected = float((ref_totals * pred_totals).sum()) / (n * n)
    kappa = _ratio(accuracy - expected, 1.0 - expected)

    per_class: Dict[Any, Dict[str, float]] = {}
    for i, cls in enumerate(classes):
        tp = counts[i, i]
        fn = ref_totals[i] - tp
        fp = pred_totals[i] - tp
        tn = n - tp - fn - fp
        per_class[cls] = dict(
            sensitivity=_ratio(tp, tp + fn),
            specificity=_ratio(tn, tn + fp),
            pos_pred_value=_ratio(tp, tp + fp),
            neg_pred_value=_ratio(tn, tn + fn),
            prevalence=_ratio(tp + fn, n),
            detection_rate=_ratio(tp, n),
            detection_prevalence=_ratio(tp + fp, n),
        )
        per_class[cls]["balanced_accuracy"] = (per_class[cls]["sensitivity"] + per_class[cls]["specificity"]) / 2

    mcnemar_p = float("nan")
    if len(classes) == 2:
        p = classes.index(positive)
        q = 1 - p
        b, c = counts[p, q], counts[q, p]
        if b + c > 0:
            statistic = (abs(int(b) - int(c)) - 1) ** 2 / float(b + c)
            mcnemar_p = float(sps.chi2.sf(statistic, df=1))

    out = dict(
        n=n,
        accuracy=accuracy,
        accuracy_ci=(float(ci.low), float(ci.high)),
        no_information_rate=nir,
        p_value_acc_gt_nir=p_acc_gt_nir,
        kappa=kappa,
        mcnemar_p_value=mcnemar_p,
        positive_class=str(positive),
        per_class=per_class,
    )
    for k, v in per_class[positive].items():
        out[k] = v
    return out


def evaluate_model(
    bundle: Dict[str, Any],
    df_test: pd.DataFrame,
    logger: Optional[logging.Logger] = None,
    out_dir: Optional[str] = None,
    prefix: Optional[str] = None,
    make_plots: bool = True,
) -> Dict[str, Any]:
    """Score a held-out set: predictions, confusion table and statistics.

    Writes CSV/PNG artifacts only when ``out_dir`` is given.
    """
    logger = logger or logging.getLogger("evaluate")
    label_col = bundle["label_col"]
    classes = list(bundle["classes_"])
    if label_col not in df_test.columns:
        raise KeyError(f"Label column '{label_col}' not found in evaluation data")

    y_true = df_test[label_col].astype(str).to_numpy(dtype=object)
    y_pred = predict_labels(bundle, df_test)
    y_proba = predict_proba(bundle, df_test)

    table = confusion_table(y_true, y_pred, classes)
    stats = confusion_statistics(table, positive=classes[0])

    name = prefix or bundle.get("name", "model")
    logger.info(f"=== {name} evaluation on {stats['n']} samples ===")
    logger.info(f"Confusion matrix (rows=Prediction, cols=Reference):\n{table.to_string()}")
    lo, hi = stats["accuracy_ci"]
    logger.info(
        f"Accuracy={stats['accuracy']:.4f} (95% CI {lo:.4f}-{hi:.4f}), NIR={stats['no_information_rate']:.4f}, "
        f"P[Acc>NIR]={stats['p_value_acc_gt_nir']:.4g}, Kappa={stats['kappa']:.4f}"
    )
    for cls, s in stats["per_class"].items():
        logger.info(f"  {cls}: sensitivity={s['sensitivity']:.4f} specificity={s['specificity']:.4f}")

    report = dict(predictions=y_pred, probabilities=y_proba, confusion=table, stats=stats)

    if out_dir:
        if "original_index" in df_test.columns:
            sample_ids = df_test["original_index"].tolist()
        elif df_test.index.name == "original_index":
            sample_ids = df_test.index.tolist()
        else:
            sample_ids = None
        report["files"] = export_experiment_results(
            logger=logger,
            out_dir=out_dir,
            confusion=table,
            stats=stats,
            sample_ids=sample_ids,
            y_true=y_true,
            y_pred=y_pred,
            y_proba=y_proba,
            artifact_prefix=name,
            make_plots=make_plots,
        )["files"]
    return report
