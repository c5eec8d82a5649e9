import pandas as pd
import pytest
from scipy import stats as sps

from exps.data_split.src.utils import split_dataset
from exps.predictors.src.survboost.data import DIED, LABEL_COL, SURVIVED
from exps.predictors.src.survboost.evaluate import confusion_statistics, confusion_table, evaluate_model
from exps.predictors.src.survboost.infer import load_model_bundle, predict_proba, save_model_bundle
from exps.predictors.src.survboost.train import train_model


CLASSES = [DIED, SURVIVED]


@pytest.fixture
def known_table():
    # rows = Prediction, columns = Reference
    return pd.DataFrame(
        [[30, 5], [10, 55]],
        index=pd.Index(CLASSES, name="Prediction"),
        columns=pd.Index(CLASSES, name="Reference"),
    )


@pytest.fixture
def fitted(dataset, small_params):
    df_train, df_test = split_dataset(dataset, seed=1234)
    bundle = train_model(df_train, small_params, method="none", name="baseline")
    return bundle, df_test


def test_confusion_table_orientation():
    y_true = [DIED, DIED, SURVIVED, SURVIVED, SURVIVED]
    y_pred = [DIED, SURVIVED, SURVIVED, SURVIVED, DIED]
    table = confusion_table(y_true, y_pred, CLASSES)
    assert table.index.name == "Prediction"
    assert table.columns.name == "Reference"
    assert table.loc[DIED, DIED] == 1
    assert table.loc[SURVIVED, DIED] == 1
    assert table.loc[DIED, SURVIVED] == 1
    assert table.loc[SURVIVED, SURVIVED] == 2
    assert table.to_numpy().sum() == 5


def test_confusion_statistics_known_values(known_table):
    s = confusion_statistics(known_table, positive=DIED)
    assert s["n"] == 100
    assert s["accuracy"] == pytest.approx(0.85)
    assert s["no_information_rate"] == pytest.approx(0.6)
    assert s["kappa"] == pytest.approx((0.85 - 0.53) / 0.47)
    lo, hi = s["accuracy_ci"]
    assert lo < 0.85 < hi
    assert s["p_value_acc_gt_nir"] < 0.001

    assert s["sensitivity"] == pytest.approx(30 / 40)
    assert s["specificity"] == pytest.approx(55 / 60)
    assert s["pos_pred_value"] == pytest.approx(30 / 35)
    assert s["neg_pred_value"] == pytest.approx(55 / 65)
    assert s["balanced_accuracy"] == pytest.approx((30 / 40 + 55 / 60) / 2)
    assert s["per_class"][SURVIVED]["sensitivity"] == pytest.approx(55 / 60)
    assert s["mcnemar_p_value"] == pytest.approx(sps.chi2.sf(16 / 15, df=1))


def test_confusion_statistics_rejects_unknown_positive(known_table):
    with pytest.raises(ValueError):
        confusion_statistics(known_table, positive="Unknown")


def test_confusion_statistics_degenerate_predictions():
    table = pd.DataFrame([[0, 0], [4, 6]], index=CLASSES, columns=CLASSES)
    s = confusion_statistics(table, positive=DIED)
    assert s["accuracy"] == pytest.approx(0.6)
    assert s["sensitivity"] == 0.0
    assert pd.isna(s["pos_pred_value"])


def test_evaluate_model_counts_sum_to_test_size(fitted):
    bundle, df_test = fitted
    report = evaluate_model(bundle, df_test)
    table = report["confusion"]
    assert table.to_numpy().sum() == len(df_test)
    diag = sum(table.loc[c, c] for c in CLASSES)
    assert report["stats"]["accuracy"] == pytest.approx(diag / len(df_test))
    assert set(report["predictions"]) <= set(CLASSES)


def test_evaluate_model_writes_artifacts(fitted, tmp_path):
    bundle, df_test = fitted
    report = evaluate_model(bundle, df_test, out_dir=str(tmp_path), prefix="baseline")
    for name in ("baseline_confusion.csv", "baseline_metrics.csv", "baseline_predictions.csv", "baseline_confusion.png"):
        assert (tmp_path / name).exists()
    preds = pd.read_csv(tmp_path / "baseline_predictions.csv")
    assert len(preds) == len(df_test)
    assert report["files"]


def test_evaluate_model_requires_label(fitted):
    bundle, df_test = fitted
    with pytest.raises(KeyError):
        evaluate_model(bundle, df_test.drop(columns=[LABEL_COL]))


def test_model_bundle_persistence(fitted, tmp_path, logger):
    bundle, df_test = fitted
    path = tmp_path / "models" / "model_baseline.joblib"
    save_model_bundle(bundle, path, logger)
    loaded = load_model_bundle(path, logger)
    assert loaded["feature_names"] == bundle["feature_names"]
    assert predict_proba(loaded, df_test) == pytest.approx(predict_proba(bundle, df_test))
