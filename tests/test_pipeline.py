import logging

import pandas as pd
import pytest
import yaml

from exps.data_split.src import main as split_main
from exps.predictors.src import main as predictors_main
from exps.predictors.src.survboost.data import DIED, LABEL_COL, SURVIVED
from exps.predictors.src.survboost.infer import load_model_bundle


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path, raw_csv):
    out = tmp_path / "results"
    config = {
        "paths": {"out": str(out)},
        "input_params": {
            "dataset_path": str(raw_csv),
            "seed": 1234,
            "train_frac": 0.8,
            "dataset_train_path": str(out / "train.csv"),
            "dataset_test_path": str(out / "test.csv"),
            "pca_components": 3,
            "baseline_params": {"nrounds": 20, "max_depth": 2, "eta": 0.3},
            "tune_grid": {"n_estimators": [10], "max_depth": [1, 2]},
            "cv_number": 3,
            "cv_repeats": 1,
            "n_jobs": 1,
            "make_plots": False,
        },
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


def test_end_to_end_pipeline(config_path, tmp_path, restore_root_logger):
    out = tmp_path / "results"

    split_main.main(["--config", str(config_path)])
    train = pd.read_csv(out / "train.csv")
    test = pd.read_csv(out / "test.csv")
    assert train[LABEL_COL].value_counts().to_dict() == {DIED: 48, SURVIVED: 32}
    assert test[LABEL_COL].value_counts().to_dict() == {DIED: 12, SURVIVED: 8}
    summary = pd.read_csv(out / "split_summary.csv")
    assert summary["split"].tolist() == ["full", "train", "test"]

    predictors_main.main(["--config", str(config_path)])
    for name in (
        "model_baseline.joblib",
        "model_tuned.joblib",
        "model_tuned_reduced.joblib",
        "split_reduced_train.joblib",
        "split_reduced_test.joblib",
        "feature_importance.csv",
        "tuned_cv_results.csv",
        "model_comparison.csv",
    ):
        assert (out / name).exists(), name

    logs = list(out.glob("training_*.log"))
    assert len(logs) == 1
    assert "Survival Classifier Training Completed Successfully" in logs[0].read_text()

    reduced = load_model_bundle(out / "model_tuned_reduced.joblib", logging.getLogger("tests"))
    ranking = pd.read_csv(out / "feature_importance.csv")
    assert reduced["feature_names"] == ranking.loc[ranking["importance"] > 0, "feature"].tolist()

    comparison = pd.read_csv(out / "model_comparison.csv")
    assert comparison["model"].tolist() == ["baseline", "tuned", "tuned_reduced"]

    reduced_preds = pd.read_csv(out / "tuned_reduced_predictions.csv")
    assert reduced_preds["sample_id"].tolist() == test["original_index"].tolist()


def test_predictors_main_requires_splits(tmp_path, config_path, restore_root_logger):
    with pytest.raises(FileNotFoundError):
        predictors_main.main(["--config", str(config_path)])
