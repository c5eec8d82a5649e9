import pandas as pd
import pytest

from exps.predictors.src.survboost.data import (
    DIED,
    LABEL_COL,
    SURVIVED,
    collapse_labels,
    feature_columns,
    load_dataset,
    validate_binary_labels,
)


def test_load_dataset_collapses_labels_and_drops_missing(dataset):
    assert len(dataset) == 100
    counts = dataset[LABEL_COL].value_counts()
    assert counts[DIED] == 60
    assert counts[SURVIVED] == 40
    assert set(dataset[LABEL_COL]) == {DIED, SURVIVED}


def test_load_dataset_keeps_row_provenance_and_numeric_features(dataset):
    assert "original_index" in dataset.columns
    assert dataset["original_index"].is_unique
    assert "cohort" not in dataset.columns
    assert list(dataset.index) == list(range(len(dataset)))


def test_load_dataset_missing_label_column(tmp_path, logger):
    path = tmp_path / "no_label.csv"
    pd.DataFrame({"gene_0": [1.0, 2.0]}).to_csv(path, index=False)
    with pytest.raises(KeyError):
        load_dataset(logger, str(path))


def test_collapse_labels_maps_raw_values():
    s = pd.Series(["Living", "Died of Disease", "Died of Other Causes", "Died", None, ""])
    out = collapse_labels(s)
    assert list(out[:4]) == [SURVIVED, DIED, DIED, DIED]
    assert out[4:].isna().all()


def test_collapse_labels_rejects_unknown_outcome():
    with pytest.raises(ValueError, match="Unexpected outcome"):
        collapse_labels(pd.Series(["Living", "Lost to follow-up"]))


def test_validate_binary_labels_requires_two_classes():
    df = pd.DataFrame({LABEL_COL: [SURVIVED] * 5, "gene_0": range(5)})
    with pytest.raises(ValueError, match="exactly 2"):
        validate_binary_labels(df)


def test_validate_binary_labels_sorted(dataset):
    assert validate_binary_labels(dataset) == [DIED, SURVIVED]


def test_feature_columns_excludes_label_and_metadata(dataset):
    cols = feature_columns(dataset)
    assert LABEL_COL not in cols
    assert "original_index" not in cols
    assert len(cols) == 11


def test_feature_columns_requires_numeric_features():
    df = pd.DataFrame({LABEL_COL: [DIED, SURVIVED], "note": ["a", "b"]})
    with pytest.raises(ValueError):
        feature_columns(df)
