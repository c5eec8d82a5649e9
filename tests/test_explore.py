import pytest

from exps.predictors.src.survboost.data import DIED, LABEL_COL, SURVIVED
from exps.predictors.src.survboost.explore import class_counts, explore_dataset, fit_pca


def test_class_counts(dataset):
    counts = class_counts(dataset)
    assert counts.to_dict() == {DIED: 60, SURVIVED: 40}


def test_fit_pca_projects_features_only(dataset):
    pca, projected = fit_pca(dataset, n_components=4)
    assert pca.n_features_in_ == 11
    assert list(projected.columns) == ["PC1", "PC2", "PC3", "PC4", LABEL_COL]
    assert len(projected) == len(dataset)
    assert pca.explained_variance_ratio_.sum() <= 1.0 + 1e-9


def test_fit_pca_clamps_components(dataset):
    pca, _ = fit_pca(dataset, n_components=500)
    assert pca.n_components_ == 11


def test_explore_dataset_writes_plots(dataset, tmp_path, logger):
    result = explore_dataset(logger, dataset, out_dir=str(tmp_path), n_components=3)
    assert set(result) == {"class_counts", "pca", "projection", "explained_variance_ratio"}
    for name in ("class_balance.png", "pca_scatter.png", "pca_scree.png", "pca_explained_variance.csv"):
        assert (tmp_path / name).exists()


def test_explore_dataset_without_output(dataset, logger):
    result = explore_dataset(logger, dataset, n_components=2)
    assert result["explained_variance_ratio"][0] >= result["explained_variance_ratio"][1]
    assert result["class_counts"].sum() == pytest.approx(len(dataset))
