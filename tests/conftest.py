import logging

import numpy as np
import pandas as pd
import pytest

from exps.predictors.src.survboost.data import LABEL_COL, load_dataset


N_DIED = 60
N_SURVIVED = 40
N_GENES = 10


def make_raw_frame(seed: int = 0) -> pd.DataFrame:
    """Expression-like table: 60 deaths, 40 Living, 3 rows with no outcome."""
    rng = np.random.default_rng(seed)
    outcomes = (
        ["Living"] * N_SURVIVED
        + ["Died of Disease"] * 35
        + ["Died of Other Causes"] * (N_DIED - 35)
    )
    outcomes = list(rng.permutation(outcomes)) + [None, None, None]
    n = len(outcomes)
    died = np.array([o is not None and o.startswith("Died") for o in outcomes])

    data = {}
    for i in range(N_GENES):
        values = rng.normal(0.0, 1.0, n)
        if i < 3:
            values = values + np.where(died, 1.5, -1.5)
        data[f"gene_{i}"] = values
    data["gene_const"] = np.zeros(n)
    data["cohort"] = rng.choice(["A", "B"], n)
    data[LABEL_COL] = outcomes
    return pd.DataFrame(data)


@pytest.fixture
def logger():
    return logging.getLogger("tests")


@pytest.fixture
def raw_csv(tmp_path):
    path = tmp_path / "expression.csv"
    make_raw_frame().to_csv(path, index=False)
    return path


@pytest.fixture
def dataset(raw_csv, logger):
    return load_dataset(logger, str(raw_csv))


@pytest.fixture
def small_params():
    return {"n_estimators": 20, "max_depth": 2, "learning_rate": 0.3}
