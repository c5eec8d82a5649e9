import os
import random
from typing import Any, Dict, Optional

import numpy as np
from xgboost import XGBClassifier


# Tunable axes of the boosted-tree ensemble
PARAM_AXES = (
    "n_estimators",
    "max_depth",
    "learning_rate",
    "gamma",
    "colsample_bytree",
    "min_child_weight",
    "subsample",
    "reg_lambda",
    "reg_alpha",
)

# caret xgbTree names accepted in configuration files
PARAM_ALIASES = {
    "nrounds": "n_estimators",
    "eta": "learning_rate",
}

INT_AXES = {"n_estimators", "max_depth"}

DEFAULT_PARAMS: Dict[str, Any] = {
    "n_estimators": 100,
    "max_depth": 6,
    "learning_rate": 0.3,
    "gamma": 0.0,
    "colsample_bytree": 1.0,
    "min_child_weight": 1.0,
    "subsample": 1.0,
}


def seed_everything(seed: int = 1234) -> None:
    random.seed(seed)
    np.random.seed(seed)


def available_workers() -> int:
    """Worker-pool size: all cores but one, never below one."""
    return max(1, (os.cpu_count() or 1) - 1)


def canonical_param_name(name: str) -> str:
    return PARAM_ALIASES.get(name, name)


def build_classifier(params: Dict[str, Any], random_state: int = 1234, n_jobs: Optional[int] = 1) -> XGBClassifier:
    kwargs = {canonical_param_name(k): v for k, v in params.items()}
    for k in INT_AXES & kwargs.keys():
        kwargs[k] = int(kwargs[k])
    return XGBClassifier(
        objective="binary:logistic",
        eval_metric="logloss",
        tree_method="hist",
        random_state=random_state,
        n_jobs=n_jobs,
        **kwargs,
    )
