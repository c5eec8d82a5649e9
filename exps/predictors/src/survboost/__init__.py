"""Survival-outcome classifier on gene-expression profiles.

Modules:
- data: dataset IO, outcome label collapsing, feature column selection
- explore: class balance and PCA views
- models: boosted-tree construction and seeding
- train: direct fit or repeated stratified CV grid search
- infer: predictions and model bundle persistence
- evaluate: confusion table and its statistics
- importance: gain ranking and the feature reduction pass

Importing this package has no side effects.
"""

__all__ = [
    "data",
    "explore",
    "models",
    "train",
    "infer",
    "evaluate",
    "importance",
]
