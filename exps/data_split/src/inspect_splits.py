#!/usr/bin/env python3
import argparse
from pathlib import Path

import joblib
import pandas as pd
import yaml

from exps.predictors.src.survboost.data import LABEL_COL


def describe_split(df: pd.DataFrame, name: str, class_col: str | None):
    print(f"=== {name} Split ===")
    print(f"Rows: {len(df):,}")
    print(f"Columns: {len(df.columns):,}")

    if "original_index" in df.columns:
        print(f"original_index: {df['original_index'].nunique():,} unique")
    elif df.index.name == "original_index":
        print(f"original_index (row index): {df.index.nunique():,} unique")
    else:
        print("original_index: column missing")

    if class_col:
        if class_col in df.columns:
            counts = df[class_col].value_counts(dropna=False).sort_index()
            pct = df[class_col].value_counts(normalize=True, dropna=False)
            for cls in counts.index:
                print(f"  {cls}: {counts[cls]:,} ({pct[cls] * 100:.2f}%)")
        else:
            print(f"Column '{class_col}' not found for class statistics")

    print()


def _row_ids(df: pd.DataFrame):
    if "original_index" in df.columns:
        return set(df["original_index"])
    if df.index.name == "original_index":
        return set(df.index)
    return None


def describe_overlap(df_train: pd.DataFrame, df_test: pd.DataFrame, name: str = "Train/Test"):
    print(f"=== {name} Overlap ===")
    train_ids, test_ids = _row_ids(df_train), _row_ids(df_test)
    if train_ids is None or test_ids is None:
        print("original_index missing; overlap not checked")
    else:
        shared = train_ids & test_ids
        print(f"Shared samples: {len(shared):,}")
    print()


def load_dataframe(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if path.suffix == ".joblib":
        return joblib.load(path)
    return pd.read_csv(path)


def parse_args():
    parser = argparse.ArgumentParser(description="Inspect dataset split artifacts.")
    parser.add_argument(
        "--input-params",
        required=True,
        type=Path,
        help="Path to the YAML configuration used by the split job",
    )
    parser.add_argument(
        "--class-col",
        default=None,
        help=f"Column to use for class distribution statistics (default: label_col or {LABEL_COL})",
    )
    return parser.parse_args()


def load_params(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"input_params file not found: {path}")
    with open(path, "r") as fh:
        params = yaml.safe_load(fh) or {}
    return params.get("input_params", params)


def main():
    args = parse_args()
    params = load_params(args.input_params)
    class_col = args.class_col or params.get("label_col", LABEL_COL)

    try:
        train_path = Path(params["dataset_train_path"])
        test_path = Path(params["dataset_test_path"])
    except KeyError as exc:
        missing = exc.args[0]
        raise KeyError(f"Required parameter '{missing}' missing from {args.input_params}") from exc

    df_train = load_dataframe(train_path)
    df_test = load_dataframe(test_path)

    describe_split(pd.concat([df_train, df_test], ignore_index=True), "Full Dataset (before split)", class_col)
    describe_split(df_train, "Train", class_col)
    describe_split(df_test, "Test", class_col)
    describe_overlap(df_train, df_test)

    reduced_dir = train_path.parent
    reduced_train = reduced_dir / "split_reduced_train.joblib"
    reduced_test = reduced_dir / "split_reduced_test.joblib"
    if reduced_train.exists() and reduced_test.exists():
        df_red_train, df_red_test = load_dataframe(reduced_train), load_dataframe(reduced_test)
        describe_split(df_red_train, "Reduced Train", class_col)
        describe_split(df_red_test, "Reduced Test", class_col)
        describe_overlap(df_red_train, df_red_test, "Reduced Train/Test")
    else:
        print(f"No reduced split snapshots found in {reduced_dir}")


if __name__ == "__main__":
    main()
