import argparse
import logging
import os
import warnings

import pandas as pd

from exps.utils.io_utils import setup_logging, load_config_and_params
from exps.predictors.src.survboost.data import LABEL_COL, load_dataset
from exps.predictors.src.survboost.explore import explore_dataset
from exps.predictors.src.survboost.models import seed_everything
from exps.data_split.src.utils import export_splits, split_dataset, summarize_split


logging.captureWarnings(True)
warnings.filterwarnings('ignore')


def parse_args(argv=None):
	parser = argparse.ArgumentParser(description="Load, explore and split the expression dataset.")
	parser.add_argument("--config", required=True, help="Path to the YAML configuration file")
	return parser.parse_args(argv)


def main(argv=None):
	resolved_path = parse_args(argv).config
	config, input_params = load_config_and_params(resolved_path)

	out_dir = config.get("paths", {}).get("out", ".")
	logger = setup_logging(level=logging.INFO, to_file=True, log_dir=out_dir, to_console=False)
	logger.info(f"Loading configuration from: {resolved_path}")

	seed = int(input_params.get("seed", 1234))
	seed_everything(seed)
	logger.info(f"Random seed set to: {seed}")

	if "dataset_path" not in input_params:
		raise KeyError("'dataset_path' must be defined in input params")
	label_col = input_params.get("label_col", LABEL_COL)

	# Load dataset
	df = load_dataset(logger, input_params["dataset_path"], label_col=label_col)

	# Exploratory views (class balance, PCA)
	explore_dataset(
		logger, df,
		out_dir=os.path.join(out_dir, "exploration") if input_params.get("make_plots", True) else None,
		n_components=int(input_params.get("pca_components", 10)),
		label_col=label_col,
		random_state=seed,
	)

	# Split dataset into training and test sets
	train_frac = float(input_params.get("train_frac", 0.8))
	df_train, df_test = split_dataset(df, train_frac=train_frac, seed=seed, label_col=label_col, logger=logger)

	summary = pd.DataFrame([
		summarize_split(df, "full", label_col),
		summarize_split(df_train, "train", label_col),
		summarize_split(df_test, "test", label_col),
	])
	logger.info(f"Split summary:\n{summary.to_string(index=False)}")

	# Export dataset splits
	train_path = input_params.get("dataset_train_path", os.path.join(out_dir, "train.csv"))
	test_path = input_params.get("dataset_test_path", os.path.join(out_dir, "test.csv"))
	export_splits(logger, df_train, df_test, train_path, test_path)
	summary_path = os.path.join(os.path.dirname(os.path.abspath(train_path)), "split_summary.csv")
	summary.to_csv(summary_path, index=False)
	logger.info(f"Split summary exported to: {summary_path}")


if __name__ == "__main__":
	try:
		main()
	except Exception:
		logging.getLogger("main").exception("Fatal error in main")
		raise
