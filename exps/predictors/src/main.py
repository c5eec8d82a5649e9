import argparse
import logging
import os
import warnings

import pandas as pd

from exps.utils.io_utils import setup_logging, load_config_and_params
from exps.predictors.src.survboost.data import LABEL_COL
from exps.predictors.src.survboost.evaluate import evaluate_model
from exps.predictors.src.survboost.importance import run_reduction_pass
from exps.predictors.src.survboost.infer import save_model_bundle
from exps.predictors.src.survboost.models import DEFAULT_PARAMS, available_workers, seed_everything
from exps.predictors.src.survboost.train import train_model
from exps.data_split.src.utils import load_pre_split_dataset


logging.captureWarnings(True)
warnings.filterwarnings('ignore')


DEFAULT_TUNE_GRID = {
	"n_estimators": [100, 200],
	"max_depth": [3, 6],
	"learning_rate": [0.05, 0.3],
	"colsample_bytree": [0.6, 1.0],
	"subsample": [0.8, 1.0],
}


def parse_args(argv=None):
	parser = argparse.ArgumentParser(description="Train, evaluate and reduce the survival classifier.")
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

	label_col = input_params.get("label_col", LABEL_COL)
	make_plots = bool(input_params.get("make_plots", True))
	n_jobs = input_params.get("n_jobs") or available_workers()
	cv_number = int(input_params.get("cv_number", 10))
	cv_repeats = int(input_params.get("cv_repeats", 3))
	max_configs = input_params.get("max_configs")
	baseline_params = input_params.get("baseline_params") or DEFAULT_PARAMS
	tune_grid = input_params.get("tune_grid") or DEFAULT_TUNE_GRID

	logger.info(f"Worker pool size: {n_jobs}")
	logger.info(f"CV: {cv_number} folds x {cv_repeats} repeats, max configs: {max_configs}")

	# Load pre-split training and test data
	dataset_train_path = input_params.get("dataset_train_path", os.path.join(out_dir, "train.csv"))
	dataset_test_path = input_params.get("dataset_test_path", os.path.join(out_dir, "test.csv"))
	df_train, df_test = load_pre_split_dataset(logger, dataset_train_path, dataset_test_path)

	# Baseline: single configuration, no resampling
	baseline = train_model(
		df_train, baseline_params, method="none", random_state=seed, label_col=label_col, name="baseline",
	)
	baseline_report = evaluate_model(baseline, df_test, logger=logger, out_dir=out_dir, prefix="baseline", make_plots=make_plots)
	save_model_bundle(baseline, os.path.join(out_dir, "model_baseline.joblib"), logger)

	# Tuned: repeated stratified CV grid search
	tuned = train_model(
		df_train, tune_grid, method="repeatedcv", number=cv_number, repeats=cv_repeats,
		random_state=seed, n_jobs=n_jobs, max_configs=max_configs, label_col=label_col, name="tuned",
	)
	tuned["cv_results"].to_csv(os.path.join(out_dir, "tuned_cv_results.csv"), index=False)
	tuned_report = evaluate_model(tuned, df_test, logger=logger, out_dir=out_dir, prefix="tuned", make_plots=make_plots)
	save_model_bundle(tuned, os.path.join(out_dir, "model_tuned.joblib"), logger)

	# One feature-reduction pass on the tuned model's importances
	reduction = run_reduction_pass(
		tuned, df_train, df_test, tune_grid,
		method="repeatedcv", number=cv_number, repeats=cv_repeats, seed=seed,
		train_frac=float(input_params.get("train_frac", 0.8)),
		n_jobs=n_jobs, max_configs=max_configs, out_dir=out_dir,
		top_n=int(input_params.get("importance_top_n", 30)), make_plots=make_plots,
	)

	# Log final results
	logger.info("=== Final Model Results ===")
	rows = []
	for name, bundle, report in (
		("baseline", baseline, baseline_report),
		("tuned", tuned, tuned_report),
		("tuned_reduced", reduction["bundle"], reduction["report"]),
	):
		s = report["stats"]
		rows.append(dict(
			model=name,
			n_features=len(bundle["feature_names"]),
			accuracy=s["accuracy"],
			no_information_rate=s["no_information_rate"],
			kappa=s["kappa"],
			sensitivity=s["sensitivity"],
			specificity=s["specificity"],
		))
		logger.info(f"{name.upper()} Model:")
		logger.info(f"  Best params: {bundle['best_params']}")
		if bundle["cv_summary"]:
			logger.info(
				f"  CV summary: acc={bundle['cv_summary']['mean_acc']:.4f}±{bundle['cv_summary']['std_acc']:.4f}, "
				f"kappa={bundle['cv_summary']['mean_kappa']:.4f}"
			)
		logger.info(f"  Holdout metrics: acc={s['accuracy']:.4f}, kappa={s['kappa']:.4f}")
	pd.DataFrame(rows).to_csv(os.path.join(out_dir, "model_comparison.csv"), index=False)

	logger.info("=== Survival Classifier Training Completed Successfully ===")


if __name__ == "__main__":
	try:
		main()
	except Exception:
		logging.getLogger("main").exception("Fatal error in main")
		raise
