# src/io_utils.py
from pathlib import Path
import os
import logging
from datetime import datetime, timezone, date
from typing import Optional, Dict, Any
import json
import yaml

def ensure_dir(p: Path):
    Path(p).mkdir(parents=True, exist_ok=True)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


def dated_log_name(prefix: str = "training", day: Optional[date] = None) -> str:
    """Name of the per-day log file, e.g. ``training_2024-05-01.log``."""
    day = day or datetime.now(timezone.utc).date()
    return f"{prefix}_{day.isoformat()}.log"


def setup_logging(
    level: int = logging.INFO,
    to_file: bool = False,
    log_dir: str = "logs",
    log_name: Optional[str] = None,
    use_json: bool = False,
    quiet_libs: bool = True,
    to_console: bool = True,
) -> logging.Logger:
    """
    Set up logging for a pipeline run.

    Args:
        level: Logging level (default: INFO)
        to_file: Whether to write logs to file (default: False, logs to stdout)
        log_dir: Directory for log files (default: "logs")
        log_name: File name inside log_dir; defaults to a dated training log
        use_json: Use JSON formatting (default: False, use human-readable)
        quiet_libs: Reduce noise from third-party libraries (default: True)
        to_console: Also log to stderr (default: True)

    Returns:
        Configured root logger instance
    """
    logger = logging.getLogger()
    logger.setLevel(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    # Create formatter
    if use_json:
        formatter = JSONFormatter()
    else:
        fmt = "%(asctime)sZ [%(levelname)s] - %(message)s"
        datefmt = "%Y-%m-%dT%H:%M:%S"
        formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)
        # Use UTC timestamps
        formatter.converter = lambda *args: datetime.now(timezone.utc).timetuple()

    if to_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if to_file:
        ensure_dir(Path(log_dir))
        log_file = Path(log_dir) / (log_name or dated_log_name())
        # Append: reruns on the same day extend the same log
        file_handler = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=False)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Quiet noisy third-party libraries
    if quiet_libs:
        noisy_libs = [
            "matplotlib", "matplotlib.font_manager", "PIL", "PIL.Image",
            "numba", "joblib", "xgboost",
        ]
        for lib in noisy_libs:
            logging.getLogger(lib).setLevel(logging.WARNING)

    return logger



def log_dataset_info(logger: logging.Logger, df, name: str = "Dataset"):
    """Log dataset information for debugging."""
    logger.info(f"=== {name} Information ===")
    logger.info(f"Shape: {df.shape[0]:,} rows × {df.shape[1]:,} columns")
    logger.info(f"Memory usage: {df.memory_usage(deep=True).sum() / (1024**2):.1f} MB")

    # Data types
    dtypes = df.dtypes.value_counts()
    logger.info(f"Data types: {dict(dtypes)}")

    # Missing values
    missing = df.isnull().sum()
    missing_pct = (missing / len(df) * 100).round(2) if len(df) else missing
    missing_info = missing[missing > 0].sort_values(ascending=False)
    if not missing_info.empty:
        logger.info("Missing values:")
        for col, count in missing_info.head(20).items():
            logger.info(f"  {col}: {count:,} ({missing_pct[col]:.2f}%)")
        if len(missing_info) > 20:
            logger.info(f"  ... and {len(missing_info) - 20} more columns with missing values")
    else:
        logger.info("No missing values found")

def log_model_info(logger: logging.Logger, bundle: Dict[str, Any], name: str = "Model"):
    """Log model bundle information for debugging."""
    logger.info(f"=== {name} Information ===")
    model = bundle.get("model")
    if model is not None and hasattr(model, "get_booster"):
        n_trees = len(model.get_booster().get_dump())
        logger.info(f"Boosted trees: {n_trees:,}")
    logger.info(f"Input features: {len(bundle.get('feature_names', [])):,}")
    logger.info(f"Classes: {list(bundle.get('classes_', []))}")
    logger.info(f"Parameters: {bundle.get('best_params')}")


def load_config_and_params(resolved_path):
    """
    Load the resolved configuration and raw input parameters.

    Returns a tuple: (config, params)
    - config: the resolved configuration (parsed YAML from resolved_path)
    - params: mapping from embedded input_params in resolved config (for reproducibility)
    """
    if not resolved_path or not os.path.exists(resolved_path):
        raise FileNotFoundError("resolved_path must point to an existing YAML file")

    with open(resolved_path, "r") as rf:
        resolved_cfg = yaml.safe_load(rf) or {}

    if not isinstance(resolved_cfg, dict):
        raise ValueError(f"{resolved_path} must define a YAML mapping at the root")

    config = resolved_cfg

    # Embedded input_params take precedence so a run uses the exact parameters it was started with
    embedded_params = config.get("input_params")
    if embedded_params is not None and isinstance(embedded_params, dict):
        params = embedded_params
    else:
        input_params_path = config.get("input_params_path")
        if not input_params_path or not os.path.exists(input_params_path):
            raise FileNotFoundError(
                "Both input_params (embedded) and input_params_path are missing from resolved config"
            )

        with open(input_params_path, "r") as f:
            loaded = yaml.safe_load(f) or {}

        if not isinstance(loaded, dict):
            raise ValueError("input_params.yaml must define a YAML mapping at the root")

        params = loaded

    return config, params
