import json
import logging
from datetime import date

import pytest
import yaml

from exps.utils.io_utils import (
    JSONFormatter,
    dated_log_name,
    load_config_and_params,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_dated_log_name():
    assert dated_log_name(day=date(2024, 5, 1)) == "training_2024-05-01.log"
    assert dated_log_name("split", date(2023, 12, 31)) == "split_2023-12-31.log"


def test_setup_logging_appends_to_dated_file(tmp_path, restore_root_logger):
    setup_logging(to_file=True, log_dir=str(tmp_path), to_console=False)
    logging.getLogger("first").info("first run")
    setup_logging(to_file=True, log_dir=str(tmp_path), to_console=False)
    logging.getLogger("second").info("second run")
    for h in restore_root_logger.handlers:
        h.flush()

    logs = list(tmp_path.glob("training_*.log"))
    assert len(logs) == 1
    text = logs[0].read_text()
    assert "first run" in text and "second run" in text
    assert "[INFO]" in text


def test_setup_logging_replaces_handlers(tmp_path, restore_root_logger):
    setup_logging(to_file=True, log_dir=str(tmp_path), to_console=True)
    setup_logging(to_file=True, log_dir=str(tmp_path), to_console=True)
    assert len(restore_root_logger.handlers) == 2


def test_json_formatter():
    record = logging.LogRecord("cv", logging.WARNING, __file__, 1, "fold %d failed", (3,), None)
    entry = json.loads(JSONFormatter().format(record))
    assert entry["message"] == "fold 3 failed"
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "cv"


def test_load_config_with_embedded_params(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"paths": {"out": "x"}, "input_params": {"seed": 7}}))
    config, params = load_config_and_params(str(path))
    assert config["paths"]["out"] == "x"
    assert params == {"seed": 7}


def test_load_config_with_params_file(tmp_path):
    params_path = tmp_path / "input_params.yaml"
    params_path.write_text(yaml.safe_dump({"seed": 11}))
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"input_params_path": str(params_path)}))
    _, params = load_config_and_params(str(path))
    assert params["seed"] == 11


def test_load_config_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config_and_params(str(tmp_path / "missing.yaml"))

    no_params = tmp_path / "config.yaml"
    no_params.write_text(yaml.safe_dump({"paths": {}}))
    with pytest.raises(FileNotFoundError):
        load_config_and_params(str(no_params))

    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config_and_params(str(not_mapping))
