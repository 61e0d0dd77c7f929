import logging

import pytest

from idrac_fan_controller import __main__ as entry
from idrac_fan_controller.logging_utils import LOGGER_NAME, setup_logging


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("IDRAC_HOST", "IDRAC_USER", "IDRAC_PW", "IDRAC_FAN_CONFIG", "LOG_FILE", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield
    logging.getLogger(LOGGER_NAME).handlers.clear()


def test_missing_credentials_exit_before_loop(clean_env, monkeypatch):
    started = []
    monkeypatch.setattr(entry.FanController, "run", lambda self, once=False: started.append(once))
    with pytest.raises(SystemExit) as exc:
        entry.main([])
    assert exc.value.code == entry.EXIT_CONFIG_ERROR
    assert started == []


def test_runs_controller_with_cli_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("IDRAC_HOST", "10.0.0.5")
    monkeypatch.setenv("IDRAC_USER", "root")
    monkeypatch.setenv("IDRAC_PW", "calvin")
    seen = {}

    def fake_run(self, once=False):
        seen["config"] = self.config
        seen["once"] = once

    monkeypatch.setattr(entry.FanController, "run", fake_run)
    entry.main(["--once", "--check-interval", "5", "--log-level", "debug"])
    assert seen["once"] is True
    assert seen["config"].check_interval == 5
    assert seen["config"].log_level == "debug"


def test_fatal_error_exits_one(clean_env, monkeypatch):
    monkeypatch.setenv("IDRAC_HOST", "10.0.0.5")
    monkeypatch.setenv("IDRAC_USER", "root")
    monkeypatch.setenv("IDRAC_PW", "calvin")

    def boom(self, once=False):
        raise RuntimeError("boom")

    monkeypatch.setattr(entry.FanController, "run", boom)
    with pytest.raises(SystemExit) as exc:
        entry.main([])
    assert exc.value.code == 1


def test_log_line_format_and_level(capsys):
    logger = setup_logging("warning")
    logger.info("hidden")
    logger.warning("shown")
    err = capsys.readouterr().err
    assert "hidden" not in err
    line = err.strip().splitlines()[-1]
    assert line.startswith("[")
    assert line.endswith("] [WARNING] shown")
    logger.handlers.clear()


def test_unwritable_log_file_falls_back_to_stderr(tmp_path, capsys):
    logger = setup_logging("info", str(tmp_path / "missing" / "fan.log"))
    assert len(logger.handlers) == 1
    assert "stderr only" in capsys.readouterr().err
    logger.handlers.clear()


def test_log_file(tmp_path):
    path = tmp_path / "fan.log"
    logger = setup_logging("debug", str(path))
    logger.debug("to file")
    for handler in logger.handlers:
        handler.flush()
    assert "[DEBUG] to file" in path.read_text()
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


def test_bad_sensor_filter_exits_with_config_error(clean_env, monkeypatch, tmp_path):
    path = tmp_path / "fan.toml"
    path.write_text('host = "h"\nuser = "u"\npassword = "p"\nsensor_filter = 5\n')
    started = []
    monkeypatch.setattr(entry.FanController, "run", lambda self, once=False: started.append(once))
    with pytest.raises(SystemExit) as exc:
        entry.main(["--config", str(path)])
    assert exc.value.code == entry.EXIT_CONFIG_ERROR
    assert started == []
