"""
Tests for the demo driver and logging setup.
"""

import logging

import pytest

import main
from bounceback.demo import DemoScene
from bounceback.logger import setup_logger


@pytest.fixture(autouse=True)
def _detach_handlers():
    """The CLI attaches handlers to the package logger; drop them after each test."""
    yield
    for name in ("bounceback", "bounceback.test", "bounceback.test_idem"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


class TestTrainingMonitor:

    def test_demo_run_reports_impact(self):
        monitor = main.TrainingMonitor(scene=DemoScene(noise=0))
        try:
            stats = monitor.run(30)
        finally:
            monitor.close()

        assert stats['frames_processed'] == 30
        assert stats['impacts'] == len(monitor.impacts)
        assert stats['impacts'] >= 1
        assert stats['calibration_brightness'] is not None


class TestMain:

    def test_demo(self, tmp_path, capsys):
        code = main.main(["--demo", "--frames", "3", "--config", str(tmp_path / "none.json")])

        assert code == 0
        assert "Session statistics" in capsys.readouterr().out

    def test_requires_source(self):
        with pytest.raises(SystemExit):
            main.main([])

    def test_invalid_mode(self, tmp_path):
        with pytest.raises(SystemExit):
            main.main(["--demo", "--mode", "warp", "--config", str(tmp_path / "none.json")])


class TestLogger:

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "engine.log"
        logger = setup_logger("bounceback.test", logging.DEBUG, str(log_file))
        logger.info("[Test] hello")
        for handler in logger.handlers:
            handler.flush()

        assert log_file.exists()
        assert "[Test] hello" in log_file.read_text()

    def test_idempotent(self):
        first = setup_logger("bounceback.test_idem")
        second = setup_logger("bounceback.test_idem")

        assert first is second
        assert len(second.handlers) == 1
