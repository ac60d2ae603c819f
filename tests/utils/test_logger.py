"""
Tests for logging setup
"""

from harvest_intel.utils.logger import get_logger, setup_logging


class TestLogging:
    """Test cases for setup_logging and get_logger"""

    def test_file_sink_only_when_directory_given(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HARVEST_LOG_DIR", raising=False)

        setup_logging(log_level="DEBUG", log_dir=str(tmp_path), log_file="engine.log")
        get_logger("tests").info("file sink check")
        setup_logging()

        log_file = tmp_path / "engine.log"
        assert log_file.exists()
        assert "file sink check" in log_file.read_text()

    def test_console_only_by_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HARVEST_LOG_DIR", raising=False)
        monkeypatch.chdir(tmp_path)

        setup_logging()

        assert list(tmp_path.iterdir()) == []

    def test_bound_logger(self):
        assert get_logger("harvest_intel.cache") is not get_logger()

    def test_level_and_component_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HARVEST_LOG_LEVEL", "warning")

        setup_logging(log_dir=str(tmp_path))
        log = get_logger("harvest_intel.gateway")
        log.info("hidden")
        log.warning("shown")
        monkeypatch.delenv("HARVEST_LOG_LEVEL")
        setup_logging()

        content = (tmp_path / "harvest_intel.log").read_text()
        assert "hidden" not in content
        assert "harvest_intel.gateway" in content
        assert "shown" in content
