"""Unit tests for logging configuration."""

from pathlib import Path

from loguru import logger

from data_publisher.core.logging import setup_logging


class TestLogging:
    """Tests for Loguru logging setup."""

    def test_setup_logging_does_not_raise(self) -> None:
        """setup_logging with valid log level does not raise."""
        setup_logging("DEBUG")
        setup_logging("INFO")
        setup_logging("WARNING")

    def test_setup_logging_case_insensitive(self) -> None:
        """setup_logging accepts case-insensitive log levels."""
        setup_logging("info")
        setup_logging("debug")

    def test_file_sink_written(self, tmp_path: Path) -> None:
        """A log_dir enables the data-publisher.log file sink."""
        setup_logging("INFO", log_dir=str(tmp_path))
        logger.info("file sink check")
        setup_logging("INFO")
        assert "file sink check" in (tmp_path / "data-publisher.log").read_text()

    def test_publish_root_in_file_records(self, tmp_path: Path) -> None:
        """Records logged inside a publish context carry the destination root."""
        setup_logging("INFO", log_dir=str(tmp_path))
        with logger.contextualize(publish_root="/archive/run1"):
            logger.info("inside publish")
        logger.info("outside publish")
        setup_logging("INFO")

        lines = (tmp_path / "data-publisher.log").read_text().splitlines()
        inside = next(line for line in lines if "inside publish" in line)
        outside = next(line for line in lines if "outside publish" in line)
        assert "| /archive/run1 |" in inside
        assert "/archive/run1" not in outside

    def test_json_logs(self, capsys) -> None:
        """json_logs serializes console records."""
        setup_logging("INFO", json_logs=True)
        logger.info("json check")
        setup_logging("INFO")
        assert '"message": "json check"' in capsys.readouterr().err
