"""Tests for the top-level CLI application."""

from unittest.mock import patch

from typer.testing import CliRunner

from devicefleet import __version__
from devicefleet.cli import app
from devicefleet.utils.logging_config import LogFormat, LogLevel

runner = CliRunner()


class TestCli:
    """Test the CLI callback and version command."""

    def test_version(self, isolated_config):
        with patch("devicefleet.cli.setup_logging"):
            result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"devicefleet version: {__version__}" in result.output

    def test_logging_from_config(self, isolated_config):
        with patch("devicefleet.cli.setup_logging") as setup_logging:
            runner.invoke(app, ["version"])

        logging_config = setup_logging.call_args.args[0]
        assert logging_config.level == LogLevel.INFO
        assert logging_config.format_type == LogFormat.DETAILED
        assert logging_config.enable_file_logging is False

    def test_verbose_enables_debug(self, isolated_config):
        with patch("devicefleet.cli.setup_logging") as setup_logging:
            runner.invoke(app, ["--verbose", "--log-file", "version"])

        logging_config = setup_logging.call_args.args[0]
        assert logging_config.level == LogLevel.DEBUG
        assert logging_config.enable_file_logging is True

    def test_invalid_log_level(self, isolated_config):
        with patch("devicefleet.cli.setup_logging") as setup_logging:
            result = runner.invoke(app, ["--log-level", "loud", "version"])

        assert result.exit_code == 1
        setup_logging.assert_not_called()

    def test_subcommands_registered(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "devices" in result.output
        assert "config" in result.output
