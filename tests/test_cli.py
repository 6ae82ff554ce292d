"""Tests for CLI logging setup."""

from loguru import logger

from followthru.cli.main import setup_logging


class TestSetupLogging:
    """Tests for the configured log level."""

    def test_configured_level_filters(self, capsys):
        try:
            setup_logging(level="warning")
            logger.info("quiet line")
            logger.warning("loud line")
        finally:
            logger.remove()

        err = capsys.readouterr().err
        assert "loud line" in err
        assert "quiet line" not in err

    def test_verbose_overrides_level(self, capsys):
        try:
            setup_logging(verbose=True, level="ERROR")
            logger.debug("debug line")
        finally:
            logger.remove()

        assert "debug line" in capsys.readouterr().err
