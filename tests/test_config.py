"""Tests for settings and logging setup."""

import logging
from datetime import timedelta

import pytest

from nitebite._types import money
from nitebite.config import DEFAULT_DATABASE_URL, Settings
from nitebite.log import setup_logging
from nitebite.ratelimit import Category, ORDER_CREATION


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.log_level == "INFO"
        assert settings.log_dir is None
        assert settings.checkout.price_tolerance == money(1)
        assert settings.checkout.max_item_quantity == 50
        assert settings.rate_limits[Category.ORDER_CREATION].max_requests == 5

    def test_reads_environment(self):
        settings = Settings.from_env({
            "NITEBITE_DATABASE_URL": "sqlite+aiosqlite:///orders.db",
            "NITEBITE_LOG_LEVEL": "debug",
            "NITEBITE_LOG_DIR": "/var/log/nitebite",
            "NITEBITE_PRICE_TOLERANCE": "0.5",
            "NITEBITE_MAX_ITEM_QUANTITY": "20",
            "NITEBITE_IDEMPOTENCY_TTL_SECONDS": "120",
        })

        assert settings.database_url == "sqlite+aiosqlite:///orders.db"
        assert settings.log_level == "DEBUG"
        assert settings.log_dir == "/var/log/nitebite"
        assert settings.checkout.price_tolerance == money("0.50")
        assert settings.checkout.max_item_quantity == 20
        assert settings.checkout.idempotency.result_ttl == timedelta(seconds=120)

    def test_bad_number_raises(self):
        with pytest.raises(ValueError):
            Settings.from_env({"NITEBITE_MAX_ITEM_QUANTITY": "lots"})

    def test_with_rate_limit_leaves_others(self):
        settings = Settings().with_rate_limit(
            Category.ORDER_CREATION, ORDER_CREATION.with_max_requests(50)
        )

        assert settings.rate_limits[Category.ORDER_CREATION].max_requests == 50
        assert settings.rate_limits[Category.LOGIN].max_requests == 10
        assert Settings().rate_limits[Category.ORDER_CREATION].max_requests == 5


@pytest.fixture
def clean_logger():
    logger = logging.getLogger("nitebite")
    saved = logger.handlers[:], logger.level
    logger.handlers.clear()
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:], logger.level = saved[0], saved[1]


class TestSetupLogging:
    def test_console_only(self, clean_logger):
        logger = setup_logging("WARNING")

        assert logger is clean_logger
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_second_call_only_changes_level(self, clean_logger, tmp_path):
        setup_logging("INFO", tmp_path)
        setup_logging("DEBUG", tmp_path)

        assert len(clean_logger.handlers) == 2
        assert clean_logger.level == logging.DEBUG

    def test_writes_log_file(self, clean_logger, tmp_path):
        setup_logging("INFO", tmp_path / "logs")

        logging.getLogger("nitebite.order").info("order o-1 placed")
        for handler in clean_logger.handlers:
            handler.flush()

        text = (tmp_path / "logs" / "nitebite.log").read_text(encoding="utf-8")
        assert "[INFO] nitebite.order: order o-1 placed" in text
