import logging

from apps.api.core.config import Settings
from apps.api.core.logging import (
    configure_logging,
    init_tracer,
    logging_config,
    parse_otlp_headers,
    tracing_resource,
)


def test_parse_otlp_headers_skips_malformed_items():
    assert parse_otlp_headers(None) == {}
    assert parse_otlp_headers("api-key=abc, x-team = ops ,broken,=nokey") == {
        "api-key": "abc",
        "x-team": "ops",
    }


def test_configure_logging_applies_level():
    logger = configure_logging(Settings(log_level="debug"))

    assert logger.name == "apps.api"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_tracer_is_not_installed_when_disabled():
    assert init_tracer(Settings(otel_enabled=False)) is None


def test_database_loggers_follow_sql_echo():
    quiet = logging_config(Settings(database_echo=False))
    echo = logging_config(Settings(database_echo=True))

    assert quiet["loggers"]["asyncpg"]["level"] == logging.WARNING
    assert echo["loggers"]["sqlalchemy.engine"]["level"] == logging.INFO


def test_tracing_resource_identifies_the_service():
    resource = tracing_resource(Settings(otel_service_name="helpdesk-api", environment="staging"))

    assert resource.attributes["service.name"] == "helpdesk-api"
    assert resource.attributes["service.namespace"] == "helpdesk"
    assert resource.attributes["deployment.environment"] == "staging"
