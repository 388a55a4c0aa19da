"""Tests for structlog configuration."""

from __future__ import annotations

import pytest
import structlog
from structlog.testing import capture_logs

from taproom.core import logging as taproom_logging
from taproom.core.logging import LogContext, configure_logging, get_logger


class TestProcessors:
    def test_service_metadata(self):
        configure_logging(level="INFO", json_format=True, service="taproom-test")
        event = taproom_logging._add_service_metadata(None, "info", {"event": "x"})
        assert event["service.name"] == "taproom-test"

    def test_ecs_field_names(self):
        event = taproom_logging._elasticsearch_compatible(
            None, "info", {"event": "x", "timestamp": "t", "level": "info"}
        )
        assert event == {"event": "x", "@timestamp": "t", "log.level": "info"}


class TestLogging:
    def test_events_carry_fields(self):
        configure_logging(level="INFO", json_format=False)
        with capture_logs() as logs:
            get_logger("tests.fields").info("enrichment.updated", beer_id="7781234", abv=5.6)
        assert logs == [
            {"event": "enrichment.updated", "beer_id": "7781234", "abv": 5.6, "log_level": "info"}
        ]

    @pytest.mark.asyncio
    async def test_log_context_binds_and_clears(self):
        async with LogContext(queue="beer-enrichment", message_id="m-1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["queue"] == "beer-enrichment"
            assert bound["message_id"] == "m-1"
        assert "message_id" not in structlog.contextvars.get_contextvars()

    def test_nested_context_restores_outer_value(self):
        with LogContext(queue="description-cleanup"):
            with LogContext(queue="beer-enrichment", message_id="m-2"):
                assert structlog.contextvars.get_contextvars()["queue"] == "beer-enrichment"
            bound = structlog.contextvars.get_contextvars()
            assert bound["queue"] == "description-cleanup"
            assert "message_id" not in bound


class TestMasking:
    def test_secret_fields_are_masked(self):
        event = taproom_logging._mask_secrets(
            None, "info", {"event": "client.configured", "api_key": "pplx-123", "token": None}
        )
        assert event == {"event": "client.configured", "api_key": "***", "token": None}
