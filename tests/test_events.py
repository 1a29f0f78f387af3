"""Tests for forwarding job events to Storage API."""

import logging
from unittest.mock import MagicMock

import pytest

from lgr_runner.events import NullEventSink, StorageEventSink
from lgr_runner.exceptions import StorageApiError


@pytest.fixture
def client():
    client = MagicMock()
    client.run_id = "4567"
    return client


class TestStorageEventSink:
    @pytest.mark.parametrize(
        "level,event_type",
        [
            (logging.INFO, "info"),
            (logging.WARNING, "warn"),
            (logging.ERROR, "error"),
        ],
    )
    def test_level_mapping(self, client, level, event_type):
        sink = StorageEventSink(client, component="docker-lgr-bundle")

        assert sink.emit("Something happened", level) is True

        event = client.create_event.call_args[0][0]
        assert event["type"] == event_type
        assert event["message"] == "Something happened"
        assert event["component"] == "docker-lgr-bundle"
        assert event["runId"] == "4567"

    def test_critical_hides_details(self, client):
        StorageEventSink(client).critical("KeyError: 'password'")

        event = client.create_event.call_args[0][0]
        assert event["type"] == "error"
        assert event["message"] == "Application error"
        assert event["description"] == "Contact support@keboola.com"

    def test_debug_stays_local(self, client):
        assert StorageEventSink(client).emit("details", logging.DEBUG) is False
        client.create_event.assert_not_called()

    def test_results_attached(self, client):
        StorageEventSink(client).info("done", results={"tables": ["t1"]})
        assert client.create_event.call_args[0][0]["results"] == {"tables": ["t1"]}

    def test_forward_failure_is_logged(self, client, caplog):
        caplog.set_level(logging.WARNING, logger="lgr_runner")
        client.create_event.side_effect = StorageApiError("unavailable", status_code=503)

        assert StorageEventSink(client).error("Script failed") is False
        assert "Failed to forward event to Storage API" in caplog.text


def test_null_sink_accepts_everything():
    sink = NullEventSink()
    assert sink.info("x") is False
    assert sink.critical("y") is False
