"""Tests for reading key-value configuration tables."""

from unittest.mock import MagicMock

import pytest

from lgr_runner.config_table import (
    key_value_map,
    nest_keys,
    parse_csv,
    read_config_table,
)
from lgr_runner.exceptions import ConfigurationError


def test_key_value_map_later_rows_win():
    rows = [
        {"name": "a", "value": "1"},
        {"name": "b", "value": "2"},
        {"name": "a", "value": "3"},
    ]
    assert key_value_map(rows) == {"a": "3", "b": "2"}


def test_key_value_map_custom_columns():
    assert key_value_map([{"k": "x", "v": "y"}], "k", "v") == {"x": "y"}


def test_nest_keys():
    flat = {"db.host": "h", "db.port": "5439", "debug": "1", "a.b.c": "deep"}

    assert nest_keys(flat) == {
        "db": {"host": "h", "port": "5439"},
        "debug": "1",
        "a": {"b": {"c": "deep"}},
    }


def test_nest_keys_scalar_replaced_by_mapping():
    assert nest_keys({"db": "x", "db.host": "h"}) == {"db": {"host": "h"}}


def test_parse_csv():
    assert parse_csv('"name","value"\n"a","1"\n') == [{"name": "a", "value": "1"}]
    assert parse_csv("") == []


class TestReadConfigTable:
    def test_reads_component_table(self):
        client = MagicMock()
        client.table_exists.return_value = True
        client.export_table.return_value = (
            '"name","value"\n"storage.url","https://x"\n"debug","0"\n'
        )

        config = read_config_table(client, "docker-lgr-bundle", "config")

        client.table_exists.assert_called_once_with("sys.c-docker-lgr-bundle.config")
        assert config == {"storage": {"url": "https://x"}, "debug": "0"}

    def test_missing_table(self):
        client = MagicMock()
        client.table_exists.return_value = False

        with pytest.raises(ConfigurationError, match="not found or not accessible"):
            read_config_table(client, "docker-lgr-bundle", "config")
        client.export_table.assert_not_called()
