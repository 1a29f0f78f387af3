"""Reading component configuration stored as key-value tables.

Configuration tables have ``name`` and ``value`` columns. Dotted names are
expanded into nested mappings, so ``foo.bar`` becomes ``config["foo"]["bar"]``.
"""

import csv
import io
from typing import Any, Dict, Iterable, List, Mapping

from .exceptions import ConfigurationError
from .storage import StorageApiClient


def parse_csv(data: str) -> List[Dict[str, str]]:
    """Parse CSV text with a header row into a list of row dictionaries."""
    if not data:
        return []
    return list(csv.DictReader(io.StringIO(data)))


def key_value_map(
    rows: Iterable[Mapping[str, Any]], key_name: str = "name", value_name: str = "value"
) -> Dict[str, Any]:
    """Map rows of a key-value table into a flat dictionary.

    Later rows win when a key repeats.
    """
    return {row[key_name]: row[value_name] for row in rows}


def nest_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Expand dotted keys of a flat mapping into nested dictionaries."""
    result: Dict[str, Any] = {}
    for key, value in data.items():
        *parents, leaf = key.split(".")
        node = result
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value
    return result


def read_table(client: StorageApiClient, table_id: str) -> List[Dict[str, str]]:
    """Read a whole Storage API table.

    Raises:
        ConfigurationError: If the table does not exist or is not accessible
    """
    if not client.table_exists(table_id):
        raise ConfigurationError(
            f"Configuration table '{table_id}' not found or not accessible."
        )
    return parse_csv(client.export_table(table_id))


def read_config_table(
    client: StorageApiClient, component: str, table_name: str
) -> Dict[str, Any]:
    """Read a component configuration table as a nested dictionary."""
    table_id = f"sys.c-{component}.{table_name}"
    return nest_keys(key_value_map(read_table(client, table_id)))
