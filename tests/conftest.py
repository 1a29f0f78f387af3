"""Pytest configuration and shared fixtures."""

import logging
from unittest.mock import MagicMock

import pytest

from lgr_runner.config import JobConfig, RunnerConfig
from lgr_runner.provisioning import Credentials

PASSWORD = "s3cr3t-'pa$$ word\""


@pytest.fixture
def runner_config(tmp_path):
    """Runner config pointing at paths inside a temp directory."""
    return RunnerConfig(
        rscript="/usr/bin/Rscript",
        wrapper_script=str(tmp_path / "RScripts" / "wrapper.R"),
        params_wrapper_script=str(tmp_path / "RScripts" / "wrapperParams.R"),
        script_dir=str(tmp_path / "RScripts"),
        db_driver=str(tmp_path / "lib" / "RedshiftJDBC41.jar"),
    )


@pytest.fixture
def credentials():
    """Warehouse credentials with a password full of shell metacharacters."""
    return Credentials(
        hostname="redshift.example.com",
        db="sapi_123",
        user="sapi_user",
        password=PASSWORD,
        schema="workspace_42",
    )


@pytest.fixture
def provisioning_payload():
    return {
        "credentials": {
            "hostname": "redshift.example.com",
            "db": "sapi_123",
            "user": "sapi_user",
            "password": PASSWORD,
            "schema": "workspace_42",
        }
    }


@pytest.fixture
def job_config():
    return JobConfig(
        script=["library(stats)", "x <- 1"],
        source_table="orders",
        script_parameters={"horizon": 12},
        file_tags=["forecast"],
        debug=False,
        token="123-token",
        run_id="4567",
    )


@pytest.fixture
def db_connection():
    """Mock DB-API connection whose cursor works as a context manager.

    Set ``db_connection.cursor_mock.fetchall.return_value`` to the rows.
    """
    conn = MagicMock()
    cursor = MagicMock()
    cursor.fetchall.return_value = []
    conn.cursor.return_value.__enter__.return_value = cursor
    conn.cursor_mock = cursor
    return conn


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers installed by setup_logging so streams do not outlive a test."""
    yield
    logging.getLogger("lgr_runner").handlers.clear()
