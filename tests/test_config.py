"""Tests for job descriptor and runner configuration loading."""

import pytest
import yaml

from lgr_runner.config import JobConfig, RunnerConfig
from lgr_runner.exceptions import ConfigurationError


def _descriptor(**parameters):
    params = {"sourceTable": "orders", "script": ["x <- 1"]}
    params.update(parameters)
    return {"token": "123-token", "runId": "99", "parameters": params}


@pytest.fixture
def data_dir(tmp_path):
    def _write(data):
        (tmp_path / "config.yml").write_text(yaml.safe_dump(data))
        return tmp_path

    return _write


class TestJobConfigFromDescriptor:
    """Tests for JobConfig.from_descriptor."""

    def test_full_descriptor(self):
        data = _descriptor(scriptParameters={"horizon": 12}, debug=True)
        data["fileTags"] = ["forecast", "weekly"]

        job = JobConfig.from_descriptor(data, environ={})

        assert job.source_table == "orders"
        assert job.script == ["x <- 1"]
        assert job.script_parameters == {"horizon": 12}
        assert job.file_tags == ["forecast", "weekly"]
        assert job.debug is True
        assert job.token == "123-token"
        assert job.run_id == "99"

    def test_defaults(self):
        data = _descriptor()
        del data["runId"]

        job = JobConfig.from_descriptor(data, environ={})

        assert job.script_parameters == {}
        assert job.file_tags == []
        assert job.debug is None
        assert job.run_id == ""

    def test_legacy_script_params_key(self):
        job = JobConfig.from_descriptor(_descriptor(scriptParams={"a": 1}), environ={})
        assert job.script_parameters == {"a": 1}

    def test_non_list_file_tags_ignored(self):
        data = _descriptor()
        data["fileTags"] = "forecast"

        job = JobConfig.from_descriptor(data, environ={})

        assert job.file_tags == []

    def test_missing_source_table(self):
        data = _descriptor()
        del data["parameters"]["sourceTable"]

        with pytest.raises(ConfigurationError, match="Source table must be provided"):
            JobConfig.from_descriptor(data, environ={})

    def test_missing_token(self):
        data = _descriptor()
        del data["token"]

        with pytest.raises(ConfigurationError, match="token must be provided"):
            JobConfig.from_descriptor(data, environ={})

    def test_empty_script(self):
        with pytest.raises(ConfigurationError, match="Script content is empty"):
            JobConfig.from_descriptor(_descriptor(script=[]), environ={})

    def test_environment_overrides_token_and_run_id(self):
        data = _descriptor()
        del data["token"]

        job = JobConfig.from_descriptor(
            data, environ={"KBC_TOKENID": "env-token", "KBC_RUNID": "env-run"}
        )

        assert job.token == "env-token"
        assert job.run_id == "env-run"


class TestJobConfigFromDataDir:
    """Tests for JobConfig.from_data_dir."""

    def test_loads_config_yml(self, data_dir):
        path = data_dir(_descriptor(script="x <- 1\n"))

        job = JobConfig.from_data_dir(path, environ={})

        assert job.script == "x <- 1\n"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Data directory does not exist"):
            JobConfig.from_data_dir(tmp_path / "nope", environ={})

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="config.yml is not present"):
            JobConfig.from_data_dir(tmp_path, environ={})

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "config.yml").write_text("parameters: [unclosed")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            JobConfig.from_data_dir(tmp_path, environ={})

    def test_empty_file(self, tmp_path):
        (tmp_path / "config.yml").write_text("")

        with pytest.raises(ConfigurationError, match="empty"):
            JobConfig.from_data_dir(tmp_path, environ={})


class TestDebugResolution:
    """Debug flag falls back to the runner environment."""

    def test_explicit_flag_wins(self):
        job = JobConfig.from_descriptor(_descriptor(debug=False), environ={})
        assert job.resolve_debug(RunnerConfig(environment="dev")) is False

    def test_dev_environment_enables_debug(self):
        job = JobConfig.from_descriptor(_descriptor(), environ={})
        assert job.resolve_debug(RunnerConfig(environment="dev")) is True
        assert job.resolve_debug(RunnerConfig(environment="prod")) is False


class TestRunnerConfig:
    """Tests for RunnerConfig loading."""

    def test_defaults(self):
        config = RunnerConfig()
        assert config.rscript == "Rscript"
        assert config.db_port == 5439
        assert config.is_dev is False

    def test_from_env(self):
        config = RunnerConfig.from_env(
            {
                "LGR_RSCRIPT": "/usr/local/bin/Rscript",
                "LGR_DB_PORT": "5440",
                "LGR_ENVIRONMENT": "dev",
                "KBC_URL": "https://connection.eu-central-1.keboola.com",
            }
        )

        assert config.rscript == "/usr/local/bin/Rscript"
        assert config.db_port == 5440
        assert config.is_dev is True
        assert config.storage_api_url == "https://connection.eu-central-1.keboola.com"

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "runner.yaml"
        path.write_text(yaml.safe_dump({"rscript": "/opt/R/bin/Rscript"}))

        assert RunnerConfig.from_yaml(path).rscript == "/opt/R/bin/Rscript"

    def test_from_yaml_missing(self, tmp_path):
        with pytest.raises(ConfigurationError):
            RunnerConfig.from_yaml(tmp_path / "missing.yaml")
