"""Configuration models for the runner and for individual jobs."""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

CONFIG_FILE_NAME = "config.yml"
TOKEN_ENV = "KBC_TOKENID"
RUN_ID_ENV = "KBC_RUNID"

# Environment variable -> RunnerConfig field
RUNNER_ENV_VARS = {
    "LGR_RSCRIPT": "rscript",
    "LGR_WRAPPER_SCRIPT": "wrapper_script",
    "LGR_PARAMS_WRAPPER_SCRIPT": "params_wrapper_script",
    "LGR_SCRIPT_DIR": "script_dir",
    "LGR_DB_DRIVER": "db_driver",
    "LGR_DB_PORT": "db_port",
    "LGR_ENVIRONMENT": "environment",
    "KBC_URL": "storage_api_url",
    "LGR_PROVISIONING_URL": "provisioning_url",
    "LGR_LOG_LEVEL": "log_level",
}


class RunnerConfig(BaseModel):
    """Deployment settings shared by every job run by this process.

    Passed explicitly to the components that need it; nothing reads these
    values from a global container.
    """

    rscript: str = "Rscript"
    wrapper_script: str = "/opt/lgr/RScripts/wrapper.R"
    params_wrapper_script: str = "/opt/lgr/RScripts/wrapperParams.R"
    script_dir: str = "/opt/lgr/RScripts"
    db_driver: str = "/opt/lgr/lib/RedshiftJDBC41.jar"
    db_port: int = 5439
    environment: str = "prod"
    storage_api_url: str = "https://connection.keboola.com"
    provisioning_url: str = "https://syrup.keboola.com/provisioning"
    component: str = "docker-lgr-bundle"
    log_level: str = "INFO"

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() == "dev"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RunnerConfig":
        """Build runner configuration from LGR_* / KBC_* environment variables."""
        environ = os.environ if environ is None else environ
        values = {
            field: environ[key]
            for key, field in RUNNER_ENV_VARS.items()
            if environ.get(key)
        }
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RunnerConfig":
        """Load runner configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Runner config not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)


class JobConfig(BaseModel):
    """A single job descriptor: what R script to run and with what input."""

    model_config = ConfigDict(populate_by_name=True)

    script: Union[str, List[str]]
    source_table: str = Field(alias="sourceTable")
    script_parameters: Any = Field(default_factory=dict, alias="scriptParameters")
    file_tags: List[str] = Field(default_factory=list, alias="fileTags")
    debug: Optional[bool] = None
    token: str
    run_id: str = Field(default="", alias="runId")
    # Set when a named script module runs; tags the uploaded files
    module_name: Optional[str] = None

    @field_validator("source_table", "token")
    @classmethod
    def require_value(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value must not be empty")
        return v.strip()

    @field_validator("script")
    @classmethod
    def require_script(cls, v: Union[str, List[str]]) -> Union[str, List[str]]:
        if isinstance(v, str) and not v.strip():
            raise ValueError("Script content is empty.")
        if isinstance(v, list) and not v:
            raise ValueError("Script content is empty.")
        return v

    def resolve_debug(self, runner_config: RunnerConfig) -> bool:
        """Debug flag from the descriptor, or dev environment when unset."""
        if self.debug is not None:
            return bool(self.debug)
        return runner_config.is_dev

    @classmethod
    def from_descriptor(
        cls,
        data: Dict[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "JobConfig":
        """Build a job config from a parsed config.yml structure.

        Script settings live under ``parameters``; ``fileTags``, ``token`` and
        ``runId`` are top-level. ``KBC_TOKENID`` and ``KBC_RUNID`` take
        precedence over the descriptor when set.

        Raises:
            ConfigurationError: If a required value is missing
        """
        environ = os.environ if environ is None else environ
        if not isinstance(data, dict):
            raise ConfigurationError("Job configuration must be a mapping.")
        params = data.get("parameters") or {}

        source_table = params.get("sourceTable")
        if not source_table:
            raise ConfigurationError("Source table must be provided in configuration.")

        token = environ.get(TOKEN_ENV) or data.get("token")
        if not token:
            raise ConfigurationError(
                "Storage API token must be provided in configuration or in "
                f"environment variable {TOKEN_ENV}."
            )

        script = params.get("script")
        if not script:
            raise ConfigurationError("Script content is empty.")

        file_tags = data.get("fileTags")
        if not isinstance(file_tags, list):
            file_tags = []

        values = {
            "script": script,
            "sourceTable": source_table,
            "scriptParameters": params.get("scriptParameters")
            or params.get("scriptParams")
            or {},
            "fileTags": file_tags,
            "token": token,
            "runId": environ.get(RUN_ID_ENV) or data.get("runId") or "",
        }
        if params.get("debug") is not None:
            values["debug"] = bool(params["debug"])

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid job configuration: {e}") from e

    @classmethod
    def from_data_dir(
        cls,
        data_dir: Union[str, Path],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "JobConfig":
        """Load the job descriptor (config.yml) from a data directory.

        Raises:
            ConfigurationError: If the directory or file is missing or unparseable
        """
        data_dir = Path(data_dir)
        if not data_dir.is_dir():
            raise ConfigurationError("Data directory does not exist or is not directory.")

        config_path = data_dir / CONFIG_FILE_NAME
        if not config_path.exists():
            raise ConfigurationError(f"{CONFIG_FILE_NAME} is not present in data directory.")

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse {CONFIG_FILE_NAME}: {e}"
            ) from e

        if data is None:
            raise ConfigurationError(f"{CONFIG_FILE_NAME} is empty.")

        return cls.from_descriptor(data, environ=environ)
