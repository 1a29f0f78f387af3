"""Sequential job flow: materialize, provision, run, collect."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from .collector import ResultCollector
from .config import JobConfig, RunnerConfig
from .events import EventSink, NullEventSink
from .exceptions import ConfigurationError, LgrError, get_error_code
from .logging import get_logger, mask_secret, register_secret
from .provisioning import Credentials, ProvisioningClient, fetch_credentials
from .rwrapper import RWrapper
from .script import create_working_dir, materialize_script
from .storage import StorageApiClient

CREDENTIALS_TYPE = "transformations"


@dataclass
class JobResult:
    """What a finished job produced."""

    tables: List[str] = field(default_factory=list)
    outputs: List[Any] = field(default_factory=list)
    working_dir: Optional[Path] = None

    def to_dict(self) -> dict:
        return {"result": self.tables, "outputs": [str(o) for o in self.outputs]}


def output_files_dir(data_dir: Union[str, Path]) -> Path:
    return Path(data_dir) / "out" / "files"


class TransformationRunner:
    """Runs one job. Errors are logged, reported as events and re-raised."""

    def __init__(
        self,
        runner_config: RunnerConfig,
        job_config: JobConfig,
        events: Optional[EventSink] = None,
        provisioning: Optional[ProvisioningClient] = None,
        working_dir_base: Union[str, Path, None] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = runner_config
        self.job = job_config
        self.events = events or NullEventSink()
        self.provisioning = provisioning or ProvisioningClient(
            "redshift",
            job_config.token,
            job_config.run_id,
            url=runner_config.provisioning_url,
        )
        self.working_dir_base = working_dir_base
        self.logger = logger or get_logger()
        self._password: Optional[str] = None

    def run_to_directory(self, data_dir: Union[str, Path]) -> JobResult:
        """Run the job and move its files to <data_dir>/out/files with manifests."""
        out_dir = output_files_dir(data_dir)
        return self._execute(lambda collector: collector.collect_to_directory(out_dir))

    def run_to_storage(self, storage: StorageApiClient) -> JobResult:
        """Run the job and upload its files to Storage API."""
        return self._execute(lambda collector: collector.collect_to_storage(storage))

    def _execute(self, collect: Callable[[ResultCollector], List[Any]]) -> JobResult:
        try:
            working_dir = create_working_dir(self.working_dir_base)
            self.logger.debug(f"Using working directory: {working_dir}")
            script_path = materialize_script(self.job.script, working_dir)

            credentials = self._credentials()
            debug = self.job.resolve_debug(self.config)
            self.logger.debug(f"Debug mode set to: {int(debug)}")

            wrapper = RWrapper(self.config, credentials, self.logger)
            tables = wrapper.run(
                script_path,
                working_dir,
                self.job.source_table,
                self.job.script_parameters,
                debug,
            )
            self.logger.debug("R script has finished. I will now store the result files.")

            collector = ResultCollector(
                credentials,
                working_dir,
                self.job.file_tags,
                module_name=self.job.module_name,
                logger=self.logger,
            )
            outputs = collect(collector)
        except ConfigurationError as e:
            self._report(f"There was an error in input: {e.message}", e)
            raise
        except LgrError as e:
            self._report(e.message, e)
            raise
        except Exception as e:
            self._report("Application error.", e, level=logging.CRITICAL)
            raise

        self.logger.info(
            "Everything finished.",
            extra={"event_type": "job_finished", "run_id": self.job.run_id},
        )
        self.events.info("Everything finished.")
        return JobResult(tables=tables, outputs=outputs, working_dir=working_dir)

    def _credentials(self) -> Credentials:
        credentials = fetch_credentials(
            self.provisioning, CREDENTIALS_TYPE, port=self.config.db_port
        )
        self._password = credentials.password
        register_secret(credentials.password)
        return credentials

    def _report(self, message: str, error: Exception, level: int = logging.ERROR) -> None:
        """Log the user-facing message at ERROR and the raw detail at DEBUG."""
        message = mask_secret(message, self._password)
        detail = mask_secret(repr(error), self._password)
        self.logger.error(
            message,
            extra={
                "event_type": "job_error",
                "run_id": self.job.run_id,
                "extra_data": {"error_code": get_error_code(error)},
            },
        )
        self.logger.debug(f"Application error: {detail}")
        self.events.emit(message, level)
