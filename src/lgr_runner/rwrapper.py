"""Execution of R scripts through the wrapper script.

The R interpreter is invoked with an argument vector (no shell), so paths,
credentials and the JSON parameter blob are each passed as one token.
"""

import json
import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .config import RunnerConfig
from .exceptions import ConfigurationError, ScriptExecutionError
from .logging import get_logger, mask_secret
from .provisioning import Credentials
from .script import find_script_modules

DEBUG_LOG_NAME = "debug.log"
JAVA_HOME_HINT = "Cannot load Java JRE, verify that JAVA_HOME path is correct. Stack: "
ADDITIONAL_ERROR_MARKER = "Additional error: "


@dataclass
class CommandSpec:
    """Argument vector for a single interpreter invocation."""

    executable: str
    wrapper: str
    script: str
    arguments: List[str] = field(default_factory=list)
    password: Optional[str] = field(default=None, repr=False)

    @property
    def argv(self) -> List[str]:
        # --vanilla: do not load or save the R session
        return [self.executable, "--vanilla", self.wrapper, self.script, *self.arguments]

    def masked(self) -> str:
        """Shell-like rendering for logs with the password hidden."""
        # mask before quoting, quoting rewrites passwords containing quotes
        return shlex.join(mask_secret(arg, self.password) for arg in self.argv)

    def __repr__(self) -> str:
        return f"CommandSpec({self.masked()!r})"


@dataclass
class RunResult:
    """Exit status and captured output of the interpreter."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    DEBUG_FAILURE = "debug_failure"
    PLAIN_FAILURE = "plain_failure"


@dataclass
class RunOutcome:
    """Classified result of a script run."""

    kind: OutcomeKind
    tables: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS


def compose_output(result: RunResult) -> str:
    """Standard output followed by standard error, when there is any."""
    output = result.stdout or ""
    if result.stderr:
        output += ADDITIONAL_ERROR_MARKER + result.stderr
    return output


def is_missing_java(text: str) -> bool:
    lowered = text.lower()
    return "unable to load shared object" in lowered and "rjava" in lowered


def classify_result(
    result: RunResult,
    debug: bool,
    working_dir: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> RunOutcome:
    """Classify an interpreter run.

    Args:
        result: Exit status and captured output
        debug: Whether the script ran in debug mode
        working_dir: Working directory where the wrapper writes debug.log
        logger: Logger for the failure details

    Returns:
        RunOutcome with intermediate table names or the error message
    """
    logger = logger or get_logger()

    if result.exit_code == 0:
        tables = [t.strip() for t in (result.stdout or "").split(",") if t.strip()]
        return RunOutcome(OutcomeKind.SUCCESS, tables=tables)

    if debug:
        debug_log = Path(working_dir) / DEBUG_LOG_NAME
        if debug_log.is_file():
            content = debug_log.read_text(encoding="utf-8", errors="replace")
            logger.error("The command failed with the following errors:")
            for line in content.splitlines():
                logger.error(line)
            return RunOutcome(OutcomeKind.DEBUG_FAILURE, message=content)

        output = compose_output(result)
        logger.error("The command failed with the following errors:")
        for line in output.split("\n"):
            logger.error(line)
        return RunOutcome(OutcomeKind.PLAIN_FAILURE, message=output)

    output = compose_output(result)
    logger.error(f"The command failed with message {output}")
    if is_missing_java(output):
        output = JAVA_HOME_HINT + output
    return RunOutcome(OutcomeKind.PLAIN_FAILURE, message=output)


def parse_parameter_lines(
    lines: Iterable[str], logger: Optional[logging.Logger] = None
) -> Dict[str, Any]:
    """Parse ``name => value`` lines printed by the parameter wrapper.

    Repeated names, and always ``packages``, collect their values in a list.
    Lines without exactly one separator are skipped.
    """
    logger = logger or get_logger()
    parameters: Dict[str, Any] = {}
    for line in lines:
        components = line.split("=>")
        if len(components) != 2:
            logger.warning(f"Invalid output line: {line}")
            continue
        name, value = components[0].strip(), components[1].strip()
        if name in parameters or name == "packages":
            existing = parameters.get(name)
            if existing is None:
                parameters[name] = [value]
            elif isinstance(existing, list):
                existing.append(value)
            else:
                parameters[name] = [existing, value]
        else:
            parameters[name] = value
    return parameters


class RWrapper:
    """Runs R scripts through the wrapper contract."""

    def __init__(
        self,
        runner_config: RunnerConfig,
        credentials: Optional[Credentials] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the wrapper.

        Args:
            runner_config: Interpreter, wrapper and driver locations
            credentials: Warehouse credentials (needed by run, not by get_parameters)
            logger: Optional logger (defaults to the runner logger)
        """
        self.config = runner_config
        self.credentials = credentials
        self.logger = logger or get_logger()

    def build_command(
        self,
        script_path: Union[str, Path],
        working_dir: Union[str, Path],
        source_table: str,
        params: Any,
        debug: bool,
    ) -> CommandSpec:
        """Build the interpreter invocation for a job script."""
        if self.credentials is None:
            raise ConfigurationError("Database credentials are required to run a script.")
        creds = self.credentials
        return CommandSpec(
            executable=self.config.rscript,
            wrapper=str(Path(self.config.wrapper_script).resolve()),
            script=str(Path(script_path).resolve()),
            arguments=[
                str(Path(self.config.db_driver).resolve()),
                creds.jdbc_url,
                creds.user,
                creds.password,
                creds.schema_name,
                str(working_dir),
                source_table,
                json.dumps(params),
                "1" if debug else "0",
            ],
            password=creds.password,
        )

    def execute(self, command: CommandSpec) -> RunResult:
        """Run the interpreter and wait for it without any timeout."""
        try:
            completed = subprocess.run(
                command.argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=None,
            )
        except OSError as e:
            raise ScriptExecutionError(
                f"Cannot execute R interpreter '{command.executable}': {e}"
            ) from e
        return RunResult(completed.returncode, completed.stdout, completed.stderr)

    def run(
        self,
        script_path: Union[str, Path],
        working_dir: Union[str, Path],
        source_table: str,
        params: Any,
        debug: bool,
    ) -> List[str]:
        """Run a job script.

        Returns:
            Names of intermediate tables reported by the script

        Raises:
            ScriptExecutionError: If the interpreter exits with non-zero status
        """
        self.logger.info(f"Running R-script {script_path}, this may take some time.")
        command = self.build_command(script_path, working_dir, source_table, params, debug)
        self.logger.debug(f"Executing command line {command.masked()}")

        result = self.execute(command)
        self.logger.debug(f"RETURN: {result.exit_code!r}")
        self.logger.debug(f"OUTPUT: {mask_secret(result.stdout, command.password)!r}")

        outcome = classify_result(result, debug, working_dir, self.logger)
        if not outcome.succeeded:
            raise ScriptExecutionError(
                outcome.message,
                exit_code=result.exit_code,
                details={"outcome": outcome.kind.value},
            )

        self.logger.info(
            f"R-script successful, intermediate tables: {', '.join(outcome.tables)}"
        )
        return outcome.tables

    def get_parameters(self, script_path: Union[str, Path]) -> Dict[str, Any]:
        """Discover the parameters a script declares.

        Raises:
            ScriptExecutionError: If the parameter wrapper fails
        """
        argv = [
            self.config.rscript,
            "--vanilla",
            str(Path(self.config.params_wrapper_script).resolve()),
            Path(script_path).resolve().as_posix(),
        ]
        self.logger.debug(f"Executing command line {shlex.join(argv)}")
        try:
            completed = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise ScriptExecutionError(
                f"Cannot execute R interpreter '{self.config.rscript}': {e}"
            ) from e

        lines = (completed.stdout or "").splitlines()
        self.logger.debug(f"RETURN: {completed.returncode!r}")
        self.logger.debug(f"OUTPUT: {lines!r}")
        if completed.returncode != 0:
            message = " ".join(lines)
            self.logger.error(f"The command failed with message: {message}")
            raise ScriptExecutionError(message, exit_code=completed.returncode)

        self.logger.info(f"RScript successful: {' '.join(lines)}")
        return parse_parameter_lines(lines, self.logger)

    def list_scripts(self, script_dir: Union[str, Path, None] = None) -> Dict[str, Any]:
        """Describe every runnable script module with its parameters."""
        modules = find_script_modules(script_dir or self.config.script_dir)
        return {
            name: {"name": name, "parameters": self.get_parameters(path)}
            for name, path in modules.items()
        }
